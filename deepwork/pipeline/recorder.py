"""
Append-only phase audit trail.

Every pipeline phase writes one PhaseRecord. Appends are best-effort: a
store failure is logged and never fails the run. Phase order is a per-run
counter assigned at append time, so order values are strictly increasing
within a task and compact when phases are skipped.
"""

import copy
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ..core.errors import PhaseStoreError
from ..core.types import PhaseRecord, PhaseSummary

logger = logging.getLogger(__name__)

PHASE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS pipeline_phases (
    id BIGSERIAL PRIMARY KEY,
    task_id TEXT NOT NULL,
    phase_name TEXT NOT NULL,
    phase_order INT NOT NULL,
    output_content TEXT,
    model_tier TEXT,
    tokens_used INT DEFAULT 0,
    duration_ms INT DEFAULT 0,
    score DECIMAL(3,1),
    metadata JSONB DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW()
);
"""

PHASE_INDEX_SQL = (
    "CREATE INDEX IF NOT EXISTS idx_pipeline_phases_task ON pipeline_phases(task_id, phase_order);",
    "CREATE INDEX IF NOT EXISTS idx_pipeline_phases_name ON pipeline_phases(phase_name);",
)


@runtime_checkable
class PhaseStore(Protocol):
    async def append(self, record: PhaseRecord) -> None:
        ...

    async def list_phases(self, task_id: str) -> List[PhaseRecord]:
        ...


class InMemoryPhaseStore:
    """Process-local store for tests and for running without a database"""

    def __init__(self):
        self._records: Dict[str, List[PhaseRecord]] = {}

    async def append(self, record: PhaseRecord) -> None:
        self._records.setdefault(record.task_id, []).append(copy.deepcopy(record))

    async def list_phases(self, task_id: str) -> List[PhaseRecord]:
        records = self._records.get(task_id, [])
        return [copy.deepcopy(r) for r in sorted(records, key=lambda r: r.phase_order)]

    def clear(self):
        self._records.clear()


class PostgresPhaseStore:
    """
    Writes the pipeline_phases table through an asyncpg pool.

    Args:
        db_pool: asyncpg connection pool
    """

    def __init__(self, db_pool):
        self.db_pool = db_pool

    async def ensure_schema(self) -> None:
        async with self.db_pool.acquire() as conn:
            await conn.execute(PHASE_TABLE_SQL)
            for statement in PHASE_INDEX_SQL:
                await conn.execute(statement)
        logger.info("pipeline_phases table ready")

    async def append(self, record: PhaseRecord) -> None:
        try:
            async with self.db_pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO pipeline_phases
                    (task_id, phase_name, phase_order, output_content, model_tier,
                     tokens_used, duration_ms, score, metadata)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb)
                    """,
                    record.task_id,
                    record.phase_name,
                    record.phase_order,
                    record.content,
                    record.model_tier,
                    record.tokens_used,
                    record.duration_ms,
                    record.score,
                    json.dumps(record.metadata, default=str),
                )
        except Exception as e:
            raise PhaseStoreError(f"Failed to insert {record.phase_name} phase for {record.task_id}: {e}") from e

    async def list_phases(self, task_id: str) -> List[PhaseRecord]:
        try:
            async with self.db_pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT task_id, phase_name, phase_order, output_content, model_tier,
                           tokens_used, duration_ms, score, metadata
                    FROM pipeline_phases
                    WHERE task_id = $1
                    ORDER BY phase_order
                    """,
                    task_id,
                )
        except Exception as e:
            raise PhaseStoreError(f"Failed to list phases for {task_id}: {e}") from e
        return [_record_from_row(row) for row in rows]


def _record_from_row(row) -> PhaseRecord:
    metadata = row["metadata"]
    if isinstance(metadata, str):
        metadata = json.loads(metadata or "{}")
    score = row["score"]
    return PhaseRecord(
        task_id=row["task_id"],
        phase_name=row["phase_name"],
        phase_order=row["phase_order"],
        content=row["output_content"],
        model_tier=row["model_tier"],
        tokens_used=row["tokens_used"] or 0,
        duration_ms=row["duration_ms"] or 0,
        score=float(score) if score is not None else None,
        metadata=metadata or {},
    )


class PhaseLog:
    """
    Phase records of a single run. Owns the run's order counter.
    """

    def __init__(self, store: PhaseStore, task_id: str):
        self.store = store
        self.task_id = task_id
        self.records: List[PhaseRecord] = []
        self._next_order = 1

    async def record(
        self,
        phase_name: str,
        content: Optional[str] = None,
        model_tier: Optional[str] = None,
        tokens_used: int = 0,
        duration_ms: int = 0,
        score: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
        status: str = "ok",
    ) -> PhaseRecord:
        record = PhaseRecord(
            task_id=self.task_id,
            phase_name=phase_name,
            phase_order=self._next_order,
            content=content,
            model_tier=model_tier,
            tokens_used=tokens_used or 0,
            duration_ms=duration_ms or 0,
            score=score,
            metadata={**(metadata or {}), "status": status},
        )
        self._next_order += 1
        self.records.append(record)

        try:
            await self.store.append(record)
        except Exception as e:
            logger.error(f"Failed to save {phase_name} phase for task {self.task_id}: {e}")
        return record

    def summaries(self) -> List[PhaseSummary]:
        return [
            PhaseSummary(name=r.phase_name, order=r.phase_order, duration_ms=r.duration_ms, status=r.status)
            for r in self.records
        ]


class PhaseRecorder:
    """Front door to the phase store: opens per-run logs and serves audit reads"""

    def __init__(self, store: Optional[PhaseStore] = None):
        self.store = store if store is not None else InMemoryPhaseStore()

    def begin(self, task_id: str) -> PhaseLog:
        return PhaseLog(self.store, task_id)

    async def list_phases(self, task_id: str) -> List[PhaseRecord]:
        return await self.store.list_phases(task_id)

    async def latest_critique(self, task_id: str) -> Optional[PhaseRecord]:
        """
        Most recent critique record for a task, or None. Lets callers pull
        the lesson and scores without another model call.
        """
        phases = await self.list_phases(task_id)
        critiques = [p for p in phases if p.phase_name == "critique"]
        return critiques[-1] if critiques else None

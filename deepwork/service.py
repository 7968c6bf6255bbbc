"""
Deep Work Service - HTTP front door for the pipeline and its audit trail
"""
from contextlib import asynccontextmanager
from datetime import datetime
import logging
from typing import Optional

import asyncpg
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from .config.logging import configure_logging
from .config.settings import get_settings
from .core.errors import PhaseStoreError
from .llm.gateway import ModelTier
from .pipeline.orchestrator import DeepWorkPipeline, ExecuteRequest, PipelineRunConfig
from .pipeline.recorder import PostgresPhaseStore

logger = logging.getLogger(__name__)

DEFAULT_PERSONA = "You are a senior analyst. Produce complete, specific, well-sourced work."


# Pydantic Models
class ExecuteBody(BaseModel):
    task_description: str = Field(..., min_length=1)
    persona_prompt: str = DEFAULT_PERSONA
    tier: str = Field(default=ModelTier.STANDARD.value, description="tier1 | tier2 | tier3")
    skip_research: bool = False
    skip_pipeline: bool = False
    citation_score_override: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    task_id: Optional[str] = None
    approach_hints: Optional[str] = None


async def _open_pool(database_url: str):
    try:
        pool = await asyncpg.create_pool(dsn=database_url, min_size=1, max_size=10, command_timeout=30)
    except (OSError, asyncpg.PostgresError) as e:
        logger.error(f"Could not connect to Postgres, phases will be kept in memory: {e}")
        return None
    try:
        await PostgresPhaseStore(pool).ensure_schema()
    except asyncpg.PostgresError as e:
        logger.error(f"Could not create pipeline_phases, phases will be kept in memory: {e}")
        await pool.close()
        return None
    logger.info("Database connection pool created")
    return pool


@asynccontextmanager
async def lifespan(app: FastAPI):
    pool = None
    if getattr(app.state, "pipeline", None) is None:
        configure_logging()
        settings = get_settings()
        if settings.database_url:
            pool = await _open_pool(settings.database_url)
        app.state.pipeline = DeepWorkPipeline.from_settings(settings, db_pool=pool)
        logger.info("Deep work pipeline ready")
    try:
        yield
    finally:
        if pool is not None:
            await pool.close()


def create_app(pipeline: Optional[DeepWorkPipeline] = None) -> FastAPI:
    app = FastAPI(
        title="Deep Work Service",
        description="Staged, citation-grounded task execution",
        version="0.4.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "deepwork"}

    @app.post("/api/execute", tags=["pipeline"])
    async def execute(body: ExecuteBody, request: Request):
        """
        Run one task through the pipeline. Fatal phase errors come back in
        the result's `error` field, not as HTTP errors.
        """
        try:
            tier = ModelTier.parse(body.tier)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        logger.info(f"Execute request (tier {tier.value}, skip_research={body.skip_research}, "
                    f"skip_pipeline={body.skip_pipeline})")
        result = await request.app.state.pipeline.execute(ExecuteRequest(
            task_description=body.task_description,
            persona_prompt=body.persona_prompt,
            tier=tier,
            config=PipelineRunConfig(
                skip_research=body.skip_research,
                skip_pipeline=body.skip_pipeline,
                citation_score_override=body.citation_score_override,
            ),
            task_id=body.task_id,
            approach_hints=body.approach_hints,
        ))
        return {**result.to_dict(), "timestamp": datetime.now().isoformat()}

    @app.get("/api/tasks/{task_id}/phases", tags=["audit"])
    async def list_phases(task_id: str, request: Request):
        try:
            records = await request.app.state.pipeline.recorder.list_phases(task_id)
        except PhaseStoreError as e:
            logger.error(f"Phase listing failed: {e}")
            raise HTTPException(status_code=503, detail=str(e))
        return {"task_id": task_id, "phases": [r.to_dict() for r in records]}

    @app.get("/api/tasks/{task_id}/critique", tags=["audit"])
    async def latest_critique(task_id: str, request: Request):
        try:
            record = await request.app.state.pipeline.recorder.latest_critique(task_id)
        except PhaseStoreError as e:
            logger.error(f"Critique lookup failed: {e}")
            raise HTTPException(status_code=503, detail=str(e))
        if record is None:
            raise HTTPException(status_code=404, detail=f"No critique recorded for task {task_id}")
        return {
            "task_id": task_id,
            "score": record.score,
            "lesson": record.metadata.get("lesson"),
            "scores": record.metadata.get("scores", {}),
            "gaps": record.metadata.get("gaps", []),
            "phase_order": record.phase_order,
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8010)

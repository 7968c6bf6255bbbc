"""
Pipeline orchestration: research coordination, phase recording and the
deep work state machine.
"""

from .orchestrator import DeepWorkPipeline, ExecuteRequest, PipelineRunConfig, PipelineState
from .recorder import InMemoryPhaseStore, PhaseLog, PhaseRecorder, PhaseStore, PostgresPhaseStore
from .research import ResearchCoordinator, ResearchOutcome

__all__ = [
    "DeepWorkPipeline",
    "ExecuteRequest",
    "PipelineRunConfig",
    "PipelineState",
    "InMemoryPhaseStore",
    "PhaseLog",
    "PhaseRecorder",
    "PhaseStore",
    "PostgresPhaseStore",
    "ResearchCoordinator",
    "ResearchOutcome",
]

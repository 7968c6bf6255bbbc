"""
deepwork: staged, citation-grounded task execution.

A task goes through decomposition, bounded web research, synthesis, a
citation check and a capped critique/revision loop, with every phase
written to an append-only audit log.
"""

from .core.types import PipelineResult
from .pipeline.orchestrator import DeepWorkPipeline, ExecuteRequest, PipelineRunConfig

__version__ = "0.4.0"

__all__ = ["DeepWorkPipeline", "ExecuteRequest", "PipelineRunConfig", "PipelineResult"]

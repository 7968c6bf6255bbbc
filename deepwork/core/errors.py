# deepwork/core/errors.py


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class PhaseFailed(PipelineError):
    """Raised when a phase hits a fatal error and the run must stop."""

    tag = "PhaseFailed"
    label = "Phase"

    def __init__(self, reason: str, phase: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.phase = phase

    def describe(self) -> str:
        return f"{self.label} failed: {self.reason}"


class DecomposeFailed(PhaseFailed):
    """The model gateway errored while decomposing the task."""

    tag = "DecomposeFailed"
    label = "Decompose"

    def __init__(self, reason: str):
        super().__init__(reason, phase="decompose")


class SynthesizeFailed(PhaseFailed):
    """The model gateway errored while producing the deliverable."""

    tag = "SynthesizeFailed"
    label = "Synthesize"

    def __init__(self, reason: str):
        super().__init__(reason, phase="synthesize")


class PhaseStoreError(PipelineError):
    """Raised when the phase store cannot write or read phase records."""

from .decomposer import Decomposer, DecomposeOutcome, decomposition_from_json

__all__ = ["Decomposer", "DecomposeOutcome", "decomposition_from_json"]

"""
Synthesis, citation validation, self-critique and revision.
"""

from .critic import Critic, CritiqueOutcome, RevisionOutcome, critique_from_json, needs_revision, normalize_scores
from .synthesizer import Synthesizer, SynthesisOutcome
from .verify import extract_urls, is_factual_claim, validate_citations

__all__ = [
    "Critic",
    "CritiqueOutcome",
    "RevisionOutcome",
    "critique_from_json",
    "needs_revision",
    "normalize_scores",
    "Synthesizer",
    "SynthesisOutcome",
    "extract_urls",
    "is_factual_claim",
    "validate_citations",
]

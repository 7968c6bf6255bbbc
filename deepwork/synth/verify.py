"""
Citation validation for synthesized deliverables.

Zero inference cost: pure string analysis that checks whether the URLs a
deliverable cites actually came from the research sources, and how many of
its factual lines carry such a citation.
"""

import re
import logging
from typing import Iterable, List

from ..core.types import CitationCheck, StructuredSource

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r'https?://[^\s\])"]+')
_TRAILING_PUNCT = ".,;:!?'>"
MIN_CLAIM_LENGTH = 30


def extract_urls(text: str) -> List[str]:
    """Unique URL-like tokens in order of first appearance"""
    seen = set()
    urls = []
    for match in URL_PATTERN.findall(text or ""):
        url = match.rstrip(_TRAILING_PUNCT)
        if url and url not in seen:
            seen.add(url)
            urls.append(url)
    return urls


def is_factual_claim(line: str) -> bool:
    trimmed = line.strip()
    if not trimmed:
        return False
    if trimmed.startswith("#"):       # headings
        return False
    if trimmed.startswith("---"):     # dividers
        return False
    if trimmed.startswith("- **["):   # source list items
        return False
    return len(trimmed) > MIN_CLAIM_LENGTH


def validate_citations(content: str, structured_sources: Iterable[StructuredSource]) -> CitationCheck:
    """
    Ground the deliverable's citations against the research sources.

    citation_score = cited factual lines / factual lines, 0 when there are
    no factual lines. Advisory input for the critic, not a gate.
    """
    source_urls = {s.url for s in (structured_sources or [])}
    found_urls = extract_urls(content)

    cited_urls = [url for url in found_urls if url in source_urls]
    uncited_urls = [url for url in found_urls if url not in source_urls]

    claims = [line for line in (content or "").split("\n") if is_factual_claim(line)]
    total = len(claims)
    cited = sum(1 for line in claims if any(url in line for url in cited_urls))
    score = cited / total if total > 0 else 0.0

    if uncited_urls:
        logger.info(f"Citation check: {len(uncited_urls)} URL(s) not found in research sources")

    return CitationCheck(
        cited_urls=cited_urls,
        uncited_urls=uncited_urls,
        citation_score=score,
        cited_claims=cited,
        total_factual_claims=total,
    )

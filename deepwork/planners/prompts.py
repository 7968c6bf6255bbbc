# deepwork/planners/prompts.py
from datetime import datetime
from typing import List, Optional

SYSTEM_DECOMPOSER = "You are a task decomposition assistant. Respond only with valid JSON."
SYSTEM_QUERY_REFINER = "You are a search query optimization assistant. Respond only with valid JSON."
SYSTEM_GAP_ANALYST = "You are a research coverage analyst. Respond only with valid JSON."

DECOMPOSE_PROMPT = """## DECOMPOSE THIS TASK

You are preparing to execute the following task. Before doing the work, break it down.

**Task:** {task}

Respond with ONLY a JSON object (no markdown, no explanation) with this structure:
{{
  "subQuestions": ["specific question 1", "specific question 2", ...],
  "searchQueries": ["web search query 1", "web search query 2", ...],
  "keyRequirements": ["what the final deliverable must include"]
}}

Rules:
- 2-4 sub-questions that, once answered, fully address the task
- 2-4 web search queries designed to find REAL DATA (market reports, competitor info, statistics)
- Search queries should be specific and include the current year ({year}) where relevant
- keyRequirements should list what makes a HIGH-QUALITY deliverable for this task"""

APPROACH_HINTS_SECTION = """

## PAST APPROACH (what worked before on similar tasks)
{hints}"""

REFINE_QUERIES_PROMPT = """## REFINE_QUERIES — Generate better search queries

The following queries did not return enough substantive results:
{bullets_queries}

Original task: {task}

Generate 2-3 refined queries that are more specific and likely to return data-rich results.
Respond with ONLY JSON: {{"refinedQueries": ["query1", "query2"]}}"""

GAP_ANALYSIS_PROMPT = """## GAP ANALYSIS — Is the research sufficient?

**Task:** {task}

**Sub-questions the deliverable must answer:**
{bullets_subquestions}

**Sources collected so far ({num_sources}):**
{source_summary}

Compare the sub-questions against the sources. Identify SPECIFIC topics that are
still missing (e.g. "2024 pricing for competitor X", not "more data").

Respond with ONLY a JSON object (no markdown, no explanation):
{{
  "gaps": ["specific missing topic 1", ...],
  "additionalQueries": ["targeted web search query 1", ...],
  "sufficient": <true if the sources already cover every sub-question, else false>
}}

Rules:
- At most 3 additionalQueries, each aimed at one gap
- If sufficient is true, additionalQueries may be empty"""


def _bullets(items: List[str], quote: bool = False) -> str:
    if not items:
        return "- (none)"
    if quote:
        return "\n".join(f'- "{item}"' for item in items)
    return "\n".join(f"- {item}" for item in items)


def build_decompose_prompt(task: str, approach_hints: Optional[str] = None, year: Optional[int] = None) -> str:
    prompt = DECOMPOSE_PROMPT.format(task=task, year=year or datetime.now().year)
    if approach_hints:
        prompt += APPROACH_HINTS_SECTION.format(hints=approach_hints)
    return prompt


def build_refine_queries_prompt(original_queries: List[str], task: str) -> str:
    return REFINE_QUERIES_PROMPT.format(bullets_queries=_bullets(original_queries, quote=True), task=task)


def build_gap_analysis_prompt(task: str, sub_questions: List[str], source_summary: str, num_sources: int) -> str:
    return GAP_ANALYSIS_PROMPT.format(
        task=task,
        bullets_subquestions=_bullets(sub_questions),
        num_sources=num_sources,
        source_summary=source_summary or "- (no sources yet)",
    )

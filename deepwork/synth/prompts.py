"""
Prompts for the SYNTHESIZE / CRITIQUE / REVISE phases.

The synthesize and revise prompts carry the research sources twice: once as
a compact inventory for precise citation and once in full for deep
reference. The critique prompt anchors each 1-5 score so ratings stay
comparable between runs.
"""

from typing import List, Optional

from ..core.types import BudgetUsage, Critique, Source

SYSTEM_CRITIC = "You are a quality reviewer. Evaluate work honestly and respond only with valid JSON."

SYNTHESIZE_HEADER = """## SYNTHESIZE — Produce the deliverable

**Task:** {task}"""

SYNTHESIZE_REQUIREMENTS = """

## CRITICAL REQUIREMENTS
- Use ONLY these sources for factual claims. If data is not available in these sources, state "data not found" — never fabricate.
- Use SPECIFIC data from the research sources above — cite URLs
- If data is unavailable for a claim, explicitly state "data not found" rather than inventing numbers
- Produce the ACTUAL deliverable, not a description of what it should contain
- Every claim must be backed by evidence from the research data or clearly marked as an estimate"""

RESEARCH_BUDGET_SECTION = """

## RESEARCH BUDGET
Research for this task consumed {summary}.
{remaining_note}
Calibrate your citations to what was actually gathered: where the sources above are thin,
say so explicitly and flag the missing data instead of filling the gap."""

CRITIQUE_PROMPT = """## CRITIQUE YOUR OWN WORK

You just produced the following deliverable. Now evaluate it honestly.

**Original Task:** {task}

**Your Deliverable:**
{deliverable}

Respond with ONLY a JSON object (no markdown, no explanation):
{{
  "scores": {{
    "completeness": <1-5>,
    "accuracy": <1-5>,
    "actionability": <1-5>,
    "depth": <1-5>
  }},
  "overallScore": <average of above, one decimal>,
  "gaps": ["specific gap 1", "specific gap 2"],
  "lesson": "one sentence about what to do differently next time"
}}

## SCORING RUBRIC — Use these anchors for each dimension:

**DEPTH:**
- 1.0: generic, could be from any AI
- 2.0: some specifics but mostly surface
- 3.0: solid domain knowledge, specific examples
- 4.0: expert-level analysis with novel connections
- 5.0: groundbreaking insight, publishable quality

**ACCURACY:**
- 1.0: fabricated facts or hallucinated data
- 2.0: some claims unverified
- 3.0: most claims sourced or reasonable
- 4.0: all claims cross-referenced, sources cited
- 5.0: every claim verified with primary sources

**ACTIONABILITY:**
- 1.0: vague advice, no specifics
- 2.0: some recommendations but lacks detail
- 3.0: clear next steps with owners
- 4.0: detailed playbook with timelines and metrics
- 5.0: ready-to-execute blueprint with contingencies

**COMPLETENESS:**
- 1.0: addresses less than 50% of requirements
- 2.0: major sections missing
- 3.0: all sections present, some thin
- 4.0: comprehensive, minor gaps only
- 5.0: exhaustive, anticipates follow-up questions

CALIBRATION: 3.0 is GOOD work. 4.0 is EXCELLENT. 5.0 is rare — reserve for truly exceptional output. Average output should score 2.5-3.0. Be BRUTALLY HONEST — inflated scores help nobody."""

CITATION_HINT = """

NOTE: Automated citation check found citation_score: {score}. Factor this into your ACCURACY scoring."""

REVISE_PROMPT = """## REVISE YOUR DELIVERABLE

Your self-critique identified gaps. Fix them.

**Original Task:** {task}

**Your Previous Output:**
{previous}

**Self-Critique Feedback:**
- Overall Score: {overall}/5
- Gaps: {gaps}"""

REVISE_INSTRUCTIONS = """

## REVISION INSTRUCTIONS
- Address EVERY gap identified in the critique
- Do NOT remove good content from the original — improve it
- Add specific data and citations where the critique found gaps
- Keep citing ONLY the research sources; mark anything else "data not found"
- Produce the COMPLETE revised deliverable (not just the changes)"""


def format_source_inventory(sources: List[Source], preview_chars: int = 200) -> str:
    lines = ["", "", "## AVAILABLE SOURCES"]
    for i, item in enumerate(sources, start=1):
        lines.append("")
        lines.append(f"**[{i}]** {item.title or item.url}")
        lines.append(f"- URL: {item.url}")
        lines.append(f"- Key data: {(item.content or '')[:preview_chars]}...")
    return "\n".join(lines)


def format_full_sources(sources: List[Source], heading: str = "RESEARCH DATA (full source content)") -> str:
    parts = [f"\n\n## {heading}\n"]
    for item in sources:
        parts.append(f"\n### Source: {item.title or item.url}\nURL: {item.url}\n{item.content}\n")
    return "".join(parts)


def build_synthesize_prompt(
    task: str,
    sources: List[Source],
    sub_questions: List[str],
    budget_used: Optional[BudgetUsage] = None,
    preview_chars: int = 200,
) -> str:
    prompt = SYNTHESIZE_HEADER.format(task=task)

    if sources:
        prompt += format_source_inventory(sources, preview_chars)
        prompt += format_full_sources(sources)

    if sub_questions:
        prompt += "\n\n## SUB-QUESTIONS TO ADDRESS\n"
        prompt += "".join(f"- {q}\n" for q in sub_questions)

    if budget_used is not None:
        if budget_used.exhausted:
            remaining_note = "The fetch budget is fully spent: no further research is possible for this deliverable."
        else:
            remaining_note = f"{budget_used.fetches_remaining} page fetches were left unused."
        prompt += RESEARCH_BUDGET_SECTION.format(summary=budget_used.summary(), remaining_note=remaining_note)

    prompt += SYNTHESIZE_REQUIREMENTS
    return prompt


def build_critique_prompt(task: str, deliverable: str, citation_score: Optional[float] = None) -> str:
    prompt = CRITIQUE_PROMPT.format(task=task, deliverable=deliverable)
    if citation_score is not None:
        prompt += CITATION_HINT.format(score=round(citation_score, 2))
    return prompt


def build_revise_prompt(task: str, previous: str, critique: Critique, sources: List[Source]) -> str:
    prompt = REVISE_PROMPT.format(
        task=task,
        previous=previous,
        overall=critique.overall_score,
        gaps="; ".join(critique.gaps) if critique.gaps else "(none listed)",
    )
    if sources:
        prompt += format_full_sources(sources, heading="RESEARCH DATA (available for revision)")
    prompt += REVISE_INSTRUCTIONS
    return prompt

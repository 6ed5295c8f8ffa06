"""
Life Admin — Free-text Extraction.

Asks the LLM to turn a pasted message into candidate obligations and tasks.
Candidates come back as plain dicts and are treated exactly like manual
input: ObligationService validates every one before anything is stored.
"""

from __future__ import annotations

import json
import logging
from datetime import date

from src.core.llm import complete

logger = logging.getLogger(__name__)

_KINDS = ("obligation", "task")

_SYSTEM_PROMPT = """\
You are an extraction engine for a personal life-admin assistant.
Read the user's message and list every real-world obligation (a deadline,
renewal, payment, exam, appointment) and every concrete to-do task in it.

Today's date is {today}.

**ALWAYS return a JSON array** `[]`, even for a single item. Return `[]` if
there is nothing to track.

Obligation schema:
{{"kind": "obligation", "title": "string", "category": "education|finance|work|personal|health|other",
  "type": "one_time|recurring", "frequency": "daily|weekly|monthly|yearly|null",
  "due_date": "YYYY-MM-DDTHH:MM", "risk_level": "low|medium|high", "consequence": "string or null"}}

- "frequency" must be null unless "type" is "recurring".
- Resolve relative dates ("next Friday", "end of month") against today.
- If no time is given use 09:00.
- "risk_level" is high when missing the deadline has legal, financial or
  health consequences; low for minor personal items; otherwise medium.

Task schema:
{{"kind": "task", "title": "string", "description": "string", "priority": "low|medium|high"}}

Return ONLY the JSON array, no explanation.
"""


def _clean_llm_response(raw_text: str) -> str:
    """Strip markdown code fences the model sometimes wraps around JSON."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


async def extract_candidates(raw_text: str) -> list[dict]:
    """Extract candidate obligations/tasks from free text.

    Best-effort: any LLM or JSON failure yields an empty list. Items without
    a recognised "kind" are dropped; everything else is returned unvalidated.
    """
    if not raw_text or not raw_text.strip():
        return []

    system_prompt = _SYSTEM_PROMPT.format(today=date.today().isoformat())

    try:
        raw = await complete(
            system=system_prompt, user_message=raw_text, max_tokens=1024, json_output=True,
        )
    except Exception as exc:
        logger.error("Extraction LLM call failed: %s", exc)
        return []

    raw = _clean_llm_response(raw)
    logger.debug("LLM raw extraction: %s", raw)
    if raw in ("", "null", "[]"):
        logger.info("Nothing to extract from message: %s", raw_text[:80])
        return []

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse extraction as JSON: %s — raw: '%s'", exc, raw)
        return []

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        logger.warning("LLM returned unexpected type: %s", type(data).__name__)
        return []

    candidates: list[dict] = []
    for item in data:
        if not isinstance(item, dict) or item.get("kind") not in _KINDS:
            logger.warning("Skipping unrecognised extraction item: %s", item)
            continue
        candidates.append(item)

    logger.info("Extracted %d candidates", len(candidates))
    return candidates

"""
Parsing Service for LLM chapter and analysis output

Turns raw model text into the payloads the scheduler works with. Handles the
usual variability in model output:
- Markdown code fences around JSON
- Preamble text before the JSON object
- Trailing commas and JavaScript comments
- Plain prose where JSON was asked for (chapter text only)

Architecture:
- Called by ChapterWriterAgent (chapter output) and ChapterAnalyzerAgent
  (quality analysis)
- Stateless utility functions (no class needed)
"""

import json
import math
import re
import logging
from typing import Any, Dict, List, Optional

from soulscribe.config.limits import SUMMARY_MAX_LENGTH
from soulscribe.models import QualityScore
from soulscribe.scheduler.errors import ScoringError

logger = logging.getLogger(__name__)

REFLECTION_MARKER = re.compile(r"what did we learn from this chapter\??", re.IGNORECASE)

# Analysis dimensions and their weight in the overall score
ANALYSIS_WEIGHTS = {
    "structure": 0.2,
    "spiritual_depth": 0.25,
    "narrative_flow": 0.2,
    "character_development": 0.15,
    "learning_integration": 0.2,
}


# =========================================================================
# JSON CLEANING
# =========================================================================

def clean_json_output(output: str) -> str:
    """
    Pull a JSON object out of raw LLM output and repair common issues.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Preamble text before the object
    - Trailing commas before ] or }
    - JavaScript-style // and /* */ comments
    - Control characters other than tab/newline/carriage return

    Args:
        output: Raw LLM output

    Returns:
        Cleaned JSON string (may still fail to parse if the output had none)
    """
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f]', '', output.strip())

    fenced = re.search(r'```(?:json)?\s*(\{[\s\S]*\})\s*```', text)
    candidate = fenced.group(1) if fenced else (_extract_json_object(text) or text)

    if _loads(candidate) is not None:
        return candidate

    repaired = re.sub(r'/\*.*?\*/', '', candidate, flags=re.DOTALL)
    repaired = re.sub(r'(?m)^\s*//.*$', '', repaired)
    repaired = re.sub(r',(\s*[}\]])', r'\1', repaired)
    if repaired != candidate:
        logger.info(f"JSON repaired ({len(candidate)} → {len(repaired)} chars)")
    return repaired


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text, strict=False)
    except json.JSONDecodeError:
        return None


def _extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` span in text, or None.

    Braces inside JSON strings are ignored.
    """
    start = text.find('{')
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
        elif char == '\\' and in_string:
            escaped = True
        elif char == '"':
            in_string = not in_string
        elif not in_string and char == '{':
            depth += 1
        elif not in_string and char == '}':
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def parse_json_object(output: str) -> Optional[Dict[str, Any]]:
    """Parse the JSON object in LLM output, or None when there isn't one"""
    parsed = _loads(clean_json_output(output))
    return parsed if isinstance(parsed, dict) else None


# =========================================================================
# CHAPTER OUTPUT
# =========================================================================

def parse_chapter_output(output: str) -> Dict[str, Any]:
    """
    Parse writer output into Draft fields.

    Accepts the requested JSON shape ({"content", "summary", "key_lessons"})
    and falls back to treating the whole output as chapter prose, with the
    closing "What did we learn" reflection mined for lessons.

    Returns:
        Dict with ``content``, ``summary`` and ``key_lessons``
    """
    data = parse_json_object(output)
    if data and isinstance(data.get("content"), str) and data["content"].strip():
        lessons = data.get("key_lessons") or []
        if isinstance(lessons, str):
            lessons = [lessons]
        return {
            "content": data["content"].strip(),
            "summary": str(data.get("summary") or "").strip()[:SUMMARY_MAX_LENGTH],
            "key_lessons": [str(lesson).strip() for lesson in lessons if str(lesson).strip()],
        }

    content = output.strip()
    if content.startswith("```"):
        content = re.sub(r'^```\w*\s*|\s*```$', '', content).strip()
    logger.info("Chapter output was not JSON, using raw text")
    return {
        "content": content,
        "summary": _fallback_summary(content),
        "key_lessons": _extract_reflection_lessons(content),
    }


def _fallback_summary(content: str) -> str:
    paragraphs = [p.strip() for p in content.split("\n\n") if p.strip()]
    if not paragraphs:
        return ""
    return paragraphs[0][:SUMMARY_MAX_LENGTH]


def _extract_reflection_lessons(content: str) -> List[str]:
    match = REFLECTION_MARKER.search(content)
    if not match:
        return []
    reflection = content[match.end():]
    lessons = []
    for line in reflection.splitlines():
        line = line.strip().lstrip("-•*").strip()
        if line:
            lessons.append(line)
    return lessons[:5]


# =========================================================================
# QUALITY ANALYSIS
# =========================================================================

def parse_quality_analysis(output: str) -> QualityScore:
    """
    Parse analyzer output into a QualityScore.

    Uses ``overall_score`` when present, otherwise the weighted mean of the
    dimension scores that are present. Hints come from ``recommendations``
    (strings or {"suggestion": ...} dicts) or ``hints``.

    Raises:
        ScoringError: when no usable score is in the output
    """
    data = parse_json_object(output)
    if data is None:
        raise ScoringError(f"Analysis output is not JSON: {output[:120]!r}")

    score = _number(data.get("overall_score"))
    if score is None:
        score = _weighted_dimension_score(data.get("scores") or data)
    if score is None:
        raise ScoringError("Analysis output has no overall_score or dimension scores")

    return QualityScore(score=score, hints=_extract_hints(data))


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    # json.loads accepts NaN and Infinity
    return number if math.isfinite(number) else None


def _weighted_dimension_score(scores: Dict[str, Any]) -> Optional[float]:
    total = 0.0
    weight_sum = 0.0
    for dimension, weight in ANALYSIS_WEIGHTS.items():
        value = _number(scores.get(dimension))
        if value is not None:
            total += value * weight
            weight_sum += weight
    if weight_sum == 0:
        return None
    return total / weight_sum


def _extract_hints(data: Dict[str, Any]) -> List[str]:
    raw = data.get("recommendations") or data.get("hints") or []
    if isinstance(raw, str):
        raw = [raw]
    hints = []
    for item in raw:
        if isinstance(item, dict):
            text = item.get("suggestion") or item.get("issue") or ""
        else:
            text = str(item)
        if text.strip():
            hints.append(text.strip())
    return hints

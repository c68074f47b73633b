"""
Response Normalizer — turns a backend's free-form text into a Verdict.

Scoring backends are asked for JSON but routinely wrap it in prose or
markdown fences, emit reasoning with several brace blocks, use single
quotes, leave trailing commas, or skip JSON entirely. Strategies, in order:

  1. strip markdown code fences
  2. locate candidate {...} blocks (one level of nesting), preferring one
     with a "grade" key, else the last one
  3. no block at all -> bare keyword extraction of grade / score
  4. sanitize the block (control chars, trailing commas, single quotes)
  5. strict json.loads
  6. field-level regex extraction from the sanitized block

Whatever path produced the fields, the grade and score are then validated
and replaced with defaults when out of domain.
"""
from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from app.exceptions import NormalizationError
from app.models.schemas import Grade, Verdict

logger = logging.getLogger(__name__)

DEFAULT_GRADE = Grade.MODERATE
DEFAULT_SCORE = 50
MAX_SUGGESTIONS = 4
NON_JSON_FEEDBACK = "Response parsed from non-JSON format."
FALLBACK_FEEDBACK = "Feedback parsing failed."

_GRADE_VALUES = "|".join(g.value for g in Grade)

_FENCE_RE = re.compile(r"```[a-zA-Z]*[ \t]*")
# Balanced outer braces with at most one level of nested braces inside.
_CANDIDATE_RE = re.compile(r"\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}")
_GRADE_KEY_RE = re.compile(r"""(?<!\w)["']?grade["']?\s*:""", re.IGNORECASE)

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_SQ_KEY_RE = re.compile(r"'([^'\"]+)'\s*:")
_SQ_VALUE_RE = re.compile(r":\s*'([^']*)'")
_SQ_ITEM_RE = re.compile(r"([\[,])\s*'([^']*)'(?=\s*[,\]])")

# Bare keyword patterns, used when there is no brace block at all.
_BARE_GRADE_RE = re.compile(
    rf"""grade["'\s:=*]+({_GRADE_VALUES})\b""", re.IGNORECASE
)
_BARE_SCORE_RE = re.compile(r"""score["'\s:=*]+(-?\d+(?:\.\d+)?)""", re.IGNORECASE)
_BARE_FEEDBACK_RE = re.compile(r"""feedback["\s:]+["']([^"']+)["']""", re.IGNORECASE)

# Field patterns over a sanitized (but unparseable) block.
_FIELD_GRADE_RE = re.compile(
    rf"""(?<!\w)["']?grade["']?\s*:\s*["']?({_GRADE_VALUES})\b""", re.IGNORECASE
)
_FIELD_SCORE_RE = re.compile(
    r"""(?<!\w)["']?score["']?\s*:\s*["']?(-?\d+(?:\.\d+)?)""", re.IGNORECASE
)
_FIELD_FEEDBACK_RE = re.compile(r'''["']?feedback["']?\s*:\s*"((?:[^"\\]|\\.)*)"''', re.IGNORECASE)


def normalize(raw: str) -> Verdict:
    """
    Produce a validated Verdict from raw backend text.

    Raises:
        NormalizationError: when neither a grade nor a score can be recovered.
    """
    if not raw or not raw.strip():
        raise NormalizationError("Empty response from backend", raw_text=raw or "")

    logger.debug(f"Normalizing backend output (first 300 chars): {raw[:300]!r}")

    text = strip_code_fences(raw)
    candidate = select_candidate(text)

    if candidate is None:
        fields = _extract_bare_keywords(text)
        if fields is None:
            raise NormalizationError("No JSON object or grade/score found in response", raw_text=raw)
        logger.warning("No JSON object in backend output; used keyword extraction")
        return validate_fields(fields)

    sanitized = sanitize_candidate(candidate)
    parsed = _parse_strict(sanitized)
    if parsed is not None:
        fields = _find_verdict_fields(parsed)
        if fields is not None:
            return validate_fields(fields)

    fields = _extract_fields(sanitized)
    if fields is None:
        # The chosen block held no verdict; the tokens may sit in prose around it.
        fields = _extract_bare_keywords(text)
    if fields is None:
        raise NormalizationError(
            "JSON parse failed and no grade/score could be extracted", raw_text=raw
        )
    logger.warning("Backend JSON was not usable; used field-level extraction")
    return validate_fields(fields)


# ──────────────────────────────────────────────
# Steps
# ──────────────────────────────────────────────

def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def find_candidates(text: str) -> List[str]:
    return _CANDIDATE_RE.findall(text)


def select_candidate(text: str) -> Optional[str]:
    """Pick the block most likely to be the verdict, or None if there is none."""
    candidates = find_candidates(text)
    if not candidates:
        return None
    for candidate in candidates:
        if _GRADE_KEY_RE.search(candidate):
            return candidate
    # Reasoning usually comes first, the answer last.
    return candidates[-1]


def sanitize_candidate(candidate: str) -> str:
    cleaned = _CONTROL_RE.sub(" ", candidate)
    cleaned = _TRAILING_COMMA_RE.sub(r"\1", cleaned)
    return cleaned


def _normalize_quotes(text: str) -> str:
    text = _SQ_KEY_RE.sub(r'"\1":', text)
    text = _SQ_VALUE_RE.sub(r': "\1"', text)
    text = _SQ_ITEM_RE.sub(r'\1 "\2"', text)
    return text


def _parse_strict(sanitized: str) -> Optional[Any]:
    # Apostrophes inside double-quoted prose must survive, so quote
    # normalization only runs when the block does not parse as-is.
    for attempt in (sanitized, _normalize_quotes(sanitized)):
        try:
            return json.loads(attempt)
        except json.JSONDecodeError:
            continue
    return None


def _find_verdict_fields(parsed: Any) -> Optional[Dict[str, Any]]:
    """Return the object carrying grade/score: top level, or one level down."""
    if not isinstance(parsed, dict):
        return None
    lowered = {str(k).lower(): v for k, v in parsed.items()}
    if "grade" in lowered or "score" in lowered:
        return lowered
    for value in lowered.values():
        if isinstance(value, dict):
            inner = {str(k).lower(): v for k, v in value.items()}
            if "grade" in inner or "score" in inner:
                return inner
    return None


def _extract_bare_keywords(text: str) -> Optional[Dict[str, Any]]:
    grade = _BARE_GRADE_RE.search(text)
    score = _BARE_SCORE_RE.search(text)
    if not grade and not score:
        return None
    feedback = _BARE_FEEDBACK_RE.search(text)
    return {
        "grade": grade.group(1) if grade else None,
        "score": score.group(1) if score else None,
        "feedback": feedback.group(1) if feedback else NON_JSON_FEEDBACK,
        "suggestions": [],
    }


def _extract_fields(sanitized: str) -> Optional[Dict[str, Any]]:
    grade = _FIELD_GRADE_RE.search(sanitized)
    score = _FIELD_SCORE_RE.search(sanitized)
    if not grade and not score:
        return None
    feedback = _FIELD_FEEDBACK_RE.search(sanitized)
    return {
        "grade": grade.group(1) if grade else None,
        "score": score.group(1) if score else None,
        "feedback": _unescape(feedback.group(1)) if feedback else FALLBACK_FEEDBACK,
        "suggestions": [],
    }


def _unescape(captured: str) -> str:
    """Decode JSON escapes (\\" and \\n) in a regex-captured string value."""
    try:
        return json.loads(f'"{captured}"')
    except json.JSONDecodeError:
        return captured


# ──────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────

def validate_grade(value: Any) -> Grade:
    if isinstance(value, str):
        try:
            return Grade(value.strip().lower())
        except ValueError:
            pass
    return DEFAULT_GRADE


def validate_score(value: Any) -> int:
    """
    Accept an integer within 0-100, given as an int, an integral float
    or a numeric string.

    Anything else, including fractions and out-of-range numbers, becomes
    DEFAULT_SCORE. Out-of-range values are replaced, not clamped.
    """
    if isinstance(value, bool):
        return DEFAULT_SCORE
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return DEFAULT_SCORE
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return DEFAULT_SCORE
        value = int(value)
    if isinstance(value, int):
        return value if 0 <= value <= 100 else DEFAULT_SCORE
    return DEFAULT_SCORE


def validate_suggestions(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    items = [item if isinstance(item, str) else json.dumps(item) for item in value if item is not None]
    return [item.strip() for item in items if item.strip()][:MAX_SUGGESTIONS]


def validate_fields(fields: Dict[str, Any]) -> Verdict:
    feedback = fields.get("feedback")
    if feedback is None:
        feedback = ""
    elif not isinstance(feedback, str):
        feedback = str(feedback)
    return Verdict(
        grade=validate_grade(fields.get("grade")),
        score=validate_score(fields.get("score")),
        feedback=feedback.strip(),
        suggestions=validate_suggestions(fields.get("suggestions")),
    )

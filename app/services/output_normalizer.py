"""
Output normalization and validation for untrusted model JSON.

The pipeline order is fixed: parse -> coerce -> validate.

Coercion repairs known drift in model output (floats where integers are
expected, free-text "unknown" variants, Japanese priority labels, savings
intent phrasing). Validation then applies the strict pydantic schema. Any
failure returns None; nothing here raises for bad model output.
"""

import json
import math
import re
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from app.logging_config import get_logger
from app.schemas.chat import UNKNOWN, GoalPriority, SavingsIntent, Unknown, current_year

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

UNKNOWN_SYNONYMS = frozenset(
    {
        "unknown",
        "n/a",
        "na",
        "tbd",
        "undecided",
        "not sure",
        "不明",
        "未定",
        "わからない",
        "分からない",
    }
)

PRIORITY_SYNONYMS: Dict[str, GoalPriority] = {
    "high": GoalPriority.HIGH,
    "高": GoalPriority.HIGH,
    "medium": GoalPriority.MEDIUM,
    "mid": GoalPriority.MEDIUM,
    "middle": GoalPriority.MEDIUM,
    "中": GoalPriority.MEDIUM,
    "low": GoalPriority.LOW,
    "低": GoalPriority.LOW,
}

# Checked in order; the first matching class wins. English keywords are whole words.
SAVINGS_INTENT_KEYWORDS = (
    (
        SavingsIntent.HIGH,
        re.compile(
            r"\b(?:strong\w*|strict\w*|aggressive\w*|hard|a lot|maximi[sz]e\w*|high)\b"
            r"|しっかり|がっつり|積極|強",
            re.IGNORECASE,
        ),
    ),
    (
        SavingsIntent.LOW,
        re.compile(
            r"\b(?:light\w*|relaxed|loose\w*|a little|low|minimal\w*|easy|easily)\b"
            r"|ゆるく|ゆる|無理なく|少し|弱",
            re.IGNORECASE,
        ),
    ),
    (
        SavingsIntent.MEDIUM,
        re.compile(
            r"\b(?:normal\w*|moderate\w*|medium|average|balanced|standard)\b"
            r"|普通|ほどほど|そこそこ|標準|中",
            re.IGNORECASE,
        ),
    ),
)

# Keywords after a negation, up to the next clause break, do not count ("not too hard").
_NEGATED_CLAUSE = re.compile(r"(?:\bnot\b|n't\b|\bnever\b)[^,.;!?、。]*", re.IGNORECASE)

INTEGER_FIELDS = ("monthly_savings_target", "monthly_income", "current_savings")


def is_unknown_text(value: str) -> bool:
    """True when ``value`` is one of the accepted "unknown" spellings."""
    return value.strip().lower() in UNKNOWN_SYNONYMS


def match_savings_intent(text: str) -> Optional[SavingsIntent]:
    """First intent class whose keywords appear outside a negated clause."""
    affirmed = _NEGATED_CLAUSE.sub(" ", text)
    for intent, pattern in SAVINGS_INTENT_KEYWORDS:
        if pattern.search(affirmed):
            return intent
    return None


def classify_savings_intent(text: str) -> SavingsIntent:
    """Map free-text savings wording onto ``SavingsIntent``."""
    if is_unknown_text(text):
        return SavingsIntent.UNKNOWN
    return match_savings_intent(text) or SavingsIntent.UNKNOWN


def _round_number(value: Any) -> Any:
    """Round finite floats to int; leave everything else for the validator."""
    if isinstance(value, float) and math.isfinite(value):
        return int(round(value))
    return value


def _coerce_unknown(value: Any) -> Any:
    if isinstance(value, str) and is_unknown_text(value):
        return UNKNOWN
    return value


def _coerce_priority(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    normalized = value.strip().lower()
    if normalized in PRIORITY_SYNONYMS:
        return PRIORITY_SYNONYMS[normalized]
    if normalized in UNKNOWN_SYNONYMS:
        return UNKNOWN
    return value


def _coerce_goal(goal: Any) -> Any:
    if not isinstance(goal, dict):
        return goal
    coerced = dict(goal)

    if isinstance(coerced.get("title"), str):
        coerced["title"] = coerced["title"].strip()

    amount = coerced.get("target_amount")
    coerced["target_amount"] = _coerce_unknown(_round_number(amount))

    year = _round_number(coerced.get("target_year"))
    if isinstance(year, int) and not isinstance(year, bool):
        year = max(year, current_year())
    coerced["target_year"] = _coerce_unknown(year)

    coerced["priority"] = _coerce_priority(coerced.get("priority"))
    return coerced


def coerce_model_output(data: Any) -> Any:
    """Repair known model-output quirks in a parsed JSON value.

    Returns a new structure; unknown shapes pass through untouched so that
    validation, not coercion, decides whether they are acceptable.
    """
    if not isinstance(data, dict):
        return data
    coerced = dict(data)

    for field in INTEGER_FIELDS:
        if field in coerced:
            coerced[field] = _round_number(coerced[field])

    if isinstance(coerced.get("life_goals"), list):
        coerced["life_goals"] = [_coerce_goal(goal) for goal in coerced["life_goals"]]

    intent = coerced.get("savings_intent")
    if isinstance(intent, str):
        coerced["savings_intent"] = classify_savings_intent(intent)

    if isinstance(coerced.get("score"), float):
        coerced["score"] = _round_number(coerced["score"])

    return coerced


def normalize_and_validate(raw_json_text: Optional[str], schema: Type[ModelT]) -> Optional[ModelT]:
    """Parse, coerce and strictly validate model JSON against ``schema``.

    Args:
        raw_json_text: JSON text, usually from ``extract_first_json_object``
        schema: Pydantic model class describing the hard contract

    Returns:
        A validated ``schema`` instance, or None on any mismatch
    """
    if not raw_json_text:
        return None

    try:
        parsed = json.loads(raw_json_text)
    except json.JSONDecodeError as e:
        logger.warning("Model output is not valid JSON", schema=schema.__name__, error=str(e))
        return None

    try:
        return schema.model_validate(coerce_model_output(parsed))
    except ValidationError as e:
        logger.warning(
            "Model output failed validation",
            schema=schema.__name__,
            errors=e.errors(include_url=False, include_context=False),
        )
        return None


def is_unknown(value: Any) -> bool:
    """True for the ``UNKNOWN`` sentinel."""
    return isinstance(value, Unknown)

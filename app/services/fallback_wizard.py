"""
Rule-based setup wizard used when the generative-text service is unavailable.

Asks a fixed sequence of questions one at a time and parses each answer with
a step-specific extractor. Steps whose answer is already in the
``SetupContext`` are skipped. A failed parse re-asks the same step with a
hint; the last successful answer builds a complete ``WizardConfig`` without
any model call.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from app.logging_config import get_logger
from app.schemas.chat import (
    UNKNOWN,
    FallbackDraft,
    FallbackDraftState,
    GoalPriority,
    LifeGoalDraft,
    SavingsIntent,
    SetupContext,
    Unknown,
    WizardConfig,
    current_year,
)
from app.services.budget_allocation import build_fallback_budgets
from app.services.output_normalizer import is_unknown_text, match_savings_intent

logger = get_logger(__name__)

STEP_INCOME, STEP_GOAL, STEP_TARGET, STEP_SAVINGS, STEP_INTENT = range(5)

FALLBACK_DISCLOSURE = (
    "The AI assistant is not responding right now, so I'll continue with a few simple questions."
)

FALLBACK_QUESTIONS = (
    "What is your monthly take-home income? "
    "1) up to 200,000 yen 2) 200,000-300,000 3) 300,000-400,000 4) 400,000 or more "
    "(you can also type the amount, e.g. 280,000 or 28万).",
    "What is the most important life goal you are saving for? "
    "For example: home purchase, marriage and childcare, FIRE, or anything else.",
    "When would you like to reach it, and how much will it cost? "
    "For example: 2030, 5,000,000 (500万 also works). Answer \"unknown\" for anything not decided yet.",
    "How much do you have saved right now? For example: 1,200,000 or 120万 (\"none\" is fine too).",
    "How hard do you want to save each month? 1) strongly 2) normally 3) lightly",
)

RETRY_HINTS = (
    "I couldn't read your income. Please pick 1-4 or type an amount, e.g. \"280,000\" or \"28万\".",
    "I couldn't read a goal from that. Please name it in a few words, e.g. \"home purchase\".",
    "I couldn't read both a year and an amount. Try something like \"2030, 5,000,000\" "
    "or \"in 5 years, unknown\".",
    "I couldn't read your savings. Please type an amount such as \"1,200,000\" or \"120万\", or \"none\".",
    "I couldn't tell how hard you want to save. Please answer strongly, normally or lightly (or 1-3).",
)

COMPLETION_MESSAGE = "That's everything I need. Please review the settings below and save them."
OUT_OF_SEQUENCE_MESSAGE = "This setup is already finished. Please start over to change it."

MAX_TITLE_LENGTH = 50

# Midpoints of the income brackets offered in the income question.
INCOME_MENU = {
    "1": 200_000,
    "①": 200_000,
    "2": 250_000,
    "②": 250_000,
    "3": 350_000,
    "③": 350_000,
    "4": 450_000,
    "④": 450_000,
}

# Monthly savings target as a share of income for each intent.
SAVINGS_RATES = {
    SavingsIntent.HIGH: 0.20,
    SavingsIntent.MEDIUM: 0.15,
    SavingsIntent.LOW: 0.10,
    SavingsIntent.UNKNOWN: 0.10,
}

GOAL_KEYWORDS = (
    (re.compile(r"home|house|mortgage|マイホーム|住宅|家", re.IGNORECASE), "Home purchase"),
    (re.compile(r"marri|wedding|child|baby|kid|結婚|育児|子", re.IGNORECASE), "Marriage and childcare"),
    (re.compile(r"\bfire\b|early retire|financial independence", re.IGNORECASE), "Financial independence (FIRE)"),
    (re.compile(r"retire|老後", re.IGNORECASE), "Retirement"),
    (re.compile(r"stud(y|ies) abroad|留学", re.IGNORECASE), "Study abroad"),
)

# Goal priority follows how hard the user wants to save.
INTENT_PRIORITY = {
    SavingsIntent.HIGH: GoalPriority.HIGH,
    SavingsIntent.MEDIUM: GoalPriority.MEDIUM,
    SavingsIntent.LOW: GoalPriority.LOW,
    SavingsIntent.UNKNOWN: UNKNOWN,
}

# Openers that are not an answer to any question.
GREETING_PATTERN = re.compile(
    r"^(hi|hello|hey|ok|okay|yes|sure|start|let'?s (start|go)|こんにちは|こんばんは|おはよう|はじめまして|よろしく\S*)[\s!.。！]*$",
    re.IGNORECASE,
)

INTENT_MENU = {
    "1": SavingsIntent.HIGH,
    "2": SavingsIntent.MEDIUM,
    "3": SavingsIntent.LOW,
}

# A 4-digit number followed by an amount unit is an amount, not a year.
_ABSOLUTE_YEAR = re.compile(
    r"(?<!\d)(?<!\d[.,])(20\d{2})(?!\d|[.,]\d)(?!\s*(?:万|man\b|k\b|m\b|million\b))",
    re.IGNORECASE,
)
_YEAR_SUFFIX = re.compile(r"\s*年(?!後)")
_RELATIVE_YEAR = re.compile(r"(?<!\d)(\d{1,2})\s*(?:年後|years?(?:\s+from\s+now|\s+later)?)", re.IGNORECASE)
_AMOUNT = re.compile(
    r"(\d[\d,]*(?:\.\d+)?)(?:\s*(万|million|man|k|m)(?![a-z]))?",
    re.IGNORECASE,
)
_UNKNOWN_MARKER = re.compile(
    r"unknown|undecided|not sure|tbd|n/a|不明|未定|わからない|分からない",
    re.IGNORECASE,
)
_NO_SAVINGS = re.compile(r"^(none|nothing|zero|no savings|なし|ない|ゼロ)\b", re.IGNORECASE)

_UNIT_MULTIPLIERS = {
    "万": 10_000,
    "man": 10_000,
    "k": 1_000,
    "m": 1_000_000,
    "million": 1_000_000,
}


@dataclass(frozen=True)
class FallbackTurn:
    """Outcome of one rule-based turn."""

    state: FallbackDraftState
    assistant_text: str
    config: Optional[WizardConfig] = None
    accepted: bool = True


def _is_known(step: int, setup_context: Optional[SetupContext]) -> bool:
    if setup_context is None:
        return False
    if step == STEP_INCOME:
        return setup_context.monthly_income is not None
    if step == STEP_SAVINGS:
        return setup_context.current_savings is not None
    return False


def active_step(step: int, setup_context: Optional[SetupContext] = None) -> int:
    """First step at or after ``step`` that still needs an answer."""
    while step < len(FALLBACK_QUESTIONS) and _is_known(step, setup_context):
        step += 1
    return step


def current_question(state: FallbackDraftState, setup_context: Optional[SetupContext] = None) -> str:
    """The question the wizard is waiting on."""
    step = active_step(state.step, setup_context)
    if step >= len(FALLBACK_QUESTIONS):
        return OUT_OF_SEQUENCE_MESSAGE
    return FALLBACK_QUESTIONS[step]


def first_question(setup_context: Optional[SetupContext] = None) -> str:
    """Question asked when the fallback wizard starts from step 0."""
    return current_question(FallbackDraftState(), setup_context)


def extract_goal_title(text: str) -> Optional[str]:
    """Free-text goal title; known themes map to a canonical title."""
    trimmed = text.strip()
    if not trimmed or is_unknown_text(trimmed) or GREETING_PATTERN.match(trimmed):
        return None

    for pattern, title in GOAL_KEYWORDS:
        if pattern.search(trimmed):
            return title
    return trimmed[:MAX_TITLE_LENGTH]


def parse_amount(text: str, prefer_man_when_small: bool = False) -> Optional[int]:
    """Parse the first currency amount in ``text``.

    Understands thousands separators, decimals and the 万 (x10,000),
    k, m and million suffixes. With ``prefer_man_when_small`` a bare number
    below 1,000 is read as 万, the way people quote large sums informally.
    """
    match = _AMOUNT.search(text)
    if not match:
        return None

    try:
        value = float(match.group(1).replace(",", ""))
    except ValueError:
        return None

    unit = (match.group(2) or "").lower()
    if unit:
        value *= _UNIT_MULTIPLIERS[unit]
    elif prefer_man_when_small and value < 1000:
        value *= 10_000

    return int(round(value))


def parse_income(text: str) -> Optional[int]:
    """Menu choice 1-4 or a positive monthly amount."""
    trimmed = text.strip()
    if trimmed in INCOME_MENU:
        return INCOME_MENU[trimmed]
    if not trimmed or is_unknown_text(trimmed):
        return None

    amount = parse_amount(trimmed, prefer_man_when_small=True)
    if amount is None or amount <= 0:
        return None
    return amount


def parse_current_savings(text: str) -> Optional[int | Unknown]:
    """Savings amount, 0 for "none", or unknown."""
    trimmed = text.strip()
    if not trimmed:
        return None
    if is_unknown_text(trimmed):
        return UNKNOWN
    if _NO_SAVINGS.match(trimmed):
        return 0
    return parse_amount(trimmed, prefer_man_when_small=True)


def parse_target_year(text: str) -> Tuple[Optional[int], str]:
    """Find an absolute (2030, 2030年) or relative (in 5 years, 5年後) target year.

    Returns:
        Tuple of (year or None, text with the matched span removed)
    """
    candidates = list(_ABSOLUTE_YEAR.finditer(text))
    if candidates:
        marked = [match for match in candidates if _YEAR_SUFFIX.match(text, match.end())]
        absolute = (marked or candidates)[0]
        year = int(absolute.group(1))
        remainder = text[:absolute.start()] + " " + text[absolute.end():]
        return (year if year >= current_year() else None), remainder

    relative = _RELATIVE_YEAR.search(text)
    if relative:
        year = current_year() + int(relative.group(1))
        remainder = text[:relative.start()] + " " + text[relative.end():]
        return year, remainder

    return None, text


def parse_year_and_amount(text: str) -> Optional[Tuple[int | Unknown, int | Unknown]]:
    """Parse "year and amount" answers where either part may be unknown.

    Known values are taken first; each explicit unknown marker then fills
    the next missing slot (year before amount). Both slots must be filled.
    """
    trimmed = text.strip()
    if not trimmed:
        return None
    if is_unknown_text(trimmed):
        return UNKNOWN, UNKNOWN

    year, remainder = parse_target_year(trimmed)
    if year is None and _ABSOLUTE_YEAR.search(trimmed):
        # A year in the past was given; ask again rather than guess.
        return None

    unknown_markers = len(_UNKNOWN_MARKER.findall(remainder))
    amount = parse_amount(_UNKNOWN_MARKER.sub(" ", remainder), prefer_man_when_small=True)
    if amount is not None and amount < 1:
        return None

    slots: list = [year, amount]
    for index in range(len(slots)):
        if slots[index] is None and unknown_markers > 0:
            slots[index] = UNKNOWN
            unknown_markers -= 1

    if slots[0] is None or slots[1] is None:
        return None
    return slots[0], slots[1]


def parse_savings_intent(text: str) -> Optional[SavingsIntent]:
    """Classify savings wording; None when nothing recognisable was said."""
    trimmed = text.strip()
    if not trimmed:
        return None
    if is_unknown_text(trimmed):
        return SavingsIntent.UNKNOWN
    if trimmed in INTENT_MENU:
        return INTENT_MENU[trimmed]
    return match_savings_intent(trimmed)


def build_config_from_draft(
    draft: FallbackDraft,
    setup_context: Optional[SetupContext],
) -> WizardConfig:
    """Turn a finished draft into a ``WizardConfig``; known facts win over answers."""
    if setup_context is not None and setup_context.monthly_income is not None:
        monthly_income = setup_context.monthly_income
    else:
        monthly_income = draft.monthly_income or 0

    if setup_context is not None and setup_context.current_savings is not None:
        current_savings = setup_context.current_savings
    elif isinstance(draft.current_savings, Unknown):
        current_savings = None
    else:
        current_savings = draft.current_savings

    intent = draft.savings_intent or SavingsIntent.UNKNOWN
    monthly_savings_target = int(round(monthly_income * SAVINGS_RATES[intent]))

    goal = LifeGoalDraft(
        title=draft.goal_title,
        target_amount=draft.target_amount,
        target_year=draft.target_year,
        priority=INTENT_PRIORITY[intent],
    )

    return WizardConfig(
        monthly_income=monthly_income,
        monthly_savings_target=monthly_savings_target,
        current_savings=current_savings,
        life_goals=[goal],
        suggested_budgets=build_fallback_budgets(
            monthly_income, monthly_savings_target, setup_context
        ),
    )


def _apply_answer(step: int, draft: FallbackDraft, text: str) -> Optional[FallbackDraft]:
    """Draft with this step's answer filled in, or None when it can't be read."""
    if step == STEP_INCOME:
        income = parse_income(text)
        return None if income is None else draft.model_copy(update={"monthly_income": income})

    if step == STEP_GOAL:
        title = extract_goal_title(text)
        return None if title is None else draft.model_copy(update={"goal_title": title})

    if step == STEP_TARGET:
        parsed = parse_year_and_amount(text)
        if parsed is None:
            return None
        target_year, target_amount = parsed
        return draft.model_copy(update={"target_year": target_year, "target_amount": target_amount})

    if step == STEP_SAVINGS:
        savings = parse_current_savings(text)
        return None if savings is None else draft.model_copy(update={"current_savings": savings})

    intent = parse_savings_intent(text)
    return None if intent is None else draft.model_copy(update={"savings_intent": intent})


def resolve_fallback_turn(
    state: FallbackDraftState,
    text: str,
    setup_context: Optional[SetupContext] = None,
) -> FallbackTurn:
    """Apply one user answer to the fallback wizard.

    Args:
        state: Current step and draft
        text: The user's answer
        setup_context: Facts known before the conversation; their steps are skipped

    Returns:
        FallbackTurn with the next state, the assistant reply and, on the
        final step, the completed config
    """
    step = active_step(state.step, setup_context)
    if step >= len(FALLBACK_QUESTIONS):
        return FallbackTurn(state=state, assistant_text=OUT_OF_SEQUENCE_MESSAGE, accepted=False)
    if step != state.step:
        state = FallbackDraftState(step=step, draft=state.draft)

    draft = _apply_answer(step, state.draft, text)
    if draft is None:
        logger.info("Fallback answer not understood, asking again", step=step)
        return FallbackTurn(state=state, assistant_text=RETRY_HINTS[step], accepted=False)

    next_step = active_step(step + 1, setup_context)
    next_state = FallbackDraftState(step=next_step, draft=draft)

    if next_step < len(FALLBACK_QUESTIONS):
        return FallbackTurn(state=next_state, assistant_text=FALLBACK_QUESTIONS[next_step])

    config = build_config_from_draft(draft, setup_context)
    logger.info("Fallback wizard completed", goal=draft.goal_title)
    return FallbackTurn(state=next_state, assistant_text=COMPLETION_MESSAGE, config=config)

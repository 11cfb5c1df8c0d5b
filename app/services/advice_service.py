"""
Advice Service - monthly financial advice with a cache, a model call and a canned fallback.

Flow for one (user, month):
1. Return the stored record unless regeneration is forced
2. Gather profile, budgets, spending, goals and last month's advice concurrently
3. Ask the model for advice and validate it; any failure yields FALLBACK_ADVICE
4. Upsert and return the stored record
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol, Sequence
from uuid import UUID

from app.logging_config import get_logger
from app.metrics.llm_metrics import llm_metrics
from app.schemas.advice import (
    AdviceContent,
    AdviceHistoryItem,
    AdviceItem,
    AdviceModelResponse,
    AdviceRecord,
)
from app.schemas.budget import (
    BudgetRow,
    BudgetSummary,
    BudgetUsage,
    MonthlyExpenseTotal,
    TransactionSummary,
)
from app.schemas.profile import AssumptionsSnapshot, GoalSnapshot, ProfileSnapshot
from app.services.advice_prompts import (
    ADVICE_SYSTEM_PROMPT,
    QUESTION_SYSTEM_PROMPT,
    build_advice_user_context,
)
from app.services.gemini_client import GeminiClient, extract_first_json_object
from app.services.output_normalizer import normalize_and_validate

logger = get_logger(__name__)

FALLBACK_SCORE = 60

FALLBACK_ADVICE = AdviceContent(
    urgent=[],
    suggestions=[
        AdviceItem(
            title="Start by reviewing fixed costs",
            body="Checking your phone plan and subscriptions frees up money every month without strain.",
        ),
        AdviceItem(
            title="Set a food budget first",
            body="Deciding a weekly food budget up front keeps end-of-month overspending in check.",
        ),
    ],
    positives=[
        AdviceItem(
            title="You keep recording",
            body="Consistency matters most when improving a household budget, and your habit is a real strength.",
        ),
    ],
    next_month_goals=["Review spending once a week", "Revisit one fixed cost"],
)

APOLOGY_MESSAGE = "Sorry, I couldn't generate an answer right now. Please try again in a little while."

DEFAULT_AGE = 30
EXPENSE_TREND_MONTHS = 3


class ProfileNotFoundError(Exception):
    """Raised when advice is requested for a user without a profile."""


class AdvicePersistenceError(Exception):
    """Raised when the advice upsert reports no stored row."""


class AdviceStore(Protocol):
    """Persistence collaborator the advice pipeline reads from and writes to."""

    async def get_profile(self, user_id: UUID) -> Optional[ProfileSnapshot]: ...

    async def get_assumptions(self, user_id: UUID) -> Optional[AssumptionsSnapshot]: ...

    async def list_budgets(self, user_id: UUID, year_month: str) -> List[BudgetRow]: ...

    async def get_transaction_summary(self, user_id: UUID, year_month: str) -> TransactionSummary: ...

    async def list_monthly_expense_totals(self, user_id: UUID, months: int) -> List[MonthlyExpenseTotal]: ...

    async def list_active_goals(self, user_id: UUID) -> List[GoalSnapshot]: ...

    async def get_advice(self, user_id: UUID, month: str) -> Optional[AdviceRecord]: ...

    async def list_advice(self, user_id: UUID, months: int) -> List[AdviceRecord]: ...

    async def upsert_advice(
        self, user_id: UUID, month: str, score: int, content: AdviceContent
    ) -> Optional[AdviceRecord]: ...


def current_year_month(now: Optional[datetime] = None) -> str:
    """``YYYY-MM`` for ``now`` (UTC by default)."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m")


def previous_month(year_month: str) -> str:
    """Month before ``YYYY-MM``; an unparsable value maps to the current month."""
    try:
        year_str, month_str = year_month.split("-")
        year, month = int(year_str), int(month_str)
    except ValueError:
        return current_year_month()

    if month == 1:
        return f"{year - 1:04d}-12"
    return f"{year:04d}-{month - 1:02d}"


def build_budget_summary(
    year_month: str,
    rows: Sequence[BudgetRow],
    spent_by_category: Dict[str, int],
    total_spent: int,
) -> BudgetSummary:
    """Join budget rows with spending; usage rate has four decimals, 0 for a zero limit."""
    budgets = []
    for row in rows:
        spent = spent_by_category.get(row.category, 0)
        usage_rate = 0.0 if row.limit_amount == 0 else round(spent / row.limit_amount, 4)
        budgets.append(
            BudgetUsage(
                category=row.category,
                limit_amount=row.limit_amount,
                is_fixed=row.is_fixed,
                spent_amount=spent,
                usage_rate=usage_rate,
            )
        )

    return BudgetSummary(
        year_month=year_month,
        budgets=budgets,
        total_budget=sum(row.limit_amount for row in rows),
        total_spent=total_spent,
    )


def parse_advice_output(raw_text: str) -> Optional[AdviceModelResponse]:
    """Extract and validate advice JSON; None when unusable."""
    json_text = extract_first_json_object(raw_text)
    if json_text is None:
        logger.warning("No JSON object in advice response")
        return None
    return normalize_and_validate(json_text, AdviceModelResponse)


class AdviceService:
    """Service producing and caching monthly advice."""

    def __init__(
        self,
        client: GeminiClient,
        store: AdviceStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize advice service.

        Args:
            client: Generative-text client
            store: Persistence collaborator
            clock: Returns the current time; UTC now by default
        """
        self.client = client
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def current_month(self) -> str:
        return current_year_month(self.clock())

    async def find_cached_advice(self, user_id: UUID, month: Optional[str] = None) -> Optional[AdviceRecord]:
        """Stored advice for the month, or None."""
        return await self.store.get_advice(user_id, month or self.current_month())

    async def get_advice_history(self, user_id: UUID, months: int = 6) -> List[AdviceHistoryItem]:
        """Scores of the most recent ``months`` advice records."""
        records = await self.store.list_advice(user_id, months)
        return [AdviceHistoryItem(month=record.month, score=record.score) for record in records]

    async def get_or_generate_advice(
        self,
        user_id: UUID,
        month: Optional[str] = None,
        force: bool = False,
    ) -> AdviceRecord:
        """Return cached advice or generate, store and return new advice.

        Args:
            user_id: User ID
            month: ``YYYY-MM``; the current month when omitted
            force: Regenerate even when a record exists

        Returns:
            The stored AdviceRecord

        Raises:
            ProfileNotFoundError: If the user has no profile
            AdvicePersistenceError: If the upsert reports no row
        """
        month = month or self.current_month()

        if not force:
            cached = await self.store.get_advice(user_id, month)
            if cached is not None:
                logger.info("Returning cached advice", user_id=str(user_id), month=month)
                return cached

        prompt = await self._build_prompt(user_id, month)
        score, content = await self._generate(prompt)

        saved = await self.store.upsert_advice(user_id, month, score, content)
        if saved is None:
            raise AdvicePersistenceError(f"Advice upsert for {month} returned no row")

        logger.info("Advice generated", user_id=str(user_id), month=month, score=saved.score)
        return saved

    async def answer_freeform_question(self, question: str) -> str:
        """Single-shot answer to a free-form question; apology text on any failure."""
        try:
            answer = await self.client.complete(question, system_instruction=QUESTION_SYSTEM_PROMPT)
        except Exception as e:
            logger.warning("Free-form question failed", error=str(e))
            llm_metrics.record_fallback("question", type(e).__name__)
            return APOLOGY_MESSAGE
        return answer.strip()

    async def _build_prompt(self, user_id: UUID, month: str) -> str:
        (
            profile,
            assumptions,
            budget_rows,
            transaction_summary,
            expense_totals,
            goals,
            previous_advice,
        ) = await asyncio.gather(
            self.store.get_profile(user_id),
            self.store.get_assumptions(user_id),
            self.store.list_budgets(user_id, month),
            self.store.get_transaction_summary(user_id, month),
            self.store.list_monthly_expense_totals(user_id, EXPENSE_TREND_MONTHS),
            self.store.list_active_goals(user_id),
            self.store.get_advice(user_id, previous_month(month)),
        )

        if profile is None:
            raise ProfileNotFoundError(f"Profile not found for user {user_id}")

        budget_summary = build_budget_summary(
            month,
            budget_rows,
            transaction_summary.by_category,
            transaction_summary.total_expense,
        )

        return build_advice_user_context(
            month=month,
            profile=profile,
            budget_summary=budget_summary,
            monthly_expense_totals=expense_totals,
            goals=goals,
            previous_advice=previous_advice.content if previous_advice else None,
            age=assumptions.age if assumptions else DEFAULT_AGE,
        )

    async def _generate(self, prompt: str) -> tuple[int, AdviceContent]:
        """Model advice, or the canned fallback on any failure."""
        try:
            raw = await self.client.complete(prompt, system_instruction=ADVICE_SYSTEM_PROMPT)
        except Exception as e:
            logger.warning("Advice generation failed, using fallback advice", error=str(e))
            llm_metrics.record_fallback("advice", type(e).__name__)
            return FALLBACK_SCORE, FALLBACK_ADVICE

        parsed = parse_advice_output(raw)
        if parsed is None:
            llm_metrics.record_fallback("advice", "invalid_output")
            return FALLBACK_SCORE, FALLBACK_ADVICE

        return parsed.score, parsed.to_content()

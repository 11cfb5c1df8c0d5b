"""Tests for AdviceService."""

import asyncio
import json

import pytest

from app.schemas.budget import BudgetRow, TransactionSummary
from app.schemas.profile import AssumptionsSnapshot
from app.services.advice_service import (
    APOLOGY_MESSAGE,
    FALLBACK_ADVICE,
    FALLBACK_SCORE,
    AdvicePersistenceError,
    AdviceService,
    ProfileNotFoundError,
    build_budget_summary,
    current_year_month,
    previous_month,
)
from app.services.gemini_client import GeminiError
from conftest import FIXED_NOW, InMemoryAdviceStore


def advice_reply(score: int = 78) -> str:
    return "```json\n" + json.dumps(
        {
            "score": score,
            "urgent": [],
            "suggestions": [{"title": "Trim entertainment", "body": "You are at 120% of budget."}],
            "positives": [{"title": "Food on track", "body": "Well within the limit."}],
            "next_month_goals": ["Keep entertainment under 20,000 yen"],
        }
    ) + "\n```"

class GatedAdviceStore(InMemoryAdviceStore):
    """Store whose context reads block until all of them have started."""

    READS = 7

    def __init__(self):
        super().__init__()
        self.started = 0
        self.all_started = asyncio.Event()

    async def _gate(self) -> None:
        self.started += 1
        if self.started == self.READS:
            self.all_started.set()
        await self.all_started.wait()

    async def get_profile(self, user_id):
        await self._gate()
        return await super().get_profile(user_id)

    async def get_assumptions(self, user_id):
        await self._gate()
        return await super().get_assumptions(user_id)

    async def list_budgets(self, user_id, year_month):
        await self._gate()
        return await super().list_budgets(user_id, year_month)

    async def get_transaction_summary(self, user_id, year_month):
        await self._gate()
        return await super().get_transaction_summary(user_id, year_month)

    async def list_monthly_expense_totals(self, user_id, months):
        await self._gate()
        return await super().list_monthly_expense_totals(user_id, months)

    async def list_active_goals(self, user_id):
        await self._gate()
        return await super().list_active_goals(user_id)

    async def get_advice(self, user_id, month):
        await self._gate()
        return await super().get_advice(user_id, month)


@pytest.fixture
def service(fake_client, advice_store):
    return AdviceService(fake_client, advice_store, clock=lambda: FIXED_NOW)


class TestHelpers:
    """Tests for month and summary helpers."""

    def test_current_year_month(self):
        assert current_year_month(FIXED_NOW) == "2026-05"

    @pytest.mark.parametrize(
        "month,expected",
        [("2026-05", "2026-04"), ("2026-01", "2025-12"), ("2025-12", "2025-11")],
    )
    def test_previous_month(self, month, expected):
        assert previous_month(month) == expected

    @pytest.mark.parametrize("month", ["garbage", "2026-xx", ""])
    def test_previous_month_invalid_is_current(self, month):
        assert previous_month(month) == current_year_month()

    def test_budget_summary(self):
        rows = [
            BudgetRow(category="food", limit_amount=30000),
            BudgetRow(category="housing", limit_amount=80000, is_fixed=True),
            BudgetRow(category="other", limit_amount=0),
        ]

        summary = build_budget_summary("2026-05", rows, {"food": 10000, "other": 500}, 90500)

        food, housing, other = summary.budgets
        assert food.usage_rate == 0.3333
        assert food.spent_amount == 10000
        assert housing.spent_amount == 0
        assert housing.is_fixed is True
        assert other.usage_rate == 0.0
        assert summary.total_budget == 110000
        assert summary.total_spent == 90500


# =============================================================================
# Generation Tests
# =============================================================================

class TestGetOrGenerateAdvice:
    """Tests for get_or_generate_advice."""

    @pytest.mark.asyncio
    async def test_generates_and_stores(self, service, fake_client, advice_store, user_id):
        advice_store.add_profile(user_id)
        fake_client.complete.return_value = advice_reply()

        record = await service.get_or_generate_advice(user_id)

        assert record.month == "2026-05"
        assert record.score == 78
        assert record.content.suggestions[0].title == "Trim entertainment"
        assert advice_store.upsert_calls == 1
        assert sorted(advice_store.read_calls) == sorted(
            ["profile", "assumptions", "budgets", "transactions", "expense_totals", "goals"]
        )

    @pytest.mark.asyncio
    async def test_cached_record_returned_unchanged(self, service, fake_client, advice_store, user_id):
        advice_store.add_profile(user_id)
        fake_client.complete.return_value = advice_reply()

        first = await service.get_or_generate_advice(user_id, "2026-04")
        second = await service.get_or_generate_advice(user_id, "2026-04")

        assert second == first
        assert second.generated_at == first.generated_at
        assert fake_client.complete.call_count == 1
        assert advice_store.upsert_calls == 1

    @pytest.mark.asyncio
    async def test_force_regenerates(self, service, fake_client, advice_store, user_id):
        advice_store.add_profile(user_id)
        fake_client.complete.side_effect = [advice_reply(70), advice_reply(85)]

        first = await service.get_or_generate_advice(user_id)
        second = await service.get_or_generate_advice(user_id, force=True)

        assert second.score == 85
        assert second.id == first.id
        assert second.generated_at > first.generated_at
        assert fake_client.complete.call_count == 2

    @pytest.mark.asyncio
    async def test_model_failure_uses_fallback(self, service, fake_client, advice_store, user_id):
        advice_store.add_profile(user_id)
        fake_client.complete.side_effect = GeminiError("overloaded", status_code=503)

        record = await service.get_or_generate_advice(user_id)

        assert record.score == FALLBACK_SCORE
        assert record.content == FALLBACK_ADVICE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply",
        [
            "I think you are doing great!",
            advice_reply(150),
            json.dumps({"score": 50, "suggestions": [], "positives": [], "next_month_goals": []}),
        ],
    )
    async def test_invalid_output_uses_fallback(self, service, fake_client, advice_store, user_id, reply):
        advice_store.add_profile(user_id)
        fake_client.complete.return_value = reply

        record = await service.get_or_generate_advice(user_id)

        assert record.score == 60
        assert record.content == FALLBACK_ADVICE

    @pytest.mark.asyncio
    async def test_missing_profile(self, service, fake_client, user_id):
        with pytest.raises(ProfileNotFoundError):
            await service.get_or_generate_advice(user_id)

        fake_client.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_dropped_write_raises(self, service, fake_client, advice_store, user_id):
        advice_store.add_profile(user_id)
        advice_store.drop_writes = True
        fake_client.complete.return_value = advice_reply()

        with pytest.raises(AdvicePersistenceError):
            await service.get_or_generate_advice(user_id)

    @pytest.mark.asyncio
    async def test_prompt_includes_context(self, service, fake_client, advice_store, user_id):
        advice_store.add_profile(user_id, monthly_income=420000)
        advice_store.assumptions[user_id] = AssumptionsSnapshot(age=41)
        advice_store.budgets[(user_id, "2026-05")] = [BudgetRow(category="food", limit_amount=40000)]
        advice_store.summaries[(user_id, "2026-05")] = TransactionSummary(
            total_expense=52000, by_category={"food": 52000}
        )
        fake_client.complete.return_value = advice_reply()

        await service.get_or_generate_advice(user_id)

        prompt = fake_client.complete.call_args.args[0]
        assert "420000" in prompt
        assert "41" in prompt
        assert "1.3" in prompt
        assert "system_instruction" in fake_client.complete.call_args.kwargs

    @pytest.mark.asyncio
    async def test_previous_advice_fed_back(self, service, fake_client, advice_store, user_id):
        advice_store.add_profile(user_id)
        fake_client.complete.side_effect = [advice_reply(), advice_reply()]
        await service.get_or_generate_advice(user_id, "2026-04")

        await service.get_or_generate_advice(user_id, "2026-05")

        assert "Trim entertainment" in fake_client.complete.call_args.args[0]

    @pytest.mark.asyncio
    async def test_context_reads_run_concurrently(self, fake_client, user_id):
        store = GatedAdviceStore()
        store.add_profile(user_id)
        fake_client.complete.return_value = advice_reply()
        service = AdviceService(fake_client, store, clock=lambda: FIXED_NOW)

        record = await asyncio.wait_for(service.get_or_generate_advice(user_id, force=True), timeout=1)

        assert store.started == GatedAdviceStore.READS
        assert record.score == 78


class TestHistoryAndQuestions:
    """Tests for history and free-form questions."""

    @pytest.mark.asyncio
    async def test_history_most_recent_months(self, service, fake_client, advice_store, user_id):
        advice_store.add_profile(user_id)
        fake_client.complete.side_effect = [advice_reply(s) for s in (50, 60, 70)]
        for month in ("2026-01", "2026-02", "2026-03"):
            await service.get_or_generate_advice(user_id, month)

        history = await service.get_advice_history(user_id, months=2)

        assert [(item.month, item.score) for item in history] == [("2026-02", 60), ("2026-03", 70)]

    @pytest.mark.asyncio
    async def test_find_cached_advice_defaults_to_current_month(self, service, advice_store, user_id):
        assert await service.find_cached_advice(user_id) is None

    @pytest.mark.asyncio
    async def test_question_answer_stripped(self, service, fake_client):
        fake_client.complete.return_value = "  Keep an emergency fund of 3-6 months.  \n"

        answer = await service.answer_freeform_question("How big should my emergency fund be?")

        assert answer == "Keep an emergency fund of 3-6 months."

    @pytest.mark.asyncio
    async def test_question_failure_apologises(self, service, fake_client):
        fake_client.complete.side_effect = GeminiError("unavailable", status_code=503)

        assert await service.answer_freeform_question("Should I invest?") == APOLOGY_MESSAGE

"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.dependencies import get_advice_store, get_gemini_client, get_wizard_store
from app.main import app
from app.routes import advice as advice_routes
from app.routes import chat as chat_routes
from app.schemas.advice import AdviceContent, AdviceRecord
from app.schemas.budget import BudgetRow, MonthlyExpenseTotal, TransactionSummary
from app.schemas.chat import SetupContext, WizardConfig
from app.schemas.profile import AssumptionsSnapshot, GoalSnapshot, ProfileSnapshot
from app.services.wizard_store import WizardSaveResult

FIXED_NOW = datetime(2026, 5, 15, 9, 30, tzinfo=timezone.utc)


def gemini_response(text: str) -> dict:
    """Minimal generateContent response body carrying ``text``."""
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


class InMemoryAdviceStore:
    """AdviceStore fake holding everything in dicts."""

    def __init__(self):
        self.profiles: Dict[UUID, ProfileSnapshot] = {}
        self.assumptions: Dict[UUID, AssumptionsSnapshot] = {}
        self.budgets: Dict[Tuple[UUID, str], List[BudgetRow]] = {}
        self.summaries: Dict[Tuple[UUID, str], TransactionSummary] = {}
        self.expense_totals: Dict[UUID, List[MonthlyExpenseTotal]] = {}
        self.goals: Dict[UUID, List[GoalSnapshot]] = {}
        self.advice: Dict[Tuple[UUID, str], AdviceRecord] = {}
        self.upsert_calls = 0
        self.drop_writes = False
        self.read_calls: List[str] = []

    def add_profile(self, user_id: UUID, monthly_income: int = 300000) -> None:
        self.profiles[user_id] = ProfileSnapshot(user_id=user_id, monthly_income=monthly_income)

    async def get_profile(self, user_id: UUID) -> Optional[ProfileSnapshot]:
        self.read_calls.append("profile")
        return self.profiles.get(user_id)

    async def get_assumptions(self, user_id: UUID) -> Optional[AssumptionsSnapshot]:
        self.read_calls.append("assumptions")
        return self.assumptions.get(user_id)

    async def list_budgets(self, user_id: UUID, year_month: str) -> List[BudgetRow]:
        self.read_calls.append("budgets")
        return self.budgets.get((user_id, year_month), [])

    async def get_transaction_summary(self, user_id: UUID, year_month: str) -> TransactionSummary:
        self.read_calls.append("transactions")
        return self.summaries.get((user_id, year_month), TransactionSummary())

    async def list_monthly_expense_totals(self, user_id: UUID, months: int) -> List[MonthlyExpenseTotal]:
        self.read_calls.append("expense_totals")
        return self.expense_totals.get(user_id, [])[-months:]

    async def list_active_goals(self, user_id: UUID) -> List[GoalSnapshot]:
        self.read_calls.append("goals")
        return self.goals.get(user_id, [])

    async def get_advice(self, user_id: UUID, month: str) -> Optional[AdviceRecord]:
        return self.advice.get((user_id, month))

    async def list_advice(self, user_id: UUID, months: int) -> List[AdviceRecord]:
        records = sorted(
            (record for (owner, _), record in self.advice.items() if owner == user_id),
            key=lambda record: record.month,
        )
        return records[-months:]

    async def upsert_advice(
        self, user_id: UUID, month: str, score: int, content: AdviceContent
    ) -> Optional[AdviceRecord]:
        self.upsert_calls += 1
        if self.drop_writes:
            return None

        existing = self.advice.get((user_id, month))
        record = AdviceRecord(
            id=existing.id if existing else uuid4(),
            user_id=user_id,
            month=month,
            score=score,
            content=content,
            generated_at=FIXED_NOW + timedelta(seconds=self.upsert_calls),
        )
        self.advice[(user_id, month)] = record
        return record


class RecordingWizardStore:
    """WizardStore fake remembering saved configs."""

    def __init__(self):
        self.saved: List[Tuple[UUID, WizardConfig, str]] = []

    async def save_config(self, user_id: UUID, config: WizardConfig, year_month: str) -> WizardSaveResult:
        self.saved.append((user_id, config, year_month))
        return WizardSaveResult(
            year_month=year_month,
            goals_created=len(config.life_goals),
            budgets_written=len(config.suggested_budgets),
        )


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def setup_context() -> SetupContext:
    return SetupContext(monthly_income=300000, current_savings=1200000)


@pytest.fixture
def fake_client() -> MagicMock:
    """Client double; set ``chat``/``complete`` side effects per test."""
    client = MagicMock()
    client.chat = AsyncMock()
    client.complete = AsyncMock()
    client.complete_with_image = AsyncMock()
    return client


@pytest.fixture
def advice_store() -> InMemoryAdviceStore:
    return InMemoryAdviceStore()


@pytest.fixture
def wizard_store() -> RecordingWizardStore:
    return RecordingWizardStore()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Rate limit counters are process-wide; start each test clean."""
    for limiter in (app.state.limiter, chat_routes.limiter, advice_routes.limiter):
        limiter.reset()
    yield


@pytest_asyncio.fixture
async def api_client(
    fake_client: MagicMock,
    advice_store: InMemoryAdviceStore,
    wizard_store: RecordingWizardStore,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the client and stores replaced by fakes."""
    app.dependency_overrides[get_gemini_client] = lambda: fake_client
    app.dependency_overrides[get_advice_store] = lambda: advice_store
    app.dependency_overrides[get_wizard_store] = lambda: wizard_store

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

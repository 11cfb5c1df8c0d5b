"""SQLAlchemy-backed store for the advice pipeline."""

from datetime import date, datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, case, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.logging_config import get_logger
from app.models.advice_log import AdviceLog
from app.models.assumptions import Assumptions
from app.models.budget import Budget
from app.models.life_goal import LifeGoal
from app.models.transaction import Transaction
from app.models.user import User
from app.schemas.advice import AdviceContent, AdviceRecord
from app.schemas.budget import BudgetRow, MonthlyExpenseTotal, TransactionSummary
from app.schemas.profile import AssumptionsSnapshot, GoalSnapshot, ProfileSnapshot

logger = get_logger(__name__)


def month_range(year_month: str) -> Tuple[date, date]:
    """First day of ``year_month`` and first day of the following month."""
    year, month = (int(part) for part in year_month.split("-"))
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def months_back_start(months: int, today: Optional[date] = None) -> date:
    """First day of the month ``months - 1`` months before ``today``."""
    today = today or datetime.now(timezone.utc).date()
    index = today.year * 12 + (today.month - 1) - (months - 1)
    return date(index // 12, index % 12 + 1, 1)


def _to_record(log: AdviceLog) -> AdviceRecord:
    return AdviceRecord(
        id=log.id,
        user_id=log.user_id,
        month=log.month,
        score=log.score,
        content=AdviceContent.model_validate(log.content),
        generated_at=log.generated_at,
    )


class SqlAdviceStore:
    """AdviceStore over PostgreSQL.

    Every method opens its own session so the advice service can issue its
    reads concurrently.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_profile(self, user_id: UUID) -> Optional[ProfileSnapshot]:
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
        if user is None:
            return None
        return ProfileSnapshot(
            user_id=user.id,
            display_name=user.display_name,
            monthly_income=user.monthly_income,
        )

    async def get_assumptions(self, user_id: UUID) -> Optional[AssumptionsSnapshot]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Assumptions).where(Assumptions.user_id == user_id)
            )
            assumptions = result.scalar_one_or_none()
        if assumptions is None:
            return None
        return AssumptionsSnapshot(age=assumptions.age)

    async def list_budgets(self, user_id: UUID, year_month: str) -> List[BudgetRow]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Budget)
                .where(and_(Budget.user_id == user_id, Budget.year_month == year_month))
                .order_by(Budget.category)
            )
            budgets = result.scalars().all()
        return [
            BudgetRow(category=budget.category, limit_amount=budget.limit_amount, is_fixed=budget.is_fixed)
            for budget in budgets
        ]

    async def get_transaction_summary(self, user_id: UUID, year_month: str) -> TransactionSummary:
        start, end = month_range(year_month)
        in_month = and_(
            Transaction.user_id == user_id,
            Transaction.transacted_at >= start,
            Transaction.transacted_at < end,
        )

        async with self.session_factory() as session:
            totals = await session.execute(
                select(
                    func.coalesce(
                        func.sum(case((Transaction.type == "income", Transaction.amount), else_=0)), 0
                    ),
                    func.coalesce(
                        func.sum(case((Transaction.type == "expense", Transaction.amount), else_=0)), 0
                    ),
                ).where(in_month)
            )
            total_income, total_expense = totals.one()

            by_category = await session.execute(
                select(Transaction.category, func.coalesce(func.sum(Transaction.amount), 0))
                .where(and_(in_month, Transaction.type == "expense"))
                .group_by(Transaction.category)
            )
            rows = by_category.all()

        return TransactionSummary(
            total_income=int(total_income),
            total_expense=int(total_expense),
            by_category={category: int(amount) for category, amount in rows},
        )

    async def list_monthly_expense_totals(self, user_id: UUID, months: int) -> List[MonthlyExpenseTotal]:
        year_month = func.to_char(Transaction.transacted_at, "YYYY-MM")

        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    year_month,
                    func.coalesce(
                        func.sum(case((Transaction.type == "expense", Transaction.amount), else_=0)), 0
                    ),
                )
                .where(
                    and_(
                        Transaction.user_id == user_id,
                        Transaction.transacted_at >= months_back_start(months),
                    )
                )
                .group_by(year_month)
                .order_by(year_month)
            )
            rows = result.all()

        return [MonthlyExpenseTotal(year_month=month, total_expense=int(total)) for month, total in rows]

    async def list_active_goals(self, user_id: UUID) -> List[GoalSnapshot]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(LifeGoal)
                .where(and_(LifeGoal.user_id == user_id, LifeGoal.status == "active"))
                .order_by(LifeGoal.sort_order)
            )
            goals = result.scalars().all()

        return [
            GoalSnapshot(
                title=goal.title,
                target_amount=goal.target_amount,
                saved_amount=goal.saved_amount,
                monthly_saving=goal.monthly_saving,
                target_year=goal.target_year,
                priority=goal.priority,
                status=goal.status,
            )
            for goal in goals
        ]

    async def get_advice(self, user_id: UUID, month: str) -> Optional[AdviceRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(AdviceLog).where(and_(AdviceLog.user_id == user_id, AdviceLog.month == month))
            )
            log = result.scalar_one_or_none()
        return _to_record(log) if log else None

    async def list_advice(self, user_id: UUID, months: int) -> List[AdviceRecord]:
        """Most recent ``months`` records, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(AdviceLog)
                .where(AdviceLog.user_id == user_id)
                .order_by(AdviceLog.month.desc())
                .limit(months)
            )
            logs = result.scalars().all()
        return [_to_record(log) for log in reversed(logs)]

    async def upsert_advice(
        self,
        user_id: UUID,
        month: str,
        score: int,
        content: AdviceContent,
    ) -> Optional[AdviceRecord]:
        """Insert or overwrite the (user, month) record and return what was stored."""
        payload = content.model_dump(mode="json")
        stmt = insert(AdviceLog).values(
            user_id=user_id,
            month=month,
            score=score,
            content=payload,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[AdviceLog.user_id, AdviceLog.month],
            set_={
                "score": stmt.excluded.score,
                "content": stmt.excluded.content,
                "generated_at": func.now(),
            },
        ).returning(AdviceLog)

        async with self.session_factory() as session:
            result = await session.execute(
                stmt, execution_options={"populate_existing": True}
            )
            log = result.scalar_one_or_none()
            await session.commit()

        if log is None:
            logger.error("Advice upsert returned no row", user_id=str(user_id), month=month)
            return None
        return _to_record(log)

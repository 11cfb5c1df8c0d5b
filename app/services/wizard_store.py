"""Persistence of a completed setup wizard config."""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.logging_config import get_logger
from app.models.budget import Budget
from app.models.life_goal import LifeGoal
from app.models.user import User
from app.schemas.chat import Unknown, WizardConfig
from app.services.budget_allocation import LOCKED_WHEN_KNOWN

logger = get_logger(__name__)


@dataclass
class WizardSaveResult:
    """Rows written for one saved config."""

    year_month: str
    goals_created: int
    budgets_written: int


def _known(value):
    """Unknown values are stored as NULL."""
    if isinstance(value, Unknown):
        return None
    return value


class SqlWizardStore:
    """Writes profile income, life goals and monthly budgets in one transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def save_config(self, user_id: UUID, config: WizardConfig, year_month: str) -> WizardSaveResult:
        """Persist ``config`` for ``user_id``.

        Args:
            user_id: User ID
            config: Completed wizard config
            year_month: Month the suggested budgets apply to

        Returns:
            WizardSaveResult with row counts
        """
        user_stmt = insert(User).values(id=user_id, monthly_income=config.monthly_income)
        user_stmt = user_stmt.on_conflict_do_update(
            index_elements=[User.id],
            set_={"monthly_income": user_stmt.excluded.monthly_income, "updated_at": func.now()},
        )

        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(user_stmt)

                for index, goal in enumerate(config.life_goals):
                    session.add(
                        LifeGoal(
                            user_id=user_id,
                            title=goal.title,
                            target_amount=_known(goal.target_amount),
                            target_year=_known(goal.target_year),
                            priority=None if isinstance(goal.priority, Unknown) else goal.priority.value,
                            sort_order=index,
                        )
                    )

                for category, amount in config.suggested_budgets.items():
                    budget_stmt = insert(Budget).values(
                        user_id=user_id,
                        year_month=year_month,
                        category=category,
                        limit_amount=amount,
                        is_fixed=category in LOCKED_WHEN_KNOWN,
                    )
                    budget_stmt = budget_stmt.on_conflict_do_update(
                        index_elements=[Budget.user_id, Budget.year_month, Budget.category],
                        set_={
                            "limit_amount": budget_stmt.excluded.limit_amount,
                            "is_fixed": budget_stmt.excluded.is_fixed,
                            "updated_at": func.now(),
                        },
                    )
                    await session.execute(budget_stmt)

        logger.info(
            "Wizard config saved",
            user_id=str(user_id),
            year_month=year_month,
            goals=len(config.life_goals),
            budgets=len(config.suggested_budgets),
        )
        return WizardSaveResult(
            year_month=year_month,
            goals_created=len(config.life_goals),
            budgets_written=len(config.suggested_budgets),
        )

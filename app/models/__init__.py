"""Database models package."""

from app.models.base import Base
from app.models.user import User
from app.models.assumptions import Assumptions
from app.models.budget import Budget
from app.models.life_goal import LifeGoal
from app.models.transaction import Transaction
from app.models.advice_log import AdviceLog

__all__ = [
    "Base",
    "User",
    "Assumptions",
    "Budget",
    "LifeGoal",
    "Transaction",
    "AdviceLog",
]

"""Budget schemas shared by the wizard and the advice context."""

from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class BudgetCategory(str, Enum):
    """Fixed expense categories a monthly budget is split into."""

    HOUSING = "housing"
    FOOD = "food"
    TRANSPORT = "transport"
    ENTERTAINMENT = "entertainment"
    CLOTHING = "clothing"
    COMMUNICATION = "communication"
    MEDICAL = "medical"
    SOCIAL = "social"
    OTHER = "other"


class BudgetRow(BaseModel):
    """One category limit for a month, as stored."""

    model_config = ConfigDict(frozen=True)

    category: str
    limit_amount: int = Field(..., ge=0)
    is_fixed: bool = False


class BudgetUsage(BudgetRow):
    """A budget row joined with the month's spending."""

    spent_amount: int = 0
    usage_rate: float = 0.0


class BudgetSummary(BaseModel):
    """Budget vs. spending for one month."""

    year_month: str
    budgets: List[BudgetUsage] = Field(default_factory=list)
    total_budget: int = 0
    total_spent: int = 0


class TransactionSummary(BaseModel):
    """Income and expense totals for one month."""

    model_config = ConfigDict(frozen=True)

    total_income: int = 0
    total_expense: int = 0
    by_category: Dict[str, int] = Field(default_factory=dict)


class MonthlyExpenseTotal(BaseModel):
    """Total expense of one month."""

    model_config = ConfigDict(frozen=True)

    year_month: str
    total_expense: int

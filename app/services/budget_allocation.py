"""Budget allocation: fit a category breakdown under the spending ceiling.

The ceiling is ``monthly_income - monthly_savings_target``. Locked
categories (costs fixed by known facts) are never scaled; every flexible
category is scaled by the same factor, each rounded independently.
"""

import math
from typing import Any, Dict, Iterable, Mapping, Optional

from app.schemas.budget import BudgetCategory
from app.schemas.chat import SetupContext

BUDGET_CATEGORIES = tuple(category.value for category in BudgetCategory)

LOCKED_WHEN_KNOWN = (BudgetCategory.HOUSING.value, BudgetCategory.FOOD.value)

# Income shares used when housing/food costs are not known.
DEFAULT_HOUSING_SHARE = 0.25
DEFAULT_FOOD_SHARE = 0.12

# Split of whatever remains after housing and food.
VARIABLE_WEIGHTS: Dict[str, float] = {
    "transport": 0.14,
    "entertainment": 0.18,
    "clothing": 0.12,
    "communication": 0.14,
    "medical": 0.10,
    "social": 0.16,
    "other": 0.16,
}

DAYS_PER_MONTH = 30


def empty_budgets() -> Dict[str, int]:
    """All categories at zero."""
    return {category: 0 for category in BUDGET_CATEGORIES}


def fit_budgets_to_capacity(
    budgets: Mapping[str, int],
    monthly_income: int,
    monthly_savings_target: int,
    locked_categories: Iterable[str],
) -> Dict[str, int]:
    """Scale flexible categories so the total fits the spending ceiling.

    Args:
        budgets: Category -> amount
        monthly_income: Take-home income; <= 0 disables fitting
        monthly_savings_target: Amount reserved for saving each month
        locked_categories: Categories that keep their amount

    Returns:
        A new dict. Unchanged when income is not positive, when the total
        already fits, or when there is no flexible amount to scale.
    """
    result = dict(budgets)
    if monthly_income <= 0:
        return result

    max_spending = max(0, monthly_income - monthly_savings_target)
    if sum(result.values()) <= max_spending:
        return result

    locked = set(locked_categories)
    locked_total = sum(amount for category, amount in result.items() if category in locked)
    available_for_flexible = max(0, max_spending - locked_total)

    flexible = [category for category in result if category not in locked]
    flexible_total = sum(result[category] for category in flexible)
    if flexible_total <= 0:
        return result

    scale = available_for_flexible / flexible_total
    for category in flexible:
        result[category] = max(0, int(round(result[category] * scale)))
    return result


def monthly_food_cost(setup_context: Optional[SetupContext]) -> Optional[int]:
    """Monthly food cost derived from a known daily cost."""
    if setup_context is None or setup_context.daily_food_cost is None:
        return None
    return max(0, int(round(setup_context.daily_food_cost * DAYS_PER_MONTH)))


def known_housing_cost(setup_context: Optional[SetupContext]) -> Optional[int]:
    """Housing cost from the setup context, if given."""
    if setup_context is None or setup_context.housing_cost is None:
        return None
    return max(0, setup_context.housing_cost)


def build_fallback_budgets(
    monthly_income: int,
    monthly_savings_target: int,
    setup_context: Optional[SetupContext] = None,
) -> Dict[str, int]:
    """Deterministic budget from known costs and fixed weights."""
    monthly_income = max(0, monthly_income)
    monthly_savings_target = max(0, monthly_savings_target)

    housing = known_housing_cost(setup_context)
    if housing is None:
        housing = int(round(monthly_income * DEFAULT_HOUSING_SHARE))

    food = monthly_food_cost(setup_context)
    if food is None:
        food = int(round(monthly_income * DEFAULT_FOOD_SHARE))

    spending_upper_bound = max(0, monthly_income - monthly_savings_target)
    remaining = max(0, spending_upper_bound - housing - food)

    budgets = empty_budgets()
    budgets["housing"] = housing
    budgets["food"] = food
    for category, weight in VARIABLE_WEIGHTS.items():
        budgets[category] = max(0, int(round(remaining * weight)))

    return fit_budgets_to_capacity(
        budgets, monthly_income, monthly_savings_target, LOCKED_WHEN_KNOWN
    )


def sanitize_budget_object(raw: Any) -> Dict[str, int]:
    """Keep known categories with finite numeric values, rounded and non-negative."""
    if not isinstance(raw, dict):
        return {}

    sanitized: Dict[str, int] = {}
    for category in BUDGET_CATEGORIES:
        value = raw.get(category)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if not math.isfinite(value):
            continue
        sanitized[category] = max(0, int(round(value)))
    return sanitized


def merge_suggested_budgets(
    suggested: Mapping[str, int],
    fallback: Mapping[str, int],
    monthly_income: int,
    monthly_savings_target: int,
    setup_context: Optional[SetupContext] = None,
) -> Dict[str, int]:
    """Overlay a model-suggested breakdown on the fallback and refit.

    Known housing/food costs always override whatever the model proposed.
    """
    merged = {**empty_budgets(), **fallback, **suggested}

    housing = known_housing_cost(setup_context)
    if housing is not None:
        merged["housing"] = housing
    food = monthly_food_cost(setup_context)
    if food is not None:
        merged["food"] = food

    return fit_budgets_to_capacity(
        merged, monthly_income, monthly_savings_target, LOCKED_WHEN_KNOWN
    )

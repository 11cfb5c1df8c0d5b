"""Prompt templates for monthly advice and free-form questions."""

import json
from typing import List, Optional, Sequence

from app.schemas.advice import AdviceContent
from app.schemas.budget import BudgetSummary, MonthlyExpenseTotal
from app.schemas.profile import GoalSnapshot, ProfileSnapshot

ADVICE_SYSTEM_PROMPT = """
You are a household finance advisor for the LifeBalance app.
Review the user's month and return advice as JSON only, with no text outside the object.

## Tone
- Friendly and concrete, never condescending.
- Quote amounts in yen where it helps.
- Avoid jargon.

## Output format
{
  "score": 0-100 integer rating of the month,
  "urgent": [{"title": "...", "body": "..."}] (0 to 2 items, only real problems),
  "suggestions": [{"title": "...", "body": "..."}] (1 to 3 items),
  "positives": [{"title": "...", "body": "..."}] (1 to 2 items),
  "next_month_goals": ["..."] (1 to 4 short goals)
}
""".strip()

QUESTION_SYSTEM_PROMPT = """
You are a household finance and savings advisor.
Answer the user's question concretely and practically.

- Keep a friendly tone.
- Give specific amounts where possible.
- Explain without jargon.
- Keep the answer under 300 words.
""".strip()


def _goal_lines(goals: Sequence[GoalSnapshot]) -> List[dict]:
    return [
        {
            "title": goal.title,
            "target_amount": goal.target_amount,
            "saved_amount": goal.saved_amount,
            "monthly_saving": goal.monthly_saving,
            "target_year": goal.target_year,
            "priority": goal.priority,
            "progress_rate": goal.progress_rate,
        }
        for goal in goals
    ]


def build_advice_user_context(
    month: str,
    profile: ProfileSnapshot,
    budget_summary: BudgetSummary,
    monthly_expense_totals: Sequence[MonthlyExpenseTotal],
    goals: Sequence[GoalSnapshot],
    previous_advice: Optional[AdviceContent],
    age: int,
) -> str:
    """Assemble the user-side advice prompt from the gathered context."""
    context = {
        "month": month,
        "profile": {
            "display_name": profile.display_name,
            "monthly_income": profile.monthly_income,
            "age": age,
        },
        "budget_summary": budget_summary.model_dump(mode="json"),
        "monthly_expense_totals": [total.model_dump(mode="json") for total in monthly_expense_totals],
        "goals": _goal_lines(goals),
        "previous_advice": previous_advice.model_dump(mode="json") if previous_advice else None,
    }

    return (
        f"Here is the household data for {month}. "
        "Compare spending with the budget, consider the goals and last month's advice, "
        "and respond in the JSON format described.\n\n"
        f"{json.dumps(context, ensure_ascii=False, indent=2)}"
    )

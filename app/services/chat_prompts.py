"""Prompt templates for the setup wizard conversation."""

from typing import Optional, Sequence

from app.schemas.chat import ConversationMessage, MessageRole, SetupContext, current_year

COMPLETION_MARKER = "<SETUP_COMPLETE/>"

_SPEAKER = {
    MessageRole.USER: "User",
    MessageRole.ASSISTANT: "Assistant",
}


def render_transcript(messages: Sequence[ConversationMessage]) -> str:
    """Render a transcript as ``Speaker: text`` lines."""
    return "\n".join(f"{_SPEAKER[message.role]}: {message.content}" for message in messages)


def _known_facts(setup_context: Optional[SetupContext]) -> str:
    if setup_context is None:
        return "- Nothing is known yet."

    facts = []
    if setup_context.monthly_income is not None:
        facts.append(f"- Monthly take-home income: {setup_context.monthly_income} yen")
    if setup_context.current_savings is not None:
        facts.append(f"- Current savings: {setup_context.current_savings} yen")
    if setup_context.housing_cost is not None:
        facts.append(f"- Monthly housing cost: {setup_context.housing_cost} yen")
    if setup_context.daily_food_cost is not None:
        facts.append(f"- Daily food cost: {setup_context.daily_food_cost} yen")
    return "\n".join(facts) if facts else "- Nothing is known yet."


def build_chat_system_prompt(setup_context: Optional[SetupContext] = None) -> str:
    """System instruction for the AI-mode wizard."""
    year = current_year()
    return f"""
You are the setup assistant of LifeBalance, a household budgeting app.
Through a short conversation, collect what is needed to configure the user's plan.

## Already known (do not ask again)
{_known_facts(setup_context)}

## Collect, in this order, skipping anything already known
1. Monthly take-home income
2. The most important life goal (home purchase, marriage, childcare, FIRE, study abroad, ...)
3. Target year and required amount for that goal ("unknown" is an acceptable answer)
4. Current savings
5. How hard they want to save each month (strongly, normally, lightly)

## Conversation rules
- Ask exactly one question per message.
- Acknowledge the previous answer in one short sentence before the next question.
- Gently confirm vague answers.
- Target years are {year} or later.
- When everything is collected, summarise it and ask the user to confirm.

## Completion
When the user confirms the summary, end your message with {COMPLETION_MARKER}.
Never output {COMPLETION_MARKER} before the user has confirmed.
""".strip()


def build_extraction_prompt(messages: Sequence[ConversationMessage]) -> str:
    """Extraction-only prompt over a finished transcript."""
    year = current_year()
    return f"""
Extract the household plan settings from the conversation below and return JSON only, with no explanation.
All amounts are in yen.

## Today
The current year is {year}. Resolve "in N years" relative to it (in 1 year = {year + 1}).

--- conversation ---
{render_transcript(messages)}
--- end ---

## Fields
- monthly_savings_target: integer amount to save each month, decided from the income and the user's saving intent.
- monthly_income: integer take-home income if the user stated it, otherwise omit.
- current_savings: integer current savings if the user stated it, otherwise omit.
- savings_intent: one of "high", "medium", "low", "unknown".
- life_goals[].title: short goal title (at most 50 characters).
- life_goals[].target_amount: integer, or the string "unknown".
- life_goals[].target_year: integer {year} or later, or the string "unknown".
- life_goals[].priority: "high", "medium", "low" or "unknown", judged by the size of the goal.

## Example
{{
  "monthly_savings_target": 50000,
  "monthly_income": 300000,
  "savings_intent": "medium",
  "life_goals": [
    {{"title": "Home purchase", "target_amount": 5000000, "target_year": 2030, "priority": "high"}}
  ]
}}
""".strip()


def build_budget_prompt(
    messages: Sequence[ConversationMessage],
    monthly_income: int,
    monthly_savings_target: int,
    housing_cost: Optional[int],
    monthly_food_cost: Optional[int],
) -> str:
    """Prompt asking for a per-category monthly budget breakdown."""
    housing_rule = f"fixed at {housing_cost} yen" if housing_cost is not None else "estimate from the conversation"
    food_rule = f"fixed at {monthly_food_cost} yen" if monthly_food_cost is not None else "estimate from the conversation"

    return f"""
You are a household budget allocation assistant.
Output suggested monthly budgets as JSON only.

## Rules
- Every value is a non-negative integer in yen.
- The total should not exceed income ({monthly_income} yen) minus the savings target ({monthly_savings_target} yen).

## Fixed costs
- housing: {housing_rule}
- food: {food_rule}

## Conversation (saving intent and lifestyle)
{render_transcript(messages)}

## Expected format
{{
  "housing": 0,
  "food": 0,
  "transport": 0,
  "entertainment": 0,
  "clothing": 0,
  "communication": 0,
  "medical": 0,
  "social": 0,
  "other": 0
}}
""".strip()

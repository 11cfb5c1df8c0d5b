"""Tests for the rule-based fallback wizard."""

import pytest

from app.schemas.chat import (
    UNKNOWN,
    FallbackDraftState,
    GoalPriority,
    SavingsIntent,
    SetupContext,
    current_year,
)
from app.services.fallback_wizard import (
    COMPLETION_MESSAGE,
    FALLBACK_QUESTIONS,
    OUT_OF_SEQUENCE_MESSAGE,
    RETRY_HINTS,
    STEP_GOAL,
    STEP_INCOME,
    STEP_INTENT,
    STEP_SAVINGS,
    STEP_TARGET,
    current_question,
    extract_goal_title,
    first_question,
    parse_amount,
    parse_current_savings,
    parse_income,
    parse_savings_intent,
    parse_year_and_amount,
    resolve_fallback_turn,
)


class TestExtractors:
    """Tests for the step extractors."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("I want to buy a house", "Home purchase"),
            ("マイホーム", "Home purchase"),
            ("getting married", "Marriage and childcare"),
            ("FIRE", "Financial independence (FIRE)"),
            ("  A trip around the world  ", "A trip around the world"),
        ],
    )
    def test_goal_title(self, text, expected):
        assert extract_goal_title(text) == expected

    def test_goal_title_truncated(self):
        assert len(extract_goal_title("a" * 80)) == 50

    @pytest.mark.parametrize("text", ["", "   ", "unknown", "Hello!", "hi", "こんにちは"])
    def test_goal_title_rejected(self, text):
        assert extract_goal_title(text) is None

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("5,000,000", 5000000),
            ("500万", 5000000),
            ("500万円", 5000000),
            ("3.5 million", 3500000),
            ("2m", 2000000),
            ("800k", 800000),
            ("¥1,200,000", 1200000),
        ],
    )
    def test_parse_amount(self, text, expected):
        assert parse_amount(text) == expected

    def test_parse_amount_small_number_as_man(self):
        assert parse_amount("300", prefer_man_when_small=True) == 3000000
        assert parse_amount("300") == 300

    def test_parse_amount_none(self):
        assert parse_amount("a lot of money") is None

    def test_year_and_amount(self):
        year = current_year() + 4
        assert parse_year_and_amount(f"{year}, 5,000,000") == (year, 5000000)

    def test_relative_year(self):
        assert parse_year_and_amount("in 5 years, 500万") == (current_year() + 5, 5000000)
        assert parse_year_and_amount("3年後 300万円") == (current_year() + 3, 3000000)

    def test_both_unknown(self):
        assert parse_year_and_amount("unknown") == (UNKNOWN, UNKNOWN)
        assert parse_year_and_amount("未定") == (UNKNOWN, UNKNOWN)

    def test_year_unknown_amount_known(self):
        assert parse_year_and_amount("unknown, 5,000,000") == (UNKNOWN, 5000000)

    def test_year_known_amount_unknown(self):
        year = current_year() + 2
        assert parse_year_and_amount(f"{year}, not sure") == (year, UNKNOWN)

    @pytest.mark.parametrize("text", ["", "someday", "2001, 5,000,000"])
    def test_year_and_amount_rejected(self, text):
        assert parse_year_and_amount(text) is None

    def test_year_without_amount_rejected(self):
        assert parse_year_and_amount(str(current_year() + 1)) is None

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("strongly", SavingsIntent.HIGH),
            ("1", SavingsIntent.HIGH),
            ("normally", SavingsIntent.MEDIUM),
            ("2", SavingsIntent.MEDIUM),
            ("lightly", SavingsIntent.LOW),
            ("3", SavingsIntent.LOW),
            ("unknown", SavingsIntent.UNKNOWN),
        ],
    )
    def test_savings_intent(self, text, expected):
        assert parse_savings_intent(text) == expected

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("1", 200000),
            ("②", 250000),
            ("3", 350000),
            ("4", 450000),
            ("about 300,000 yen", 300000),
            ("28万", 280000),
            ("32", 320000),
        ],
    )
    def test_parse_income(self, text, expected):
        assert parse_income(text) == expected

    @pytest.mark.parametrize("text", ["", "hello", "unknown", "0"])
    def test_parse_income_rejected(self, text):
        assert parse_income(text) is None

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("1,200,000", 1200000),
            ("120万", 1200000),
            ("none", 0),
            ("なし", 0),
            ("0", 0),
            ("unknown", UNKNOWN),
        ],
    )
    def test_parse_current_savings(self, text, expected):
        assert parse_current_savings(text) == expected

    @pytest.mark.parametrize("text", ["", "quite a bit"])
    def test_parse_current_savings_rejected(self, text):
        assert parse_current_savings(text) is None

    def test_amount_before_year(self):
        year = current_year() + 9
        assert parse_year_and_amount(f"2040万 by {year}") == (year, 20400000)
        assert parse_year_and_amount(f"2000万円, {year}年") == (year, 20000000)

    def test_amount_before_relative_year(self):
        assert parse_year_and_amount("20年後に2000万") == (current_year() + 20, 20000000)

    def test_marked_year_preferred(self):
        year = current_year() + 3
        assert parse_year_and_amount(f"2030 万円を{year}年までに") == (year, 20300000)
        assert parse_year_and_amount(f"2000, {year}年") == (year, 2000)

    def test_savings_intent_unrecognised(self):
        assert parse_savings_intent("pizza") is None


class TestResolveFallbackTurn:
    """Tests for the fallback step machine."""

    def test_failed_parse_keeps_step(self):
        state = FallbackDraftState()

        turn = resolve_fallback_turn(state, "hello")

        assert turn.state == state
        assert turn.assistant_text == RETRY_HINTS[STEP_INCOME]
        assert turn.config is None
        assert turn.accepted is False

    def test_income_asked_first_without_context(self):
        assert first_question() == FALLBACK_QUESTIONS[STEP_INCOME]

        turn = resolve_fallback_turn(FallbackDraftState(), "about 300,000 yen")

        assert turn.state.step == STEP_GOAL
        assert turn.state.draft.monthly_income == 300000
        assert turn.state.draft.goal_title is None
        assert turn.assistant_text == FALLBACK_QUESTIONS[STEP_GOAL]

    def test_known_income_skips_to_goal(self):
        context = SetupContext(monthly_income=300000)

        assert first_question(context) == FALLBACK_QUESTIONS[STEP_GOAL]

        turn = resolve_fallback_turn(FallbackDraftState(), "home", context)

        assert turn.state.step == STEP_TARGET
        assert turn.state.draft.goal_title == "Home purchase"
        assert turn.assistant_text == FALLBACK_QUESTIONS[STEP_TARGET]

    def test_known_savings_skips_to_intent(self):
        context = SetupContext(monthly_income=300000, current_savings=500000)
        state = FallbackDraftState(step=STEP_TARGET)

        turn = resolve_fallback_turn(state, "unknown", context)

        assert turn.state.step == STEP_INTENT
        assert turn.assistant_text == FALLBACK_QUESTIONS[STEP_INTENT]

    def test_unknown_savings_asked(self):
        context = SetupContext(monthly_income=300000)
        state = FallbackDraftState(step=STEP_TARGET)

        turn = resolve_fallback_turn(state, "unknown", context)

        assert turn.state.step == STEP_SAVINGS
        assert current_question(turn.state, context) == FALLBACK_QUESTIONS[STEP_SAVINGS]

    def test_retry_at_skipped_step_reports_active_step(self):
        context = SetupContext(monthly_income=300000)

        turn = resolve_fallback_turn(FallbackDraftState(), "hi", context)

        assert turn.state.step == STEP_GOAL
        assert turn.assistant_text == RETRY_HINTS[STEP_GOAL]
        assert turn.accepted is False

    def test_full_sequence_builds_config(self):
        context = SetupContext(monthly_income=300000, current_savings=800000, housing_cost=80000)
        year = current_year() + 5
        state = FallbackDraftState()

        for answer in ["I want a house", f"{year}, 500万"]:
            turn = resolve_fallback_turn(state, answer, context)
            state = turn.state
            assert turn.config is None

        turn = resolve_fallback_turn(state, "strongly", context)

        assert turn.assistant_text == COMPLETION_MESSAGE
        config = turn.config
        assert config.monthly_income == 300000
        assert config.monthly_savings_target == 60000
        assert config.current_savings == 800000
        goal = config.life_goals[0]
        assert goal.title == "Home purchase"
        assert goal.target_year == year
        assert goal.target_amount == 5000000
        assert goal.priority == GoalPriority.HIGH
        assert config.suggested_budgets["housing"] == 80000
        assert sum(config.suggested_budgets.values()) <= 240000 + len(config.suggested_budgets)

    @pytest.mark.parametrize(
        "intent_answer,rate,priority",
        [
            ("normally", 0.15, GoalPriority.MEDIUM),
            ("lightly", 0.10, GoalPriority.LOW),
            ("unknown", 0.10, UNKNOWN),
        ],
    )
    def test_intent_rates(self, intent_answer, rate, priority):
        state = FallbackDraftState()
        context = SetupContext(monthly_income=200000)
        for answer in ["travel", "unknown", "none", intent_answer]:
            turn = resolve_fallback_turn(state, answer, context)
            state = turn.state

        assert turn.config.monthly_savings_target == round(200000 * rate)
        assert turn.config.life_goals[0].priority == priority
        assert turn.config.life_goals[0].target_amount is UNKNOWN
        assert turn.config.current_savings == 0

    def test_without_setup_context(self):
        year = current_year() + 6
        state = FallbackDraftState()
        for answer in ["2", "home", f"{year}, 500万", "120万"]:
            turn = resolve_fallback_turn(state, answer)
            state = turn.state
            assert turn.config is None

        turn = resolve_fallback_turn(state, "strongly")

        config = turn.config
        assert config.monthly_income == 250000
        assert config.monthly_savings_target == 50000
        assert config.current_savings == 1200000
        assert config.life_goals[0].title == "Home purchase"
        assert config.life_goals[0].target_year == year
        assert sum(config.suggested_budgets.values()) <= 200000 + len(config.suggested_budgets)

    def test_unknown_savings_answer_left_empty(self):
        state = FallbackDraftState()
        for answer in ["180,000", "FIRE", "unknown", "unknown", "3"]:
            turn = resolve_fallback_turn(state, answer)
            state = turn.state

        assert turn.config.monthly_income == 180000
        assert turn.config.monthly_savings_target == 18000
        assert turn.config.current_savings is None

    def test_answer_after_completion(self):
        state = FallbackDraftState(step=len(FALLBACK_QUESTIONS))

        turn = resolve_fallback_turn(state, "strongly")

        assert turn.assistant_text == OUT_OF_SEQUENCE_MESSAGE
        assert turn.config is None
        assert turn.accepted is False

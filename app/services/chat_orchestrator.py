"""
Conversation Orchestrator - drives the setup wizard in AI or fallback mode.

AI mode delegates each turn to the chat model. When the assistant emits the
completion marker, a second extraction-only call turns the transcript into
a validated config and a third call suggests a budget breakdown.

If the chat call fails after its retries, the conversation switches to the
rule-based fallback wizard for good and replays the same user turn there.
"""

import json
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from app.logging_config import get_logger
from app.metrics.llm_metrics import llm_metrics
from app.schemas.chat import (
    ConversationMessage,
    ConversationMode,
    ConversationSnapshot,
    ConversationStatus,
    ExtractedConfig,
    FallbackDraftState,
    MessageRole,
    SetupContext,
    WizardConfig,
)
from app.services.budget_allocation import (
    build_fallback_budgets,
    known_housing_cost,
    merge_suggested_budgets,
    monthly_food_cost,
    sanitize_budget_object,
)
from app.services.chat_prompts import (
    build_budget_prompt,
    build_chat_system_prompt,
    build_extraction_prompt,
)
from app.services.fallback_wizard import (
    FALLBACK_DISCLOSURE,
    current_question,
    first_question,
    resolve_fallback_turn,
)
from app.services.gemini_client import GeminiClient, extract_first_json_object
from app.services.output_normalizer import normalize_and_validate

logger = get_logger(__name__)

COMPLETION_MARKER_PATTERN = re.compile(r"<SETUP_COMPLETE\s*/>", re.IGNORECASE)

AI_GREETING = (
    "Hi! I'm here to help you set up your LifeBalance plan. "
    "I'll ask a few short questions, one at a time. Ready to start?"
)


class ConversationCompleteError(Exception):
    """Raised when a turn is sent to a conversation that already completed."""


@dataclass(frozen=True)
class ChatTurnResult:
    """Result of one processed turn."""

    assistant_text: str
    is_complete: bool
    config: Optional[WizardConfig]
    mode: ConversationMode
    fallback_state: FallbackDraftState


def strip_completion_marker(text: str) -> tuple[bool, str]:
    """Detect and remove the completion marker.

    Returns:
        Tuple of (marker_found, visible_text)
    """
    match = COMPLETION_MARKER_PATTERN.search(text)
    if not match:
        return False, text.strip()
    cleaned = (text[:match.start()] + text[match.end():]).strip()
    return True, cleaned or text.strip()


class ConversationOrchestrator:
    """
    State machine for one setup conversation.

    Mode is AI until the first failed chat call, then FALLBACK for the rest
    of the conversation. Status goes IN_PROGRESS -> COMPLETE and only
    ``reset`` brings it back. The caller owns the visible transcript; the
    orchestrator owns mode, status and the fallback draft.
    """

    def __init__(
        self,
        client: GeminiClient,
        setup_context: Optional[SetupContext] = None,
        snapshot: Optional[ConversationSnapshot] = None,
        budget_model: Optional[str] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            client: Generative-text client
            setup_context: Facts known before the conversation
            snapshot: State carried over from a previous request
            budget_model: Model used for the budget breakdown call
        """
        self.client = client
        self.budget_model = budget_model
        self.setup_context = setup_context

        snapshot = snapshot or ConversationSnapshot()
        self._mode = snapshot.mode
        self._status = snapshot.status
        self._fallback_state = snapshot.fallback_state

    @property
    def mode(self) -> ConversationMode:
        return self._mode

    @property
    def status(self) -> ConversationStatus:
        return self._status

    @property
    def fallback_state(self) -> FallbackDraftState:
        return self._fallback_state

    def snapshot(self) -> ConversationSnapshot:
        """State a stateless caller should send back with the next turn."""
        return ConversationSnapshot(
            mode=self._mode,
            status=self._status,
            fallback_state=self._fallback_state,
        )

    def greeting(self) -> str:
        """Opening assistant line for a fresh conversation."""
        if self._mode == ConversationMode.FALLBACK:
            return first_question(self.setup_context)
        return AI_GREETING

    def reset(self, setup_context: Optional[SetupContext] = None) -> None:
        """Start over in AI mode with a fresh fallback draft."""
        self._mode = ConversationMode.AI
        self._status = ConversationStatus.IN_PROGRESS
        self._fallback_state = FallbackDraftState()
        if setup_context is not None:
            self.setup_context = setup_context
        logger.info("Conversation reset")

    async def send_turn(
        self,
        history: Sequence[ConversationMessage],
        user_text: str,
    ) -> ChatTurnResult:
        """
        Process one user turn.

        Args:
            history: Visible transcript before this turn
            user_text: The new user message

        Returns:
            ChatTurnResult for this turn

        Raises:
            ConversationCompleteError: If the conversation already completed
        """
        if self._status == ConversationStatus.COMPLETE:
            raise ConversationCompleteError("Conversation is already complete; reset to start over")

        if self._mode == ConversationMode.FALLBACK:
            return self._fallback_turn(user_text)

        transcript = list(history) + [ConversationMessage(role=MessageRole.USER, content=user_text)]

        try:
            raw_reply = await self.client.chat(build_chat_system_prompt(self.setup_context), transcript)
        except Exception as e:
            logger.warning("Chat call failed, switching to fallback wizard", error=str(e))
            llm_metrics.record_fallback("chat", type(e).__name__)
            self._mode = ConversationMode.FALLBACK
            return self._fallback_turn(user_text, disclose=True)

        return await self._ai_turn(transcript, raw_reply)

    async def _ai_turn(self, transcript: List[ConversationMessage], raw_reply: str) -> ChatTurnResult:
        marker_found, visible_text = strip_completion_marker(raw_reply)

        if not marker_found:
            return self._result(visible_text)

        logger.info("Completion marker detected, extracting config")
        full_transcript = transcript + [ConversationMessage(role=MessageRole.ASSISTANT, content=raw_reply)]
        extracted = await self._extract_config(full_transcript)
        if extracted is None:
            logger.warning("Completion marker present but config extraction failed")
            return self._result(visible_text)

        config = await self._finalize_config(extracted, full_transcript)
        self._status = ConversationStatus.COMPLETE
        return self._result(visible_text, config)

    def _fallback_turn(self, user_text: str, disclose: bool = False) -> ChatTurnResult:
        turn = resolve_fallback_turn(self._fallback_state, user_text, self.setup_context)
        self._fallback_state = turn.state
        if turn.config is not None:
            self._status = ConversationStatus.COMPLETE

        text = turn.assistant_text
        if disclose:
            if not turn.accepted:
                # The replayed message answered nothing; ask the question plainly.
                text = current_question(turn.state, self.setup_context)
            text = f"{FALLBACK_DISCLOSURE}\n\n{text}"
        return self._result(text, turn.config)

    def _result(self, text: str, config: Optional[WizardConfig] = None) -> ChatTurnResult:
        return ChatTurnResult(
            assistant_text=text,
            is_complete=self._status == ConversationStatus.COMPLETE,
            config=config,
            mode=self._mode,
            fallback_state=self._fallback_state,
        )

    async def _extract_config(self, transcript: List[ConversationMessage]) -> Optional[ExtractedConfig]:
        try:
            raw = await self.client.complete(build_extraction_prompt(transcript))
        except Exception as e:
            logger.warning("Config extraction call failed", error=str(e))
            return None

        json_text = extract_first_json_object(raw)
        if json_text is None:
            logger.warning("No JSON object in extraction response")
            return None
        return normalize_and_validate(json_text, ExtractedConfig)

    async def _finalize_config(
        self,
        extracted: ExtractedConfig,
        transcript: List[ConversationMessage],
    ) -> WizardConfig:
        """Merge extracted values with known facts and attach budgets."""
        context = self.setup_context
        if context is not None and context.monthly_income is not None:
            monthly_income = context.monthly_income
        else:
            monthly_income = extracted.monthly_income or 0

        if context is not None and context.current_savings is not None:
            current_savings = context.current_savings
        else:
            current_savings = extracted.current_savings

        budgets = await self._suggest_budgets(
            monthly_income, extracted.monthly_savings_target, transcript
        )

        return WizardConfig(
            monthly_income=monthly_income,
            monthly_savings_target=extracted.monthly_savings_target,
            current_savings=current_savings,
            life_goals=extracted.life_goals,
            suggested_budgets=budgets,
        )

    async def _suggest_budgets(
        self,
        monthly_income: int,
        monthly_savings_target: int,
        transcript: List[ConversationMessage],
    ) -> dict:
        fallback = build_fallback_budgets(monthly_income, monthly_savings_target, self.setup_context)
        prompt = build_budget_prompt(
            transcript,
            monthly_income,
            monthly_savings_target,
            known_housing_cost(self.setup_context),
            monthly_food_cost(self.setup_context),
        )

        try:
            raw = await self.client.complete(prompt, model=self.budget_model)
        except Exception as e:
            logger.warning("Budget generation call failed, using fallback budgets", error=str(e))
            llm_metrics.record_fallback("budget", type(e).__name__)
            return fallback

        json_text = extract_first_json_object(raw)
        if json_text is None:
            logger.warning("No JSON object in budget response, using fallback budgets")
            llm_metrics.record_fallback("budget", "no_json")
            return fallback

        try:
            suggested = sanitize_budget_object(json.loads(json_text))
        except json.JSONDecodeError as e:
            logger.warning("Budget response is not valid JSON, using fallback budgets", error=str(e))
            llm_metrics.record_fallback("budget", "invalid_json")
            return fallback

        return merge_suggested_budgets(
            suggested, fallback, monthly_income, monthly_savings_target, self.setup_context
        )

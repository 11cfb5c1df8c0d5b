"""Schemas package."""

from app.schemas.advice import (
    AdviceContent,
    AdviceItem,
    AdviceModelResponse,
    AdviceRecord,
)
from app.schemas.budget import BudgetCategory, BudgetSummary
from app.schemas.chat import (
    UNKNOWN,
    ConversationMessage,
    ConversationMode,
    ConversationStatus,
    ExtractedConfig,
    FallbackDraftState,
    GoalPriority,
    LifeGoalDraft,
    MessageRole,
    SavingsIntent,
    SetupContext,
    Unknown,
    WizardConfig,
)

__all__ = [
    "AdviceContent",
    "AdviceItem",
    "AdviceModelResponse",
    "AdviceRecord",
    "BudgetCategory",
    "BudgetSummary",
    "UNKNOWN",
    "ConversationMessage",
    "ConversationMode",
    "ConversationStatus",
    "ExtractedConfig",
    "FallbackDraftState",
    "GoalPriority",
    "LifeGoalDraft",
    "MessageRole",
    "SavingsIntent",
    "SetupContext",
    "Unknown",
    "WizardConfig",
]

"""Chat wizard schemas: conversation messages, setup context and wizard config."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator


class Unknown(Enum):
    """Explicit "not known yet" marker for goal fields.

    A single-member enum rather than a string so it can never be confused
    with a real title or amount. Serialises to ``"unknown"``.
    """

    UNKNOWN = "unknown"


UNKNOWN = Unknown.UNKNOWN

NonNegativeInt = Annotated[StrictInt, Field(ge=0)]


def current_year() -> int:
    """Current UTC calendar year."""
    return datetime.now(timezone.utc).year


class MessageRole(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class GoalPriority(str, Enum):
    """Life goal priority levels."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SavingsIntent(str, Enum):
    """How hard the user wants to save."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


class ConversationMode(str, Enum):
    """Which engine drives the conversation."""

    AI = "ai"
    FALLBACK = "fallback"


class ConversationStatus(str, Enum):
    """Conversation lifecycle status."""

    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class ConversationMessage(BaseModel):
    """One turn of the visible transcript."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str = Field(..., min_length=1)


class SetupContext(BaseModel):
    """Facts already known before the conversation starts."""

    model_config = ConfigDict(frozen=True)

    monthly_income: Optional[int] = Field(None, ge=0)
    current_savings: Optional[int] = Field(None, ge=0)
    housing_cost: Optional[int] = Field(None, ge=0)
    daily_food_cost: Optional[int] = Field(None, ge=0)


class LifeGoalDraft(BaseModel):
    """A life goal as collected by the wizard; any field but the title may be unknown."""

    model_config = ConfigDict(frozen=True)

    title: StrictStr = Field(..., min_length=1, max_length=50)
    target_amount: Annotated[StrictInt, Field(ge=1)] | Unknown
    target_year: StrictInt | Unknown
    priority: GoalPriority | Unknown

    @field_validator("target_year")
    @classmethod
    def validate_target_year(cls, v: int | Unknown) -> int | Unknown:
        """Target year cannot lie in the past."""
        if isinstance(v, int) and v < current_year():
            raise ValueError(f"target_year must be {current_year()} or later")
        return v


class ExtractedConfig(BaseModel):
    """Configuration fields pulled out of a finished AI conversation."""

    monthly_savings_target: NonNegativeInt
    life_goals: List[LifeGoalDraft] = Field(..., min_length=1)
    monthly_income: Optional[NonNegativeInt] = None
    current_savings: Optional[NonNegativeInt] = None
    savings_intent: SavingsIntent = SavingsIntent.UNKNOWN


class WizardConfig(BaseModel):
    """Final, persistable output of a completed conversation."""

    model_config = ConfigDict(frozen=True)

    monthly_income: NonNegativeInt
    monthly_savings_target: NonNegativeInt
    current_savings: Optional[NonNegativeInt] = None
    life_goals: List[LifeGoalDraft] = Field(..., min_length=1)
    suggested_budgets: dict[str, NonNegativeInt] = Field(default_factory=dict)


class FallbackDraft(BaseModel):
    """Partial answers collected by the rule-based wizard."""

    model_config = ConfigDict(frozen=True)

    monthly_income: Optional[int] = None
    goal_title: Optional[str] = None
    target_year: Optional[int | Unknown] = None
    target_amount: Optional[int | Unknown] = None
    current_savings: Optional[int | Unknown] = None
    savings_intent: Optional[SavingsIntent] = None


class FallbackDraftState(BaseModel):
    """Position in the fixed fallback question sequence plus collected answers."""

    model_config = ConfigDict(frozen=True)

    step: int = Field(default=0, ge=0)
    draft: FallbackDraft = Field(default_factory=FallbackDraft)


class ConversationSnapshot(BaseModel):
    """Orchestrator state a stateless caller carries between turns."""

    mode: ConversationMode = ConversationMode.AI
    status: ConversationStatus = ConversationStatus.IN_PROGRESS
    fallback_state: FallbackDraftState = Field(default_factory=FallbackDraftState)


class ChatRequest(BaseModel):
    """Schema for one chat wizard turn."""

    messages: List[ConversationMessage] = Field(default_factory=list, max_length=50)
    message: str = Field(..., min_length=1, max_length=2000)
    setup_context: Optional[SetupContext] = None
    session: Optional[ConversationSnapshot] = None


class ChatResponse(BaseModel):
    """Schema for the assistant's reply to a chat wizard turn."""

    role: Literal["assistant"] = "assistant"
    content: str
    is_complete: bool
    config: Optional[WizardConfig] = None
    session: ConversationSnapshot


class SaveConfigRequest(BaseModel):
    """Schema for persisting a completed wizard config."""

    config: WizardConfig
    year_month: Optional[str] = Field(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")


class SaveConfigResponse(BaseModel):
    """Counts of rows written for a saved wizard config."""

    year_month: str
    goals_created: int
    budgets_written: int

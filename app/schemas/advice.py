"""Advice schemas for model-output validation and request/response bodies."""

from datetime import datetime
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

YEAR_MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"

NonEmptyStr = Annotated[StrictStr, Field(min_length=1)]


class AdviceItem(BaseModel):
    """A single titled piece of advice."""

    model_config = ConfigDict(frozen=True)

    title: NonEmptyStr
    body: NonEmptyStr


class AdviceContent(BaseModel):
    """Body of a monthly advice record."""

    model_config = ConfigDict(frozen=True)

    urgent: List[AdviceItem] = Field(default_factory=list, max_length=2)
    suggestions: List[AdviceItem] = Field(..., min_length=1, max_length=3)
    positives: List[AdviceItem] = Field(..., min_length=1, max_length=2)
    next_month_goals: List[NonEmptyStr] = Field(..., min_length=1, max_length=4)


class AdviceModelResponse(AdviceContent):
    """Exact shape the advice prompt asks the model to return."""

    score: StrictInt = Field(..., ge=0, le=100)

    def to_content(self) -> AdviceContent:
        """Drop the score and keep the advice body."""
        return AdviceContent(
            urgent=self.urgent,
            suggestions=self.suggestions,
            positives=self.positives,
            next_month_goals=self.next_month_goals,
        )


class AdviceRecord(BaseModel):
    """Stored advice for one (user, month)."""

    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = None
    user_id: UUID
    month: str = Field(..., pattern=YEAR_MONTH_PATTERN)
    score: int = Field(..., ge=0, le=100)
    content: AdviceContent
    generated_at: datetime


class AdviceHistoryItem(BaseModel):
    """Score of one past month."""

    month: str
    score: int


class GenerateAdviceRequest(BaseModel):
    """Schema for requesting advice generation."""

    month: Optional[str] = Field(None, pattern=YEAR_MONTH_PATTERN)
    force: bool = False


class AdviceQuestionRequest(BaseModel):
    """Schema for a free-form financial question."""

    question: str = Field(..., min_length=1, max_length=500)


class AdviceQuestionResponse(BaseModel):
    """Schema for a free-form answer."""

    answer: str

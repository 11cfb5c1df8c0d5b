"""Profile, assumption and goal snapshots read for advice generation."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProfileSnapshot(BaseModel):
    """The parts of a user profile the advice prompt needs."""

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    display_name: str = "User"
    monthly_income: int = Field(default=0, ge=0)


class AssumptionsSnapshot(BaseModel):
    """Simulation assumptions stored for a user."""

    model_config = ConfigDict(frozen=True)

    age: int = Field(default=30, ge=0)


class GoalSnapshot(BaseModel):
    """An active life goal with its progress."""

    model_config = ConfigDict(frozen=True)

    title: str
    target_amount: Optional[int] = None
    saved_amount: int = 0
    monthly_saving: int = 0
    target_year: Optional[int] = None
    priority: Optional[str] = None
    status: str = "active"

    @property
    def progress_rate(self) -> float:
        """Share of the target already saved, 0 when the target is unknown."""
        if not self.target_amount:
            return 0.0
        return round(self.saved_amount / self.target_amount, 4)

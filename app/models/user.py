"""User profile model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.advice_log import AdviceLog
    from app.models.assumptions import Assumptions
    from app.models.budget import Budget
    from app.models.life_goal import LifeGoal
    from app.models.transaction import Transaction


class User(Base):
    """User profile; the id is issued by the upstream auth layer."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False, default="User")
    monthly_income: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    assumptions: Mapped["Assumptions"] = relationship(
        "Assumptions", back_populates="user", cascade="all, delete-orphan", uselist=False
    )
    budgets: Mapped[List["Budget"]] = relationship(
        "Budget", back_populates="user", cascade="all, delete-orphan"
    )
    life_goals: Mapped[List["LifeGoal"]] = relationship(
        "LifeGoal", back_populates="user", cascade="all, delete-orphan"
    )
    transactions: Mapped[List["Transaction"]] = relationship(
        "Transaction", back_populates="user", cascade="all, delete-orphan"
    )
    advice_logs: Mapped[List["AdviceLog"]] = relationship(
        "AdviceLog", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        """String representation of User."""
        return f"<User(id={self.id}, display_name={self.display_name})>"

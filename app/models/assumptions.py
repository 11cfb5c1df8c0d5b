"""Simulation assumptions model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.user import User


class Assumptions(Base):
    """Per-user assumptions used by projections; the advice prompt reads the age."""

    __tablename__ = "assumptions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    age: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    annual_income_growth: Mapped[float] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    investment_return: Mapped[float] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    inflation_rate: Mapped[float] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    monthly_investment: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="assumptions")

"""Budget model: one spending limit per user, month and category."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.user import User


class Budget(Base):
    """Monthly limit for one expense category."""

    __tablename__ = "budgets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    year_month: Mapped[str] = mapped_column(String(7), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    limit_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    is_fixed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="budgets")

    # Table constraints
    __table_args__ = (
        Index("idx_budgets_user_year_month", "user_id", "year_month"),
        UniqueConstraint("user_id", "year_month", "category", name="uq_budgets_user_month_category"),
    )

    def __repr__(self) -> str:
        """String representation of Budget."""
        return (
            f"<Budget(user_id={self.user_id}, year_month={self.year_month}, "
            f"category={self.category}, limit={self.limit_amount})>"
        )

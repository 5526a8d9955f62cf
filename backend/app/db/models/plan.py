"""Plan ORM model."""
from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class Plan(Base):
    __tablename__ = "plans"
    __table_args__ = (Index("ix_plans_user_id_date", "user_id", "date"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    date = Column(Date, nullable=False)
    ai_generated_summary = Column(Text, nullable=True)
    # Python-side default keeps microsecond ordering on every backend.
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    user = relationship("User", back_populates="plans")
    # Insertion order, not time order; the first entry drives the edit lockout.
    tasks = relationship(
        "PlanTask",
        back_populates="plan",
        order_by="PlanTask.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

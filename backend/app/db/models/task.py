"""Plan task ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, Date, ForeignKey, Index, Integer, String, Text, text as sa_text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class PlanTask(Base):
    __tablename__ = "plan_tasks"
    __table_args__ = (
        Index("ix_plan_tasks_plan_id", "plan_id"),
        # One task per user, calendar day and canonical time.
        Index("ux_plan_tasks_user_day_time", "user_id", "scheduled_day", "time", unique=True),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("plans.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    scheduled_day = Column(Date, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=False)
    time = Column(String(length=32), nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))

    plan = relationship("Plan", back_populates="tasks")

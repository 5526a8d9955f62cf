"""Reminder delivery ledger ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class ReminderDelivery(Base):
    __tablename__ = "reminder_deliveries"
    __table_args__ = (Index("ux_reminder_deliveries_task_day", "task_id", "remind_on", unique=True),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    task_id = Column(UUID(as_uuid=True), ForeignKey("plan_tasks.id", ondelete="CASCADE"), nullable=False)
    remind_on = Column(Date, nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

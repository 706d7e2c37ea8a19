"""Planned task (commitment ledger) ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Text, Time, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from study_scheduler.db.base import Base


class PlannedTask(Base):
    __tablename__ = "planned_tasks"
    __table_args__ = (
        Index("ix_planned_tasks_user_date", "user_id", "scheduled_date"),
        CheckConstraint("scheduled_start < scheduled_end", name="ck_planned_tasks_range"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # NULL for free-form tasks.
    assignment_id = Column(
        UUID(as_uuid=True),
        ForeignKey("assignments.id", ondelete="CASCADE"),
        nullable=True,
    )
    title = Column(Text, nullable=True)
    scheduled_date = Column(Date, nullable=False)
    scheduled_start = Column(Time, nullable=False)
    scheduled_end = Column(Time, nullable=False)
    completed = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    completed_at = Column(DateTime(timezone=True), nullable=True)
    ai_generated = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    assignment = relationship("Assignment", lazy="joined")

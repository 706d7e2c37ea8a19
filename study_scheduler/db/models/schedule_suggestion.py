"""Schedule suggestion ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Index, String, Text, Time, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from study_scheduler.db.base import Base

SUGGESTION_PENDING = "pending"
SUGGESTION_ACCEPTED = "accepted"
SUGGESTION_DISMISSED = "dismissed"


class ScheduleSuggestion(Base):
    __tablename__ = "schedule_suggestions"
    __table_args__ = (
        Index("ix_schedule_suggestions_user_status", "user_id", "status"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'dismissed')",
            name="ck_schedule_suggestions_status",
        ),
        CheckConstraint("suggested_start < suggested_end", name="ck_schedule_suggestions_range"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    assignment_id = Column(
        UUID(as_uuid=True),
        ForeignKey("assignments.id", ondelete="CASCADE"),
        nullable=False,
    )
    suggested_date = Column(Date, nullable=False)
    suggested_start = Column(Time, nullable=False)
    suggested_end = Column(Time, nullable=False)
    reason = Column(Text, nullable=True)
    status = Column(
        String(length=20),
        nullable=False,
        default=SUGGESTION_PENDING,
        server_default=sa_text("'pending'"),
    )
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    assignment = relationship("Assignment", lazy="joined")

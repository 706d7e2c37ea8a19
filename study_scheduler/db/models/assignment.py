"""Assignment ORM model.

Assignments are owned by the assignment collaborator; the scheduling engine
only reads them.
"""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from study_scheduler.db.base import Base

ASSIGNMENT_PRIORITIES = ("low", "medium", "high")
ASSIGNMENT_STATUSES = ("pending", "in_progress", "completed")


class Assignment(Base):
    __tablename__ = "assignments"
    __table_args__ = (
        Index("ix_assignments_user_id", "user_id"),
        Index("ix_assignments_status", "status"),
        CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_assignments_priority"),
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed')",
            name="ck_assignments_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(
        UUID(as_uuid=True),
        ForeignKey("courses.id", ondelete="SET NULL"),
        nullable=True,
    )
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    # Local wall-clock deadline; no timezone is stored.
    due_date = Column(DateTime(timezone=False), nullable=True)
    priority = Column(String(length=10), nullable=False, default="medium", server_default=sa_text("'medium'"))
    status = Column(String(length=20), nullable=False, default="pending", server_default=sa_text("'pending'"))
    estimated_duration = Column(Integer, nullable=True, default=60, server_default=sa_text("60"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    course = relationship("Course", lazy="joined")

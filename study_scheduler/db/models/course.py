"""Course ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from study_scheduler.db.base import Base


class Course(Base):
    __tablename__ = "courses"
    __table_args__ = (Index("ix_courses_user_id", "user_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(Text, nullable=False)
    color = Column(String(length=7), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

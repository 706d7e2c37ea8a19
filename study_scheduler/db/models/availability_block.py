"""Weekly availability block ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text, Time, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from study_scheduler.db.base import Base

BLOCK_TYPES = ("class", "study", "free", "work", "other")


class AvailabilityBlock(Base):
    __tablename__ = "availability_blocks"
    __table_args__ = (
        Index("ix_availability_blocks_user_id", "user_id"),
        # 0 = Sunday ... 6 = Saturday
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_availability_blocks_day"),
        CheckConstraint("available_start < available_end", name="ck_availability_blocks_range"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    available_start = Column(Time, nullable=False)
    available_end = Column(Time, nullable=False)
    block_type = Column(String(length=20), nullable=False, default="study", server_default=sa_text("'study'"))
    label = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

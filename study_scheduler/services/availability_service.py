"""Read and edit a user's recurring weekly availability."""
from __future__ import annotations

import logging
from datetime import time
from typing import Iterable, List
from uuid import UUID

from sqlalchemy import asc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from study_scheduler.db.models.availability_block import BLOCK_TYPES, AvailabilityBlock
from study_scheduler.services.action_log import record_action
from study_scheduler.services.errors import NotFoundError, PersistenceError, ValidationError
from study_scheduler.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)

END_OF_DAY = time(23, 59, 59)


def normalize_end_time(value: time) -> time:
    """A block ending at 00:00 means "until midnight", stored as 23:59:59."""
    if value == time(0, 0):
        return END_OF_DAY
    return value


def list_blocks(db: Session, user_id: UUID) -> List[AvailabilityBlock]:
    return (
        db.query(AvailabilityBlock)
        .filter(AvailabilityBlock.user_id == user_id)
        .order_by(asc(AvailabilityBlock.day_of_week), asc(AvailabilityBlock.available_start))
        .all()
    )


def add_block(
    db: Session,
    user_id: UUID,
    *,
    day_of_week: int,
    available_start: time,
    available_end: time,
    block_type: str = "study",
    label: str | None = None,
    location: str | None = None,
) -> AvailabilityBlock:
    block = _build_block(
        user_id,
        day_of_week=day_of_week,
        available_start=available_start,
        available_end=available_end,
        block_type=block_type,
        label=label,
        location=location,
    )
    try:
        get_or_create_user(db, user_id)
        db.add(block)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to create schedule block") from exc
    db.refresh(block)
    return block


def replace_blocks(db: Session, user_id: UUID, blocks: Iterable[dict], *, request_id: str | None = None) -> List[AvailabilityBlock]:
    """Swap the whole weekly schedule in one transaction."""
    new_blocks = [_build_block(user_id, **spec) for spec in blocks]
    try:
        get_or_create_user(db, user_id)
        removed = (
            db.query(AvailabilityBlock)
            .filter(AvailabilityBlock.user_id == user_id)
            .delete(synchronize_session=False)
        )
        db.add_all(new_blocks)
        record_action(
            db,
            user_id=user_id,
            action_type="availability_replaced",
            payload={"removed": removed, "added": len(new_blocks)},
            reason="Weekly schedule replaced",
            request_id=request_id,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to update schedule") from exc
    logger.info("Replaced %d availability block(s) with %d for user %s", removed, len(new_blocks), user_id)
    return list_blocks(db, user_id)


def update_block(
    db: Session,
    user_id: UUID,
    block_id: UUID,
    changes: dict,
    *,
    request_id: str | None = None,
) -> AvailabilityBlock:
    """Apply a partial edit; the merged block goes through the same checks as a new one."""
    block = _get_owned_block(db, user_id, block_id)
    merged = {
        "day_of_week": block.day_of_week,
        "available_start": block.available_start,
        "available_end": block.available_end,
        "block_type": block.block_type,
        "label": block.label,
        "location": block.location,
    }
    merged.update(changes)
    checked = _build_block(user_id, **merged)
    try:
        for column in merged:
            setattr(block, column, getattr(checked, column))
        record_action(
            db,
            user_id=user_id,
            action_type="availability_block_updated",
            payload={"block_id": str(block_id), "fields": sorted(changes)},
            reason="Weekly schedule block edited",
            request_id=request_id,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to update schedule block") from exc
    db.refresh(block)
    return block


def delete_block(db: Session, user_id: UUID, block_id: UUID) -> None:
    block = _get_owned_block(db, user_id, block_id)
    try:
        db.delete(block)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to delete schedule block") from exc


def _build_block(
    user_id: UUID,
    *,
    day_of_week: int,
    available_start: time,
    available_end: time,
    block_type: str | None = "study",
    label: str | None = None,
    location: str | None = None,
) -> AvailabilityBlock:
    block_type = block_type or "study"
    if block_type not in BLOCK_TYPES:
        raise ValidationError(f"block_type must be one of {', '.join(BLOCK_TYPES)}")
    if not 0 <= day_of_week <= 6:
        raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    available_end = normalize_end_time(available_end)
    if available_start >= available_end:
        raise ValidationError("available_start must be before available_end")
    return AvailabilityBlock(
        user_id=user_id,
        day_of_week=day_of_week,
        available_start=available_start,
        available_end=available_end,
        block_type=block_type,
        label=label or None,
        location=location or None,
    )


def _get_owned_block(db: Session, user_id: UUID, block_id: UUID) -> AvailabilityBlock:
    block = db.get(AvailabilityBlock, block_id)
    if block is None or block.user_id != user_id:
        raise NotFoundError("Schedule block not found")
    return block

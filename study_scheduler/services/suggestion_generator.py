"""Generate and persist study-session suggestions for a user."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import asc, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from study_scheduler.core.config import settings
from study_scheduler.db.models.assignment import Assignment
from study_scheduler.db.models.availability_block import AvailabilityBlock
from study_scheduler.db.models.planned_task import PlannedTask
from study_scheduler.db.models.schedule_suggestion import (
    SUGGESTION_DISMISSED,
    SUGGESTION_PENDING,
    ScheduleSuggestion,
)
from study_scheduler.services.action_log import record_action
from study_scheduler.services.errors import NeedsSetupError, PersistenceError
from study_scheduler.services.slot_planner import (
    AssignmentDemand,
    BusyInterval,
    WeeklyBlock,
    default_duration,
    horizon_end,
    place_sessions,
)

logger = logging.getLogger(__name__)

SuggestionKey = Tuple[UUID, date, time, time]


@dataclass
class GenerationResult:
    suggestions: List[ScheduleSuggestion] = field(default_factory=list)
    eligible_assignments: int = 0
    already_offered: int = 0
    duplicates_skipped: int = 0
    unplaced_assignment_ids: List[UUID] = field(default_factory=list)
    retired_suggestion_ids: List[UUID] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.eligible_assignments:
            return "No pending assignments to schedule"
        if self.suggestions:
            return f"Created {len(self.suggestions)} suggestion(s)"
        return "No new suggestions; pending suggestions already cover your assignments"


def generate_suggestions(
    db: Session,
    user_id: UUID,
    *,
    start_date: Optional[date] = None,
    not_before: Optional[time] = None,
    horizon_days: Optional[int] = None,
    request_id: str | None = None,
) -> GenerationResult:
    """
    Place one session per open assignment into the user's study/free time.

    Existing pending suggestions whose slot is still free are kept as
    reservations: their time is blocked and their assignment is not offered a
    second slot. Pending rows that went stale (slot now booked, already in the
    past, or a second row for the same assignment) are dismissed in the same
    transaction so their assignment can be placed again. Candidates that
    exactly match a pending suggestion are dropped so repeated runs never
    duplicate what the user has not answered yet.

    Without a start_date, planning starts now: today from the current local
    time onward.

    Raises NeedsSetupError when the user has no weekly availability.
    """
    if start_date is None:
        now = _local_now()
        start_date = now.date()
        if not_before is None:
            not_before = now.time().replace(microsecond=0)
    horizon_days = horizon_days or settings.suggestion_horizon_days
    window_end = horizon_end(start_date, horizon_days)

    blocks = load_weekly_blocks(db, user_id)
    if not blocks:
        raise NeedsSetupError("Please set up your weekly schedule first")

    assignments = (
        db.query(Assignment)
        .filter(Assignment.user_id == user_id, Assignment.status != "completed")
        .order_by(asc(Assignment.created_at))
        .all()
    )
    result = GenerationResult(eligible_assignments=len(assignments))
    if not assignments:
        return result

    committed = (
        db.query(PlannedTask)
        .filter(
            PlannedTask.user_id == user_id,
            PlannedTask.scheduled_date >= start_date,
            PlannedTask.scheduled_date <= window_end,
        )
        .all()
    )
    busy = [BusyInterval(task.scheduled_date, task.scheduled_start, task.scheduled_end) for task in committed]

    pending = list_pending_suggestions(db, user_id)
    reserved_assignments: Set[UUID] = set()
    stale: List[ScheduleSuggestion] = []
    kept: List[ScheduleSuggestion] = []
    for suggestion in pending:
        if suggestion.assignment_id in reserved_assignments:
            stale.append(suggestion)
            continue
        if suggestion.suggested_date > window_end:
            reserved_assignments.add(suggestion.assignment_id)
            kept.append(suggestion)
            continue
        slot = BusyInterval(suggestion.suggested_date, suggestion.suggested_start, suggestion.suggested_end)
        if suggestion.suggested_date < start_date or any(_overlaps(slot, taken) for taken in busy):
            stale.append(suggestion)
            continue
        busy.append(slot)
        reserved_assignments.add(suggestion.assignment_id)
        kept.append(suggestion)

    if stale:
        retired = _retire_stale(db, user_id, [s.id for s in stale])
        result.retired_suggestion_ids = [s.id for s in stale if s.id in retired]
        # Rows resolved elsewhere in the meantime still cover their assignment.
        reserved_assignments.update(s.assignment_id for s in stale if s.id not in retired)
    pending_keys: Set[SuggestionKey] = {_suggestion_key(s) for s in kept}
    result.already_offered = sum(1 for a in assignments if a.id in reserved_assignments)

    demands = [
        AssignmentDemand(
            assignment_id=assignment.id,
            title=assignment.title,
            duration_min=default_duration(assignment.estimated_duration, settings.default_session_minutes),
            priority=assignment.priority or "medium",
            due_date=assignment.due_date.replace(tzinfo=None) if assignment.due_date else None,
        )
        for assignment in assignments
        if assignment.id not in reserved_assignments
    ]

    placement = place_sessions(
        blocks,
        demands,
        busy,
        start_date=start_date,
        horizon_days=horizon_days,
        block_types=settings.schedulable_block_types,
        not_before=not_before,
    )
    result.unplaced_assignment_ids = placement.unplaced

    for session in placement.sessions:
        key = (session.assignment_id, session.day, session.start, session.end)
        if key in pending_keys:
            result.duplicates_skipped += 1
            continue
        pending_keys.add(key)
        result.suggestions.append(
            ScheduleSuggestion(
                user_id=user_id,
                assignment_id=session.assignment_id,
                suggested_date=session.day,
                suggested_start=session.start,
                suggested_end=session.end,
                reason=session.reason,
                status=SUGGESTION_PENDING,
            )
        )

    try:
        db.add_all(result.suggestions)
        record_action(
            db,
            user_id=user_id,
            action_type="schedule_suggestions_generated",
            payload={
                "start_date": start_date.isoformat(),
                "end_date": window_end.isoformat(),
                "created": len(result.suggestions),
                "duplicates_skipped": result.duplicates_skipped,
                "already_offered": result.already_offered,
                "unplaced_assignment_ids": [str(a) for a in result.unplaced_assignment_ids],
                "retired_suggestion_ids": [str(s) for s in result.retired_suggestion_ids],
            },
            reason="Study sessions suggested from weekly availability",
            request_id=request_id,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Persisting suggestions failed for user %s: %s", user_id, exc)
        raise PersistenceError("Failed to save schedule suggestions") from exc

    for suggestion in result.suggestions:
        db.refresh(suggestion)

    logger.info(
        "Generated %d suggestion(s) for user %s (%d eligible, %d reserved, %d duplicate, %d unplaced, %d retired)",
        len(result.suggestions),
        user_id,
        result.eligible_assignments,
        result.already_offered,
        result.duplicates_skipped,
        len(result.unplaced_assignment_ids),
        len(result.retired_suggestion_ids),
    )
    return result


def load_weekly_blocks(db: Session, user_id: UUID) -> List[WeeklyBlock]:
    rows = (
        db.query(AvailabilityBlock)
        .filter(AvailabilityBlock.user_id == user_id)
        .order_by(asc(AvailabilityBlock.day_of_week), asc(AvailabilityBlock.available_start))
        .all()
    )
    return [
        WeeklyBlock(
            day_of_week=row.day_of_week,
            start=row.available_start,
            end=row.available_end,
            block_type=row.block_type,
            label=row.label,
            location=row.location,
        )
        for row in rows
    ]


def list_pending_suggestions(db: Session, user_id: UUID) -> List[ScheduleSuggestion]:
    """Pending suggestions for a user, earliest slot first."""
    return (
        db.query(ScheduleSuggestion)
        .filter(
            ScheduleSuggestion.user_id == user_id,
            ScheduleSuggestion.status == SUGGESTION_PENDING,
        )
        .order_by(
            asc(ScheduleSuggestion.suggested_date),
            asc(ScheduleSuggestion.suggested_start),
            asc(ScheduleSuggestion.created_at),
        )
        .all()
    )


def _suggestion_key(suggestion: ScheduleSuggestion) -> SuggestionKey:
    return (
        suggestion.assignment_id,
        suggestion.suggested_date,
        suggestion.suggested_start,
        suggestion.suggested_end,
    )


def _overlaps(a: BusyInterval, b: BusyInterval) -> bool:
    return a.day == b.day and a.start < b.end and b.start < a.end


def _retire_stale(db: Session, user_id: UUID, suggestion_ids: List[UUID]) -> Set[UUID]:
    """Dismiss stale pending rows; returns the ids this call actually moved."""
    try:
        retired = db.execute(
            update(ScheduleSuggestion)
            .where(
                ScheduleSuggestion.id.in_(suggestion_ids),
                ScheduleSuggestion.user_id == user_id,
                ScheduleSuggestion.status == SUGGESTION_PENDING,
            )
            .values(status=SUGGESTION_DISMISSED, resolved_at=datetime.now(timezone.utc))
            .returning(ScheduleSuggestion.id)
            .execution_options(synchronize_session=False)
        ).scalars().all()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Retiring stale suggestions failed for user %s: %s", user_id, exc)
        raise PersistenceError("Failed to save schedule suggestions") from exc
    return set(retired)


def _local_now() -> datetime:
    return datetime.now()

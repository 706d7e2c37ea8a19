"""Accept or dismiss schedule suggestions and materialize accepted ones."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Dict, Iterable, List, Tuple, Union
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from study_scheduler.db.models.planned_task import PlannedTask
from study_scheduler.db.models.schedule_suggestion import (
    SUGGESTION_ACCEPTED,
    SUGGESTION_DISMISSED,
    SUGGESTION_PENDING,
    ScheduleSuggestion,
)
from study_scheduler.services.action_log import record_action
from study_scheduler.services.errors import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

SINGLE_ACTIONS = ("accept", "dismiss")
BULK_ACTIONS = ("acceptAll", "dismissAll")
BULK_TARGET = "bulk"


@dataclass
class ResolutionOutcome:
    action: str
    suggestion_ids: List[UUID] = field(default_factory=list)
    tasks_created: List[PlannedTask] = field(default_factory=list)
    skipped_ids: List[UUID] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.suggestion_ids or self.skipped_ids)


def resolve(
    db: Session,
    user_id: UUID,
    suggestion_id: Union[UUID, str, None],
    action: str,
    *,
    request_id: str | None = None,
) -> ResolutionOutcome:
    """Dispatch a single or bulk action; validates the action name and target."""
    if action in BULK_ACTIONS:
        if action == "acceptAll":
            return accept_all(db, user_id, request_id=request_id)
        return dismiss_all(db, user_id, request_id=request_id)

    if action not in SINGLE_ACTIONS:
        raise ValidationError(f"Unknown action {action!r}")
    target = _parse_target(suggestion_id)
    if action == "accept":
        return accept_suggestion(db, user_id, target, request_id=request_id)
    return dismiss_suggestion(db, user_id, target, request_id=request_id)


def accept_suggestion(
    db: Session,
    user_id: UUID,
    suggestion_id: UUID,
    *,
    request_id: str | None = None,
) -> ResolutionOutcome:
    """
    Turn one pending suggestion into a planned task.

    The pending->accepted update is conditional on the row still being
    pending, and the task insert shares its transaction. Losing that race, or
    calling this on an already resolved suggestion, is a no-op. A suggestion
    whose slot has since been booked in the ledger is dismissed instead and
    reported in skipped_ids.
    """
    suggestion = get_owned_suggestion(db, user_id, suggestion_id)
    outcome = ResolutionOutcome(action="accept")
    if suggestion.status != SUGGESTION_PENDING:
        return outcome

    booked = _booked_slots(db, user_id, [suggestion.suggested_date])
    if _collides(booked, suggestion):
        try:
            outcome.skipped_ids = _stage_conflict_dismissal(db, user_id, [suggestion_id], request_id=request_id)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError("Failed to dismiss suggestion") from exc
        return outcome

    try:
        if not _transition(db, user_id, suggestion_id, SUGGESTION_ACCEPTED):
            db.rollback()
            return outcome
        task = _task_from_suggestion(user_id, suggestion)
        db.add(task)
        record_action(
            db,
            user_id=user_id,
            action_type="schedule_suggestion_accepted",
            payload={
                "suggestion_id": str(suggestion_id),
                "assignment_id": str(suggestion.assignment_id),
                "scheduled_date": suggestion.suggested_date.isoformat(),
            },
            reason="User accepted a suggested study session",
            request_id=request_id,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Accepting suggestion %s failed: %s", suggestion_id, exc)
        raise PersistenceError("Failed to create task") from exc

    db.refresh(task)
    outcome.suggestion_ids.append(suggestion_id)
    outcome.tasks_created.append(task)
    logger.info("Suggestion %s accepted as planned task %s", suggestion_id, task.id)
    return outcome


def dismiss_suggestion(
    db: Session,
    user_id: UUID,
    suggestion_id: UUID,
    *,
    request_id: str | None = None,
) -> ResolutionOutcome:
    suggestion = get_owned_suggestion(db, user_id, suggestion_id)
    outcome = ResolutionOutcome(action="dismiss")
    if suggestion.status != SUGGESTION_PENDING:
        return outcome

    try:
        if not _transition(db, user_id, suggestion_id, SUGGESTION_DISMISSED):
            db.rollback()
            return outcome
        record_action(
            db,
            user_id=user_id,
            action_type="schedule_suggestion_dismissed",
            payload={"suggestion_id": str(suggestion_id), "assignment_id": str(suggestion.assignment_id)},
            reason="User dismissed a suggested study session",
            request_id=request_id,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to dismiss suggestion") from exc

    outcome.suggestion_ids.append(suggestion_id)
    return outcome


def accept_all(db: Session, user_id: UUID, *, request_id: str | None = None) -> ResolutionOutcome:
    """
    Accept every suggestion that is pending at the moment of the call.

    Pending rows are checked in slot order against the ledger and against the
    rows already taken in this batch; a row that would overlap a booked slot,
    is dismissed and reported in skipped_ids. The
    rest are claimed by one UPDATE ... WHERE status = 'pending' RETURNING, so
    rows accepted concurrently elsewhere are never converted twice.
    """
    outcome = ResolutionOutcome(action="acceptAll")
    pending = (
        db.query(ScheduleSuggestion)
        .filter(
            ScheduleSuggestion.user_id == user_id,
            ScheduleSuggestion.status == SUGGESTION_PENDING,
        )
        .order_by(
            ScheduleSuggestion.suggested_date,
            ScheduleSuggestion.suggested_start,
            ScheduleSuggestion.created_at,
        )
        .all()
    )
    if not pending:
        return outcome

    booked = _booked_slots(db, user_id, {s.suggested_date for s in pending})
    take: List[UUID] = []
    conflicting: List[UUID] = []
    for suggestion in pending:
        if _collides(booked, suggestion):
            conflicting.append(suggestion.id)
            continue
        booked.setdefault(suggestion.suggested_date, []).append(
            (suggestion.suggested_start, suggestion.suggested_end)
        )
        take.append(suggestion.id)

    tasks: List[PlannedTask] = []
    claimed = []
    try:
        if take:
            claimed = db.execute(
                update(ScheduleSuggestion)
                .where(
                    ScheduleSuggestion.id.in_(take),
                    ScheduleSuggestion.user_id == user_id,
                    ScheduleSuggestion.status == SUGGESTION_PENDING,
                )
                .values(status=SUGGESTION_ACCEPTED, resolved_at=datetime.now(timezone.utc))
                .returning(
                    ScheduleSuggestion.id,
                    ScheduleSuggestion.assignment_id,
                    ScheduleSuggestion.suggested_date,
                    ScheduleSuggestion.suggested_start,
                    ScheduleSuggestion.suggested_end,
                    ScheduleSuggestion.reason,
                )
                .execution_options(synchronize_session=False)
            ).all()
            claimed.sort(key=lambda row: (row.suggested_date, row.suggested_start))

        tasks = [_task_from_suggestion(user_id, row) for row in claimed]
        db.add_all(tasks)
        if claimed:
            record_action(
                db,
                user_id=user_id,
                action_type="schedule_suggestions_accepted_all",
                payload={"suggestion_ids": [str(row.id) for row in claimed], "tasks_created": len(tasks)},
                reason="User accepted all pending suggestions",
                request_id=request_id,
            )
        if conflicting:
            outcome.skipped_ids = _stage_conflict_dismissal(db, user_id, conflicting, request_id=request_id)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Bulk accept failed for user %s: %s", user_id, exc)
        raise PersistenceError("Failed to accept suggestions") from exc

    for task in tasks:
        db.refresh(task)
    outcome.suggestion_ids = [row.id for row in claimed]
    outcome.tasks_created = tasks
    logger.info(
        "Accepted %d pending suggestion(s) for user %s, %d skipped as conflicting",
        len(claimed),
        user_id,
        len(outcome.skipped_ids),
    )
    return outcome


def dismiss_all(db: Session, user_id: UUID, *, request_id: str | None = None) -> ResolutionOutcome:
    outcome = ResolutionOutcome(action="dismissAll")
    try:
        claimed = db.execute(
            update(ScheduleSuggestion)
            .where(
                ScheduleSuggestion.user_id == user_id,
                ScheduleSuggestion.status == SUGGESTION_PENDING,
            )
            .values(status=SUGGESTION_DISMISSED, resolved_at=datetime.now(timezone.utc))
            .returning(ScheduleSuggestion.id)
            .execution_options(synchronize_session=False)
        ).scalars().all()
        if claimed:
            record_action(
                db,
                user_id=user_id,
                action_type="schedule_suggestions_dismissed_all",
                payload={"suggestion_ids": [str(s) for s in claimed]},
                reason="User dismissed all pending suggestions",
                request_id=request_id,
            )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to dismiss suggestions") from exc

    outcome.suggestion_ids = list(claimed)
    logger.info("Dismissed %d pending suggestion(s) for user %s", len(claimed), user_id)
    return outcome


def get_owned_suggestion(db: Session, user_id: UUID, suggestion_id: UUID) -> ScheduleSuggestion:
    """Other users' suggestions are reported as missing, never as forbidden."""
    suggestion = db.get(ScheduleSuggestion, suggestion_id)
    if suggestion is None or suggestion.user_id != user_id:
        raise NotFoundError("Suggestion not found")
    return suggestion


def _transition(db: Session, user_id: UUID, suggestion_id: UUID, new_status: str) -> bool:
    result = db.execute(
        update(ScheduleSuggestion)
        .where(
            ScheduleSuggestion.id == suggestion_id,
            ScheduleSuggestion.user_id == user_id,
            ScheduleSuggestion.status == SUGGESTION_PENDING,
        )
        .values(status=new_status, resolved_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _task_from_suggestion(user_id: UUID, suggestion) -> PlannedTask:
    return PlannedTask(
        user_id=user_id,
        assignment_id=suggestion.assignment_id,
        scheduled_date=suggestion.suggested_date,
        scheduled_start=suggestion.suggested_start,
        scheduled_end=suggestion.suggested_end,
        notes=suggestion.reason,
        ai_generated=True,
        completed=False,
    )


def _parse_target(suggestion_id: Union[UUID, str, None]) -> UUID:
    if isinstance(suggestion_id, UUID):
        return suggestion_id
    if not suggestion_id or suggestion_id == BULK_TARGET:
        raise ValidationError("suggestion_id is required for single-suggestion actions")
    try:
        return UUID(str(suggestion_id))
    except ValueError as exc:
        raise ValidationError("suggestion_id must be a UUID") from exc


def _booked_slots(db: Session, user_id: UUID, days: Iterable[date]) -> Dict[date, List[Tuple[time, time]]]:
    days = set(days)
    booked: Dict[date, List[Tuple[time, time]]] = {day: [] for day in days}
    rows = (
        db.query(PlannedTask.scheduled_date, PlannedTask.scheduled_start, PlannedTask.scheduled_end)
        .filter(PlannedTask.user_id == user_id, PlannedTask.scheduled_date.in_(days))
        .all()
    )
    for day, start, end in rows:
        booked[day].append((start, end))
    return booked


def _collides(booked: Dict[date, List[Tuple[time, time]]], suggestion) -> bool:
    return any(
        suggestion.suggested_start < end and start < suggestion.suggested_end
        for start, end in booked.get(suggestion.suggested_date, ())
    )


def _stage_conflict_dismissal(
    db: Session,
    user_id: UUID,
    suggestion_ids: List[UUID],
    *,
    request_id: str | None = None,
) -> List[UUID]:
    """Dismiss pending rows whose slot is already booked; the caller commits."""
    dismissed = db.execute(
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
    if dismissed:
        record_action(
            db,
            user_id=user_id,
            action_type="schedule_suggestions_conflict_dismissed",
            payload={"suggestion_ids": [str(s) for s in dismissed]},
            reason="Suggested slot overlaps a planned task",
            request_id=request_id,
        )
        logger.info("Dismissed %d suggestion(s) overlapping planned tasks for user %s", len(dismissed), user_id)
    return list(dismissed)

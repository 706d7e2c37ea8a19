"""Commitment ledger: the user's date-specific planned study sessions."""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import asc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from study_scheduler.db.models.assignment import Assignment
from study_scheduler.db.models.planned_task import PlannedTask
from study_scheduler.services.action_log import record_action
from study_scheduler.services.errors import NotFoundError, PersistenceError, ValidationError
from study_scheduler.services.user_service import get_or_create_user


def list_tasks(
    db: Session,
    user_id: UUID,
    *,
    on: Optional[date] = None,
    from_: Optional[date] = None,
    to: Optional[date] = None,
) -> List[PlannedTask]:
    query = db.query(PlannedTask).filter(PlannedTask.user_id == user_id)
    if on:
        query = query.filter(PlannedTask.scheduled_date == on)
    else:
        if from_:
            query = query.filter(PlannedTask.scheduled_date >= from_)
        if to:
            query = query.filter(PlannedTask.scheduled_date <= to)
    return query.order_by(asc(PlannedTask.scheduled_date), asc(PlannedTask.scheduled_start)).all()


def create_task(
    db: Session,
    user_id: UUID,
    *,
    scheduled_date: date,
    scheduled_start: time,
    scheduled_end: time,
    assignment_id: Optional[UUID] = None,
    title: Optional[str] = None,
    notes: Optional[str] = None,
    ai_generated: bool = False,
) -> PlannedTask:
    if scheduled_start >= scheduled_end:
        raise ValidationError("scheduled_start must be before scheduled_end")
    if assignment_id is not None:
        assignment = db.get(Assignment, assignment_id)
        if assignment is None or assignment.user_id != user_id:
            raise NotFoundError("Assignment not found")

    task = PlannedTask(
        user_id=user_id,
        assignment_id=assignment_id,
        title=title or None,
        scheduled_date=scheduled_date,
        scheduled_start=scheduled_start,
        scheduled_end=scheduled_end,
        notes=notes or None,
        ai_generated=ai_generated,
        completed=False,
    )
    try:
        get_or_create_user(db, user_id)
        db.add(task)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to create planned task") from exc
    db.refresh(task)
    return task


def set_completed(
    db: Session,
    user_id: UUID,
    task_id: UUID,
    completed: bool,
    *,
    request_id: str | None = None,
) -> tuple[PlannedTask, bool]:
    """Toggle completion; returns the task and whether anything changed."""
    task = _get_owned_task(db, user_id, task_id)
    if bool(task.completed) == completed:
        return task, False
    try:
        task.completed = completed
        task.completed_at = datetime.now(timezone.utc) if completed else None
        record_action(
            db,
            user_id=user_id,
            action_type="planned_task_completed" if completed else "planned_task_uncompleted",
            payload={"task_id": str(task.id), "completed": completed},
            reason="Planned task completion toggled",
            request_id=request_id,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to update planned task") from exc
    db.refresh(task)
    return task, True


def delete_task(db: Session, user_id: UUID, task_id: UUID) -> None:
    task = _get_owned_task(db, user_id, task_id)
    try:
        db.delete(task)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Failed to delete planned task") from exc


def _get_owned_task(db: Session, user_id: UUID, task_id: UUID) -> PlannedTask:
    task = db.get(PlannedTask, task_id)
    if task is None or task.user_id != user_id:
        raise NotFoundError("Planned task not found")
    return task

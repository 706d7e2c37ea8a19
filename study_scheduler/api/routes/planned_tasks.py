"""Planned task (commitment ledger) routes."""
from __future__ import annotations

from datetime import date
from time import perf_counter
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from study_scheduler.api.deps import get_current_user_id
from study_scheduler.api.errors import http_error_from
from study_scheduler.api.schemas.planned_task import (
    PlannedTaskCreateRequest,
    PlannedTaskPayload,
    PlannedTaskUpdateRequest,
    PlannedTaskUpdateResponse,
)
from study_scheduler.db.deps import get_db
from study_scheduler.db.models.planned_task import PlannedTask
from study_scheduler.observability.metrics import log_metric
from study_scheduler.observability.tracing import trace
from study_scheduler.services import planned_task_service
from study_scheduler.services.errors import SchedulingError

router = APIRouter()


@router.get("/planned-tasks", response_model=List[PlannedTaskPayload], tags=["planned-tasks"])
def list_planned_tasks(
    http_request: Request,
    on: Optional[date] = Query(default=None, alias="date"),
    from_: Optional[date] = Query(default=None, alias="from"),
    to: Optional[date] = Query(default=None),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> List[PlannedTaskPayload]:
    """List ledger entries for one date or a date range, earliest first."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata = {
        "route": "/planned-tasks",
        "date": on.isoformat() if on else None,
        "from": from_.isoformat() if from_ else None,
        "to": to.isoformat() if to else None,
    }
    with trace("planned_task.list", metadata=metadata, user_id=str(user_id), request_id=request_id):
        tasks = planned_task_service.list_tasks(db, user_id, on=on, from_=from_, to=to)

    log_metric("planned_task.list.count", len(tasks), metadata={"user_id": str(user_id)})
    return [serialize_planned_task(task) for task in tasks]


@router.post(
    "/planned-tasks",
    response_model=PlannedTaskPayload,
    status_code=status.HTTP_201_CREATED,
    tags=["planned-tasks"],
)
def create_planned_task(
    payload: PlannedTaskCreateRequest,
    http_request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> PlannedTaskPayload:
    """Schedule a session by hand, optionally tied to an assignment."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata = {
        "route": "/planned-tasks",
        "assignment_id": str(payload.assignment_id) if payload.assignment_id else None,
        "scheduled_date": payload.scheduled_date.isoformat(),
    }
    start_time = perf_counter()
    try:
        with trace("planned_task.create", metadata=metadata, user_id=str(user_id), request_id=request_id):
            task = planned_task_service.create_task(
                db,
                user_id,
                scheduled_date=payload.scheduled_date,
                scheduled_start=payload.scheduled_start,
                scheduled_end=payload.scheduled_end,
                assignment_id=payload.assignment_id,
                title=payload.title,
                notes=payload.notes,
                ai_generated=payload.ai_generated,
            )
    except SchedulingError as exc:
        raise http_error_from(exc) from exc

    log_metric("planned_task.create.success", 1, metadata={"user_id": str(user_id)})
    log_metric(
        "planned_task.create.latency_ms",
        (perf_counter() - start_time) * 1000,
        metadata={"user_id": str(user_id)},
    )
    return serialize_planned_task(task)


@router.patch("/planned-tasks/{task_id}", response_model=PlannedTaskUpdateResponse, tags=["planned-tasks"])
def update_planned_task(
    task_id: UUID,
    payload: PlannedTaskUpdateRequest,
    http_request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> PlannedTaskUpdateResponse:
    """Mark a planned task complete or incomplete."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata = {"route": f"/planned-tasks/{task_id}", "task_id": str(task_id), "completed": payload.completed}
    try:
        with trace("planned_task.complete", metadata=metadata, user_id=str(user_id), request_id=request_id):
            task, changed = planned_task_service.set_completed(
                db, user_id, task_id, payload.completed, request_id=request_id
            )
    except SchedulingError as exc:
        raise http_error_from(exc) from exc

    log_metric("planned_task.complete.changed", 1 if changed else 0, metadata={"task_id": str(task_id)})
    return PlannedTaskUpdateResponse(
        task=serialize_planned_task(task),
        changed=changed,
        request_id=request_id or "",
    )


@router.delete(
    "/planned-tasks/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    tags=["planned-tasks"],
)
def delete_planned_task(
    task_id: UUID,
    http_request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Response:
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace(
            "planned_task.delete",
            metadata={"task_id": str(task_id)},
            user_id=str(user_id),
            request_id=request_id,
        ):
            planned_task_service.delete_task(db, user_id, task_id)
    except SchedulingError as exc:
        raise http_error_from(exc) from exc

    log_metric("planned_task.delete.success", 1, metadata={"task_id": str(task_id)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def serialize_planned_task(task: PlannedTask) -> PlannedTaskPayload:
    assignment = task.assignment
    return PlannedTaskPayload(
        id=task.id,
        assignment_id=task.assignment_id,
        assignment_title=assignment.title if assignment is not None else None,
        title=task.title,
        scheduled_date=task.scheduled_date,
        scheduled_start=task.scheduled_start,
        scheduled_end=task.scheduled_end,
        completed=bool(task.completed),
        completed_at=task.completed_at,
        ai_generated=bool(task.ai_generated),
        notes=task.notes,
    )

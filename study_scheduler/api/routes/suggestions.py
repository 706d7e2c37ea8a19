"""Schedule suggestion endpoints: generate, list pending, resolve."""
from __future__ import annotations

from time import perf_counter
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from study_scheduler.api.deps import get_current_user_id
from study_scheduler.api.errors import http_error_from
from study_scheduler.api.routes.planned_tasks import serialize_planned_task
from study_scheduler.api.schemas.suggestion import (
    AssignmentBrief,
    GenerateRequest,
    GenerateResponse,
    PendingSuggestionsResponse,
    ResolveRequest,
    ResolveResponse,
    SuggestionPayload,
)
from study_scheduler.db.deps import get_db
from study_scheduler.db.models.schedule_suggestion import ScheduleSuggestion
from study_scheduler.observability.metrics import log_metric
from study_scheduler.observability.tracing import trace
from study_scheduler.services.errors import NeedsSetupError, SchedulingError
from study_scheduler.services.suggestion_actions import resolve
from study_scheduler.services.suggestion_generator import generate_suggestions, list_pending_suggestions

router = APIRouter(prefix="/schedule")


@router.post("/generate", response_model=GenerateResponse, tags=["suggestions"])
def generate_endpoint(
    http_request: Request,
    payload: GenerateRequest | None = None,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> GenerateResponse:
    """Propose conflict-free study sessions for the user's open assignments."""
    request_id = getattr(http_request.state, "request_id", None)
    payload = payload or GenerateRequest()
    metadata: Dict[str, Any] = {
        "route": "/schedule/generate",
        "user_id": str(user_id),
        "start_date": payload.start_date.isoformat() if payload.start_date else None,
        "horizon_days": payload.horizon_days,
        "request_id": request_id,
    }

    start_time = perf_counter()
    success = False
    needs_setup = False
    created = 0
    try:
        with trace("suggestions.generate", metadata=metadata, user_id=str(user_id), request_id=request_id) as span:
            result = generate_suggestions(
                db,
                user_id,
                start_date=payload.start_date,
                not_before=payload.not_before,
                horizon_days=payload.horizon_days,
                request_id=request_id,
            )
            created = len(result.suggestions)
            success = True
            if span:
                span.update(
                    metadata={
                        **metadata,
                        "created": created,
                        "duplicates_skipped": result.duplicates_skipped,
                        "unplaced": len(result.unplaced_assignment_ids),
                    }
                )
    except SchedulingError as exc:
        needs_setup = isinstance(exc, NeedsSetupError)
        raise http_error_from(exc) from exc
    finally:
        latency_ms = (perf_counter() - start_time) * 1000
        metric_metadata = {"user_id": str(user_id), "needs_setup": needs_setup}
        log_metric("suggestions.generate.success", 1 if success else 0, metadata=metric_metadata)
        log_metric("suggestions.generate.count", created, metadata=metric_metadata)
        log_metric("suggestions.generate.latency_ms", latency_ms, metadata=metric_metadata)

    return GenerateResponse(
        suggestions=[serialize_suggestion(s) for s in result.suggestions],
        message=result.message,
        duplicates_skipped=result.duplicates_skipped,
        already_offered=result.already_offered,
        unscheduled_assignment_ids=result.unplaced_assignment_ids,
        retired_suggestion_ids=result.retired_suggestion_ids,
        request_id=request_id or "",
    )


@router.get("/suggestions", response_model=PendingSuggestionsResponse, tags=["suggestions"])
def list_pending_endpoint(
    http_request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> PendingSuggestionsResponse:
    """Pending suggestions joined with their assignment for display."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata = {"route": "/schedule/suggestions", "user_id": str(user_id), "request_id": request_id}

    start_time = perf_counter()
    with trace("suggestions.list_pending", metadata=metadata, user_id=str(user_id), request_id=request_id):
        suggestions = list_pending_suggestions(db, user_id)

    log_metric("suggestions.list_pending.success", 1, metadata={"user_id": str(user_id)})
    log_metric("suggestions.list_pending.count", len(suggestions), metadata={"user_id": str(user_id)})
    log_metric(
        "suggestions.list_pending.latency_ms",
        (perf_counter() - start_time) * 1000,
        metadata={"user_id": str(user_id)},
    )
    return PendingSuggestionsResponse(
        suggestions=[serialize_suggestion(s) for s in suggestions],
        request_id=request_id or "",
    )


@router.post("/suggestions/resolve", response_model=ResolveResponse, tags=["suggestions"])
def resolve_endpoint(
    payload: ResolveRequest,
    http_request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ResolveResponse:
    """Accept or dismiss one suggestion, or all pending ones at once."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata: Dict[str, Any] = {
        "route": "/schedule/suggestions/resolve",
        "user_id": str(user_id),
        "action": payload.action,
        "suggestion_id": str(payload.suggestion_id) if payload.suggestion_id else None,
        "request_id": request_id,
    }

    start_time = perf_counter()
    success = False
    changed_count = 0
    tasks_created = 0
    try:
        with trace("suggestions.resolve", metadata=metadata, user_id=str(user_id), request_id=request_id):
            outcome = resolve(db, user_id, payload.suggestion_id, payload.action, request_id=request_id)
            changed_count = len(outcome.suggestion_ids)
            tasks_created = len(outcome.tasks_created)
            success = True
    except SchedulingError as exc:
        raise http_error_from(exc) from exc
    finally:
        metric_metadata = {"user_id": str(user_id), "action": payload.action}
        log_metric("suggestions.resolve.success", 1 if success else 0, metadata=metric_metadata)
        log_metric("suggestions.resolve.changed", changed_count, metadata=metric_metadata)
        log_metric("suggestions.resolve.tasks_created", tasks_created, metadata=metric_metadata)
        log_metric(
            "suggestions.resolve.latency_ms",
            (perf_counter() - start_time) * 1000,
            metadata=metric_metadata,
        )

    return ResolveResponse(
        action=outcome.action,
        changed=outcome.changed,
        suggestion_ids=outcome.suggestion_ids,
        skipped_ids=outcome.skipped_ids,
        tasks_created=[serialize_planned_task(task) for task in outcome.tasks_created],
        request_id=request_id or "",
    )


def serialize_suggestion(suggestion: ScheduleSuggestion) -> SuggestionPayload:
    assignment = suggestion.assignment
    brief: AssignmentBrief | None = None
    if assignment is not None:
        brief = AssignmentBrief(
            id=assignment.id,
            title=assignment.title,
            priority=assignment.priority,
            due_date=assignment.due_date.isoformat() if assignment.due_date else None,
            course_name=assignment.course.name if assignment.course else None,
        )
    return SuggestionPayload(
        id=suggestion.id,
        assignment_id=suggestion.assignment_id,
        suggested_date=suggestion.suggested_date,
        suggested_start=suggestion.suggested_start,
        suggested_end=suggestion.suggested_end,
        reason=suggestion.reason,
        status=suggestion.status,
        assignment=brief,
    )

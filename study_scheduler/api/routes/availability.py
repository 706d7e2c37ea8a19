"""Weekly availability routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from study_scheduler.api.deps import get_current_user_id
from study_scheduler.api.errors import http_error_from
from study_scheduler.api.schemas.availability import (
    AvailabilityBlockIn,
    AvailabilityBlockPayload,
    AvailabilityBlockUpdate,
    AvailabilityListResponse,
    AvailabilityReplaceRequest,
)
from study_scheduler.db.deps import get_db
from study_scheduler.db.models.availability_block import AvailabilityBlock
from study_scheduler.observability.metrics import log_metric
from study_scheduler.observability.tracing import trace
from study_scheduler.services import availability_service
from study_scheduler.services.errors import SchedulingError

router = APIRouter(prefix="/schedule")


@router.get("/availability", response_model=AvailabilityListResponse, tags=["availability"])
def list_availability(
    http_request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> AvailabilityListResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("availability.list", metadata={"route": "/schedule/availability"}, user_id=str(user_id), request_id=request_id):
        blocks = availability_service.list_blocks(db, user_id)

    log_metric("availability.list.count", len(blocks), metadata={"user_id": str(user_id)})
    return AvailabilityListResponse(
        blocks=[_serialize_block(block) for block in blocks],
        request_id=request_id or "",
    )


@router.post(
    "/availability",
    response_model=AvailabilityBlockPayload,
    status_code=status.HTTP_201_CREATED,
    tags=["availability"],
)
def add_availability_block(
    payload: AvailabilityBlockIn,
    http_request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> AvailabilityBlockPayload:
    """Add one recurring block; an end time of 00:00 means midnight."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata = {"day_of_week": payload.day_of_week, "block_type": payload.block_type}
    try:
        with trace("availability.create", metadata=metadata, user_id=str(user_id), request_id=request_id):
            block = availability_service.add_block(db, user_id, **payload.model_dump())
    except SchedulingError as exc:
        raise http_error_from(exc) from exc

    log_metric("availability.create.success", 1, metadata={"user_id": str(user_id)})
    return _serialize_block(block)


@router.put("/availability", response_model=AvailabilityListResponse, tags=["availability"])
def replace_availability(
    payload: AvailabilityReplaceRequest,
    http_request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> AvailabilityListResponse:
    """Replace the whole weekly schedule."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata = {"blocks": len(payload.blocks)}
    try:
        with trace("availability.replace", metadata=metadata, user_id=str(user_id), request_id=request_id):
            blocks = availability_service.replace_blocks(
                db,
                user_id,
                [block.model_dump() for block in payload.blocks],
                request_id=request_id,
            )
    except SchedulingError as exc:
        raise http_error_from(exc) from exc

    log_metric("availability.replace.count", len(blocks), metadata={"user_id": str(user_id)})
    return AvailabilityListResponse(
        blocks=[_serialize_block(block) for block in blocks],
        request_id=request_id or "",
    )


@router.patch("/availability/{block_id}", response_model=AvailabilityBlockPayload, tags=["availability"])
def update_availability_block(
    block_id: UUID,
    payload: AvailabilityBlockUpdate,
    http_request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> AvailabilityBlockPayload:
    """Edit one block; omitted fields keep their stored values."""
    request_id = getattr(http_request.state, "request_id", None)
    changes = payload.model_dump(exclude_unset=True)
    metadata = {"block_id": str(block_id), "fields": ",".join(sorted(changes))}
    try:
        with trace("availability.update", metadata=metadata, user_id=str(user_id), request_id=request_id):
            block = availability_service.update_block(db, user_id, block_id, changes, request_id=request_id)
    except SchedulingError as exc:
        raise http_error_from(exc) from exc

    log_metric("availability.update.success", 1, metadata={"user_id": str(user_id)})
    return _serialize_block(block)


@router.delete(
    "/availability/{block_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    tags=["availability"],
)
def delete_availability_block(
    block_id: UUID,
    http_request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Response:
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace("availability.delete", metadata={"block_id": str(block_id)}, user_id=str(user_id), request_id=request_id):
            availability_service.delete_block(db, user_id, block_id)
    except SchedulingError as exc:
        raise http_error_from(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _serialize_block(block: AvailabilityBlock) -> AvailabilityBlockPayload:
    return AvailabilityBlockPayload(
        id=block.id,
        day_of_week=block.day_of_week,
        available_start=block.available_start,
        available_end=block.available_end,
        block_type=block.block_type,
        label=block.label,
        location=block.location,
    )

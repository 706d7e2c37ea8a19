"""Schemas for suggestion generation and resolution."""
from __future__ import annotations

from datetime import date, time
from typing import List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from study_scheduler.api.schemas.planned_task import PlannedTaskPayload


class GenerateRequest(BaseModel):
    start_date: Optional[date] = Field(default=None, description="User's local date to start planning from")
    not_before: Optional[time] = Field(default=None, description="Earliest local time offered on start_date")
    horizon_days: Optional[int] = Field(default=None, ge=1, le=28)


class AssignmentBrief(BaseModel):
    id: UUID
    title: str
    priority: str
    due_date: Optional[str]
    course_name: Optional[str]


class SuggestionPayload(BaseModel):
    id: UUID
    assignment_id: UUID
    suggested_date: date
    suggested_start: time
    suggested_end: time
    reason: Optional[str]
    status: Literal["pending", "accepted", "dismissed"]
    assignment: Optional[AssignmentBrief] = None


class GenerateResponse(BaseModel):
    suggestions: List[SuggestionPayload]
    message: str
    duplicates_skipped: int
    already_offered: int
    unscheduled_assignment_ids: List[UUID]
    retired_suggestion_ids: List[UUID] = Field(default_factory=list)
    request_id: str


class PendingSuggestionsResponse(BaseModel):
    suggestions: List[SuggestionPayload]
    request_id: str


class ResolveRequest(BaseModel):
    suggestion_id: Optional[Union[UUID, Literal["bulk"]]] = None
    action: str = Field(..., min_length=1, max_length=32)


class ResolveResponse(BaseModel):
    success: bool = True
    action: str
    changed: bool
    suggestion_ids: List[UUID]
    skipped_ids: List[UUID] = Field(default_factory=list)
    tasks_created: List[PlannedTaskPayload]
    request_id: str

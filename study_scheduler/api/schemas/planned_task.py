"""Schemas for the planned task ledger."""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class PlannedTaskPayload(BaseModel):
    id: UUID
    assignment_id: Optional[UUID]
    assignment_title: Optional[str] = None
    title: Optional[str]
    scheduled_date: date
    scheduled_start: time
    scheduled_end: time
    completed: bool
    completed_at: Optional[datetime] = None
    ai_generated: bool
    notes: Optional[str]


class PlannedTaskCreateRequest(BaseModel):
    assignment_id: Optional[UUID] = None
    title: Optional[str] = Field(default=None, max_length=200)
    scheduled_date: date
    scheduled_start: time
    scheduled_end: time
    notes: Optional[str] = Field(default=None, max_length=1000)
    ai_generated: bool = False

    @model_validator(mode="after")
    def check_range(self) -> "PlannedTaskCreateRequest":
        if self.scheduled_start >= self.scheduled_end:
            raise ValueError("scheduled_start must be before scheduled_end")
        return self


class PlannedTaskUpdateRequest(BaseModel):
    completed: bool


class PlannedTaskUpdateResponse(BaseModel):
    task: PlannedTaskPayload
    changed: bool
    request_id: str

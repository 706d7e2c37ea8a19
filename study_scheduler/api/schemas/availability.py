"""Schemas for weekly availability blocks."""
from __future__ import annotations

from datetime import time
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

BlockType = Literal["class", "study", "free", "work", "other"]


class AvailabilityBlockIn(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday, 6 = Saturday")
    available_start: time
    available_end: time
    block_type: BlockType = "study"
    label: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=200)


class AvailabilityBlockUpdate(BaseModel):
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    available_start: Optional[time] = None
    available_end: Optional[time] = None
    block_type: Optional[BlockType] = None
    label: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def check_required_not_cleared(self) -> "AvailabilityBlockUpdate":
        for name in ("day_of_week", "available_start", "available_end", "block_type"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class AvailabilityBlockPayload(BaseModel):
    id: UUID
    day_of_week: int
    available_start: time
    available_end: time
    block_type: BlockType
    label: Optional[str]
    location: Optional[str]


class AvailabilityReplaceRequest(BaseModel):
    blocks: List[AvailabilityBlockIn]


class AvailabilityListResponse(BaseModel):
    blocks: List[AvailabilityBlockPayload]
    request_id: str

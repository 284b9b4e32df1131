"""
Pydantic schemas for seat-hold request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class HoldSeatsRequest(BaseModel):
    event_id: int
    seat_ids: list[int] = Field(..., min_length=1)


class HoldSeatsResponse(BaseModel):
    success: bool = True
    hold_id: str
    event_id: int
    seat_ids: list[int]
    expires_at: datetime

    model_config = {"from_attributes": True}


class ReleaseSeatsRequest(BaseModel):
    seat_ids: list[int] = Field(..., min_length=1)


class ReleaseSeatsResponse(BaseModel):
    released: int


class ExtendHoldRequest(BaseModel):
    seat_ids: list[int] = Field(..., min_length=1)
    additional_seconds: Optional[int] = Field(None, gt=0)


class ExtendHoldResponse(BaseModel):
    new_expires_at: datetime


class HeldSeatResponse(BaseModel):
    seat_id: int
    event_id: int
    expires_at: datetime

    model_config = {"from_attributes": True}

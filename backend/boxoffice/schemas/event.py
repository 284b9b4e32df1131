"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import AwareDatetime, BaseModel, Field

from boxoffice.models.event import EventStatus
from boxoffice.models.seat import SeatStatus


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    date: AwareDatetime
    venue_id: int
    base_price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    date: datetime
    venue_id: int
    organizer_id: int
    base_price: Decimal
    total_seats: int
    available_seats: int
    status: EventStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class SeatResponse(BaseModel):
    id: int
    section_id: int
    row_label: str
    seat_number: int
    price: Decimal
    status: SeatStatus

    model_config = {"from_attributes": True}


class SeatMapResponse(BaseModel):
    event_id: int
    available_seats: int
    status_counts: dict[SeatStatus, int]
    seats: list[SeatResponse]
    cached: bool = False

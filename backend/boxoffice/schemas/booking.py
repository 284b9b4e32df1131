"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from boxoffice.models.booking import BookingStatus


class BookingCreate(BaseModel):
    event_id: int
    seat_ids: list[int] = Field(..., min_length=1)


class BookingConfirm(BaseModel):
    payment_id: str = Field(..., min_length=1, max_length=255)
    payment_method: str = Field(..., min_length=1, max_length=50)


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingItemResponse(BaseModel):
    seat_id: int
    price: Decimal
    released_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    gateway_payment_id: str
    amount: Decimal
    status: str
    method: str
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    user_id: int
    event_id: int
    status: BookingStatus
    total_amount: Decimal
    tax_amount: Decimal
    final_amount: Decimal
    expires_at: Optional[datetime]
    payment_id: Optional[str]
    payment_method: Optional[str]
    confirmed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    items: list[BookingItemResponse]
    payment: Optional[PaymentResponse] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingCancelResponse(BaseModel):
    success: bool = True
    message: str
    booking_id: int
    status: BookingStatus


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    page: int
    limit: int
    total: int
    total_pages: int

"""
Booking endpoints: create from held seats, confirm after payment, cancel, read.
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.db.session import get_db
from boxoffice.models.booking import BookingStatus
from boxoffice.schemas.booking import (
    BookingCancel,
    BookingCancelResponse,
    BookingConfirm,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
)
from boxoffice.services import booking_service
from boxoffice.services.cache_service import invalidate_seat_maps
from boxoffice.core.security import CurrentUser, get_current_user, get_current_user_id

settings = get_settings()
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Turn held seats into a PENDING booking.

    The seats stay HELD; the booking must be confirmed before the earliest
    hold deadline or it expires.
    """
    return await booking_service.create_booking(
        db, user_id, booking_data.event_id, booking_data.seat_ids
    )


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking_endpoint(
    booking_id: int,
    confirm_data: BookingConfirm,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Confirm a PENDING booking once the payment gateway reports success."""
    # Only the owner (or an admin) may confirm; anyone else sees 404
    await booking_service.get_booking(db, booking_id, None if user.is_admin else user.id)
    booking = await booking_service.confirm_booking(
        db, booking_id, confirm_data.payment_id, confirm_data.payment_method
    )
    await invalidate_seat_maps([booking.event_id])
    return booking


@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    cancel_data: Optional[BookingCancel] = None,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking and put its seats back on sale."""
    reason = cancel_data.reason if cancel_data else None
    booking = await booking_service.cancel_booking(db, booking_id, user_id, reason)
    await invalidate_seat_maps([booking.event_id])
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        status=booking.status,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Owners see their own bookings; admins see any booking."""
    return await booking_service.get_booking(db, booking_id, None if user.is_admin else user.id)


@router.get("/", response_model=BookingListResponse)
async def list_user_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get the authenticated user's bookings, newest first."""
    bookings, total = await booking_service.get_user_bookings(
        db, user_id, page=page, limit=limit, status=status_filter
    )
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )

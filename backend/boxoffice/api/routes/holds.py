"""
Seat hold endpoints: hold, release, extend, and list the caller's live holds.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.db.session import get_db
from boxoffice.schemas.hold import (
    ExtendHoldRequest,
    ExtendHoldResponse,
    HeldSeatResponse,
    HoldSeatsRequest,
    HoldSeatsResponse,
    ReleaseSeatsRequest,
    ReleaseSeatsResponse,
)
from boxoffice.services import hold_service, seat_inventory
from boxoffice.services.cache_service import invalidate_seat_maps
from boxoffice.core.security import get_current_user_id

router = APIRouter(prefix="/holds", tags=["Holds"])


@router.post("/", response_model=HoldSeatsResponse, status_code=status.HTTP_201_CREATED)
async def hold_seats_endpoint(
    request: HoldSeatsRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Hold seats for the authenticated user.

    All-or-nothing: if any requested seat is not available the whole request
    fails with 409 and lists the unavailable seat ids.
    """
    hold = await hold_service.hold_seats(db, request.event_id, request.seat_ids, user_id)
    await invalidate_seat_maps([hold.event_id])
    return hold


@router.post("/release", response_model=ReleaseSeatsResponse)
async def release_seats_endpoint(
    request: ReleaseSeatsRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Release held seats. Seats the caller does not hold are ignored."""
    event_ids = await seat_inventory.group_by_event(db, request.seat_ids)
    released = await hold_service.release_seats(db, request.seat_ids, user_id)
    if released:
        await invalidate_seat_maps(event_ids)
    return ReleaseSeatsResponse(released=released)


@router.post("/extend", response_model=ExtendHoldResponse)
async def extend_hold_endpoint(
    request: ExtendHoldRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    new_expires_at = await hold_service.extend_hold(
        db, request.seat_ids, user_id, request.additional_seconds
    )
    return ExtendHoldResponse(new_expires_at=new_expires_at)


@router.get("/", response_model=list[HeldSeatResponse])
async def hold_status_endpoint(
    event_id: Optional[int] = Query(None),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await hold_service.get_hold_status(db, user_id, event_id)

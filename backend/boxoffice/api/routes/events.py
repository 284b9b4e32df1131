"""
Event endpoints: setup (create, publish) and reads, with a Redis-cached seat map.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.db.session import get_db
from boxoffice.models.user import UserRole
from boxoffice.schemas.event import EventCreate, EventResponse, SeatMapResponse, SeatResponse
from boxoffice.services import event_service, seat_inventory
from boxoffice.services.cache_service import (
    get_cached_seat_map,
    invalidate_seat_maps,
    set_cached_seat_map,
)
from boxoffice.core.security import CurrentUser, require_role
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    user: CurrentUser = Depends(require_role(UserRole.ORGANIZER)),
    db: AsyncSession = Depends(get_db),
):
    """Create a DRAFT event and generate its seats. Organizers only."""
    return await event_service.create_event(db, event_data, user.id)


@router.post("/{event_id}/publish", response_model=EventResponse)
async def publish_event_endpoint(
    event_id: int,
    user: CurrentUser = Depends(require_role(UserRole.ORGANIZER)),
    db: AsyncSession = Depends(get_db),
):
    event = await event_service.publish_event(db, event_id, user.id, is_admin=user.is_admin)
    await invalidate_seat_maps([event_id])
    return event


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID. Not cached (needs real-time seat counts)."""
    return await event_service.get_event(db, event_id)


@router.get("/{event_id}/seats", response_model=SeatMapResponse)
async def get_event_seats_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Seat map for an event.
    Cached in Redis for a few seconds and dropped on every seat change,
    so it is a display aid only; holds always re-check the database.
    """
    cached = await get_cached_seat_map(event_id)
    if cached:
        logger.info("seat_map_cache_hit", event_id=event_id)
        cached["cached"] = True
        return SeatMapResponse(**cached)

    event, seats = await event_service.get_event_seats(db, event_id)
    counts = await seat_inventory.count_seats_by_status(db, event_id)
    response_data = {
        "event_id": event.id,
        "available_seats": event.available_seats,
        "status_counts": {seat_status.value: count for seat_status, count in counts.items()},
        "seats": [SeatResponse.model_validate(s).model_dump(mode="json") for s in seats],
        "cached": False,
    }

    await set_cached_seat_map(event_id, response_data)

    return SeatMapResponse(**response_data)

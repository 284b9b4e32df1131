"""
Event setup: creation with seat generation, publishing, and seat-map reads.
"""

from datetime import datetime, timezone
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.exceptions import NotFoundError, ValidationError
from boxoffice.core.logging import get_logger
from boxoffice.db.transaction import run_in_transaction
from boxoffice.models.event import Event, EventStatus
from boxoffice.models.seat import Seat
from boxoffice.models.venue import Venue
from boxoffice.schemas.event import EventCreate
from boxoffice.services import seat_inventory

logger = get_logger(__name__)


async def create_event(db: AsyncSession, event_data: EventCreate, organizer_id: int) -> Event:
    """
    Create a DRAFT event and generate one AVAILABLE seat per venue slot.
    Event row and seat rows are written in the same transaction.
    """
    if event_data.date <= datetime.now(timezone.utc):
        raise ValidationError("Event date must be in the future")

    async def work() -> Event:
        result = await db.execute(select(Venue).where(Venue.id == event_data.venue_id))
        venue = result.scalar_one_or_none()
        if not venue:
            raise NotFoundError(f"Venue {event_data.venue_id} not found")

        total_seats = sum(section.capacity for section in venue.sections)
        if total_seats == 0:
            raise ValidationError("Venue has no seating sections")

        event = Event(
            title=event_data.title,
            description=event_data.description,
            date=event_data.date,
            venue_id=venue.id,
            organizer_id=organizer_id,
            base_price=event_data.base_price,
            total_seats=total_seats,
            available_seats=total_seats,  # All seats available initially
            status=EventStatus.DRAFT,
        )
        db.add(event)
        await db.flush()

        await seat_inventory.generate_seats(db, event.id, event.base_price, venue.sections)
        return event

    event = await run_in_transaction(db, work, operation="create_event")
    logger.info("event_created", event_id=event.id, title=event.title, seats=event.total_seats)
    return event


async def publish_event(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    is_admin: bool = False,
) -> Event:
    """DRAFT -> PUBLISHED. Only the organizer (or an admin) may publish."""

    async def work() -> Event:
        event = await get_event(db, event_id)
        if event.organizer_id != user_id and not is_admin:
            raise NotFoundError(f"Event {event_id} not found")
        if event.status != EventStatus.DRAFT:
            raise ValidationError(f"Event is already {event.status.value.lower()}")
        event.status = EventStatus.PUBLISHED
        await db.flush()
        return event

    event = await run_in_transaction(db, work, operation="publish_event")
    logger.info("event_published", event_id=event.id)
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID, always re-read from the database."""
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()

    if not event:
        raise NotFoundError(f"Event {event_id} not found")
    return event


async def get_event_seats(db: AsyncSession, event_id: int) -> tuple[Event, list[Seat]]:
    """Seat map: every seat of the event with its current status."""
    event = await get_event(db, event_id)
    result = await db.execute(
        select(Seat)
        .where(Seat.event_id == event_id)
        .order_by(Seat.section_id, Seat.row_label, Seat.seat_number)
        .execution_options(populate_existing=True)
    )
    return event, list(result.scalars().all())

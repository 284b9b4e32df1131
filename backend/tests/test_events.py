"""
Tests for event setup endpoints and the seat map.
"""

import pytest
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from httpx import AsyncClient

from boxoffice.models.event import EventStatus
from boxoffice.models.user import UserRole
from boxoffice.schemas.event import EventCreate
from boxoffice.services import event_service
from boxoffice.core.exceptions import NotFoundError

from conftest import make_headers, VENUE_CAPACITY


def event_payload(venue_id: int, days: int = 30) -> dict:
    return {
        "title": "Python Conference 2026",
        "description": "Annual Python gathering",
        "date": (datetime.now(timezone.utc) + timedelta(days=days)).isoformat(),
        "venue_id": venue_id,
        "base_price": "80.00",
    }


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient, organizer_headers, venue_id):
    """Organizer creates a DRAFT event with one seat per venue slot."""
    response = await client.post(
        "/api/v1/events/", json=event_payload(venue_id), headers=organizer_headers
    )
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Python Conference 2026"
    assert data["status"] == "DRAFT"
    assert data["total_seats"] == VENUE_CAPACITY
    assert data["available_seats"] == VENUE_CAPACITY  # All seats available initially


@pytest.mark.asyncio
async def test_create_event_generates_priced_seats(db_session, users, venue_id):
    data = EventCreate(
        title="Jazz Night",
        date=datetime.now(timezone.utc) + timedelta(days=7),
        venue_id=venue_id,
        base_price=Decimal("80.00"),
    )
    event = await event_service.create_event(db_session, data, users.organizer)

    _, seats = await event_service.get_event_seats(db_session, event.id)
    assert len(seats) == VENUE_CAPACITY
    labels = {(s.row_label, s.seat_number) for s in seats}
    assert ("A", 1) in labels and ("B", 5) in labels
    assert sorted({s.price for s in seats}) == [Decimal("80.00"), Decimal("120.00")]


@pytest.mark.asyncio
async def test_create_event_unauthenticated(client: AsyncClient, venue_id):
    response = await client.post("/api/v1/events/", json=event_payload(venue_id))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_event_requires_organizer(client: AsyncClient, alice_headers, venue_id):
    response = await client.post(
        "/api/v1/events/", json=event_payload(venue_id), headers=alice_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_event_past_date(client: AsyncClient, organizer_headers, venue_id):
    """Event with past date returns 400."""
    response = await client.post(
        "/api/v1/events/", json=event_payload(venue_id, days=-1), headers=organizer_headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_create_event_unknown_venue(client: AsyncClient, organizer_headers, venue_id):
    response = await client.post(
        "/api/v1/events/", json=event_payload(venue_id + 100), headers=organizer_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_create_event_invalid_price(client: AsyncClient, organizer_headers, venue_id):
    payload = event_payload(venue_id)
    payload["base_price"] = "0"
    response = await client.post("/api/v1/events/", json=payload, headers=organizer_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_publish_event(client: AsyncClient, organizer_headers, event_factory):
    draft = await event_factory(status=EventStatus.DRAFT)

    response = await client.post(f"/api/v1/events/{draft.id}/publish", headers=organizer_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "PUBLISHED"

    again = await client.post(f"/api/v1/events/{draft.id}/publish", headers=organizer_headers)
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_publish_requires_owning_organizer(client: AsyncClient, admin_headers, event_factory):
    draft = await event_factory(status=EventStatus.DRAFT)
    stranger = make_headers(424242, role=UserRole.ORGANIZER)

    response = await client.post(f"/api/v1/events/{draft.id}/publish", headers=stranger)
    assert response.status_code == 404

    # Admins may publish any event
    response = await client.post(f"/api/v1/events/{draft.id}/publish", headers=admin_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_get_event(client: AsyncClient, event):
    response = await client.get(f"/api/v1/events/{event.id}")
    assert response.status_code == 200
    assert response.json()["id"] == event.id
    assert response.json()["available_seats"] == VENUE_CAPACITY


@pytest.mark.asyncio
async def test_get_event_not_found(client: AsyncClient):
    response = await client.get("/api/v1/events/99999")
    assert response.status_code == 404
    assert response.json() == {"detail": "Event 99999 not found", "code": "not_found"}


@pytest.mark.asyncio
async def test_get_event_service_not_found(db_session):
    with pytest.raises(NotFoundError):
        await event_service.get_event(db_session, 99999)


@pytest.mark.asyncio
async def test_seat_map(client: AsyncClient, alice_headers, event):
    await client.post(
        "/api/v1/holds/",
        json={"event_id": event.id, "seat_ids": event.seat_ids[:2]},
        headers=alice_headers,
    )

    response = await client.get(f"/api/v1/events/{event.id}/seats")

    assert response.status_code == 200
    data = response.json()
    assert data["cached"] is False  # Redis disabled in tests
    assert data["available_seats"] == VENUE_CAPACITY - 2
    assert data["status_counts"]["AVAILABLE"] == VENUE_CAPACITY - 2
    assert data["status_counts"]["HELD"] == 2
    statuses = {seat["id"]: seat["status"] for seat in data["seats"]}
    assert statuses[event.seat_ids[0]] == "HELD"
    assert statuses[event.seat_ids[2]] == "AVAILABLE"

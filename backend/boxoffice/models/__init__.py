from boxoffice.models.user import User, UserRole
from boxoffice.models.venue import Venue, Section
from boxoffice.models.event import Event, EventStatus
from boxoffice.models.seat import Seat, SeatStatus
from boxoffice.models.booking import Booking, BookingItem, BookingStatus, Payment

__all__ = [
    "User", "UserRole",
    "Venue", "Section",
    "Event", "EventStatus",
    "Seat", "SeatStatus",
    "Booking", "BookingItem", "BookingStatus", "Payment",
]

from boxoffice.schemas.event import EventCreate, EventResponse, SeatResponse, SeatMapResponse
from boxoffice.schemas.hold import (
    HoldSeatsRequest, HoldSeatsResponse, ReleaseSeatsRequest, ReleaseSeatsResponse,
    ExtendHoldRequest, ExtendHoldResponse, HeldSeatResponse,
)
from boxoffice.schemas.booking import (
    BookingCreate, BookingConfirm, BookingCancel, BookingResponse,
    BookingCancelResponse, BookingListResponse,
)

__all__ = [
    "EventCreate", "EventResponse", "SeatResponse", "SeatMapResponse",
    "HoldSeatsRequest", "HoldSeatsResponse", "ReleaseSeatsRequest", "ReleaseSeatsResponse",
    "ExtendHoldRequest", "ExtendHoldResponse", "HeldSeatResponse",
    "BookingCreate", "BookingConfirm", "BookingCancel", "BookingResponse",
    "BookingCancelResponse", "BookingListResponse",
]

"""
Error taxonomy for the seat-inventory core.

Services raise these instead of HTTPException so they stay usable from the
reaper and from tests without a request context. The API layer maps each
class to its status code in one exception handler (see main.py).

  ValidationError   400  bad input, limit exceeded, holds lapsed, wrong state
  ExpiredError      400  hold or booking deadline passed, restart the flow
  NotFoundError     404
  ConflictError     409  lost race or stale version, safe to retry after re-read
  InternalError     500  unexpected database failure, message never leaked
  TransactionTimeoutError  503  transaction exceeded its deadline, retryable
"""

from typing import Optional


class BookingSystemError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(BookingSystemError):
    status_code = 400
    code = "validation_error"


class ExpiredError(ValidationError):
    code = "expired"


class NotFoundError(BookingSystemError):
    status_code = 404
    code = "not_found"


class ConflictError(BookingSystemError):
    status_code = 409
    code = "conflict"

    def __init__(self, message: str, unavailable_seat_ids: Optional[list[int]] = None):
        super().__init__(message)
        self.unavailable_seat_ids = sorted(unavailable_seat_ids or [])

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.unavailable_seat_ids:
            payload["unavailable_seat_ids"] = self.unavailable_seat_ids
        return payload


class InternalError(BookingSystemError):
    status_code = 500
    code = "internal_error"

    def to_dict(self) -> dict:
        return {"detail": "Internal server error", "code": self.code}


class TransactionTimeoutError(InternalError):
    status_code = 503
    code = "transaction_timeout"

    def to_dict(self) -> dict:
        return {"detail": "The request timed out, please retry", "code": self.code}

"""Domain errors raised by the seat hold and booking services.

Each error knows the HTTP status and machine-readable code it maps to;
``seatlock.exception_handlers`` renders them as JSON bodies.
"""
from typing import Iterable


class SeatLockError(Exception):
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, **extra):
        self.message = message
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"success": False, "code": self.code, "message": self.message, **self.extra}


class SeatUnavailable(SeatLockError):
    """Requested seats are booked, unknown, or held by another session."""

    status_code = 409
    code = "SEAT_UNAVAILABLE"

    def __init__(self, unavailable_seats: Iterable[str]):
        self.unavailable_seats = list(unavailable_seats)
        super().__init__(
            "Seats not available: %s" % ", ".join(self.unavailable_seats),
            unavailableSeats=self.unavailable_seats,
        )


class HoldExpired(SeatLockError):
    """A booking referenced seats whose hold no longer belongs to the session."""

    status_code = 409
    code = "HOLD_EXPIRED"

    def __init__(self, expired_seats: Iterable[str]):
        self.expired_seats = list(expired_seats)
        super().__init__(
            "Your seat selection expired: %s" % ", ".join(self.expired_seats),
            expiredSeats=self.expired_seats,
        )


class NotFound(SeatLockError):
    status_code = 404
    code = "NOT_FOUND"


class Forbidden(SeatLockError):
    status_code = 403
    code = "FORBIDDEN"


class BookingWindowError(SeatLockError):
    code = "OUTSIDE_BOOKING_WINDOW"


class BookingStateError(SeatLockError):
    status_code = 409
    code = "INVALID_BOOKING_STATE"


class ReviewExists(SeatLockError):
    status_code = 409
    code = "REVIEW_EXISTS"

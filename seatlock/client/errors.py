from typing import Iterable, Optional


class ApiError(Exception):
    """A backend call failed: transport error, or a non-2xx response."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class SeatUnavailableError(ApiError):
    def __init__(self, unavailable_seats: Iterable[str], message: str = "Seats not available"):
        self.unavailable_seats = list(unavailable_seats)
        super().__init__(message, status_code=409, code="SEAT_UNAVAILABLE")


class HoldExpiredError(ApiError):
    def __init__(self, expired_seats: Iterable[str], message: str = "Your seat selection expired"):
        self.expired_seats = list(expired_seats)
        super().__init__(message, status_code=409, code="HOLD_EXPIRED")


class FlowError(Exception):
    """An action was attempted from a booking step that does not allow it."""

from .api import BusAPI
from .controller import (
    BookingSession,
    BookingStep,
    PassengerDetails,
    SeatSelectionController,
    new_session_id,
)
from .errors import ApiError, FlowError, HoldExpiredError, SeatUnavailableError
from .notifier import LogNotifier, Notifier

__all__ = [
    "BusAPI",
    "BookingSession",
    "BookingStep",
    "PassengerDetails",
    "SeatSelectionController",
    "new_session_id",
    "ApiError",
    "FlowError",
    "HoldExpiredError",
    "SeatUnavailableError",
    "LogNotifier",
    "Notifier",
]

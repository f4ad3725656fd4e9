from .models import *

__all__ = [
    "Base",
    "Bus",
    "Seat",
    "Booking",
    "Passenger",
    "AuditLog",
    "Review",
]

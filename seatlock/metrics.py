from prometheus_client import Counter, Histogram

# Seat hold metrics
SEAT_LOCK_LATENCY = Histogram(
    "seatlock_hold_latency_seconds", "Latency for seat hold operations", ["operation"]
)
SEAT_LOCK_ATTEMPTS = Counter("seatlock_lock_attempts_total", "Total seat lock requests", ["result"])
SEAT_RELEASES = Counter("seatlock_seat_releases_total", "Seats released from a hold", ["reason"])

# Booking metrics
BOOKING_FINALIZE = Counter("seatlock_booking_finalize_total", "Booking finalize attempts", ["result"])
BOOKING_CANCELLATIONS = Counter("seatlock_booking_cancellations_total", "Cancelled bookings")

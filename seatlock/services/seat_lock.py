"""Time-bounded, session-scoped seat holds stored in Redis.

Every held seat is a hash at ``seat_lock:{bus_id}:{seat_number}`` with the
fields ``session`` and ``expires_at`` (epoch milliseconds). The seats a
session holds on a bus are indexed in the set
``seat_lock_session:{bus_id}:{session}`` so a new grant can move every one of
them to the same deadline: a session's holds expire together. All
check-and-set work runs inside Lua scripts so a request is evaluated and
written as one unit.

Once a booking commits, the seat's hash is replaced by a permanent
``booked`` marker holding the PNR. The lock script refuses marked seats, so a
lock request that read the database before the booking committed still
cannot hold the seat. Cancellation removes the marker.

Expiry is evaluated lazily: scripts and snapshots compare ``expires_at`` with
the manager clock and treat a lapsed hold as absent. The Redis key TTL is set
to the same duration so stale hashes are reclaimed without a sweeper.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from redis.exceptions import RedisError

from seatlock.config import settings
from seatlock.exceptions import SeatUnavailable
from seatlock.metrics import SEAT_LOCK_ATTEMPTS, SEAT_LOCK_LATENCY, SEAT_RELEASES
from seatlock.redis_client import redis_client

logger = logging.getLogger(__name__)


LOCK_KEY_TPL = "seat_lock:{bus_id}:{seat_number}"
SESSION_KEY_TPL = "seat_lock_session:{bus_id}:{session_id}"


# KEYS: session index, then seat keys. ARGV: session, now_ms, expires_ms,
# ttl_ms, seat key prefix, then one "1"/"0" flag per seat key marking seats the
# caller already knows are unavailable.
# Returns the 1-based positions of unavailable seats; writes only when none.
# On success every live hold of the session on the bus moves to expires_ms.
_LOCK_SCRIPT = """
local session = ARGV[1]
local now = tonumber(ARGV[2])
local prefix = ARGV[5]
local unavailable = {}
for i = 2, #KEYS do
  if ARGV[4 + i] == '1' then
    table.insert(unavailable, i - 1)
  else
    local holder = redis.call('HMGET', KEYS[i], 'session', 'expires_at', 'booked')
    if holder[3] then
      table.insert(unavailable, i - 1)
    elseif holder[1] and holder[1] ~= session and tonumber(holder[2] or '0') > now then
      table.insert(unavailable, i - 1)
    end
  end
end
if #unavailable > 0 then
  return unavailable
end
for _, seat in ipairs(redis.call('SMEMBERS', KEYS[1])) do
  local key = prefix .. seat
  local holder = redis.call('HMGET', key, 'session', 'expires_at')
  if holder[1] == session and tonumber(holder[2] or '0') > now then
    redis.call('HSET', key, 'expires_at', ARGV[3])
    redis.call('PEXPIRE', key, ARGV[4])
  else
    redis.call('SREM', KEYS[1], seat)
  end
end
for i = 2, #KEYS do
  redis.call('HSET', KEYS[i], 'session', session, 'expires_at', ARGV[3])
  redis.call('PEXPIRE', KEYS[i], ARGV[4])
  redis.call('SADD', KEYS[1], string.sub(KEYS[i], #prefix + 1))
end
redis.call('PEXPIRE', KEYS[1], ARGV[4])
return {}
"""

# KEYS: session index, then seat keys. ARGV: session, now_ms, seat key prefix.
# Deletes holds owned by the session; returns positions of holds that were live.
_UNLOCK_SCRIPT = """
local released = {}
for i = 2, #KEYS do
  local holder = redis.call('HMGET', KEYS[i], 'session', 'expires_at')
  if holder[1] == ARGV[1] then
    redis.call('DEL', KEYS[i])
    if tonumber(holder[2] or '0') > tonumber(ARGV[2]) then
      table.insert(released, i - 1)
    end
  end
  redis.call('SREM', KEYS[1], string.sub(KEYS[i], #ARGV[3] + 1))
end
return released
"""

# KEYS: seat keys. ARGV: session, now_ms, pin_until_ms, pin_ttl_ms.
# Returns {missing positions, previous expiries}. When every seat is held by
# the session, pushes each expiry out to at least pin_until_ms and reports the
# expiries it replaced.
_CLAIM_SCRIPT = """
local now = tonumber(ARGV[2])
local pin_until = tonumber(ARGV[3])
local missing = {}
for i, key in ipairs(KEYS) do
  local holder = redis.call('HMGET', key, 'session', 'expires_at')
  if holder[1] ~= ARGV[1] or tonumber(holder[2] or '0') <= now then
    table.insert(missing, i)
  end
end
if #missing > 0 then
  return {missing, {}}
end
local previous = {}
for _, key in ipairs(KEYS) do
  local expires_at = redis.call('HGET', key, 'expires_at')
  table.insert(previous, expires_at)
  if tonumber(expires_at) < pin_until then
    redis.call('HSET', key, 'expires_at', ARGV[3])
    redis.call('PEXPIRE', key, ARGV[4])
  end
end
return {{}, previous}
"""

# KEYS: seat keys. ARGV: session, now_ms, pin_until_ms, then the expiry each
# key had before it was pinned. Holds still carrying the pin go back to their
# earlier expiry; ones whose earlier expiry has passed are dropped.
_RESTORE_SCRIPT = """
local now = tonumber(ARGV[2])
local pin_until = tonumber(ARGV[3])
local restored = 0
for i, key in ipairs(KEYS) do
  local previous = tonumber(ARGV[3 + i])
  local holder = redis.call('HMGET', key, 'session', 'expires_at')
  if holder[1] == ARGV[1] and holder[2] == ARGV[3] and previous < pin_until then
    if previous > now then
      redis.call('HSET', key, 'expires_at', ARGV[3 + i])
      redis.call('PEXPIRE', key, previous - now)
    else
      redis.call('DEL', key)
    end
    restored = restored + 1
  end
end
return restored
"""

# KEYS: session index, then seat keys. ARGV: booking reference, seat key prefix.
# Replaces each seat's hold with a permanent booked marker.
_MARK_BOOKED_SCRIPT = """
for i = 2, #KEYS do
  redis.call('DEL', KEYS[i])
  redis.call('HSET', KEYS[i], 'booked', ARGV[1])
  redis.call('SREM', KEYS[1], string.sub(KEYS[i], #ARGV[2] + 1))
end
return #KEYS - 1
"""

# KEYS: seat keys. ARGV: booking reference.
# Removes booked markers left by that booking; returns their positions.
_RELEASE_BOOKED_SCRIPT = """
local released = {}
for i, key in ipairs(KEYS) do
  if redis.call('HGET', key, 'booked') == ARGV[1] then
    redis.call('DEL', key)
    table.insert(released, i)
  end
end
return released
"""


@dataclass(frozen=True)
class Hold:
    bus_id: int
    seat_number: str
    session_id: str
    expires_at: datetime


@dataclass(frozen=True)
class LockGrant:
    bus_id: int
    session_id: str
    seat_numbers: List[str]
    expires_at: datetime


@dataclass(frozen=True)
class Claim:
    """Outcome of ``claim_seats``: seats not held, or the pinned holds."""

    bus_id: int
    session_id: str
    seat_numbers: List[str]
    missing: List[str]
    pinned_until: int = 0
    previous: Dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.missing


def _from_millis(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)


def _unique(seat_numbers: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(seat_numbers))


class SeatLockManager:
    def __init__(
        self,
        redis,
        hold_seconds: float = settings.HOLD_DURATION_SECONDS,
        grace_seconds: float = settings.FINALIZE_GRACE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.hold_seconds = hold_seconds
        self.grace_seconds = grace_seconds
        self.clock = clock
        self._lock = redis.register_script(_LOCK_SCRIPT)
        self._unlock = redis.register_script(_UNLOCK_SCRIPT)
        self._claim = redis.register_script(_CLAIM_SCRIPT)
        self._restore = redis.register_script(_RESTORE_SCRIPT)
        self._mark_booked = redis.register_script(_MARK_BOOKED_SCRIPT)
        self._release_booked = redis.register_script(_RELEASE_BOOKED_SCRIPT)

    @staticmethod
    def key(bus_id: int, seat_number: str) -> str:
        return LOCK_KEY_TPL.format(bus_id=bus_id, seat_number=seat_number)

    @staticmethod
    def session_key(bus_id: int, session_id: str) -> str:
        return SESSION_KEY_TPL.format(bus_id=bus_id, session_id=session_id)

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _keys(self, bus_id: int, seats: Sequence[str]) -> List[str]:
        return [self.key(bus_id, s) for s in seats]

    def _prefix(self, bus_id: int) -> str:
        return self.key(bus_id, "")

    async def lock_seats(
        self,
        bus_id: int,
        seat_numbers: Iterable[str],
        session_id: str,
        blocked: Iterable[str] = (),
    ) -> LockGrant:
        """Hold every requested seat for ``session_id`` or none of them.

        ``blocked`` names seats the caller already knows cannot be held
        (booked or unknown); they are reported together with seats held by
        other sessions or already booked. Raises SeatUnavailable listing every
        such seat. A grant moves all of the session's live holds on the bus to
        the new expiry.
        """
        seats = _unique(seat_numbers)
        if not seats:
            raise ValueError("at least one seat number is required")
        blocked = set(blocked)
        now = self._now_ms()
        ttl_ms = int(self.hold_seconds * 1000)
        expires_ms = now + ttl_ms
        flags = ["1" if s in blocked else "0" for s in seats]

        start = time.perf_counter()
        try:
            res = await self._lock(
                keys=[self.session_key(bus_id, session_id), *self._keys(bus_id, seats)],
                args=[session_id, now, expires_ms, ttl_ms, self._prefix(bus_id), *flags],
            )
        except RedisError:
            SEAT_LOCK_ATTEMPTS.labels(result="error").inc()
            logger.exception("seat lock failed", extra={"bus_id": bus_id, "seats": seats})
            raise
        SEAT_LOCK_LATENCY.labels(operation="lock").observe(time.perf_counter() - start)

        if res:
            unavailable = [seats[int(i) - 1] for i in res]
            SEAT_LOCK_ATTEMPTS.labels(result="unavailable").inc()
            logger.info(
                "seat lock refused",
                extra={"bus_id": bus_id, "session_id": session_id, "unavailable": unavailable},
            )
            raise SeatUnavailable(unavailable)

        SEAT_LOCK_ATTEMPTS.labels(result="granted").inc()
        logger.info(
            "seats locked",
            extra={"bus_id": bus_id, "session_id": session_id, "seats": seats, "expires_at": expires_ms},
        )
        return LockGrant(bus_id=bus_id, session_id=session_id, seat_numbers=seats, expires_at=_from_millis(expires_ms))

    async def unlock_seats(self, bus_id: int, seat_numbers: Iterable[str], session_id: str) -> List[str]:
        """Release the session's own holds. Seats held by others, already
        expired, or never held are skipped without error."""
        seats = _unique(seat_numbers)
        if not seats:
            return []
        start = time.perf_counter()
        res = await self._unlock(
            keys=[self.session_key(bus_id, session_id), *self._keys(bus_id, seats)],
            args=[session_id, self._now_ms(), self._prefix(bus_id)],
        )
        SEAT_LOCK_LATENCY.labels(operation="unlock").observe(time.perf_counter() - start)
        released = [seats[int(i) - 1] for i in res]
        if released:
            SEAT_RELEASES.labels(reason="unlock").inc(len(released))
        skipped = [s for s in seats if s not in released]
        if skipped:
            logger.debug(
                "unlock skipped seats not held by session",
                extra={"bus_id": bus_id, "session_id": session_id, "seats": skipped},
            )
        return released

    async def claim_seats(self, bus_id: int, seat_numbers: Iterable[str], session_id: str) -> Claim:
        """Check that the session still holds every seat.

        ``Claim.missing`` lists the seats it does not hold. When that is empty
        each hold is kept alive for at least the finalize grace period so it
        cannot lapse while the booking is written; ``restore_seats`` undoes
        that if the booking is abandoned.
        """
        seats = _unique(seat_numbers)
        if not seats:
            return Claim(bus_id=bus_id, session_id=session_id, seat_numbers=[], missing=[])
        now = self._now_ms()
        grace_ms = int(self.grace_seconds * 1000)
        pin_until = now + grace_ms
        start = time.perf_counter()
        missing, previous = await self._claim(
            keys=self._keys(bus_id, seats),
            args=[session_id, now, pin_until, grace_ms],
        )
        SEAT_LOCK_LATENCY.labels(operation="claim").observe(time.perf_counter() - start)
        if missing:
            return Claim(
                bus_id=bus_id,
                session_id=session_id,
                seat_numbers=seats,
                missing=[seats[int(i) - 1] for i in missing],
            )
        return Claim(
            bus_id=bus_id,
            session_id=session_id,
            seat_numbers=seats,
            missing=[],
            pinned_until=pin_until,
            previous={seat: int(ms) for seat, ms in zip(seats, previous)},
        )

    async def restore_seats(self, claim: Claim) -> int:
        """Give pinned holds back their pre-claim expiry."""
        if not claim.ok or not claim.seat_numbers:
            return 0
        seats = claim.seat_numbers
        restored = await self._restore(
            keys=self._keys(claim.bus_id, seats),
            args=[claim.session_id, self._now_ms(), claim.pinned_until, *[claim.previous[s] for s in seats]],
        )
        logger.info(
            "claimed holds restored",
            extra={"bus_id": claim.bus_id, "session_id": claim.session_id, "restored": int(restored)},
        )
        return int(restored)

    async def mark_booked(self, bus_id: int, seat_numbers: Iterable[str], session_id: str, booking_ref: str) -> int:
        """Swap the session's holds for permanent booked markers."""
        seats = _unique(seat_numbers)
        if not seats:
            return 0
        marked = await self._mark_booked(
            keys=[self.session_key(bus_id, session_id), *self._keys(bus_id, seats)],
            args=[booking_ref, self._prefix(bus_id)],
        )
        SEAT_RELEASES.labels(reason="finalize").inc(len(seats))
        return int(marked)

    async def release_booked(self, bus_id: int, seat_numbers: Iterable[str], booking_ref: str) -> List[str]:
        """Drop the booked markers a booking left behind."""
        seats = _unique(seat_numbers)
        if not seats:
            return []
        res = await self._release_booked(keys=self._keys(bus_id, seats), args=[booking_ref])
        released = [seats[int(i) - 1] for i in res]
        if released:
            SEAT_RELEASES.labels(reason="cancel").inc(len(released))
        return released

    async def snapshot(self, bus_id: int, seat_numbers: Iterable[str]) -> Dict[str, Hold]:
        """Live holds for the given seats; lapsed holds and booked markers are
        left out."""
        seats = _unique(seat_numbers)
        if not seats:
            return {}
        now = self._now_ms()
        async with self.redis.pipeline(transaction=False) as pipe:
            for key in self._keys(bus_id, seats):
                pipe.hmget(key, "session", "expires_at")
            rows = await pipe.execute()

        holds = {}
        for seat, (session_id, expires_at) in zip(seats, rows):
            if not session_id or not expires_at:
                continue
            expires_ms = int(expires_at)
            if expires_ms <= now:
                continue
            holds[seat] = Hold(
                bus_id=bus_id,
                seat_number=seat,
                session_id=session_id,
                expires_at=_from_millis(expires_ms),
            )
        return holds


_manager: Optional[SeatLockManager] = None


def get_lock_manager() -> SeatLockManager:
    global _manager
    if _manager is None:
        _manager = SeatLockManager(redis_client)
    return _manager

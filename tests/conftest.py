import os

# settings are read at import time, so these must be set before seatlock loads
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./seatlock-test.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import date, timedelta

import httpx
import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

from seatlock.db.session import create_schema, get_session, make_engine, make_session_factory
from seatlock.main import app
from seatlock.redis_client import get_redis
from seatlock.schemas.bus import BusCreateRequest
from seatlock.services.auth import create_access_token
from seatlock.services.buses import create_bus
from seatlock.services.seat_lock import SeatLockManager, get_lock_manager


class FakeClock:
    """Wall clock for the lock manager that only moves when told to."""

    def __init__(self, start: float = 1_760_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def redis():
    client = FakeRedis(server=FakeServer(), decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def locks(redis, clock):
    return SeatLockManager(redis, hold_seconds=180, grace_seconds=30, clock=clock)


@pytest.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'seatlock.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def app_overrides(session_factory, locks, redis):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_lock_manager] = lambda: locks
    app.dependency_overrides[get_redis] = lambda: redis
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def asgi_transport(app_overrides):
    return httpx.ASGITransport(app=app_overrides)


@pytest.fixture
async def client(asgi_transport):
    async with httpx.AsyncClient(transport=asgi_transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def user_id():
    return 101


@pytest.fixture
def token(user_id):
    return create_access_token(user_id)


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def journey_date():
    return date.today() + timedelta(days=3)


@pytest.fixture
async def bus(session_factory, journey_date):
    req = BusCreateRequest(
        bus_name="Deccan Night Rider",
        bus_type="AC Sleeper",
        from_city="Mumbai",
        to_city="Pune",
        journey_date=journey_date,
        departure_time="22:00",
        arrival_time="04:30",
        price=450,
        total_seats=12,
    )
    async with session_factory() as session:
        return await create_bus(session, actor_id=1, req=req)


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_access_token(1, role='Admin')}"}

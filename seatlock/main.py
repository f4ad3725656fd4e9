import importlib
import logging
import uuid

import sentry_sdk
from fastapi import Depends, FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sentry_sdk.integrations.asgi import SentryAsgiMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from seatlock.config import settings
from seatlock.db.session import get_session
from seatlock.exception_handlers import register_exception_handlers
from seatlock.logging_setup import TRACE_ID_CTX, setup_logging
from seatlock.redis_client import get_redis

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

# initialize logging and Sentry
setup_logging(settings.LOG_LEVEL)
if settings.SENTRY_DSN:
    sentry_sdk.init(dsn=settings.SENTRY_DSN)
    app.add_middleware(SentryAsgiMiddleware)

register_exception_handlers(app)


@app.middleware("http")
async def add_trace_id(request: Request, call_next):
    trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())
    TRACE_ID_CTX.set(trace_id)
    response = await call_next(request)
    response.headers["X-Trace-Id"] = trace_id
    return response


# List of module names to include as routers
MODULES = [
    "buses",
    "bookings",
]


for mod in MODULES:
    pkg = importlib.import_module(f"seatlock.modules.{mod}.router")
    app.include_router(pkg.router, prefix=f"/{mod}", tags=[mod])


@app.get("/")
async def root():
    return {"app": settings.APP_NAME, "status": "ok"}


@app.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready(redis=Depends(get_redis), db: AsyncSession = Depends(get_session)):
    # holds live in redis, booked seats in the database; both must answer
    try:
        await redis.ping()
    except Exception:
        logger.warning("readiness check failed: redis", exc_info=True)
        return Response(status_code=503, content="redis unavailable")
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        logger.warning("readiness check failed: database", exc_info=True)
        return Response(status_code=503, content="database unavailable")
    return {"status": "ready"}

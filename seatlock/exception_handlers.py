import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from seatlock.exceptions import SeatLockError

logger = logging.getLogger(__name__)


async def seatlock_error_handler(request: Request, exc: SeatLockError) -> JSONResponse:
    logger.warning(
        "request rejected: %s",
        exc.message,
        extra={"code": exc.code, "path": request.url.path, "status_code": exc.status_code},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


EXCEPTION_HANDLERS = {
    SeatLockError: seatlock_error_handler,
}


def register_exception_handlers(app):
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)

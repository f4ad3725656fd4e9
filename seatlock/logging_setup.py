import logging
import sys
from contextvars import ContextVar
from typing import Optional, Union

from pythonjsonlogger import jsonlogger

from seatlock.config import settings

# trace id of the request being served, set by the http middleware
TRACE_ID_CTX: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

# chatty at INFO; hold and booking events get lost among them
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "aiosqlite")


class TraceIdFilter(logging.Filter):
    def filter(self, record):
        record.trace_id = TRACE_ID_CTX.get(None)
        return True


class SeatLockJsonFormatter(jsonlogger.JsonFormatter):
    """JSON lines with a ``level`` key and the service name on every record."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = log_record.pop("levelname", record.levelname)
        log_record.setdefault("service", settings.APP_NAME)


def build_handler(stream=None) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(SeatLockJsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(trace_id)s"))
    handler.addFilter(TraceIdFilter())
    return handler


def setup_logging(level: Union[int, str] = logging.INFO):
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.handlers = [build_handler()]
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.WARNING))

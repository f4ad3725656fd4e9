import io
import json
import logging

from seatlock.logging_setup import QUIET_LOGGERS, TRACE_ID_CTX, build_handler, setup_logging


def _emit(message, **extra):
    stream = io.StringIO()
    logger = logging.getLogger("seatlock.test_logging")
    logger.propagate = False
    logger.handlers = [build_handler(stream)]
    logger.setLevel(logging.INFO)
    logger.info(message, extra=extra)
    return json.loads(stream.getvalue())


def test_records_are_json_with_trace_id():
    token = TRACE_ID_CTX.set("trace-abc")
    try:
        record = _emit("seats locked", bus_id=3, seats=["S1"])
    finally:
        TRACE_ID_CTX.reset(token)

    assert record["message"] == "seats locked"
    assert record["level"] == "INFO"
    assert record["trace_id"] == "trace-abc"
    assert record["bus_id"] == 3
    assert record["seats"] == ["S1"]
    assert record["service"] == "seatlock"


def test_trace_id_is_null_outside_requests():
    assert _emit("startup")["trace_id"] is None


def test_setup_logging_accepts_level_names():
    root = logging.getLogger()
    saved_level, saved_handlers = root.level, root.handlers[:]
    try:
        setup_logging("debug")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert all(logging.getLogger(name).level == logging.WARNING for name in QUIET_LOGGERS)
    finally:
        root.setLevel(saved_level)
        root.handlers = saved_handlers

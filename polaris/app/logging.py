from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterator, Optional
from uuid import uuid4


# Request id attached to every log record emitted while a service call runs.
_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Attributes every LogRecord carries; anything else arrived through extra={}.
_STANDARD_ATTRS: FrozenSet[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "request_id"}

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s %(message)s"

# HTTP and LLM client loggers are chatty at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "langchain", "langgraph")


def set_request_id(request_id: Optional[str]) -> None:
    _REQUEST_ID.set(request_id)


def clear_request_id() -> None:
    _REQUEST_ID.set(None)


def get_request_id() -> Optional[str]:
    return _REQUEST_ID.get()


@contextmanager
def request_scope(operation: str) -> Iterator[str]:
    """
    Bind a fresh request id such as "submit_1a2b3c4d" for the duration of the block.

    The previous id (usually None) is restored on exit, also when the block raises.
    """
    request_id = f"{operation}_{uuid4().hex[:8]}"
    token = _REQUEST_ID.set(request_id)
    try:
        yield request_id
    finally:
        _REQUEST_ID.reset(token)


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _REQUEST_ID.get()
        return True


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_ATTRS:
            continue
        try:
            json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            value = str(value)
        out[key] = value
    return out


class JsonFormatter(logging.Formatter):
    # One JSON object per line: fixed keys first, then the record's extra fields.
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        payload.update(_extras(record))
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_logs: bool = True) -> None:
    # Replaces any root handlers, so calling it twice does not duplicate output.
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JsonFormatter() if json_logs else logging.Formatter(fmt=TEXT_FORMAT))
    root.addHandler(handler)

    floor = max(root.level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(floor)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

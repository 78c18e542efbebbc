"""JSON logging for the tracker.

Every record is one line of JSON on stdout. The correlation ID and the
request fields collected by :mod:`middleware` live in :mod:`contextvars`, so
a warning raised by the record store halfway through a request still names
that request. Passwords are kept in plain text by the store, which is why
``password`` (and any other configured key) is masked in every logged
payload.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)
_request_context_ctx: contextvars.ContextVar[Optional[Dict[str, Any]]] = (
    contextvars.ContextVar("request_context", default=None)
)

_REDACTED = "[REDACTED]"
_SENSITIVE_FIELDS = frozenset(
    field.strip().lower()
    for field in os.environ.get("SENSITIVE_FIELDS", "password,token,email,phone").split(",")
    if field.strip()
)

# Record attributes promoted to top-level keys of the JSON line.
_RECORD_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "client_ip",
    "route",
    "slot",
    "db_time_ms",
    "error_type",
    "error",
)
_LINE_FIELDS = ("ts", "level", "logger", "msg", "request_id") + _RECORD_FIELDS + ("stack", "extra_context")

# Everything a bare LogRecord carries; whatever else is set came from ``extra``.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def set_request_id(request_id: str) -> None:
    _request_id_ctx.set(request_id)
    merge_request_context(request_id=request_id)


def clear_request_id() -> None:
    _request_id_ctx.set(None)


def get_request_context() -> Dict[str, Any]:
    """Fields gathered so far for the current request (method, path, db time...)."""
    ctx = _request_context_ctx.get()
    if ctx is None:
        ctx = {}
        _request_context_ctx.set(ctx)
    return ctx


def merge_request_context(**kwargs: Any) -> None:
    """Add the non-``None`` values to the current request context."""
    ctx = dict(get_request_context())
    ctx.update((key, value) for key, value in kwargs.items() if value is not None)
    _request_context_ctx.set(ctx)


def clear_request_context() -> None:
    _request_context_ctx.set({})


def sensitive_fields() -> Iterable[str]:
    return _SENSITIVE_FIELDS


def redact_sensitive_data(data: Any, fields: Optional[Iterable[str]] = None) -> Any:
    """Return a copy of ``data`` with sensitive values masked.

    Nested structures are walked, so a teacher record with its roster or a
    whole backup document is masked the same way as a login form. Keys match
    case-insensitively.
    """
    fields_set = {field.lower() for field in (fields or sensitive_fields())}

    if isinstance(data, Mapping):
        return {
            key: _REDACTED if str(key).lower() in fields_set else redact_sensitive_data(value, fields_set)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple, set)):
        return [redact_sensitive_data(item, fields_set) for item in data]
    return data


class JSONFormatter(logging.Formatter):
    """Render a record, plus the current request context, as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "ts": timestamp.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": get_request_id(),
        }

        for key, value in get_request_context().items():
            if payload.get(key) is None:
                payload[key] = value

        for field in _RECORD_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["error_type"] = record.exc_info[0].__name__
            payload["error"] = str(record.exc_info[1])
            payload["stack"] = self.formatException(record.exc_info)
        elif record.stack_info:
            payload["stack"] = record.stack_info

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and key not in payload and not key.startswith("_")
        }
        if extra:
            payload["extra_context"] = redact_sensitive_data(extra)

        for field in _LINE_FIELDS:
            payload.setdefault(field, None)

        return json.dumps(payload, default=_json_default, ensure_ascii=False, separators=(",", ":"))


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


_configured = False


def configure_logging() -> None:
    """Send all logging to stdout through :class:`JSONFormatter`, once per process."""
    global _configured
    if _configured:
        return

    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    logging.captureWarnings(True)

    # request_start/request_end replace the server's access log; SQL echo is off.
    for name in ("werkzeug", "gunicorn.access", "sqlalchemy.engine"):
        log = logging.getLogger(name)
        log.handlers = []
        log.propagate = True
        log.setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


class DBTimer:
    """Add the time spent on the slot table to the request's ``db_time_ms``."""

    def __enter__(self) -> "DBTimer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        duration = (time.perf_counter() - self._start) * 1000
        previous = get_request_context().get("db_time_ms") or 0.0
        merge_request_context(db_time_ms=round(previous + duration, 2))


__all__ = [
    "DBTimer",
    "JSONFormatter",
    "clear_request_context",
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_context",
    "get_request_id",
    "merge_request_context",
    "redact_sensitive_data",
    "sensitive_fields",
    "set_request_id",
]

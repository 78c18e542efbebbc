"""Correlation IDs and structured request/response logs for Flask."""

from __future__ import annotations

import json
import os
import random
import time
import uuid
from typing import Any, Dict, Optional

from flask import Flask, Response, g, request

from app_logging import (
    clear_request_context,
    clear_request_id,
    get_logger,
    merge_request_context,
    redact_sensitive_data,
    set_request_id,
)

HEADER_NAME = "X-Request-ID"

_DEFAULT_SAMPLE_RATE = 1.0
_DEFAULT_MAX_BYTES = 2048
# Downloads are large and carry the whole dataset; never echo them.
_UNLOGGED_BODY_TYPES = ("text/csv", "application/octet-stream")

_request_logger = get_logger("app.request")


def _incoming_request_id() -> Optional[str]:
    return request.headers.get(HEADER_NAME, "").strip() or None


def _sample_rate() -> float:
    try:
        return max(0.0, min(1.0, float(os.environ.get("REQUEST_LOG_SAMPLE_RATE", _DEFAULT_SAMPLE_RATE))))
    except ValueError:
        return _DEFAULT_SAMPLE_RATE


def _max_response_bytes() -> int:
    try:
        return max(0, int(os.environ.get("RESPONSE_BODY_MAX_BYTES", _DEFAULT_MAX_BYTES)))
    except ValueError:
        return _DEFAULT_MAX_BYTES


def _client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def _should_log_request(path: str) -> bool:
    if path.startswith("/static") or path == "/health":
        return False
    sample_rate = _sample_rate()
    if sample_rate >= 1.0:
        return True
    return random.random() <= sample_rate


def _request_payload() -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    if request.args:
        payload["query"] = redact_sensitive_data(request.args.to_dict(flat=False))
    if request.method in {"POST", "PUT", "PATCH", "DELETE"}:
        json_body = request.get_json(silent=True)
        if json_body is not None:
            payload["json"] = redact_sensitive_data(json_body)
    return payload


def _response_body(resp: Response) -> Optional[str]:
    limit = _max_response_bytes()
    if limit == 0 or resp.direct_passthrough or resp.mimetype in _UNLOGGED_BODY_TYPES:
        return None
    if resp.is_json:
        body = json.dumps(redact_sensitive_data(resp.get_json(silent=True)), ensure_ascii=False)
    else:
        body = resp.get_data(as_text=True)
    if len(body) > limit:
        return body[:limit] + f"... truncated {len(body) - limit} bytes"
    return body


def init_middleware(app: Flask) -> None:
    """Register hooks that tag each request with an ID and log it."""

    @app.before_request
    def _start_request() -> None:
        request_id = _incoming_request_id() or str(uuid.uuid4())
        set_request_id(request_id)
        g.request_id = request_id
        g._request_start = time.perf_counter()
        g._log_request = _should_log_request(request.path)
        route = request.url_rule.rule if request.url_rule else None
        merge_request_context(method=request.method, path=request.path, client_ip=_client_ip(), route=route)
        if g._log_request:
            _request_logger.info(
                "request_start",
                extra={"event": "request_start", "request_payload": _request_payload()},
            )

    @app.after_request
    def _end_request(response: Response) -> Response:
        duration_ms = round((time.perf_counter() - g._request_start) * 1000, 2) if hasattr(g, "_request_start") else None
        merge_request_context(status=response.status_code, duration_ms=duration_ms)
        if getattr(g, "_log_request", False):
            _request_logger.info(
                "request_end",
                extra={"event": "request_end", "response_body": _response_body(response)},
            )
        response.headers[HEADER_NAME] = getattr(g, "request_id", None) or _incoming_request_id() or ""
        return response

    @app.teardown_request
    def _teardown_request(_exc) -> None:
        clear_request_id()
        clear_request_context()


__all__ = ["HEADER_NAME", "init_middleware"]

from __future__ import annotations

import time
from contextlib import suppress
from typing import Optional
from uuid import uuid4

import structlog
from flask import Flask, g, request

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128

logger = structlog.get_logger(__name__)


def current_correlation_id() -> Optional[str]:
    """Return the correlation id bound to this request, if any."""
    with suppress(RuntimeError):
        cid = g.get("correlation_id")
        if cid:
            return cid
    return structlog.contextvars.get_contextvars().get("correlation_id")


def inbound_request_id(raw: Optional[str]) -> Optional[str]:
    """Accept a caller-supplied request id only when it is short and printable."""
    value = (raw or "").strip()
    if not value or len(value) > MAX_REQUEST_ID_LENGTH or not value.isprintable():
        return None
    return value


def bind_correlation_id(value: Optional[str] = None) -> str:
    correlation_id = value or uuid4().hex
    with suppress(RuntimeError):
        g.correlation_id = correlation_id
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    return correlation_id


def init_request_context(app: Flask) -> None:
    """Bind a correlation id and request fields for every request.

    The id comes from ``X-Request-ID`` when the caller sends a usable one and
    is echoed back on the response.
    """

    @app.before_request
    def _bind_request():
        structlog.contextvars.clear_contextvars()
        g.request_started = time.perf_counter()
        bind_correlation_id(inbound_request_id(request.headers.get(REQUEST_ID_HEADER)))
        structlog.contextvars.bind_contextvars(path=request.path, method=request.method)
        if request.view_args and "show_slug" in request.view_args:
            structlog.contextvars.bind_contextvars(
                show_slug=request.view_args["show_slug"]
            )

    @app.after_request
    def _finish_request(response):
        correlation_id = current_correlation_id()
        if correlation_id:
            response.headers.setdefault(REQUEST_ID_HEADER, correlation_id)
        started = g.get("request_started")
        logger.info(
            "http.response",
            status_code=response.status_code,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2)
            if started
            else None,
        )
        return response

    @app.teardown_request
    def _clear_request(_exc=None):
        structlog.contextvars.clear_contextvars()

"""structlog over stdlib logging for the feed service.

Modules log through ``logging.getLogger(__name__)`` with dotted event names
and ``extra=`` fields; both stdlib and structlog records end up in the same
JSON (or console) renderer.
"""

import logging
import logging.handlers
import os
import sys
from typing import Any, MutableMapping

import structlog

_configured = False

# Rendered on every event; None when unknown.
BASE_EVENT_FIELDS = ("event", "correlation_id", "show_slug", "path", "status_code")
CONTEXT_FIELDS = ("correlation_id", "show_slug", "path", "method", "status_code")
PROBE_PATHS = frozenset({"/health", "/healthz"})
HTTP_EVENTS = frozenset({"http.request", "http.response"})


def _add_request_context(
    _: Any, __: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    context = structlog.contextvars.get_contextvars()
    for key in CONTEXT_FIELDS:
        if key not in event_dict and key in context:
            event_dict[key] = context[key]

    if not event_dict.get("event"):
        event_dict["event"] = event_dict.get("message") or event_dict.get(
            "logger", "log.event"
        )
    for key in BASE_EVENT_FIELDS:
        event_dict.setdefault(key, None)
    return event_dict


def _drop_probe_noise(
    _: Any, __: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Health probes and 304s are dropped; HTTP events outside the feed API go to debug."""
    if event_dict.get("event") not in HTTP_EVENTS:
        return event_dict

    path = event_dict.get("path") or ""
    if path in PROBE_PATHS or event_dict.get("status_code") == 304:
        raise structlog.DropEvent
    if event_dict.get("level") == "info" and not path.startswith("/api/rss"):
        event_dict["level"] = "debug"
    return event_dict


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_request_context,
        _drop_probe_noise,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _log_format() -> str:
    value = os.getenv("LOG_FORMAT", "json").strip().lower()
    return value if value in {"json", "plain"} else "json"


def _handlers(formatter: logging.Formatter) -> list[logging.Handler]:
    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(formatter)
    handlers: list[logging.Handler] = [stream]

    log_file = os.getenv("LOG_FILE")
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=5
        )
        rotating.setFormatter(formatter)
        handlers.append(rotating)
    return handlers


def setup_logging(force: bool = False) -> None:
    """Configure structlog and the root logger once per process.

    ``LOG_LEVEL`` sets the root level, ``LOG_FORMAT=plain`` switches to the
    console renderer and ``LOG_FILE`` adds a rotating file handler.
    """
    global _configured
    if _configured and not force:
        return

    shared = _shared_processors()
    if _log_format() == "plain":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer, foreign_pre_chain=shared
    )

    root = logging.getLogger()
    root.handlers.clear()
    for handler in _handlers(formatter):
        root.addHandler(handler)
    root.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    for noisy in ("google", "urllib3", "grpc"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True

"""Eager imports of the feed stack so a broken deploy fails before serving."""

from __future__ import annotations

import importlib
from typing import Iterable

import structlog

FEED_MODULES: tuple[str, ...] = (
    "castbuzz",
    "castbuzz.services.feed_formatter",
    "castbuzz.services.feed_validator",
    "castbuzz.services.feeds",
    "castbuzz.routes.rss",
)

logger = structlog.get_logger(__name__)


def verify_imports(modules: Iterable[str] = FEED_MODULES) -> list[str]:
    """Import each module, returning the ones checked; raise on the first failure."""
    checked: list[str] = []
    for module_path in modules:
        try:
            importlib.import_module(module_path)
        except Exception as exc:
            logger.error("startup.import_failed", module=module_path, error=str(exc))
            raise RuntimeError(f"Import failed for {module_path}: {exc}") from exc
        checked.append(module_path)

    logger.info("startup.imports_ok", modules=len(checked))
    return checked

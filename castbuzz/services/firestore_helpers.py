from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

from google.api_core.exceptions import FailedPrecondition

_INDEX_URL_PATTERN = re.compile(
    r"https://console\.firebase\.google\.com/project/[^/\s]+/database/firestore/"
    r"indexes\?create_composite=\S+"
)


def ensure_db_client(
    db, error_cls: type[Exception], message: str | None = None
) -> None:
    """Raise ``error_cls`` when the repository was built without a Firestore client."""
    if db is None:
        raise error_cls(message or "Firestore client is not available.")


def extract_index_url(error: FailedPrecondition) -> str | None:
    """Pull the composite-index creation link out of a missing-index error."""
    match = _INDEX_URL_PATTERN.search(str(error))
    return match.group(0) if match else None


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def normalise_timestamp(value: Any) -> datetime | None:
    """Coerce stored show/episode dates into timezone-aware datetimes.

    Accepts datetimes (naive ones are taken as UTC), dates, Firestore
    ``DatetimeWithNanoseconds``-style objects and ISO 8601 strings with an
    optional ``Z`` suffix. Anything else yields ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if hasattr(value, "to_datetime"):
        return _as_utc(value.to_datetime())
    if not isinstance(value, str) or not value.strip():
        return None

    candidate = value.strip()
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(candidate))
    except ValueError:
        return None

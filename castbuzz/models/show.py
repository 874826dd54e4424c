from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from castbuzz.services.firestore_helpers import normalise_timestamp

logger = logging.getLogger(__name__)


@dataclass
class Show:
    id: str | None = None
    slug: str = ""
    name: str = ""
    description: str | None = None
    image_url: str | None = None
    is_active: bool = True
    rss_url: str | None = None
    author: str | None = None
    owner_name: str | None = None
    owner_email: str | None = None
    language: str | None = None
    category: str | None = None
    explicit: bool = False
    copyright: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Show":
        # Filter out unexpected fields to prevent errors
        show_fields = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
        filtered_data = {k: v for k, v in data.items() if k in show_fields}

        if filtered_data.get("id") is not None:
            filtered_data["id"] = str(filtered_data["id"])

        for date_field in ["created_at", "updated_at"]:
            if date_field in filtered_data:
                raw_value = filtered_data[date_field]
                normalised = normalise_timestamp(raw_value)
                if normalised is None and raw_value:
                    logger.warning(
                        "Could not normalise date value '%s' for field '%s'. Leaving as None.",
                        raw_value,
                        date_field,
                    )
                filtered_data[date_field] = normalised

        return cls(**filtered_data)

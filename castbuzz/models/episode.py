from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from castbuzz.services.firestore_helpers import normalise_timestamp

logger = logging.getLogger(__name__)

EPISODE_TYPES = ("full", "trailer", "bonus")


@dataclass
class Episode:
    id: str | None = None
    show_id: str | None = None
    title: str = ""
    slug: str = ""
    description: str | None = None
    audio_url: str = ""
    image_url: str | None = None
    duration: int | float | str | None = None  # seconds, or "HH:MM:SS" / "MM:SS"
    file_size: int | None = None
    season: int | None = None
    episode_number: int | None = None
    episode_type: str = "full"
    explicit: bool = False
    is_published: bool = False
    publish_date: datetime | None = None
    updated_at: datetime | None = None

    @property
    def sort_key(self) -> float:
        """Publish time as a sortable number; undated episodes sort last when newest-first."""
        published = normalise_timestamp(self.publish_date)
        return published.timestamp() if published else float("-inf")

    @classmethod
    def from_dict(cls, data: dict) -> "Episode":
        episode_fields = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
        filtered_data = {k: v for k, v in data.items() if k in episode_fields}

        for id_field in ("id", "show_id"):
            if filtered_data.get(id_field) is not None:
                filtered_data[id_field] = str(filtered_data[id_field])

        if filtered_data.get("episode_type") not in EPISODE_TYPES:
            filtered_data.pop("episode_type", None)

        for date_field in ["publish_date", "updated_at"]:
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

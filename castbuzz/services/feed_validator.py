"""Directory-readiness checks for a show's podcast feed.

Errors mark problems that break the feed for podcast directories; warnings
mark gaps that only hurt discoverability. Every rule is evaluated, nothing
short-circuits, and messages follow the input episode order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from castbuzz.models.episode import Episode
from castbuzz.models.show import Show
from castbuzz.services.feed_formatter import (
    is_supported_podcast_image_url,
    is_recognised_duration,
)


@dataclass
class ValidationReport:
    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    info: dict[str, Any] = field(default_factory=dict)

    def error(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "info": dict(self.info),
        }


def _episode_label(episode: Episode, position: int) -> str:
    title = (episode.title or "").strip()
    return title or f"Untitled episode #{position}"


def _has_duration(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


def validate_feed(
    show: Show,
    episodes: Iterable[Episode],
    *,
    feed_url: str | None = None,
) -> ValidationReport:
    """Inspect ``show`` and its published ``episodes`` without modifying them."""
    episodes = list(episodes)
    report = ValidationReport(
        info={
            "show_name": show.name,
            "episode_count": len(episodes),
            "feed_url": feed_url,
        }
    )

    if not (show.name or "").strip():
        report.error("Show name is required")

    if not (show.description or "").strip():
        report.warn("Show description is recommended for better discoverability")

    if not (show.image_url or "").strip():
        report.error("Show artwork is required for podcast directories")
    elif not is_supported_podcast_image_url(show.image_url):
        report.warn(
            "Show artwork should be a .jpg or .png image; a default image is used instead"
        )

    if not episodes:
        report.warn("No published episodes found")

    for position, episode in enumerate(episodes, start=1):
        label = _episode_label(episode, position)

        if not (episode.title or "").strip():
            report.error(f'Episode "{label}" is missing a title')

        if not (episode.audio_url or "").strip():
            report.error(f'Episode "{label}" missing audio URL')

        if not _has_duration(episode.duration):
            report.warn(f'Episode "{label}" missing duration')
        elif not is_recognised_duration(episode.duration):
            report.warn(
                f'Episode "{label}" has an unrecognised duration '
                f'"{episode.duration}"; expected seconds, MM:SS or HH:MM:SS'
            )

        if not (episode.description or "").strip():
            report.warn(f'Episode "{label}" missing description')

    return report

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Callable
from urllib.parse import quote

from castbuzz.config import FeedOptions
from castbuzz.models.episode import Episode
from castbuzz.models.show import Show
from castbuzz.services.exceptions import (
    FeedServiceError,
    InvalidSlugError,
    ShowNotFoundError,
)
from castbuzz.services.feed_formatter import build_feed, build_feed_url
from castbuzz.services.feed_validator import ValidationReport, validate_feed
from castbuzz.services.firestore_helpers import normalise_timestamp
from castbuzz.services.repository import ShowRepository

logger = logging.getLogger(__name__)

RSS_MIMETYPE = "application/rss+xml; charset=utf-8"
MAX_SLUG_LENGTH = 255


@dataclass
class RenderedFeed:
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)
    episode_count: int = 0


@dataclass(frozen=True)
class FeedSummary:
    show_id: str | None
    show_name: str
    show_slug: str
    episode_count: int
    feed_url: str
    last_updated: datetime | None

    def to_dict(self) -> dict:
        return {
            "show_id": self.show_id,
            "show_name": self.show_name,
            "show_slug": self.show_slug,
            "episode_count": self.episode_count,
            "feed_url": self.feed_url,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


def normalise_slug(raw: str | None) -> str:
    """Trim a requested slug and reject values that cannot name a show."""
    slug = (raw or "").strip()
    if not slug:
        raise InvalidSlugError("Show slug is required")
    if len(slug) > MAX_SLUG_LENGTH:
        raise InvalidSlugError(
            f"Show slug must be at most {MAX_SLUG_LENGTH} characters"
        )
    return slug


def _http_date(value: datetime | None) -> str | None:
    normalised = normalise_timestamp(value)
    if normalised is None:
        return None
    return format_datetime(normalised.astimezone(timezone.utc), usegmt=True)


class FeedService:
    """Resolves shows by slug and serves, validates and lists their RSS feeds.

    Feeds are rebuilt from the repository on every call; nothing is cached
    in-process. Missing and inactive shows both surface as
    :class:`ShowNotFoundError` so callers cannot tell them apart.
    """

    def __init__(
        self,
        repository: ShowRepository,
        *,
        base_url: str,
        options: FeedOptions | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.base_url = base_url.rstrip("/")
        self.options = options or FeedOptions()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def episode_limit(self) -> int:
        return self.options.episode_limit

    def feed_url_for(self, slug: str) -> str:
        return build_feed_url(self.base_url, slug)

    def _find_show(self, slug: str) -> Show | None:
        try:
            return self.repository.find_show_by_slug(slug)
        except FeedServiceError:
            raise
        except Exception as exc:
            logger.exception("feed.show.lookup_failed", extra={"show_slug": slug})
            raise FeedServiceError(f"Failed to look up show {slug}.", slug=slug) from exc

    def _resolve_servable_show(self, raw_slug: str | None) -> Show:
        slug = normalise_slug(raw_slug)
        show = self._find_show(slug)
        if show is None or not show.is_active:
            logger.info(
                "feed.show.not_found",
                extra={"show_slug": slug, "exists": show is not None},
            )
            raise ShowNotFoundError(slug)
        return show

    def _published_episodes(self, show: Show) -> list[Episode]:
        try:
            episodes = self.repository.get_published_episodes(
                str(show.id), limit=self.episode_limit
            )
        except FeedServiceError as exc:
            exc.slug = exc.slug or show.slug
            raise
        except Exception as exc:
            logger.exception("feed.episodes.fetch_failed", extra={"show_slug": show.slug})
            raise FeedServiceError(
                f"Failed to fetch episodes for show {show.slug}.", slug=show.slug
            ) from exc

        # Ensure published-only, newest-first order and trimmed to the cap
        published = [e for e in episodes if e.is_published]
        published.sort(key=lambda e: e.sort_key, reverse=True)
        return published[: self.episode_limit]

    def get_feed(self, slug: str | None) -> RenderedFeed:
        """Render the RSS document for an active show, with HTTP caching headers."""
        start_time = time.time()
        show = self._resolve_servable_show(slug)
        episodes = self._published_episodes(show)

        body = build_feed(
            show,
            episodes,
            self.base_url,
            now=self._clock(),
            options=self.options,
        )
        headers = {
            "Content-Type": RSS_MIMETYPE,
            "Cache-Control": f"public, max-age={self.options.cache_max_age}",
        }
        last_modified = _http_date(show.updated_at)
        if last_modified:
            headers["Last-Modified"] = last_modified

        logger.info(
            "feed.generated",
            extra={
                "show_slug": show.slug,
                "count": len(episodes),
                "elapsed_ms": (time.time() - start_time) * 1000,
            },
        )
        return RenderedFeed(body=body, headers=headers, episode_count=len(episodes))

    def validate_feed(self, slug: str | None) -> ValidationReport:
        """Report feed problems for an active show without changing anything."""
        show = self._resolve_servable_show(slug)
        episodes = self._published_episodes(show)
        report = validate_feed(show, episodes, feed_url=self.feed_url_for(show.slug))
        logger.info(
            "feed.validated",
            extra={
                "show_slug": show.slug,
                "valid": report.valid,
                "errors": len(report.errors),
                "warnings": len(report.warnings),
            },
        )
        return report

    def regenerate_feed_url(self, slug: str | None) -> str:
        """Recompute the canonical feed URL and store it on the show.

        Inactive shows are accepted; the stored value only depends on the
        base URL and slug, so repeated calls write the same URL.
        """
        clean_slug = normalise_slug(slug)
        show = self._find_show(clean_slug)
        if show is None:
            logger.info("feed.show.not_found", extra={"show_slug": clean_slug})
            raise ShowNotFoundError(clean_slug)

        feed_url = self.feed_url_for(show.slug)
        try:
            self.repository.update_show_feed_url(str(show.id), feed_url)
        except FeedServiceError:
            raise
        except Exception as exc:
            logger.exception("feed.regenerate_failed", extra={"show_slug": show.slug})
            raise FeedServiceError(
                f"Failed to store feed URL for show {show.slug}.", slug=show.slug
            ) from exc

        logger.info(
            "feed.regenerated",
            extra={
                "show_slug": show.slug,
                "feed_url": feed_url,
                "changed": show.rss_url != feed_url,
            },
        )
        return feed_url

    def list_feeds(self) -> list[FeedSummary]:
        """Active shows with at least one published episode, newest activity first."""
        try:
            stats = self.repository.list_shows_with_episodes()
        except FeedServiceError:
            raise
        except Exception as exc:
            logger.exception("feeds.directory.shows_failed")
            raise FeedServiceError("Failed to list show feeds.") from exc

        return [
            FeedSummary(
                show_id=entry.show.id,
                show_name=entry.show.name,
                show_slug=entry.show.slug,
                episode_count=entry.episode_count,
                feed_url=self.feed_url_for(entry.show.slug),
                last_updated=entry.latest_episode_date,
            )
            for entry in stats
            if entry.episode_count > 0
        ]

    def submission_links(self, slug: str | None) -> dict[str, str]:
        """Directory submission URLs for an active show's feed."""
        show = self._resolve_servable_show(slug)
        feed_url = self.feed_url_for(show.slug)
        encoded = quote(feed_url, safe="")
        return {
            "apple_podcasts": f"https://podcastsconnect.apple.com/my-podcasts/new-feed?url={encoded}",
            "spotify": "https://podcasters.spotify.com/submit",
            "podcast_index": f"https://api.podcastindex.org/api/1.0/add/byfeedurl?url={encoded}",
            "overcast": "https://overcast.fm/podcasterinfo",
            "pocket_casts": "https://pocketcasts.com/submit/",
            "castbox": "https://castbox.fm/va/podcast-submit",
        }

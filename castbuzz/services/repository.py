from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Protocol

from google.api_core.exceptions import FailedPrecondition, GoogleAPICallError
from google.cloud import firestore  # type: ignore[attr-defined]
from google.cloud.firestore_v1 import FieldFilter

from castbuzz.models.episode import Episode
from castbuzz.models.show import Show
from castbuzz.services.exceptions import FeedIndexBuildingError, RepositoryError
from castbuzz.services.firestore_helpers import (
    ensure_db_client,
    extract_index_url,
    normalise_timestamp,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShowFeedStats:
    """A show together with its published-episode aggregate."""

    show: Show
    episode_count: int
    latest_episode_date: datetime | None


class ShowRepository(Protocol):
    def find_show_by_slug(self, slug: str) -> Show | None: ...

    def get_published_episodes(
        self, show_id: str, limit: int | None = None
    ) -> list[Episode]: ...

    def update_show_feed_url(self, show_id: str, url: str) -> bool: ...

    def list_shows_with_episodes(self) -> list[ShowFeedStats]: ...

    def ping(self) -> bool: ...


def _newest_first(episodes: Iterable[Episode]) -> list[Episode]:
    return sorted(episodes, key=lambda e: e.sort_key, reverse=True)


def _stats_recency_key(stats: ShowFeedStats) -> tuple[float, str]:
    latest = stats.latest_episode_date
    score = latest.timestamp() if latest else float("-inf")
    return (-score, (stats.show.name or "").lower())


def _summarise(show: Show, published: list[Episode]) -> ShowFeedStats:
    dates = [
        d for d in (normalise_timestamp(e.publish_date) for e in published) if d
    ]
    return ShowFeedStats(
        show=show,
        episode_count=len(published),
        latest_episode_date=max(dates) if dates else None,
    )


class InMemoryShowRepository:
    """Dictionary-backed repository for development and tests."""

    def __init__(
        self,
        shows: Iterable[Show] = (),
        episodes: Iterable[Episode] = (),
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._shows: dict[str, Show] = {}
        self._episodes: dict[str, Episode] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        for show in shows:
            self.add_show(show)
        for episode in episodes:
            self.add_episode(episode)

    def add_show(self, show: Show) -> Show:
        if show.id is None:
            show = replace(show, id=str(len(self._shows) + 1))
        self._shows[str(show.id)] = show
        return show

    def add_episode(self, episode: Episode) -> Episode:
        if episode.id is None:
            episode = replace(episode, id=str(len(self._episodes) + 1))
        self._episodes[str(episode.id)] = episode
        return episode

    def get_show(self, show_id: str) -> Show | None:
        return self._shows.get(str(show_id))

    def find_show_by_slug(self, slug: str) -> Show | None:
        for show in self._shows.values():
            if show.slug == slug:
                return show
        return None

    def get_published_episodes(
        self, show_id: str, limit: int | None = None
    ) -> list[Episode]:
        published = _newest_first(
            e
            for e in self._episodes.values()
            if e.show_id == str(show_id) and e.is_published
        )
        return published[:limit] if limit else published

    def update_show_feed_url(self, show_id: str, url: str) -> bool:
        show = self._shows.get(str(show_id))
        if show is None:
            return False
        self._shows[str(show_id)] = replace(show, rss_url=url, updated_at=self._clock())
        return True

    def list_shows_with_episodes(self) -> list[ShowFeedStats]:
        results = []
        for show in self._shows.values():
            if not show.is_active:
                continue
            published = self.get_published_episodes(str(show.id))
            if published:
                results.append(_summarise(show, published))
        results.sort(key=_stats_recency_key)
        return results

    def ping(self) -> bool:
        return True


class FirestoreShowRepository:
    """Shows and episodes stored as Firestore documents.

    Episodes carry ``show_id``, ``is_published`` and ``publish_date`` fields;
    the newest-first episode query needs a composite index on those three.
    """

    def __init__(
        self,
        client: Optional[firestore.Client],
        *,
        shows_collection: str = "shows",
        episodes_collection: str = "episodes",
    ) -> None:
        self._db = client
        self._shows_collection = shows_collection
        self._episodes_collection = episodes_collection

    def _require_db(self) -> None:
        ensure_db_client(
            self._db,
            RepositoryError,
            "Firestore client is not initialized. Check application startup logs.",
        )

    @staticmethod
    def _doc_to_show(doc) -> Show:
        data = doc.to_dict() or {}
        data["id"] = doc.id
        return Show.from_dict(data)

    @staticmethod
    def _doc_to_episode(doc) -> Episode:
        data = doc.to_dict() or {}
        data["id"] = doc.id
        return Episode.from_dict(data)

    def _published_query(self, show_id: str):
        return (
            self._db.collection(self._episodes_collection)
            .where(filter=FieldFilter("show_id", "==", show_id))
            .where(filter=FieldFilter("is_published", "==", True))
        )

    def find_show_by_slug(self, slug: str) -> Show | None:
        self._require_db()
        try:
            query = (
                self._db.collection(self._shows_collection)
                .where(filter=FieldFilter("slug", "==", slug))
                .limit(1)
            )
            docs = list(query.stream())
        except GoogleAPICallError as e:
            logger.error(f"Firestore error retrieving show by slug {slug}: {e}")
            raise RepositoryError(
                f"Failed to retrieve show by slug {slug} from Firestore.", slug=slug
            ) from e
        if not docs:
            return None
        return self._doc_to_show(docs[0])

    def get_published_episodes(
        self, show_id: str, limit: int | None = None
    ) -> list[Episode]:
        self._require_db()
        try:
            query = self._published_query(show_id).order_by(
                "publish_date", direction=firestore.Query.DESCENDING
            )
            if limit:
                query = query.limit(limit)
            docs = list(query.stream())
        except FailedPrecondition as e:
            hint = extract_index_url(e)
            logger.warning(
                "firestore.index.missing",
                extra={"show_id": show_id, "hint": hint},
            )
            raise FeedIndexBuildingError(hint=hint) from e
        except GoogleAPICallError as e:
            logger.error(f"Firestore error listing episodes for show {show_id}: {e}")
            raise RepositoryError(
                f"Failed to list episodes for show {show_id} from Firestore."
            ) from e
        return [self._doc_to_episode(doc) for doc in docs]

    def update_show_feed_url(self, show_id: str, url: str) -> bool:
        self._require_db()
        try:
            show_ref = self._db.collection(self._shows_collection).document(show_id)
            show_ref.update(
                {"rss_url": url, "updated_at": firestore.SERVER_TIMESTAMP}
            )
        except GoogleAPICallError as e:
            logger.error(f"Firestore error updating feed URL for show {show_id}: {e}")
            raise RepositoryError(
                f"Failed to update feed URL for show {show_id} in Firestore."
            ) from e
        return True

    def list_shows_with_episodes(self) -> list[ShowFeedStats]:
        self._require_db()
        try:
            shows_query = self._db.collection(self._shows_collection).where(
                filter=FieldFilter("is_active", "==", True)
            )
            shows = [self._doc_to_show(doc) for doc in shows_query.stream()]
            results = []
            for show in shows:
                docs = self._published_query(str(show.id)).stream()
                published = [self._doc_to_episode(doc) for doc in docs]
                if published:
                    results.append(_summarise(show, published))
        except GoogleAPICallError as e:
            logger.error(f"Firestore error listing show feeds: {e}")
            raise RepositoryError("Failed to list show feeds from Firestore.") from e
        results.sort(key=_stats_recency_key)
        return results

    def ping(self) -> bool:
        self._require_db()
        try:
            list(self._db.collection(self._shows_collection).limit(1).stream())
        except GoogleAPICallError as e:
            logger.error(f"Firestore health check failed: {e}")
            return False
        return True

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import FailedPrecondition, InternalServerError
from google.cloud import firestore

from castbuzz.services.exceptions import FeedIndexBuildingError, RepositoryError
from castbuzz.services.repository import (
    FirestoreShowRepository,
    InMemoryShowRepository,
)

INDEX_URL = (
    "https://console.firebase.google.com/project/castbuzz/database/firestore/"
    "indexes?create_composite=abc123"
)


def _doc(doc_id, data):
    doc = MagicMock()
    doc.id = doc_id
    doc.to_dict.return_value = data
    return doc


class TestInMemoryShowRepository:
    def test_assigns_ids_when_missing(self, make_show, make_episode):
        repository = InMemoryShowRepository()

        show = repository.add_show(make_show(id=None))
        episode = repository.add_episode(make_episode(id=None))

        assert show.id == "1"
        assert episode.id == "1"
        assert repository.get_show("1") == show

    def test_find_show_by_slug(self, repository):
        assert repository.find_show_by_slug("tech-talk").id == "show-1"
        assert repository.find_show_by_slug("other") is None

    def test_published_episodes_newest_first(self, make_show, make_episode, fixed_now):
        repository = InMemoryShowRepository(
            shows=[make_show()],
            episodes=[
                make_episode(id="old", publish_date=fixed_now - timedelta(days=3)),
                make_episode(id="new", publish_date=fixed_now),
                make_episode(id="draft", is_published=False),
                make_episode(id="elsewhere", show_id="show-2"),
                make_episode(id="undated", publish_date=None),
            ],
        )

        episodes = repository.get_published_episodes("show-1")

        assert [e.id for e in episodes] == ["new", "old", "undated"]
        assert [e.id for e in repository.get_published_episodes("show-1", limit=1)] == [
            "new"
        ]

    def test_update_show_feed_url(self, repository, fixed_now):
        assert repository.update_show_feed_url("show-1", "https://x/api/rss/tech-talk")

        show = repository.get_show("show-1")
        assert show.rss_url == "https://x/api/rss/tech-talk"
        assert show.updated_at == fixed_now
        assert repository.update_show_feed_url("missing", "https://x") is False

    def test_list_shows_with_mixed_naive_and_aware_dates(
        self, make_show, make_episode, fixed_now
    ):
        repository = InMemoryShowRepository(
            shows=[make_show()],
            episodes=[
                make_episode(id="aware", publish_date=fixed_now - timedelta(days=1)),
                make_episode(id="naive", publish_date=fixed_now.replace(tzinfo=None)),
            ],
        )

        [stats] = repository.list_shows_with_episodes()

        assert stats.episode_count == 2
        assert stats.latest_episode_date == fixed_now
        assert stats.latest_episode_date.tzinfo is not None
        assert [e.id for e in repository.get_published_episodes("show-1")] == [
            "naive",
            "aware",
        ]

    def test_ping(self, repository):
        assert repository.ping() is True


class TestFirestoreShowRepository:
    def test_find_show_by_slug(self):
        client = MagicMock()
        query = client.collection.return_value.where.return_value.limit.return_value
        query.stream.return_value = [
            _doc("abc", {"slug": "tech-talk", "name": "Tech Talk", "unknown": 1})
        ]
        repository = FirestoreShowRepository(client, shows_collection="podcasts")

        show = repository.find_show_by_slug("tech-talk")

        assert show.id == "abc"
        assert show.name == "Tech Talk"
        client.collection.assert_called_with("podcasts")

    def test_find_show_by_slug_missing(self):
        client = MagicMock()
        query = client.collection.return_value.where.return_value.limit.return_value
        query.stream.return_value = []

        assert FirestoreShowRepository(client).find_show_by_slug("nope") is None

    def test_get_published_episodes(self):
        client = MagicMock()
        ordered = (
            client.collection.return_value.where.return_value.where.return_value.order_by.return_value
        )
        ordered.limit.return_value.stream.return_value = [
            _doc(
                "ep-1",
                {
                    "show_id": "abc",
                    "title": "Episode 1",
                    "is_published": True,
                    "publish_date": "2024-05-01T12:00:00Z",
                },
            )
        ]
        repository = FirestoreShowRepository(client)

        episodes = repository.get_published_episodes("abc", limit=50)

        assert [e.id for e in episodes] == ["ep-1"]
        assert episodes[0].publish_date.year == 2024
        client.collection.return_value.where.return_value.where.return_value.order_by.assert_called_once_with(
            "publish_date", direction=firestore.Query.DESCENDING
        )
        ordered.limit.assert_called_once_with(50)

    def test_missing_index_raises_index_building(self):
        client = MagicMock()
        ordered = (
            client.collection.return_value.where.return_value.where.return_value.order_by.return_value
        )
        ordered.limit.return_value.stream.side_effect = FailedPrecondition(
            f"The query requires an index. You can create it here: {INDEX_URL}"
        )

        with pytest.raises(FeedIndexBuildingError) as excinfo:
            FirestoreShowRepository(client).get_published_episodes("abc", limit=50)

        assert excinfo.value.hint == INDEX_URL

    def test_api_errors_become_repository_errors(self):
        client = MagicMock()
        query = client.collection.return_value.where.return_value.limit.return_value
        query.stream.side_effect = InternalServerError("boom")

        with pytest.raises(RepositoryError):
            FirestoreShowRepository(client).find_show_by_slug("tech-talk")

    def test_missing_client_raises(self):
        with pytest.raises(RepositoryError):
            FirestoreShowRepository(None).find_show_by_slug("tech-talk")

    def test_update_show_feed_url(self):
        client = MagicMock()
        repository = FirestoreShowRepository(client)

        assert repository.update_show_feed_url("abc", "https://x/api/rss/tech-talk")

        client.collection.return_value.document.assert_called_once_with("abc")
        client.collection.return_value.document.return_value.update.assert_called_once_with(
            {"rss_url": "https://x/api/rss/tech-talk", "updated_at": firestore.SERVER_TIMESTAMP}
        )

    def test_list_shows_with_episodes(self):
        client = MagicMock()
        shows_collection = MagicMock()
        episodes_collection = MagicMock()
        client.collection.side_effect = lambda name: {
            "shows": shows_collection,
            "episodes": episodes_collection,
        }[name]
        shows_collection.where.return_value.stream.return_value = [
            _doc("a", {"slug": "a", "name": "A", "is_active": True}),
            _doc("b", {"slug": "b", "name": "B", "is_active": True}),
        ]

        def _episodes_for(show_id):
            if show_id == "a":
                return [
                    _doc(
                        "ep-a",
                        {
                            "show_id": "a",
                            "is_published": True,
                            "publish_date": "2024-04-01T00:00:00Z",
                        },
                    )
                ]
            return []

        def _where(filter):
            query = MagicMock()
            show_id = filter.value
            query.where.return_value.stream.return_value = _episodes_for(show_id)
            return query

        episodes_collection.where.side_effect = _where

        stats = FirestoreShowRepository(client).list_shows_with_episodes()

        assert [entry.show.slug for entry in stats] == ["a"]
        assert stats[0].episode_count == 1
        assert stats[0].latest_episode_date.month == 4

    def test_ping_failure(self):
        client = MagicMock()
        client.collection.return_value.limit.return_value.stream.side_effect = (
            InternalServerError("down")
        )

        assert FirestoreShowRepository(client).ping() is False

from datetime import datetime, timedelta, timezone

import pytest

from castbuzz.config import AppSettings, FeedOptions
from castbuzz.extensions import limiter
from castbuzz.models.episode import Episode
from castbuzz.models.show import Show
from castbuzz.services.repository import InMemoryShowRepository

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
BASE_URL = "https://castbuzz.test"


@pytest.fixture()
def fixed_now():
    return FIXED_NOW


@pytest.fixture()
def make_show():
    """Build a Show with sensible defaults for a public, directory-ready podcast."""

    def _make(**overrides) -> Show:
        values = {
            "id": "show-1",
            "slug": "tech-talk",
            "name": "Tech Talk",
            "description": "Weekly conversations about software.",
            "image_url": "https://cdn.castbuzz.test/tech-talk.jpg",
            "author": "Ada Host",
            "owner_email": "ada@castbuzz.test",
            "updated_at": FIXED_NOW,
        }
        values.update(overrides)
        return Show(**values)

    return _make


@pytest.fixture()
def make_episode():
    def _make(**overrides) -> Episode:
        values = {
            "id": "ep-1",
            "show_id": "show-1",
            "title": "Episode 1",
            "slug": "episode-1",
            "description": "The first episode.",
            "audio_url": "https://cdn.castbuzz.test/ep1.mp3",
            "duration": 125,
            "file_size": 2048,
            "is_published": True,
            "publish_date": FIXED_NOW - timedelta(days=1),
        }
        values.update(overrides)
        return Episode(**values)

    return _make


@pytest.fixture()
def repository(make_show, make_episode):
    return InMemoryShowRepository(
        shows=[make_show()],
        episodes=[make_episode()],
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture()
def app(repository, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    from castbuzz import create_app

    app = create_app(
        repository=repository,
        settings=AppSettings(ENV="testing", APP_URL=BASE_URL, FEED_REPOSITORY="memory"),
        options=FeedOptions(),
        clock=lambda: FIXED_NOW,
    )
    app.config.update(TESTING=True)
    limiter.reset()

    with app.app_context():
        yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def feed_service(app):
    from castbuzz.routes.rss import get_feed_service

    return get_feed_service()

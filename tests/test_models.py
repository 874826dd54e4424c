from datetime import date, datetime, timezone

import pytest

from castbuzz.models.episode import Episode
from castbuzz.models.show import Show
from castbuzz.services.firestore_helpers import normalise_timestamp


class MockDatetimeWithNanoseconds:
    def __init__(self, dt):
        self._dt = dt

    def to_datetime(self):
        return self._dt


@pytest.mark.parametrize(
    "value, expected",
    [
        (
            datetime(2024, 5, 1, 12, 0),
            datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        ),
        (date(2024, 5, 1), datetime(2024, 5, 1, tzinfo=timezone.utc)),
        (
            MockDatetimeWithNanoseconds(datetime(2024, 5, 1, 12, 0)),
            datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        ),
        ("2024-05-01T12:00:00Z", datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)),
        ("not a date", None),
        ("", None),
        (None, None),
    ],
)
def test_normalise_timestamp(value, expected):
    assert normalise_timestamp(value) == expected


def test_show_from_dict_ignores_unknown_fields():
    show = Show.from_dict(
        {
            "id": 42,
            "slug": "tech-talk",
            "name": "Tech Talk",
            "owner_uid": "user-1",
            "updated_at": "2024-05-01T12:00:00Z",
            "created_at": "yesterday",
        }
    )

    assert show.id == "42"
    assert show.is_active is True
    assert show.updated_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert show.created_at is None


def test_episode_from_dict():
    episode = Episode.from_dict(
        {
            "id": 7,
            "show_id": 42,
            "title": "Episode 7",
            "episode_type": "mini",
            "is_published": True,
            "publish_date": "2024-05-01T12:00:00+00:00",
            "transcript": "...",
        }
    )

    assert episode.id == "7"
    assert episode.show_id == "42"
    assert episode.episode_type == "full"
    assert episode.publish_date == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_episode_sort_key_puts_undated_last():
    dated = Episode(publish_date=datetime(2024, 5, 1, tzinfo=timezone.utc))
    undated = Episode()

    ordered = sorted([undated, dated], key=lambda e: e.sort_key, reverse=True)

    assert ordered == [dated, undated]


def test_episode_sort_key_treats_naive_dates_as_utc():
    naive = Episode(publish_date=datetime(2024, 5, 1, 12))
    aware = Episode(publish_date=datetime(2024, 5, 1, 11, tzinfo=timezone.utc))

    assert naive.sort_key == datetime(2024, 5, 1, 12, tzinfo=timezone.utc).timestamp()
    ordered = sorted([aware, naive], key=lambda e: e.sort_key, reverse=True)
    assert ordered == [naive, aware]

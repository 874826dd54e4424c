from __future__ import annotations

import os
from dataclasses import dataclass

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_APP_URL = "http://localhost:8080"
DEFAULT_ADMIN_EMAIL = "admin@castbuzz.com"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        value = default
    return max(minimum, value)


@dataclass(frozen=True)
class FeedOptions:
    """Presentation switches for rendered RSS feeds."""

    language: str = "en-us"
    ttl_minutes: int = 60
    admin_email: str = DEFAULT_ADMIN_EMAIL
    generator: str = "CastBuzz Podcast Network"
    include_googleplay: bool = True
    include_podcast_namespace: bool = True
    episode_limit: int = 50
    cache_max_age: int = 3600

    @classmethod
    def from_env(cls) -> FeedOptions:
        """Create FeedOptions from environment variables."""
        return cls(
            language=(os.getenv("DEFAULT_FEED_LANGUAGE") or "en-us").strip().lower(),
            ttl_minutes=_env_int("FEED_TTL_MINUTES", 60),
            admin_email=os.getenv("ADMIN_EMAIL") or DEFAULT_ADMIN_EMAIL,
            generator=os.getenv("FEED_GENERATOR") or "CastBuzz Podcast Network",
            include_googleplay=_env_flag("FEED_GOOGLEPLAY_TAGS", True),
            include_podcast_namespace=_env_flag("FEED_PODCAST_NAMESPACE", True),
            episode_limit=_env_int("FEED_EPISODE_LIMIT", 50),
            cache_max_age=_env_int("FEED_CACHE_MAX_AGE", 3600, minimum=0),
        )


@dataclass(frozen=True)
class FirestoreConfig:
    """Collection names and project for the Firestore-backed repository."""

    project_id: str | None
    shows_collection: str
    episodes_collection: str

    @classmethod
    def from_env(cls) -> FirestoreConfig:
        return cls(
            project_id=os.getenv("GOOGLE_CLOUD_PROJECT") or os.getenv("GCP_PROJECT_ID"),
            shows_collection=os.getenv("FIRESTORE_COLLECTION_SHOWS", "shows"),
            episodes_collection=os.getenv("FIRESTORE_COLLECTION_EPISODES", "episodes"),
        )


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    ENV: str = "development"
    APP_URL: str = DEFAULT_APP_URL
    ADMIN_EMAIL: str = DEFAULT_ADMIN_EMAIL
    ALLOWED_ORIGINS: str = ""
    FEED_REPOSITORY: str = "firestore"
    RATELIMIT_STORAGE_URI: str = "memory://"

    @property
    def base_url(self) -> str:
        return self.APP_URL.strip().rstrip("/") or DEFAULT_APP_URL

    @property
    def allowed_origins(self) -> list[str]:
        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

import logging
import os
from datetime import datetime
from typing import Callable

import flask_limiter
from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS
from google.api_core.exceptions import GoogleAPICallError
from google.auth.exceptions import DefaultCredentialsError
from limits.storage import storage_from_string

from castbuzz.config import AppSettings, FeedOptions, FirestoreConfig
from castbuzz.extensions import limiter
from castbuzz.services.feeds import FeedService
from castbuzz.services.repository import (
    FirestoreShowRepository,
    InMemoryShowRepository,
    ShowRepository,
)
from castbuzz.utils.correlation import init_request_context
from castbuzz.utils.logging_config import setup_logging


def _build_repository(settings: AppSettings) -> ShowRepository:
    """Select the show store named by FEED_REPOSITORY."""
    logger = logging.getLogger(__name__)
    backend = settings.FEED_REPOSITORY.strip().lower()
    if backend == "memory":
        logger.info("Using in-memory show repository")
        return InMemoryShowRepository()

    from google.cloud import firestore

    firestore_config = FirestoreConfig.from_env()
    firestore_kwargs: dict[str, str] = {}
    if firestore_config.project_id:
        firestore_kwargs["project"] = firestore_config.project_id

    if os.getenv("FIRESTORE_EMULATOR_HOST"):
        logger.info(
            "Firestore emulator detected at %s", os.getenv("FIRESTORE_EMULATOR_HOST")
        )

    client = None
    try:
        client = firestore.Client(**firestore_kwargs)
    except (DefaultCredentialsError, GoogleAPICallError) as exc:
        logger.error("Failed to initialize Firestore client: %s", exc)

    return FirestoreShowRepository(
        client,
        shows_collection=firestore_config.shows_collection,
        episodes_collection=firestore_config.episodes_collection,
    )


def init_extensions(app: Flask, settings: AppSettings) -> None:
    """Configure the rate limiter and CORS."""
    limiter_version = getattr(flask_limiter, "__version__", "0")
    app.logger.info("Flask-Limiter version: %s", limiter_version)

    storage_uri = (settings.RATELIMIT_STORAGE_URI or "").strip() or "memory://"
    try:
        storage_from_string(storage_uri)
    except Exception as exc:  # pragma: no cover - fail-safe for boot issues
        app.logger.error(
            "Failed to initialize rate limiter storage '%s': %s. Falling back to memory://",
            storage_uri,
            exc,
        )
        storage_uri = "memory://"

    app.config["RATELIMIT_STORAGE_URI"] = storage_uri
    limiter.init_app(app)
    app.logger.info("Rate limit storage initialized: %s", storage_uri)

    allowed_origins = settings.allowed_origins
    if settings.ENV != "production":
        for origin in ("http://localhost:5000", "http://127.0.0.1:5000"):
            if origin not in allowed_origins:
                allowed_origins.append(origin)
    app.config["ALLOWED_ORIGINS"] = allowed_origins
    CORS(app, resources={r"/api/*": {"origins": allowed_origins or "*"}})


def create_app(
    repository: ShowRepository | None = None,
    settings: AppSettings | None = None,
    options: FeedOptions | None = None,
    clock: Callable[[], datetime] | None = None,
):
    """Create and configure an instance of the Flask application."""
    load_dotenv()

    # Set up logging as early as possible
    setup_logging()
    logger = logging.getLogger(__name__)

    settings = settings or AppSettings()
    options = options or FeedOptions.from_env()

    logger.info("Application starting with configuration:")
    logger.info(f"  ENV: {settings.ENV}")
    logger.info(f"  APP_URL: {settings.base_url}")
    logger.info(f"  FEED_REPOSITORY: {settings.FEED_REPOSITORY}")
    logger.info(f"  FEED_EPISODE_LIMIT: {options.episode_limit}")

    app = Flask(__name__)
    app.config.from_mapping(
        ENV_NAME=settings.ENV,
        APP_URL=settings.base_url,
        JSON_SORT_KEYS=False,
    )

    from .routes import rss, utility

    if repository is None:
        repository = _build_repository(settings)

    app.extensions[rss.SERVICE_EXTENSION_KEY] = FeedService(
        repository,
        base_url=settings.base_url,
        options=options,
        clock=clock,
    )

    init_extensions(app, settings)
    init_request_context(app)

    if "rss" not in app.blueprints:
        app.register_blueprint(rss.bp)
    if "utility" not in app.blueprints:
        app.register_blueprint(utility.bp)

    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    def internal_server_error(e):
        logging.getLogger(__name__).error(
            "An internal server error occurred: %s", e, exc_info=True
        )
        return jsonify({"error": "Internal server error"}), 500

    app.register_error_handler(404, not_found)
    app.register_error_handler(500, internal_server_error)

    return app

import logging

from flask import Blueprint, Response, current_app, jsonify

from castbuzz.extensions import limiter
from castbuzz.services.exceptions import (
    FeedIndexBuildingError,
    FeedServiceError,
    InvalidSlugError,
    ShowNotFoundError,
)
from castbuzz.services.feeds import FeedService

logger = logging.getLogger(__name__)

bp = Blueprint("rss", __name__, url_prefix="/api/rss")

SERVICE_EXTENSION_KEY = "castbuzz.feed_service"


def get_feed_service() -> FeedService:
    return current_app.extensions[SERVICE_EXTENSION_KEY]


def _json_error(message: str, status: int) -> Response:
    response = jsonify({"error": message})
    response.status_code = status
    return response


@bp.route("/")
def feed_list():
    """List every show feed for the admin feed directory."""
    try:
        feeds = get_feed_service().list_feeds()
    except FeedServiceError:
        logger.exception("feeds.directory.failed")
        return _json_error("Failed to list RSS feeds", 500)

    return jsonify(
        {
            "success": True,
            "feeds": [feed.to_dict() for feed in feeds],
            "count": len(feeds),
        }
    )


@bp.route("/<show_slug>")
def show_feed(show_slug: str):
    """Podcast RSS feed for an active show."""
    try:
        rendered = get_feed_service().get_feed(show_slug)
    except FeedIndexBuildingError:
        raise
    except FeedServiceError:
        logger.exception("Error generating feed for show: %s", show_slug)
        return _json_error("Failed to generate RSS feed", 500)

    response = Response(rendered.body, mimetype="application/rss+xml")
    response.headers.update(rendered.headers)
    return response


@bp.route("/<show_slug>/validate")
def validate_show_feed(show_slug: str):
    """Directory-readiness report for a show's feed."""
    try:
        report = get_feed_service().validate_feed(show_slug)
    except FeedIndexBuildingError:
        raise
    except FeedServiceError:
        logger.exception("Error validating feed for show: %s", show_slug)
        return _json_error("Failed to validate RSS feed", 500)
    return jsonify(report.to_dict())


@bp.route("/<show_slug>/regenerate", methods=["POST"])
@limiter.limit("30 per minute")
def regenerate_show_feed(show_slug: str):
    """Recompute and store the canonical feed URL of a show."""
    try:
        feed_url = get_feed_service().regenerate_feed_url(show_slug)
    except FeedServiceError:
        logger.exception("Error regenerating feed for show: %s", show_slug)
        return _json_error("Failed to regenerate RSS feed", 500)
    return jsonify(
        {
            "success": True,
            "message": "RSS feed regenerated successfully",
            "feed_url": feed_url,
        }
    )


@bp.route("/<show_slug>/submit")
def feed_submission_links(show_slug: str):
    """Podcast directory submission links for a show's feed."""
    service = get_feed_service()
    try:
        links = service.submission_links(show_slug)
    except FeedServiceError:
        logger.exception("Error building submission links for show: %s", show_slug)
        return _json_error("Failed to build submission links", 500)
    return jsonify(
        {
            "feed_url": service.feed_url_for(show_slug.strip()),
            "submission_urls": links,
        }
    )


@bp.errorhandler(ShowNotFoundError)
def handle_show_not_found(error: ShowNotFoundError) -> Response:
    return _json_error("Show not found", 404)


@bp.errorhandler(InvalidSlugError)
def handle_invalid_slug(error: InvalidSlugError) -> Response:
    return _json_error(str(error), 400)


@bp.errorhandler(FeedIndexBuildingError)
def handle_index_building(error: FeedIndexBuildingError) -> Response:
    logger.warning(
        "feed.index_building",
        extra={"show_slug": error.slug, "hint": error.hint},
    )
    response = _json_error("Feed temporarily unavailable while indexes build", 503)
    response.headers["Cache-Control"] = "no-store"
    response.headers["Retry-After"] = "120"
    return response

from flask import Blueprint, jsonify

from castbuzz.routes.rss import get_feed_service
from castbuzz.services import health as health_service

bp = Blueprint("utility", __name__)


@bp.route("/health")
def health():
    """Return structured health status for downstream services."""
    service = get_feed_service()
    results, overall_healthy = health_service.check_all_services(service.repository)
    status_code = 200 if overall_healthy else 503
    return jsonify(results), status_code


@bp.route("/healthz")
def healthz():
    """Lightweight liveness probe."""
    return "ok", 200


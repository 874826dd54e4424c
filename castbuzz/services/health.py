import logging

from castbuzz.services.exceptions import FeedServiceError
from castbuzz.services.repository import ShowRepository

logger = logging.getLogger(__name__)


def check_repository_health(repository: ShowRepository) -> tuple[bool, str]:
    """Checks that the show store answers a trivial read."""
    try:
        if repository.ping():
            return True, "OK"
        return False, "Error"
    except FeedServiceError as e:
        logger.error(f"Show repository health check failed: {e}")
        return False, "Error"
    except Exception as e:
        logger.error(f"Unexpected error during show repository health check: {e}")
        return False, "Error"


def check_all_services(repository: ShowRepository) -> tuple[dict[str, str], bool]:
    """Checks the health of all downstream services and returns a summary.

    Returns:
        A tuple containing:
        - A dictionary with service names as keys and their status ('OK' or 'Error') as values.
        - A boolean indicating the overall health status.
    """
    service_checks = {
        "repository": check_repository_health,
    }

    results = {}
    overall_healthy = True

    for service, check_func in service_checks.items():
        is_healthy, status = check_func(repository)
        results[service] = status
        if not is_healthy:
            overall_healthy = False

    return results, overall_healthy

import logging

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.utils import timezone

from apps.orders.repository import storage_executor
from apps.orders.resilience import StorageUnavailable

logger = logging.getLogger(__name__)


def _ping_database():
    with connection.cursor() as cur:
        cur.execute("SELECT 1")
        cur.fetchone()


def health_view(_request):
    """Liveness check: ``SELECT 1`` with the short health retry policy."""
    timestamp = timezone.now().isoformat()
    try:
        storage_executor(getattr(settings, "HEALTH_RETRY_ATTEMPTS", 2))(_ping_database)
    except (StorageUnavailable, DatabaseError) as exc:
        logger.error("health check failed", extra={"error": str(exc)})
        return JsonResponse(
            {
                "status": "unhealthy",
                "database": "disconnected",
                "detail": "DATABASE_CONNECTION_ERROR",
                "timestamp": timestamp,
            },
            status=503,
        )

    return JsonResponse({"status": "healthy", "database": "connected", "timestamp": timestamp}, status=200)

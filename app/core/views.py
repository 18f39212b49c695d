"""
Infrastructure endpoints.

Views here are not part of the payment domain; they report whether the
services the payment engine depends on are reachable.
"""

import logging

from django.db import connection
from django.http import JsonResponse
from django_redis import get_redis_connection

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check for Docker, Kubernetes probes and load balancers.

    The database is required. Redis backs the payment locks, so a
    disconnected Redis also marks the service unhealthy: intents cannot be
    completed or expired without it.

    HTTP Status Codes:
        200: All systems operational
        503: Database or Redis unreachable

    Example Response:
        {
            "status": "healthy",
            "database": "connected",
            "redis": "connected"
        }
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "redis": "unknown",
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check database probe failed: {e}")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"

    try:
        get_redis_connection("default").ping()
        health_status["redis"] = "connected"
    except Exception as e:
        logger.error(f"Health check redis probe failed: {e}")
        health_status["redis"] = "disconnected"
        health_status["status"] = "unhealthy"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JsonResponse(health_status, status=status_code)

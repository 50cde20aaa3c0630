import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Liveness probe for load balancers and containers.

    The ledger has no dependency besides the database, so one
    ``SELECT 1`` decides between 200 and 503.
    """
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except DatabaseError:
        logger.error("Health check could not reach the database", exc_info=True)
        return JsonResponse({"status": "unhealthy", "database": "disconnected"}, status=503)
    return JsonResponse({"status": "healthy", "database": "connected"})

"""Health check endpoints, no auth required."""
import logging
import resource
import sys

from fastapi import APIRouter, Depends, status

from core.context import AppContext, get_app_context
from core.database import ping_database
from core.responses import send_response

router = APIRouter(tags=["Health"])
logger = logging.getLogger(__name__)


def memory_usage_mb() -> float:
    """Peak resident set size of this process."""
    rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # macOS reports bytes, Linux kilobytes
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return round(rss / divisor, 2)


@router.get("")
def health(app: AppContext = Depends(get_app_context)):
    return send_response(
        status.HTTP_200_OK,
        "Service is healthy",
        {
            "status": "OK",
            "uptime": app.uptime_seconds,
            "environment": app.settings.ENVIRONMENT,
            "version": app.settings.APP_VERSION,
        },
    )


@router.get("/detailed")
def detailed_health(app: AppContext = Depends(get_app_context)):
    settings = app.settings
    database_up = ping_database(app.engine)

    checks = {
        "database": {"status": "up" if database_up else "down"},
        "memory": {"maxRssMb": memory_usage_mb()},
        "environment": {
            "status": "up",
            "name": settings.ENVIRONMENT,
            "paymentGatewayConfigured": bool(settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET),
        },
    }
    healthy = database_up
    if not healthy:
        logger.error("Detailed health check degraded: database unreachable")

    data = {
        "status": "OK" if healthy else "DEGRADED",
        "uptime": app.uptime_seconds,
        "version": settings.APP_VERSION,
        "checks": checks,
    }
    if healthy:
        return send_response(status.HTTP_200_OK, "Service is healthy", data)
    return send_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Service is degraded", data, success=False)

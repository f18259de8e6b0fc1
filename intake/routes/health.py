"""
Health check endpoints with database pool monitoring.
"""

import time

from fastapi import APIRouter, Response, status

from intake.config import settings
from intake.db.pool import db_health_check
from intake.infrastructure.observability.logging import log_health_check

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "product-intake"}


@router.get("/readyz")
async def readyz(response: Response):
    """
    Readiness check: database pool plus configuration sanity.
    """
    checks = {}
    overall_ok = True

    # 1) Database pool health check
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)
        latency_ms = round((time.time() - t0) * 1000, 1)

        checks["database"] = {"ok": is_healthy, "latency_ms": latency_ms}

        if "pool_stats" in db_health:
            pool_stats = db_health["pool_stats"]
            checks["database"].update(
                {
                    "pool_size": pool_stats.get("pool_size", 0),
                    "pool_available": pool_stats.get("pool_available", 0),
                    "connection_time_ms": db_health.get("connection_time_ms", 0),
                }
            )

        if "warnings" in db_health:
            checks["database"]["warnings"] = db_health["warnings"]

        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")

        log_health_check("database", is_healthy, latency_ms, db_health.get("error"))
        overall_ok = overall_ok and is_healthy

    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 2) Configuration checks
    config_issues = []
    if not settings.DATABASE_URL:
        config_issues.append("DATABASE_URL not set")
    if settings.environment != "development" and settings.JWT_SECRET == "dev-secret":
        config_issues.append("JWT_SECRET uses the development default")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
        "shopify_configured": settings.shopify_store_config() is not None,
    }
    overall_ok = overall_ok and not config_issues

    if not overall_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}

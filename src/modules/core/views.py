import time
from typing import Any, Callable, Dict

import structlog
from django.core.cache import cache
from django.db import connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone

logger = structlog.get_logger(__name__)


def _ping_database() -> None:
    conn = connections["default"]
    conn.ensure_connection()
    with conn.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()


def _ping_cache() -> None:
    cache.set("_health_check", "ok", 10)
    if cache.get("_health_check") != "ok":
        raise ConnectionError("Cache read failed")


def _probe(name: str, ping: Callable[[], None]) -> Dict[str, Any]:
    start = time.monotonic()
    try:
        ping()
    except Exception:
        logger.error(f"health.{name}_down")
        return {"status": "down"}
    return {
        "status": "up",
        "response_time_ms": round((time.monotonic() - start) * 1000, 2),
    }


def _workflow_backlog() -> Dict[str, Dict[str, int]]:
    from modules.core.models import OutboxEvent
    from modules.orders.models import Order

    return {
        "outbox": OutboxEvent.objects.backlog(),
        "ledger": {"awaiting_anchor": Order.objects.awaiting_anchor().count()},
    }


def health_check(request: HttpRequest) -> JsonResponse:
    """Report database and cache reachability (public, unauthenticated).

    Outbox and anchoring backlogs are informational and never flip the
    overall status.
    """
    services: Dict[str, Dict[str, Any]] = {
        "database": _probe("database", _ping_database),
        "cache": _probe("cache", _ping_cache),
    }
    healthy = all(service["status"] == "up" for service in services.values())

    if services["database"]["status"] == "up":
        services.update(_workflow_backlog())

    status = "healthy" if healthy else "unhealthy"
    logger.info("health.check_completed", status=status)
    return JsonResponse(
        {
            "status": status,
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=200 if healthy else 503,
    )

"""Health and readiness endpoints.

  /health (liveness):
    "Is this process alive?"  Always 200; the body reports dependency
    status so a degraded store shows up without triggering a restart.

  /ready (readiness):
    "Can this instance resolve tests right now?"  503 when the document
    store cannot be reached, so the load balancer stops routing here
    until the store comes back.  Redis is optional (in-memory fallback)
    and never fails readiness.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status

from assessment_service.api.dependencies import document_store
from assessment_service.db.redis import redis_pool
from assessment_service.services.connectivity import connectivity_monitor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_store() -> str:
    ping = getattr(document_store, "ping", None)
    if ping is None:
        return "not_configured"
    try:
        await ping()
    except Exception:
        logger.warning("Document store ping failed", exc_info=True)
        return "degraded"
    return "ok"


async def _check_redis() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        return "degraded"
    return "ok"


def _connectivity() -> str:
    state = connectivity_monitor.state
    if state is None:
        return "unknown"
    return "online" if state else "offline"


@router.get("/health")
async def health() -> dict:
    checks = {
        "document_store": await _check_store(),
        "redis": await _check_redis(),
        "connectivity": _connectivity(),
    }
    degraded = "degraded" in checks.values() or checks["connectivity"] == "offline"
    return {"status": "degraded" if degraded else "ok", "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _check_store() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)

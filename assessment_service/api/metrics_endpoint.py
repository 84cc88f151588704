"""Prometheus scrape endpoint (text exposition format, not JSON).

Besides the HTTP metrics this exposes the resolution counters, e.g.:

  remote_call_retries_total 3.0
  test_resolutions_total{outcome="ok"} 41.0
  document_store_online 1.0

Keep /metrics on an internal port or behind the ingress allow-list in
production.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

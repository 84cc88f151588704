"""Prometheus metrics middleware.

Every request updates the in-flight gauge, the request counter and the
duration histogram.  The endpoint label is the route template
(`/v1/learners/{learner_id}/tests`), not the raw path: one time series per
learner would grow without bound.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from assessment_service.core.metrics import (
    ACTIVE_REQUESTS,
    REQUEST_COUNT,
    REQUEST_DURATION,
)

UNMATCHED = "unmatched"


def endpoint_label(request: Request) -> str:
    """Template of the route that handled the request.

    Only valid once the app has run: the router records the matched route
    in the scope while dispatching.  Requests that matched nothing (404s)
    share one label.
    """
    route = request.scope.get("route")
    if route is None:
        return UNMATCHED
    return (
        getattr(route, "path_format", None)
        or getattr(route, "path", None)
        or UNMATCHED
    )


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Scrapes are not traffic.
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start = time.monotonic()
        status_code = "500"

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        finally:
            ACTIVE_REQUESTS.dec()
            endpoint = endpoint_label(request)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code,
            ).inc()
            REQUEST_DURATION.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(time.monotonic() - start)

        return response

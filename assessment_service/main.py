from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from assessment_service.api.assessments import router as assessments_router
from assessment_service.api.dependencies import document_store
from assessment_service.api.errors import cancelled_handler, resolution_error_handler
from assessment_service.api.health import router as health_router
from assessment_service.api.metrics_endpoint import router as metrics_router
from assessment_service.api.results import router as results_router
from assessment_service.api.roster import router as roster_router
from assessment_service.core.config import SETTINGS
from assessment_service.core.logging import setup_logging
from assessment_service.db.engine import lifespan_db
from assessment_service.db.redis import lifespan_redis
from assessment_service.middleware.metrics import MetricsMiddleware
from assessment_service.middleware.request_context import (
    RequestContextMiddleware,
    install_request_id_filter,
)
from assessment_service.services.connectivity import (
    connectivity_monitor,
    lifespan_connectivity,
)
from assessment_service.services.resilience import (
    OperationCancelledError,
    ResolutionError,
)

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
install_request_id_filter()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Teardown runs in reverse: probe stops before the engine is disposed.
    async with lifespan_db():
        async with lifespan_redis():
            async with lifespan_connectivity(
                document_store,
                connectivity_monitor,
                SETTINGS.connectivity_probe_interval,
            ):
                yield


app = FastAPI(
    title="assessment-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

# Last-added runs first: RequestContext (outermost) -> Metrics -> route.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.add_exception_handler(ResolutionError, resolution_error_handler)  # type: ignore[arg-type]
app.add_exception_handler(OperationCancelledError, cancelled_handler)  # type: ignore[arg-type]

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(assessments_router)
app.include_router(results_router)
app.include_router(roster_router)

logger.info(
    "assessment-service started  env=%s log_level=%s port=%d retries=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.retry_max_attempts,
    "on" if SETTINGS.is_dev else "off",
)

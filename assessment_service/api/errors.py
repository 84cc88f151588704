"""HTTP mapping for resolution failures.

Services raise ResolutionError with a cause from the closed taxonomy; the
handler registered in main.py turns it into a JSON response:

    {"detail": "The request timed out while loading the test catalog.",
     "cause": "timeout"}
"""

from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from assessment_service.services.resilience import (
    ErrorCause,
    OperationCancelledError,
    ResolutionError,
)

logger = logging.getLogger(__name__)

CAUSE_STATUS: dict[ErrorCause, int] = {
    ErrorCause.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCause.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorCause.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCause.QUOTA_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCause.PRECONDITION_FAILED: status.HTTP_412_PRECONDITION_FAILED,
    ErrorCause.ABORTED: status.HTTP_409_CONFLICT,
    ErrorCause.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCause.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorCause.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def resolution_error_handler(
    _request: Request, exc: ResolutionError
) -> JSONResponse:
    status_code = CAUSE_STATUS.get(exc.cause, status.HTTP_500_INTERNAL_SERVER_ERROR)
    headers = {"Retry-After": "5"} if status_code == 503 else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "cause": exc.cause.value},
        headers=headers,
    )


async def cancelled_handler(
    _request: Request, exc: OperationCancelledError
) -> JSONResponse:
    # 499 is nginx's "client closed request"; nobody is usually listening.
    logger.info("Request cancelled before completion: %s", exc)
    return JSONResponse(
        status_code=499,
        content={"detail": "Request cancelled", "cause": "cancelled"},
    )

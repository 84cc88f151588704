from __future__ import annotations

import asyncio
import contextlib
import datetime
import logging
from collections.abc import AsyncIterator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from assessment_service.core.config import SETTINGS
from assessment_service.db.engine import async_session_factory
from assessment_service.models.principal import Principal
from assessment_service.repos.document_store import DocumentStore, InMemoryDocumentStore
from assessment_service.repos.pg_document_store import PgDocumentStore
from assessment_service.services import token_service
from assessment_service.services.assessment_resolver import AssessmentResolver
from assessment_service.services.cache import cache_service
from assessment_service.services.connectivity import connectivity_monitor
from assessment_service.services.resilience import CancellationToken, RetryPolicy
from assessment_service.services.results_service import ResultsService
from assessment_service.services.roster_service import RosterService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Module-level singletons
# ---------------------------------------------------------------------------

if async_session_factory is not None:
    document_store: DocumentStore = PgDocumentStore(
        async_session_factory, monitor=connectivity_monitor
    )
else:
    document_store = InMemoryDocumentStore()

retry_policy = RetryPolicy(
    max_attempts=SETTINGS.retry_max_attempts,
    base_delay=SETTINGS.retry_base_delay,
)

resolver = AssessmentResolver(
    document_store,
    cache=cache_service,
    monitor=connectivity_monitor,
    policy=retry_policy,
    network_timeout=SETTINGS.network_wait_timeout,
    subject_cache_ttl=SETTINGS.subject_cache_ttl,
)
results_service = ResultsService(resolver)
roster_service = RosterService(resolver.repo, retry_policy)


def get_resolver() -> AssessmentResolver:
    return resolver


def get_results_service() -> ResultsService:
    return results_service


def get_roster_service() -> RosterService:
    return roster_service


def get_clock() -> datetime.datetime:
    """Current UTC time.  Overridden in tests to pin `now`."""
    return datetime.datetime.now(datetime.UTC)


# Seconds between client-disconnect checks while a request is in flight.
DISCONNECT_POLL_INTERVAL = 0.5


async def _watch_disconnect(
    request: Request, token: CancellationToken, interval: float
) -> None:
    while not token.cancelled:
        await asyncio.sleep(interval)
        if await request.is_disconnected():
            logger.info("Client disconnected, cancelling %s", request.url.path)
            token.cancel()


async def get_cancellation(request: Request) -> AsyncIterator[CancellationToken]:
    """Per-request token, cancelled when the client goes away.

    Passed down as `cancel=` so a resolution stuck in backoff or waiting
    for the network stops instead of finishing for nobody.
    """
    token = CancellationToken()
    watcher = asyncio.create_task(
        _watch_disconnect(request, token, DISCONNECT_POLL_INTERVAL)
    )
    try:
        yield token
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher


# ---------------------------------------------------------------------------
# Auth guards
# ---------------------------------------------------------------------------


def require_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        claims = token_service.decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=claims["sub"],
        roles=frozenset(claims.get("roles", [])),
    )
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        sorted(principal.roles),
    )
    return principal


def require_any_role(roles: set[str] | frozenset[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role(STAFF_ROLES))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                sorted(roles),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def require_learner_access(
    learner_id: str,
    principal: Annotated[Principal, Depends(require_user)],
) -> Principal:
    """Learners read only their own data; staff read anyone's.

    `learner_id` may be the student document id or the user id, so the
    comparison is against the token subject.  A student record whose
    document id differs from the user id is reached through the userId
    lookup strategies.
    """
    if principal.is_staff() or principal.user_id == learner_id:
        return principal
    logger.warning(
        "Access denied: user=%s requested learner=%s",
        principal.user_id,
        learner_id,
    )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You can only view your own assessments",
    )

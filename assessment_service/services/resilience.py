"""Resilience layer for remote store calls.

Every read the resolver makes goes through `with_retry`, so callers never
reason about transient failures themselves:

    doc = await with_retry(lambda: store.fetch_one("students", sid))

BACKOFF
--------
Retry k (k = 0, 1, 2, ...) waits `base_delay * 2**k` seconds.  With the
defaults (4 attempts, 0.3s base) a call that keeps failing costs
0.3 + 0.6 + 1.2 = 2.1s of sleeping before the error surfaces.  There is
no jitter: one process issues a handful of reads per resolution, not a
thundering herd.

The operation must be safe to repeat.  All resolver operations are reads,
so they are.

CLASSIFICATION
---------------
Once retries are exhausted, `classify_remote_error` turns whatever the store
raised into one sentence a learner can read.  The taxonomy is closed
(ErrorCause) and the function is total: it accepts any object, including
None, and never raises.

CANCELLATION
-------------
A caller that stops caring (client disconnected, view closed) passes a
CancellationToken and sets it.  `with_retry` checks it before every attempt
and wakes from a backoff sleep as soon as it is set; `await_network` does
the same while waiting for connectivity.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from assessment_service.core.metrics import REMOTE_FAILURES, REMOTE_RETRIES
from assessment_service.services.connectivity import (
    ConnectivityMonitor,
    connectivity_monitor,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 4  # first call + 3 retries
DEFAULT_BASE_DELAY = 0.3


class ErrorCause(enum.StrEnum):
    PERMISSION_DENIED = "permission-denied"
    SERVICE_UNAVAILABLE = "service-unavailable"
    TIMEOUT = "timeout"
    NOT_FOUND = "not-found"
    UNAUTHENTICATED = "unauthenticated"
    QUOTA_EXCEEDED = "quota-exceeded"
    PRECONDITION_FAILED = "precondition-failed"
    ABORTED = "aborted"
    UNKNOWN = "unknown"


# Store error codes -> cause
_CODE_TO_CAUSE: dict[str, ErrorCause] = {
    "permission-denied": ErrorCause.PERMISSION_DENIED,
    "unavailable": ErrorCause.SERVICE_UNAVAILABLE,
    "deadline-exceeded": ErrorCause.TIMEOUT,
    "not-found": ErrorCause.NOT_FOUND,
    "unauthenticated": ErrorCause.UNAUTHENTICATED,
    "resource-exhausted": ErrorCause.QUOTA_EXCEEDED,
    "failed-precondition": ErrorCause.PRECONDITION_FAILED,
    "aborted": ErrorCause.ABORTED,
}

_TEMPLATES: dict[ErrorCause, str] = {
    ErrorCause.PERMISSION_DENIED: "You do not have permission for {action}.",
    ErrorCause.SERVICE_UNAVAILABLE: (
        "Service temporarily unavailable while {action}. Please try again."
    ),
    ErrorCause.TIMEOUT: "The request timed out while {action}.",
    ErrorCause.NOT_FOUND: "Requested data was not found while {action}.",
    ErrorCause.UNAUTHENTICATED: "You must be signed in before {action}.",
    ErrorCause.QUOTA_EXCEEDED: "Quota exceeded while {action}. Please try later.",
    ErrorCause.PRECONDITION_FAILED: "Operation failed precondition while {action}.",
    ErrorCause.ABORTED: "Operation aborted while {action}.",
}


class OperationCancelledError(Exception):
    """Raised when a CancellationToken is set while a call is pending."""


class ResolutionError(Exception):
    """A remote failure that survived retries, with its user-facing cause."""

    def __init__(self, cause: ErrorCause, message: str) -> None:
        super().__init__(message)
        self.cause = cause
        self.message = message

    @classmethod
    def from_exception(cls, error: object, action: str) -> ResolutionError:
        return cls(cause_of(error), classify_remote_error(error, action))


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError("operation cancelled by caller")


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def _error_code(error: object) -> str:
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code
    if isinstance(error, TimeoutError):
        return "deadline-exceeded"
    if isinstance(error, ConnectionError):
        return "unavailable"
    return ""


def _error_message(error: object) -> str:
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    if isinstance(error, BaseException) and error.args:
        first = error.args[0]
        if isinstance(first, str):
            return first
    return ""


def cause_of(error: object) -> ErrorCause:
    return _CODE_TO_CAUSE.get(_error_code(error), ErrorCause.UNKNOWN)


def classify_remote_error(error: object, action: str = "performing operation") -> str:
    """Map any remote error to a single human-readable sentence."""
    cause = cause_of(error)
    template = _TEMPLATES.get(cause)
    if template is not None:
        return template.format(action=action)
    return _error_message(error) or f"Unexpected error while {action}."


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


async def _sleep(delay: float, cancel: CancellationToken | None) -> None:
    if cancel is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except TimeoutError:
        return
    cancel.raise_if_cancelled()


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    *,
    cancel: CancellationToken | None = None,
) -> T:
    """Run `operation`, retrying with exponential backoff.

    `max_attempts` counts invocations, so it is never exceeded and the
    operation is retried at most `max_attempts - 1` times.  The last error
    is re-raised unchanged.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1 (got {max_attempts})")

    attempt = 0
    while True:
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            return await operation()
        except Exception as exc:
            if attempt + 1 >= max_attempts:
                REMOTE_FAILURES.labels(cause=cause_of(exc).value).inc()
                raise
            delay = base_delay * 2**attempt
            REMOTE_RETRIES.inc()
            logger.warning(
                "Remote call failed (attempt %d/%d), retrying in %.2fs: %s",
                attempt + 1,
                max_attempts,
                delay,
                exc,
                extra={"attempt": attempt + 1, "cause": cause_of(exc).value},
            )
            await _sleep(delay, cancel)
            attempt += 1


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY


async def call_remote(
    operation: Callable[[], Awaitable[T]],
    action: str,
    policy: RetryPolicy = RetryPolicy(),
    *,
    cancel: CancellationToken | None = None,
) -> T:
    """`with_retry`, then surface whatever survived as a ResolutionError.

    The original exception stays attached as __cause__.
    """
    try:
        return await with_retry(
            operation, policy.max_attempts, policy.base_delay, cancel=cancel
        )
    except OperationCancelledError:
        raise
    except Exception as exc:
        raise ResolutionError.from_exception(exc, action) from exc


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


def is_online(monitor: ConnectivityMonitor | None = None) -> bool:
    state = (monitor or connectivity_monitor).state
    return True if state is None else state


async def await_network(
    timeout: float,
    *,
    monitor: ConnectivityMonitor | None = None,
    cancel: CancellationToken | None = None,
) -> bool:
    """Wait up to `timeout` seconds for connectivity to come back.

    Returns True at once when already online, True when the restore signal
    fires first, False when the timeout wins.
    """
    monitor = monitor or connectivity_monitor
    if is_online(monitor):
        return True
    if cancel is not None:
        cancel.raise_if_cancelled()

    restored = asyncio.Event()
    monitor.subscribe(restored.set)
    waiters = [asyncio.ensure_future(restored.wait())]
    if cancel is not None:
        waiters.append(asyncio.ensure_future(cancel.wait()))
    try:
        await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        monitor.unsubscribe(restored.set)
        for waiter in waiters:
            waiter.cancel()

    if restored.is_set():
        return True
    if cancel is not None:
        cancel.raise_if_cancelled()
    return False

"""Connectivity signal for the document store.

A server process has no built-in signal for whether the document store
is reachable, so we keep one ourselves:

  - the Postgres store flips it offline when a call fails at the
    connection level, and back online on the next successful call;
  - a background probe pings the store while the app runs, so the signal
    recovers even when no request is in flight.

`state` is None until the first signal arrives.  Callers treat None as
online: with no evidence of an outage we try the call and let retries
deal with it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Protocol

from assessment_service.core.metrics import CONNECTIVITY_STATE

logger = logging.getLogger(__name__)

RestoreCallback = Callable[[], None]


class ConnectivityMonitor:
    def __init__(self) -> None:
        self._state: bool | None = None
        self._listeners: list[RestoreCallback] = []

    @property
    def state(self) -> bool | None:
        return self._state

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def set_online(self, online: bool) -> None:
        was_online = self._state
        self._state = online
        CONNECTIVITY_STATE.set(1 if online else 0)
        if online and was_online is False:
            logger.info("Document store connectivity restored")
            for callback in list(self._listeners):
                callback()
        elif not online and was_online is not False:
            logger.warning("Document store connectivity lost")

    def subscribe(self, callback: RestoreCallback) -> None:
        self._listeners.append(callback)

    def unsubscribe(self, callback: RestoreCallback) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    def reset(self) -> None:
        self._state = None
        self._listeners.clear()


class _Pingable(Protocol):
    def ping(self) -> Awaitable[None]: ...


# Process-wide connectivity signal.
connectivity_monitor = ConnectivityMonitor()


async def _probe_loop(
    store: _Pingable, monitor: ConnectivityMonitor, interval: float
) -> None:
    while True:
        try:
            await store.ping()
        except Exception:
            logger.debug("Connectivity probe failed", exc_info=True)
            monitor.set_online(False)
        else:
            monitor.set_online(True)
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan_connectivity(
    store: object, monitor: ConnectivityMonitor, interval: float
):
    """Run the connectivity probe for the lifetime of the app.

    Stores without a `ping()` (none of ours, but the Protocol allows it)
    leave the signal unset, which reads as online.
    """
    if not callable(getattr(store, "ping", None)):
        yield
        return

    task = asyncio.create_task(_probe_loop(store, monitor, interval))  # type: ignore[arg-type]
    logger.info("Connectivity probe started (every %ss)", interval)
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Connectivity probe stopped")

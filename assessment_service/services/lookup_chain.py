"""Ordered fallback lookups.

Some conceptual lookups ("the student record for this user", "the students
of this school") have more than one physical query shape because the data
was written by clients that disagreed on the schema.  Instead of nesting
`if not results:` branches, each shape is a named strategy and the chain
returns the first one that yields data:

    found = await first_non_empty(
        "roster",
        [
            LookupStrategy("ref+active", lambda: repo.find_learners([...])),
            LookupStrategy("string-id", lambda: repo.find_learners([...])),
        ],
        action="loading the school roster",
    )

Every strategy runs through `call_remote`.  An empty chain result is a
valid answer, not an error; a strategy that still fails after retries stops
the chain with a ResolutionError.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from assessment_service.core.metrics import LOOKUP_STRATEGY_HITS
from assessment_service.services.resilience import (
    CancellationToken,
    RetryPolicy,
    call_remote,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class LookupStrategy(Generic[T]):
    name: str
    fetch: Callable[[], Awaitable[Sequence[T]]]


@dataclass(frozen=True, slots=True)
class LookupResult(Generic[T]):
    items: list[T]
    strategy: str | None  # None when every strategy came back empty


async def first_non_empty(
    chain: str,
    strategies: Sequence[LookupStrategy[T]],
    *,
    action: str,
    policy: RetryPolicy = RetryPolicy(),
    cancel: CancellationToken | None = None,
) -> LookupResult[T]:
    for strategy in strategies:
        items = await call_remote(strategy.fetch, action, policy, cancel=cancel)
        if items:
            LOOKUP_STRATEGY_HITS.labels(chain=chain, strategy=strategy.name).inc()
            logger.debug(
                "Lookup chain %s resolved by strategy %s (%d items)",
                chain,
                strategy.name,
                len(items),
            )
            return LookupResult(items=list(items), strategy=strategy.name)
    logger.debug("Lookup chain %s: no strategy returned data", chain)
    return LookupResult(items=[], strategy=None)

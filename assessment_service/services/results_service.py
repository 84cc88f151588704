"""Learner results history: filtered attempt records plus summary figures.

The summary is derived entirely from attempt records, which already carry
the test and subject names they were submitted under.  No catalog or
subject lookups are needed, so a renamed test keeps its historical name.
"""

from __future__ import annotations

import calendar
import datetime
import enum
import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from assessment_service.models.assessment import AttemptRecord
from assessment_service.services.assessment_resolver import AssessmentResolver
from assessment_service.services.resilience import CancellationToken, call_remote

logger = logging.getLogger(__name__)

RECENT_LIMIT = 5


class TimeRange(enum.StrEnum):
    ALL = "all"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


_RANGE_MONTHS = {TimeRange.MONTH: 1, TimeRange.QUARTER: 3, TimeRange.YEAR: 12}


@dataclass(frozen=True, slots=True)
class ProgressPoint:
    test_name: str
    percentage_score: float
    created_at: datetime.datetime | None


@dataclass(frozen=True, slots=True)
class ResultsSummary:
    results: list[AttemptRecord] = field(default_factory=list)
    recent: list[AttemptRecord] = field(default_factory=list)
    overall_average: float = 0.0
    best_score: float | None = None
    progress: dict[str, list[ProgressPoint]] = field(default_factory=dict)


def subtract_months(moment: datetime.datetime, months: int) -> datetime.datetime:
    """Calendar month arithmetic, clamping the day (Mar 31 - 1 month = Feb 28/29)."""
    index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def range_start(
    time_range: TimeRange, now: datetime.datetime
) -> datetime.datetime | None:
    months = _RANGE_MONTHS.get(time_range)
    if months is None:
        return None
    return subtract_months(now, months)


def _newest_first_key(record: AttemptRecord) -> tuple:
    ts = record.created_at.timestamp() if record.created_at else float("-inf")
    return (-ts, record.id)


def summarize(
    attempts: Iterable[AttemptRecord],
    now: datetime.datetime,
    time_range: TimeRange = TimeRange.ALL,
) -> ResultsSummary:
    # Undated records cannot be placed in a window, so only ALL keeps them.
    start = range_start(time_range, now)
    results = sorted(
        (
            a
            for a in attempts
            if start is None or (a.created_at is not None and a.created_at >= start)
        ),
        key=_newest_first_key,
    )
    if not results:
        return ResultsSummary()

    scores = [r.percentage_score for r in results]
    progress: dict[str, list[ProgressPoint]] = defaultdict(list)
    for record in reversed(results):
        progress[record.subject_name].append(
            ProgressPoint(
                test_name=record.test_name,
                percentage_score=record.percentage_score,
                created_at=record.created_at,
            )
        )

    return ResultsSummary(
        results=results,
        recent=results[:RECENT_LIMIT],
        overall_average=round(sum(scores) / len(scores), 2),
        best_score=max(scores),
        progress=dict(progress),
    )


class ResultsService:
    def __init__(self, resolver: AssessmentResolver) -> None:
        self._resolver = resolver

    async def summarize_results(
        self,
        learner_id: str,
        now: datetime.datetime,
        time_range: TimeRange = TimeRange.ALL,
        *,
        cancel: CancellationToken | None = None,
    ) -> ResultsSummary:
        await self._resolver.ensure_network(cancel)
        learner = await self._resolver.find_learner(learner_id, cancel=cancel)
        if learner is None:
            logger.debug("No student record for learner=%s", learner_id)
            return ResultsSummary()

        repo = self._resolver.repo
        attempts = await call_remote(
            lambda: repo.list_attempts(learner.identities),
            "loading your test results",
            self._resolver.policy,
            cancel=cancel,
        )
        ids = set(learner.identities)
        summary = summarize((a for a in attempts if a.learner_id in ids), now, time_range)
        logger.info(
            "Summarized %d results for learner=%s range=%s",
            len(summary.results),
            learner_id,
            time_range.value,
            extra={"learner_id": learner_id},
        )
        return summary

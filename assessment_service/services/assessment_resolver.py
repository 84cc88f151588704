"""Assessment resolver: which tests a learner sees and may attempt.

Four pure decisions, then one composite that feeds them from the store:

  resolve_test_status   when is the test open?       (opens_at, closes_at, now)
  resolve_eligibility   is this learner enrolled?    (mode, eligibility set)
  resolve_completion    was the attempt used?        (attempt records)
  can_attempt           the combination of the three

The store does not enforce one attempt per (test, learner), so completion is
decided here, at read time, by set membership over the learner's attempt
records.  A test that is completed is never attemptable again, whatever its
window says.

resolve_tests_for_learner takes the learner id and the clock reading as
arguments.  Nothing here reads the session or the wall clock, which keeps
every decision reproducible in a test.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import time
from collections.abc import Iterable, Sequence

from assessment_service.core.metrics import (
    CACHE_OPERATIONS,
    RESOLUTION_DURATION,
    RESOLUTIONS,
    RESOLVED_TESTS,
)
from assessment_service.models.assessment import (
    AttemptRecord,
    EnrollmentMode,
    Learner,
    ResolvedTestView,
    Test,
    TestStatus,
)
from assessment_service.models.document import DocumentRef, where
from assessment_service.repos.assessment_repo import UNKNOWN_SUBJECT, AssessmentRepo
from assessment_service.repos.document_store import DocumentStore
from assessment_service.services.cache import CacheService
from assessment_service.services.connectivity import ConnectivityMonitor
from assessment_service.services.lookup_chain import LookupStrategy, first_non_empty
from assessment_service.services.resilience import (
    CancellationToken,
    ErrorCause,
    ResolutionError,
    RetryPolicy,
    await_network,
    call_remote,
    is_online,
)

logger = logging.getLogger(__name__)

ATTEMPTABLE = frozenset({TestStatus.UPCOMING, TestStatus.ONGOING})

OFFLINE_MESSAGE = (
    "No connection to the assessment store. Please check your network and try again."
)

# ---------------------------------------------------------------------------
# Pure decisions
# ---------------------------------------------------------------------------


def resolve_test_status(test: Test, now: datetime.datetime) -> TestStatus:
    # closes_at is checked first: a past close wins over any opens_at.
    if test.closes_at is not None and test.closes_at < now:
        return TestStatus.FINISHED
    if test.opens_at is not None and test.opens_at <= now:
        if test.closes_at is None or test.closes_at > now:
            return TestStatus.ONGOING
    if test.opens_at is not None and test.opens_at > now:
        return TestStatus.UPCOMING
    return TestStatus.PUBLISHED


def resolve_eligibility(test: Test, learner_ref: DocumentRef) -> bool:
    """Whole-cohort tests admit everyone the catalog query let through.

    Selective tests compare refs by path, so a ref rebuilt from a string id
    matches one stored on the test.
    """
    if test.enrollment_mode is EnrollmentMode.WHOLE_COHORT:
        return True
    return learner_ref in test.eligible_learners


def completed_tests(
    attempts: Iterable[AttemptRecord], learner_ids: Iterable[str]
) -> dict[str, AttemptRecord]:
    """Index the learner's attempt records by test id.

    When duplicates exist (the store allows them) the earliest record wins.
    """
    ids = set(learner_ids)
    index: dict[str, AttemptRecord] = {}
    for attempt in attempts:
        if attempt.learner_id not in ids or not attempt.test_id:
            continue
        current = index.get(attempt.test_id)
        if current is None or _earlier(attempt, current):
            index[attempt.test_id] = attempt
    return index


def _earlier(a: AttemptRecord, b: AttemptRecord) -> bool:
    if a.created_at is None:
        return False
    return b.created_at is None or a.created_at < b.created_at


def resolve_completion(
    attempts: Iterable[AttemptRecord],
    test_id: str,
    learner_id: str,
    *,
    aliases: Sequence[str] = (),
) -> bool:
    return test_id in completed_tests(attempts, (learner_id, *aliases))


def can_attempt(status: TestStatus, eligible: bool, completed: bool) -> bool:
    # UPCOMING counts as attemptable in principle; submission itself is
    # re-checked against the window by whoever records the attempt.
    return eligible and not completed and status in ATTEMPTABLE


def time_remaining(
    test: Test, now: datetime.datetime
) -> datetime.timedelta | None:
    if test.closes_at is None:
        return None
    return max(datetime.timedelta(0), test.closes_at - now)


def build_view(
    test: Test,
    learner: Learner,
    attempts_by_test: dict[str, AttemptRecord],
    subject_name: str,
    now: datetime.datetime,
) -> ResolvedTestView:
    status = resolve_test_status(test, now)
    eligible = resolve_eligibility(test, learner.ref)
    attempt = attempts_by_test.get(test.id)
    completed = attempt is not None
    return ResolvedTestView(
        test_id=test.id,
        name=test.name,
        subject_id=test.subject_id,
        subject_name=subject_name,
        opens_at=test.opens_at,
        closes_at=test.closes_at,
        enrollment_mode=test.enrollment_mode,
        total_questions=test.total_questions,
        status=status,
        eligible=eligible,
        completed=completed,
        can_attempt=can_attempt(status, eligible, completed),
        time_remaining=time_remaining(test, now),
        attempt_id=attempt.id if attempt is not None else None,
    )


def _sort_key(view: ResolvedTestView) -> tuple:
    opens = view.opens_at.timestamp() if view.opens_at is not None else float("-inf")
    return (opens, view.name, view.test_id)


# ---------------------------------------------------------------------------
# Composite resolution
# ---------------------------------------------------------------------------


class AssessmentResolver:
    """Runs the remote reads behind a resolution through the resilience layer."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        cache: CacheService | None = None,
        monitor: ConnectivityMonitor | None = None,
        policy: RetryPolicy = RetryPolicy(),
        network_timeout: float = 5.0,
        subject_cache_ttl: int = 300,
    ) -> None:
        self._repo = AssessmentRepo(store)
        self._cache = cache
        self._monitor = monitor
        self._policy = policy
        self._network_timeout = network_timeout
        self._subject_cache_ttl = subject_cache_ttl

    @property
    def repo(self) -> AssessmentRepo:
        return self._repo

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def ensure_network(self, cancel: CancellationToken | None = None) -> None:
        if is_online(self._monitor):
            return
        logger.info("Document store offline, waiting up to %ss", self._network_timeout)
        if not await await_network(
            self._network_timeout, monitor=self._monitor, cancel=cancel
        ):
            raise ResolutionError(ErrorCause.SERVICE_UNAVAILABLE, OFFLINE_MESSAGE)

    async def find_learner(
        self, learner_id: str, *, cancel: CancellationToken | None = None
    ) -> Learner | None:
        """Find the active student record for a document id or a user id."""

        # An inactive record must not end the chain: the same user may have
        # a newer, active record reachable by userId.
        async def by_document_id() -> list[Learner]:
            learner = await self._repo.get_learner(learner_id)
            if learner is None or not learner.is_active:
                return []
            return [learner]

        found = await first_non_empty(
            "learner",
            [
                LookupStrategy("document-id", by_document_id),
                LookupStrategy(
                    "user-id+active",
                    lambda: self._repo.find_learners(
                        [where("userId", "==", learner_id), where("isActive", "==", True)]
                    ),
                ),
                LookupStrategy(
                    "user-id",
                    lambda: self._repo.find_learners([where("userId", "==", learner_id)]),
                ),
            ],
            action="looking up the student record",
            policy=self._policy,
            cancel=cancel,
        )
        active = [learner for learner in found.items if learner.is_active]
        return active[0] if active else None

    async def resolve_tests_for_learner(
        self,
        learner_id: str,
        now: datetime.datetime,
        *,
        cancel: CancellationToken | None = None,
    ) -> list[ResolvedTestView]:
        """All tests the learner may see, with status and attemptability.

        Ineligible selective tests are left out entirely.  Any remote read
        that still fails after retries raises ResolutionError; there are no
        partial results.
        """
        start = time.monotonic()
        try:
            views = await self._resolve(learner_id, now, cancel)
        except ResolutionError as exc:
            RESOLUTIONS.labels(outcome="error").inc()
            logger.warning(
                "Test resolution failed for learner=%s: %s",
                learner_id,
                exc.message,
                extra={"learner_id": learner_id, "cause": exc.cause.value},
            )
            raise
        finally:
            RESOLUTION_DURATION.observe(time.monotonic() - start)

        RESOLUTIONS.labels(outcome="ok" if views else "empty").inc()
        for view in views:
            RESOLVED_TESTS.labels(status=view.status.value).inc()
        logger.info(
            "Resolved %d tests for learner=%s (%d attemptable)",
            len(views),
            learner_id,
            sum(1 for v in views if v.can_attempt),
            extra={"learner_id": learner_id},
        )
        return views

    async def _resolve(
        self,
        learner_id: str,
        now: datetime.datetime,
        cancel: CancellationToken | None,
    ) -> list[ResolvedTestView]:
        await self.ensure_network(cancel)

        learner = await self.find_learner(learner_id, cancel=cancel)
        if learner is None or not learner.cohort_id:
            logger.debug("No active cohort for learner=%s", learner_id)
            return []

        cohort_id = learner.cohort_id
        catalog = await call_remote(
            lambda: self._repo.list_published_tests(cohort_id),
            "loading the test catalog",
            self._policy,
            cancel=cancel,
        )
        attempts = await call_remote(
            lambda: self._repo.list_attempts(learner.identities),
            "loading your test results",
            self._policy,
            cancel=cancel,
        )

        visible = [
            t for t in catalog if t.published and resolve_eligibility(t, learner.ref)
        ]
        subject_names = await self._subject_names(
            [t.subject_id for t in visible if t.subject_id], cancel
        )
        attempts_by_test = completed_tests(attempts, learner.identities)

        views = [
            build_view(
                test,
                learner,
                attempts_by_test,
                subject_names.get(test.subject_id or "", UNKNOWN_SUBJECT),
                now,
            )
            for test in visible
        ]
        views.sort(key=_sort_key)
        return views

    async def _subject_names(
        self, subject_ids: Iterable[str], cancel: CancellationToken | None
    ) -> dict[str, str]:
        """Fan out one lookup per distinct subject and wait for all of them.

        A failing lookup cancels its siblings and fails the resolution.
        """
        ids = sorted(set(subject_ids))
        if not ids:
            return {}
        try:
            async with asyncio.TaskGroup() as tg:
                tasks = {
                    sid: tg.create_task(self._subject_name(sid, cancel)) for sid in ids
                }
        except ExceptionGroup as group:
            raise group.exceptions[0]
        return {sid: task.result() for sid, task in tasks.items()}

    async def _subject_name(
        self, subject_id: str, cancel: CancellationToken | None
    ) -> str:
        key = f"subject:{subject_id}:name"
        if self._cache is not None:
            try:
                cached = await self._cache.get(key)
            except Exception:
                logger.warning("Subject cache read failed", exc_info=True)
                cached = None
            if cached is not None:
                CACHE_OPERATIONS.labels(operation="hit").inc()
                return cached
            CACHE_OPERATIONS.labels(operation="miss").inc()

        name = await call_remote(
            lambda: self._repo.get_subject_name(subject_id),
            "loading subject details",
            self._policy,
            cancel=cancel,
        )

        if self._cache is not None and name != UNKNOWN_SUBJECT:
            try:
                await self._cache.set(key, name, self._subject_cache_ttl)
            except Exception:
                logger.warning("Subject cache write failed", exc_info=True)
        return name

"""Learner test dashboard endpoint.

  GET /v1/learners/{learner_id}/tests
    -> resolver: connectivity gate -> student record -> catalog
       -> attempt records -> subject names (fan-out, cached)
    -> one view per visible test, ordered by opening time

Every field of the response is recomputed per request.  Nothing about
attemptability is cached, so a submission is reflected on the next call.
"""

from __future__ import annotations

import datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from assessment_service.api.dependencies import (
    get_cancellation,
    get_clock,
    get_resolver,
    require_learner_access,
)
from assessment_service.models.assessment import ResolvedTestView
from assessment_service.models.principal import Principal
from assessment_service.services.assessment_resolver import AssessmentResolver
from assessment_service.services.resilience import CancellationToken

router = APIRouter(prefix="/v1/learners", tags=["assessments"])


class TestViewOut(BaseModel):
    test_id: str
    name: str
    subject_id: str | None
    subject_name: str
    opens_at: datetime.datetime | None
    closes_at: datetime.datetime | None
    enrollment_mode: str
    total_questions: int
    status: str
    eligible: bool
    completed: bool
    can_attempt: bool
    time_remaining_seconds: int | None
    time_remaining_label: str | None
    attempt_id: str | None

    @classmethod
    def from_view(cls, view: ResolvedTestView) -> TestViewOut:
        remaining = view.time_remaining
        return cls(
            test_id=view.test_id,
            name=view.name,
            subject_id=view.subject_id,
            subject_name=view.subject_name,
            opens_at=view.opens_at,
            closes_at=view.closes_at,
            enrollment_mode=view.enrollment_mode.value,
            total_questions=view.total_questions,
            status=view.status.value,
            eligible=view.eligible,
            completed=view.completed,
            can_attempt=view.can_attempt,
            time_remaining_seconds=(
                int(remaining.total_seconds()) if remaining is not None else None
            ),
            time_remaining_label=view.time_remaining_label,
            attempt_id=view.attempt_id,
        )


class TestListOut(BaseModel):
    learner_id: str
    resolved_at: datetime.datetime
    tests: list[TestViewOut]


@router.get("/{learner_id}/tests", response_model=TestListOut)
async def list_learner_tests(
    learner_id: str,
    _principal: Annotated[Principal, Depends(require_learner_access)],
    resolver: Annotated[AssessmentResolver, Depends(get_resolver)],
    now: Annotated[datetime.datetime, Depends(get_clock)],
    cancel: Annotated[CancellationToken, Depends(get_cancellation)],
) -> TestListOut:
    views = await resolver.resolve_tests_for_learner(learner_id, now, cancel=cancel)
    return TestListOut(
        learner_id=learner_id,
        resolved_at=now,
        tests=[TestViewOut.from_view(v) for v in views],
    )

from __future__ import annotations

import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from assessment_service.api.dependencies import (
    get_cancellation,
    get_clock,
    get_results_service,
    require_learner_access,
)
from assessment_service.models.assessment import AttemptRecord
from assessment_service.models.principal import Principal
from assessment_service.services.resilience import CancellationToken
from assessment_service.services.results_service import ResultsService, TimeRange

router = APIRouter(prefix="/v1/learners", tags=["results"])


class AttemptOut(BaseModel):
    id: str
    test_id: str
    test_name: str
    subject_name: str
    percentage_score: float
    grade: str
    created_at: datetime.datetime | None

    @classmethod
    def from_record(cls, record: AttemptRecord) -> AttemptOut:
        return cls(
            id=record.id,
            test_id=record.test_id,
            test_name=record.test_name,
            subject_name=record.subject_name,
            percentage_score=record.percentage_score,
            grade=record.grade,
            created_at=record.created_at,
        )


class ProgressPointOut(BaseModel):
    test_name: str
    percentage_score: float
    created_at: datetime.datetime | None


class ResultsOut(BaseModel):
    learner_id: str
    range: TimeRange
    results: list[AttemptOut]
    recent: list[AttemptOut]
    overall_average: float
    best_score: float | None
    progress: dict[str, list[ProgressPointOut]]


@router.get("/{learner_id}/results", response_model=ResultsOut)
async def get_learner_results(
    learner_id: str,
    _principal: Annotated[Principal, Depends(require_learner_access)],
    service: Annotated[ResultsService, Depends(get_results_service)],
    now: Annotated[datetime.datetime, Depends(get_clock)],
    cancel: Annotated[CancellationToken, Depends(get_cancellation)],
    time_range: Annotated[TimeRange, Query(alias="range")] = TimeRange.ALL,
) -> ResultsOut:
    summary = await service.summarize_results(
        learner_id, now, time_range, cancel=cancel
    )
    return ResultsOut(
        learner_id=learner_id,
        range=time_range,
        results=[AttemptOut.from_record(r) for r in summary.results],
        recent=[AttemptOut.from_record(r) for r in summary.recent],
        overall_average=summary.overall_average,
        best_score=summary.best_score,
        progress={
            subject: [
                ProgressPointOut(
                    test_name=p.test_name,
                    percentage_score=p.percentage_score,
                    created_at=p.created_at,
                )
                for p in points
            ]
            for subject, points in summary.progress.items()
        },
    )

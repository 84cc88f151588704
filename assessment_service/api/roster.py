from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from assessment_service.api.dependencies import (
    get_cancellation,
    get_roster_service,
    require_any_role,
)
from assessment_service.models.principal import STAFF_ROLES, Principal
from assessment_service.services.resilience import CancellationToken
from assessment_service.services.roster_service import RosterService

router = APIRouter(prefix="/v1/schools", tags=["roster"])


class StudentOut(BaseModel):
    id: str
    name: str
    class_id: str | None
    user_id: str | None
    is_active: bool


@router.get("/{school_id}/students", response_model=list[StudentOut])
async def list_school_students(
    school_id: str,
    _principal: Annotated[Principal, Depends(require_any_role(STAFF_ROLES))],
    service: Annotated[RosterService, Depends(get_roster_service)],
    cancel: Annotated[CancellationToken, Depends(get_cancellation)],
) -> list[StudentOut]:
    students = await service.list_school_students(school_id, cancel=cancel)
    return [
        StudentOut(
            id=s.id,
            name=s.name,
            class_id=s.cohort_id,
            user_id=s.user_id,
            is_active=s.is_active,
        )
        for s in students
    ]

from __future__ import annotations

import logging

from assessment_service.models.assessment import Learner
from assessment_service.models.document import DocumentRef, where
from assessment_service.repos.assessment_repo import SCHOOLS, AssessmentRepo
from assessment_service.services.lookup_chain import LookupStrategy, first_non_empty
from assessment_service.services.resilience import CancellationToken, RetryPolicy

logger = logging.getLogger(__name__)


class RosterService:
    """Students of a school, for staff views.

    schoolId was written as a schools/<id> ref by newer clients and as a
    plain string by older ones.  Active records under the ref form are
    preferred; inactive ones are still listed when nothing else matches.
    """

    def __init__(self, repo: AssessmentRepo, policy: RetryPolicy = RetryPolicy()) -> None:
        self._repo = repo
        self._policy = policy

    async def list_school_students(
        self, school_id: str, *, cancel: CancellationToken | None = None
    ) -> list[Learner]:
        school_ref = DocumentRef(SCHOOLS, school_id)
        found = await first_non_empty(
            "roster",
            [
                LookupStrategy(
                    "ref+active",
                    lambda: self._repo.find_learners(
                        [where("schoolId", "==", school_ref), where("isActive", "==", True)]
                    ),
                ),
                LookupStrategy(
                    "ref",
                    lambda: self._repo.find_learners([where("schoolId", "==", school_ref)]),
                ),
                LookupStrategy(
                    "string-id",
                    lambda: self._repo.find_learners([where("schoolId", "==", school_id)]),
                ),
            ],
            action="loading the school roster",
            policy=self._policy,
            cancel=cancel,
        )
        logger.info(
            "Roster for school=%s: %d students (strategy=%s)",
            school_id,
            len(found.items),
            found.strategy,
        )
        return sorted(found.items, key=lambda s: (s.name.lower(), s.id))

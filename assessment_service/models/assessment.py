from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass

from assessment_service.models.document import DocumentRef


class TestStatus(enum.StrEnum):
    __test__ = False  # keep pytest from collecting this as a test class

    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    FINISHED = "finished"
    PUBLISHED = "published"  # open, no window enforced


class EnrollmentMode(enum.StrEnum):
    WHOLE_COHORT = "whole-cohort"
    SELECTIVE = "selective"


@dataclass(frozen=True, slots=True)
class Test:
    """A scheduled assessment.

    opens_at None means already open; closes_at None means it never closes.
    """

    __test__ = False

    id: str
    name: str
    cohort_id: str
    subject_id: str | None = None
    opens_at: datetime.datetime | None = None
    closes_at: datetime.datetime | None = None
    enrollment_mode: EnrollmentMode = EnrollmentMode.WHOLE_COHORT
    eligible_learners: frozenset[DocumentRef] = frozenset()
    total_questions: int = 0
    published: bool = False


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    id: str
    test_id: str
    learner_id: str
    percentage_score: float = 0.0
    grade: str = "F"
    created_at: datetime.datetime | None = None
    test_name: str = "Unknown Test"
    subject_name: str = "Unknown Subject"


@dataclass(frozen=True, slots=True)
class Learner:
    """A resolution subject.

    `id` is the student document id; `user_id` is the auth subject, which
    attempt records from older clients use instead.
    """

    id: str
    cohort_id: str | None
    user_id: str | None = None
    school_id: str | None = None
    name: str = ""
    is_active: bool = True

    @property
    def ref(self) -> DocumentRef:
        return DocumentRef(collection="students", id=self.id)

    @property
    def identities(self) -> tuple[str, ...]:
        if self.user_id and self.user_id != self.id:
            return (self.id, self.user_id)
        return (self.id,)


@dataclass(frozen=True, slots=True)
class ResolvedTestView:
    """Per-learner decision for one test.  Recomputed on every resolution."""

    test_id: str
    name: str
    subject_id: str | None
    subject_name: str
    opens_at: datetime.datetime | None
    closes_at: datetime.datetime | None
    enrollment_mode: EnrollmentMode
    total_questions: int
    status: TestStatus
    eligible: bool
    completed: bool
    can_attempt: bool
    time_remaining: datetime.timedelta | None
    attempt_id: str | None = None

    @property
    def time_remaining_label(self) -> str | None:
        if self.time_remaining is None:
            return None
        return format_time_remaining(self.time_remaining)


_GRADE_BANDS = (
    (90, "A+"),
    (80, "A"),
    (70, "B+"),
    (60, "B"),
    (50, "C"),
    (40, "D"),
)


def calculate_grade(percentage: float) -> str:
    for floor, grade in _GRADE_BANDS:
        if percentage >= floor:
            return grade
    return "F"


def format_time_remaining(remaining: datetime.timedelta) -> str:
    """'3h 5m' style label; negative durations render as 0h 0m."""
    total_minutes = max(0, int(remaining.total_seconds()) // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"

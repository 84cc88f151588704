"""Typed reads over the school's document collections.

The collections were written by several generations of client code, so the
decoders here accept every shape seen in the data:

  - timestamps as datetimes, epoch seconds, {"seconds": n} maps or ISO strings
  - cohort/school fields as plain ids or DocumentRefs
  - eligibility entries as DocumentRefs, "students/<id>" paths or bare ids

Everything downstream works with the frozen models only.
"""

from __future__ import annotations

import datetime
from collections.abc import Sequence
from typing import Any

from assessment_service.models.assessment import (
    AttemptRecord,
    EnrollmentMode,
    Learner,
    Test,
    calculate_grade,
)
from assessment_service.models.document import (
    Document,
    DocumentRef,
    FieldFilter,
    where,
)
from assessment_service.repos.document_store import DocumentStore

STUDENTS = "students"
TESTS = "test"
ATTEMPTS = "testResults"
SUBJECTS = "subjects"
CLASSES = "classes"
SCHOOLS = "schools"

UNKNOWN_SUBJECT = "Unknown Subject"


class AssessmentRepo:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get_learner(self, learner_id: str) -> Learner | None:
        doc = await self._store.fetch_one(STUDENTS, learner_id)
        return decode_learner(doc) if doc is not None else None

    async def find_learners(self, filters: Sequence[FieldFilter]) -> list[Learner]:
        docs = await self._store.fetch_many(STUDENTS, filters)
        return [decode_learner(d) for d in docs]

    async def list_published_tests(self, cohort_id: str) -> list[Test]:
        # classId is stored both as a plain id and as a classes/<id> ref
        docs = await self._store.fetch_many(
            TESTS,
            [
                where("classId", "in", [cohort_id, DocumentRef(CLASSES, cohort_id)]),
                where("online", "==", True),
            ],
        )
        return [decode_test(d) for d in docs]

    async def list_attempts(self, learner_ids: Sequence[str]) -> list[AttemptRecord]:
        if not learner_ids:
            return []
        keys: list[object] = list(learner_ids)
        keys.extend(DocumentRef(STUDENTS, i) for i in learner_ids)
        docs = await self._store.fetch_many(ATTEMPTS, [where("studentId", "in", keys)])
        return [decode_attempt(d) for d in docs]

    async def get_subject_name(self, subject_id: str) -> str:
        doc = await self._store.fetch_one(SUBJECTS, subject_id)
        if doc is None:
            return UNKNOWN_SUBJECT
        return doc.get("name") or UNKNOWN_SUBJECT


# ---------------------------------------------------------------------------
# Decoders
# ---------------------------------------------------------------------------


def to_datetime(value: Any) -> datetime.datetime | None:
    if value is None or value == "":
        return None
    try:
        if isinstance(value, datetime.datetime):
            dt = value
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            dt = datetime.datetime.fromtimestamp(value, datetime.UTC)
        elif isinstance(value, dict) and "seconds" in value:
            seconds = value["seconds"] + value.get("nanoseconds", 0) / 1e9
            dt = datetime.datetime.fromtimestamp(seconds, datetime.UTC)
        elif isinstance(value, str):
            dt = datetime.datetime.fromisoformat(value)
        else:
            return None
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.UTC)
    return dt


def ref_id(value: Any) -> str | None:
    """Id of a field that may hold a DocumentRef or a plain id."""
    if isinstance(value, DocumentRef):
        return value.id
    if isinstance(value, str) and value:
        return value
    return None


def to_learner_ref(value: Any) -> DocumentRef | None:
    if isinstance(value, DocumentRef):
        return value
    if isinstance(value, str) and value:
        if "/" in value:
            try:
                return DocumentRef.from_path(value)
            except ValueError:
                return None
        return DocumentRef(STUDENTS, value)
    return None


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def decode_learner(doc: Document) -> Learner:
    return Learner(
        id=doc.id,
        cohort_id=ref_id(doc.get("classId")),
        user_id=ref_id(doc.get("userId")),
        school_id=ref_id(doc.get("schoolId")),
        name=doc.get("name") or "",
        is_active=doc.get("isActive", True) is not False,
    )


def decode_test(doc: Document) -> Test:
    whole_class = doc.get("wholeClass", True) is not False
    refs = (to_learner_ref(v) for v in doc.get("userID") or ())
    questions = doc.get("questions")
    total = doc.get("totalQuestions")
    if total is None and isinstance(questions, list):
        total = len(questions)
    return Test(
        id=doc.id,
        name=doc.get("name") or doc.get("testName") or "Untitled Test",
        cohort_id=ref_id(doc.get("classId")) or "",
        subject_id=ref_id(doc.get("subjectId")),
        opens_at=to_datetime(doc.get("start")),
        closes_at=to_datetime(doc.get("end")),
        enrollment_mode=(
            EnrollmentMode.WHOLE_COHORT if whole_class else EnrollmentMode.SELECTIVE
        ),
        eligible_learners=frozenset(r for r in refs if r is not None),
        total_questions=_as_int(total),
        published=doc.get("online") is True,
    )


def decode_attempt(doc: Document) -> AttemptRecord:
    score = _as_float(doc.get("percentageScore"))
    return AttemptRecord(
        id=doc.id,
        test_id=ref_id(doc.get("testId")) or "",
        learner_id=ref_id(doc.get("studentId")) or "",
        percentage_score=score,
        grade=doc.get("grade") or calculate_grade(score),
        created_at=to_datetime(doc.get("createdAt")),
        test_name=doc.get("testName") or "Unknown Test",
        subject_name=doc.get("subjectName") or UNKNOWN_SUBJECT,
    )

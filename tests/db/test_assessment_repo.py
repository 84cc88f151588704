"""Decoder tests: every field shape the collections are known to contain."""

from __future__ import annotations

import datetime

import pytest

from assessment_service.models.assessment import EnrollmentMode
from assessment_service.models.document import Document, DocumentRef
from assessment_service.repos.assessment_repo import (
    decode_attempt,
    decode_learner,
    decode_test,
    to_datetime,
    to_learner_ref,
)

TS = datetime.datetime(2026, 1, 5, 8, 30, tzinfo=datetime.UTC)


@pytest.mark.parametrize(
    "value",
    [
        TS,
        TS.timestamp(),
        {"seconds": int(TS.timestamp()), "nanoseconds": 0},
        "2026-01-05T08:30:00+00:00",
        "2026-01-05T08:30:00",
    ],
)
def test_to_datetime_accepts_known_shapes(value) -> None:
    assert to_datetime(value) == TS


@pytest.mark.parametrize("value", [None, "", "next tuesday", True, [], {"nanos": 1}])
def test_to_datetime_rejects_garbage(value) -> None:
    assert to_datetime(value) is None


def test_learner_refs_from_every_shape() -> None:
    expected = DocumentRef("students", "s1")
    assert to_learner_ref(expected) == expected
    assert to_learner_ref("students/s1") == expected
    assert to_learner_ref("s1") == expected
    assert to_learner_ref("") is None
    assert to_learner_ref(7) is None


def test_decode_learner_with_references() -> None:
    learner = decode_learner(
        Document(
            "students",
            "s1",
            {
                "classId": DocumentRef("classes", "7a"),
                "schoolId": DocumentRef("schools", "sch"),
                "userId": "u1",
                "name": "Ada",
            },
        )
    )
    assert learner.cohort_id == "7a"
    assert learner.school_id == "sch"
    assert learner.is_active is True
    assert learner.identities == ("s1", "u1")


def test_decode_learner_explicitly_inactive() -> None:
    learner = decode_learner(Document("students", "s1", {"isActive": False}))
    assert learner.is_active is False
    assert learner.cohort_id is None
    assert learner.identities == ("s1",)


def test_decode_selective_test() -> None:
    test = decode_test(
        Document(
            "test",
            "t1",
            {
                "name": "Fractions",
                "classId": "7a",
                "wholeClass": False,
                "userID": [DocumentRef("students", "a"), "students/b", "c", None],
                "start": TS,
                "online": True,
                "questions": [{}, {}, {}],
            },
        )
    )
    assert test.enrollment_mode is EnrollmentMode.SELECTIVE
    assert test.eligible_learners == frozenset(
        DocumentRef("students", i) for i in ("a", "b", "c")
    )
    assert test.opens_at == TS
    assert test.closes_at is None
    assert test.total_questions == 3
    assert test.published is True


def test_decode_test_defaults() -> None:
    test = decode_test(Document("test", "t1", {"online": "yes"}))
    assert test.name == "Untitled Test"
    assert test.enrollment_mode is EnrollmentMode.WHOLE_COHORT
    assert test.published is False


def test_decode_attempt_fills_missing_fields() -> None:
    attempt = decode_attempt(
        Document(
            "testResults",
            "r1",
            {"testId": "t1", "studentId": DocumentRef("students", "s1"), "percentageScore": "55"},
        )
    )
    assert attempt.learner_id == "s1"
    assert attempt.percentage_score == 55.0
    assert attempt.grade == "C"
    assert attempt.subject_name == "Unknown Subject"
    assert attempt.created_at is None

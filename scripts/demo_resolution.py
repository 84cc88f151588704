"""Demo: seed a small school and walk a learner's dashboard through the API.

Run with:
    python scripts/demo_resolution.py

Uses the in-memory document store, so leave DATABASE_URL unset.
"""

from __future__ import annotations

import datetime

from fastapi.testclient import TestClient

from assessment_service.api.dependencies import document_store
from assessment_service.main import app
from assessment_service.models.document import DocumentRef
from assessment_service.repos.document_store import InMemoryDocumentStore
from assessment_service.services import token_service

HOUR = datetime.timedelta(hours=1)


def seed(store: InMemoryDocumentStore, now: datetime.datetime) -> None:
    store.put("subjects", "math", {"name": "Mathematics"})
    store.put("subjects", "sci", {"name": "Science"})
    store.put(
        "students",
        "stu-ada",
        {
            "name": "Ada",
            "userId": "user-ada",
            "classId": DocumentRef("classes", "7a"),
            "schoolId": DocumentRef("schools", "riverside"),
            "isActive": True,
        },
    )
    common = {"classId": "7a", "online": True, "totalQuestions": 20}
    store.put("test", "fractions", {**common, "name": "Fractions", "subjectId": "math",
                                    "start": now - HOUR, "end": now + 2 * HOUR})
    store.put("test", "cells", {**common, "name": "Cells", "subjectId": "sci",
                                "start": now + 24 * HOUR, "end": now + 26 * HOUR})
    store.put("test", "algebra", {**common, "name": "Algebra", "subjectId": "math",
                                  "start": now - 48 * HOUR, "end": now - 46 * HOUR})
    store.put("test", "makeup", {**common, "name": "Make-up quiz", "subjectId": "math",
                                 "wholeClass": False, "userID": ["students/stu-bob"]})
    store.put("testResults", "r1", {"testId": "algebra", "studentId": "user-ada",
                                    "percentageScore": 84, "createdAt": now - 47 * HOUR,
                                    "testName": "Algebra", "subjectName": "Mathematics"})


def main() -> None:
    if not isinstance(document_store, InMemoryDocumentStore):
        raise SystemExit("unset DATABASE_URL to run the demo")

    now = datetime.datetime.now(datetime.UTC)
    seed(document_store, now)
    client = TestClient(app)
    token = token_service.create_access_token(sub="user-ada", roles=["student"])
    headers = {"Authorization": f"Bearer {token}"}

    resp = client.get("/v1/learners/user-ada/tests", headers=headers)
    print(f"GET /v1/learners/user-ada/tests -> {resp.status_code}")
    for test in resp.json()["tests"]:
        print(
            f"  {test['name']:<14} {test['subject_name']:<12} {test['status']:<9}"
            f" can_attempt={test['can_attempt']!s:<5} left={test['time_remaining_label']}"
        )

    resp = client.get("/v1/learners/user-ada/results", headers=headers)
    body = resp.json()
    print(f"GET /v1/learners/user-ada/results -> {resp.status_code}")
    print(f"  average={body['overall_average']} best={body['best_score']}")


if __name__ == "__main__":
    main()

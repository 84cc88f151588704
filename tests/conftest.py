from __future__ import annotations

import datetime
import sys
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from assessment_service.api.dependencies import document_store, get_clock
from assessment_service.main import app
from assessment_service.models.document import DocumentRef
from assessment_service.repos.document_store import InMemoryDocumentStore
from assessment_service.services import resilience, token_service
from assessment_service.services.cache import cache_service
from assessment_service.services.connectivity import connectivity_monitor

# Ensure repo root is on sys.path so `import tests.conftest` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

NOW = datetime.datetime(2026, 3, 10, 12, 0, tzinfo=datetime.UTC)
HOUR = datetime.timedelta(hours=1)


@pytest.fixture(autouse=True)
def reset_document_store() -> None:
    """Clear the in-memory document store between tests."""
    if isinstance(document_store, InMemoryDocumentStore):
        document_store.clear()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_connectivity() -> None:
    connectivity_monitor.reset()


@pytest.fixture(autouse=True)
def reset_overrides():
    yield
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def backoff_delays(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record backoff delays instead of sleeping through them."""
    delays: list[float] = []

    async def _fake_sleep(delay: float, cancel) -> None:
        delays.append(delay)
        if cancel is not None:
            cancel.raise_if_cancelled()

    monkeypatch.setattr(resilience, "_sleep", _fake_sleep)
    return delays


@pytest.fixture
def store() -> InMemoryDocumentStore:
    assert isinstance(document_store, InMemoryDocumentStore)
    return document_store


@pytest.fixture
def client() -> TestClient:
    app.dependency_overrides[get_clock] = lambda: NOW
    return TestClient(app)


def mint_token(
    username: str = "stu-1",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


def add_student(
    store: InMemoryDocumentStore,
    student_id: str = "stu-1",
    *,
    class_id: str = "class-7a",
    school_id: str = "school-1",
    **fields: Any,
) -> None:
    data: dict[str, Any] = {
        "name": f"Student {student_id}",
        "classId": class_id,
        "schoolId": DocumentRef("schools", school_id),
        "isActive": True,
    }
    data.update(fields)
    store.put("students", student_id, data)


def add_test(
    store: InMemoryDocumentStore,
    test_id: str,
    *,
    class_id: str = "class-7a",
    start: datetime.datetime | None = NOW - HOUR,
    end: datetime.datetime | None = NOW + HOUR,
    **fields: Any,
) -> None:
    data: dict[str, Any] = {
        "name": f"Test {test_id}",
        "classId": class_id,
        "online": True,
        "wholeClass": True,
        "subjectId": "math",
        "totalQuestions": 10,
    }
    if start is not None:
        data["start"] = start
    if end is not None:
        data["end"] = end
    data.update(fields)
    store.put("test", test_id, data)


def add_attempt(
    store: InMemoryDocumentStore,
    attempt_id: str,
    *,
    test_id: str,
    student_id: str = "stu-1",
    score: float = 80.0,
    created_at: datetime.datetime = NOW - HOUR,
    **fields: Any,
) -> None:
    data: dict[str, Any] = {
        "testId": test_id,
        "studentId": student_id,
        "percentageScore": score,
        "createdAt": created_at,
        "testName": f"Test {test_id}",
        "subjectName": "Mathematics",
    }
    data.update(fields)
    store.put("testResults", attempt_id, data)


def add_subject(store: InMemoryDocumentStore, subject_id: str, name: str) -> None:
    store.put("subjects", subject_id, {"name": name})

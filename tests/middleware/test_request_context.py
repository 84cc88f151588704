from __future__ import annotations

import logging
import uuid

from fastapi.testclient import TestClient

from assessment_service.middleware.request_context import (
    _RequestContextFilter,
    install_request_id_filter,
    request_id_var,
)
from tests.conftest import auth


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    uuid.UUID(resp.headers["x-request-id"])


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "my-custom-request-id-123"})
    assert resp.headers.get("x-request-id") == "my-custom-request-id-123"


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get("/v1/learners/stu-1/tests", headers=auth("bogus"))
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def test_request_id_reset_after_request(client: TestClient) -> None:
    client.get("/health", headers={"X-Request-ID": "leaky"})
    assert request_id_var.get() == "-"


def test_filter_stamps_current_request_id() -> None:
    record = logging.LogRecord("x", logging.INFO, "x.py", 1, "m", (), None)
    token = request_id_var.set("req-42")
    try:
        _RequestContextFilter().filter(record)
    finally:
        request_id_var.reset(token)
    assert record.request_id == "req-42"  # type: ignore[attr-defined]


def test_install_is_idempotent() -> None:
    install_request_id_filter()
    install_request_id_filter()
    root = logging.getLogger()
    assert sum(isinstance(f, _RequestContextFilter) for f in root.filters) == 1

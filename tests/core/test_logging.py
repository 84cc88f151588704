from __future__ import annotations

import logging

import pytest

from assessment_service.core.logging import _ContainerFormatter, setup_logging


def _record(level: int, msg: str = "hello", lineno: int = 1) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="resolver.py",
        lineno=lineno,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_setup_logging_sets_root_level() -> None:
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG

    setup_logging("warning")
    assert logging.getLogger().level == logging.WARNING


def test_setup_logging_defaults_to_info_for_unknown_level() -> None:
    setup_logging("nonexistent")
    assert logging.getLogger().level == logging.INFO


@pytest.mark.parametrize("name", ["uvicorn", "httpx", "sqlalchemy.engine"])
def test_setup_logging_quiets_noisy_libraries(name: str) -> None:
    setup_logging("debug")
    assert logging.getLogger(name).level == logging.WARNING


def test_setup_logging_allows_uvicorn_at_error() -> None:
    setup_logging("error")
    assert logging.getLogger("uvicorn").level == logging.ERROR


def test_formatter_excludes_location_for_info() -> None:
    output = _ContainerFormatter().format(_record(logging.INFO))
    assert "hello" in output
    assert "[resolver.py:" not in output


def test_formatter_includes_location_for_warning() -> None:
    output = _ContainerFormatter().format(_record(logging.WARNING, "retrying", 42))
    assert "retrying" in output
    assert "[resolver.py:42]" in output

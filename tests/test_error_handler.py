"""Tests for the error stack and action dispatch."""

import pytest

from cpc.core import error_handler as error_handler_module
from cpc.core.error_handler import ErrorHandler
from cpc.exceptions import CommandAborted
from cpc.models.errors import ErrorAction, ErrorKind, Severity


@pytest.fixture
def errors(quiet_logger) -> ErrorHandler:
    return ErrorHandler(quiet_logger)


def test_abort_raises_with_kind_exit_code(errors):
    with pytest.raises(CommandAborted) as excinfo:
        errors.handle(ErrorKind.VALIDATION, "bad input", Severity.MEDIUM, ErrorAction.ABORT)

    assert excinfo.value.exit_code == 105
    assert excinfo.value.record is errors.get_last()


def test_retry_returns_true_and_warn_continue_return_false(errors):
    assert errors.handle(ErrorKind.NETWORK, "flaky", Severity.LOW, ErrorAction.RETRY) is True
    assert errors.handle(ErrorKind.NETWORK, "flaky", Severity.LOW, ErrorAction.WARN) is False
    assert errors.handle(ErrorKind.NETWORK, "flaky", Severity.LOW, ErrorAction.CONTINUE) is False
    assert errors.get_count() == 3


def test_severity_does_not_decide_the_action(errors):
    # Critical severity with CONTINUE must not abort
    assert errors.handle(ErrorKind.CONFIGURATION, "missing", Severity.CRITICAL, ErrorAction.CONTINUE) is False
    assert errors.has_critical()


def test_clear_empties_the_stack(errors):
    errors.push(ErrorKind.EXECUTION, "failed")
    errors.clear()
    assert errors.get_count() == 0
    assert errors.get_last() is None


def test_report_lists_records(errors, tmp_path):
    errors.push(ErrorKind.EXECUTION, "playbook failed", Severity.HIGH, "pb_add_nodes.yml")
    errors.push(ErrorKind.TIMEOUT, "ssh timed out", Severity.MEDIUM)

    report = errors.generate_report(tmp_path / "reports" / "errors.txt")

    text = report.read_text()
    assert f"Correlation ID: {errors.correlation_id}" in text
    assert "Total Errors: 2" in text
    assert "playbook failed" in text
    assert "pb_add_nodes.yml" in text


def test_require_tool_aborts_with_dependency_code(errors, monkeypatch):
    monkeypatch.setattr(error_handler_module.shutil, "which", lambda name: None)

    with pytest.raises(CommandAborted) as excinfo:
        errors.require_tool("tofu")

    assert excinfo.value.exit_code == ErrorKind.DEPENDENCY.code
    assert errors.has_critical()


def test_require_tool_returns_path(errors, monkeypatch):
    monkeypatch.setattr(error_handler_module.shutil, "which", lambda name: f"/usr/bin/{name}")
    assert errors.require_tool("kubectl") == "/usr/bin/kubectl"

"""Tests for checkpoints, rollback bookkeeping and reports."""

import pytest

from cpc.core.recovery import RecoveryEngine, RecoveryState
from cpc.core.runner import CommandRunner
from cpc.exceptions import ConfigurationError
from cpc.models.results import ExecutionResult


@pytest.fixture
def engine(quiet_logger, tmp_path) -> RecoveryEngine:
    return RecoveryEngine(CommandRunner(quiet_logger), quiet_logger, tmp_path / "reports")


def test_success_records_pre_and_post(engine):
    result = engine.execute(lambda: 0, "apply")

    assert result.is_success
    assert engine.checkpoint_names() == ["pre_apply", "post_apply"]
    assert engine.state is RecoveryState.CLEAN
    assert not engine.is_needed()


def test_failed_validation_is_only_a_warning(engine):
    result = engine.execute(lambda: 0, "apply", validate_fn=lambda: False)

    assert result.is_success
    assert "unvalidated_apply" in engine.checkpoint_names()
    assert engine.state is RecoveryState.CLEAN


def test_failure_with_confirmed_rollback_is_recovered(engine):
    result = engine.execute(lambda: ExecutionResult(returncode=2), "drain", rollback_fn=lambda: True)

    assert result.returncode == 2
    assert engine.state is RecoveryState.RECOVERED
    assert "failed_drain" in engine.checkpoint_names()
    assert "rollback_drain" in engine.checkpoint_names()
    assert engine.rollbacks[-1].succeeded


def test_unconfirmed_rollback_leaves_state_failed(engine):
    engine.execute(lambda: 1, "drain", rollback_fn=lambda: False)

    assert engine.state is RecoveryState.FAILED
    assert engine.is_needed()
    assert not engine.rollbacks[-1].succeeded
    assert "rollback_drain" not in engine.checkpoint_names()


def test_raising_operation_is_recorded_and_rolled_back(engine):
    rolled_back = []

    def operation():
        raise ConfigurationError("Playbook not found: pb_missing.yml")

    def rollback():
        rolled_back.append(True)
        return False

    with pytest.raises(ConfigurationError):
        engine.execute(operation, "thing", rollback_fn=rollback)

    assert engine.checkpoint_names() == ["pre_thing", "failed_thing"]
    assert engine.checkpoints[-1].description == "Playbook not found: pb_missing.yml"
    assert rolled_back == [True]
    assert engine.state is RecoveryState.FAILED
    assert not engine.rollbacks[-1].succeeded


def test_raising_operation_with_confirmed_rollback_is_recovered(engine):
    def operation():
        raise ConfigurationError("boom")

    with pytest.raises(ConfigurationError):
        engine.execute(operation, "thing", rollback_fn=lambda: True)

    assert engine.state is RecoveryState.RECOVERED
    assert "rollback_thing" in engine.checkpoint_names()


def test_missing_rollback_is_recorded(engine):
    engine.execute(lambda: 1, "remove")
    assert engine.rollbacks[-1].detail == "no rollback action"


def test_ansible_preset_never_claims_recovery(engine):
    engine.ansible_operation(lambda: 2, "pb_add_nodes.yml")
    assert engine.state is RecoveryState.FAILED


def test_rollback_to_known_and_unknown_checkpoints(engine):
    engine.checkpoint("drain_start", data={"node": "10.0.0.5"})

    assert engine.rollback_to("drain_start") is True
    assert "rollback_to_drain_start" in engine.checkpoint_names()
    assert engine.rollback_to("nope") is False


def test_report_defaults_to_reports_dir(engine, tmp_path):
    engine.checkpoint("addon_validation_failed", data={"addon": "nonexistent"})
    engine.execute(lambda: 1, "upgrade")

    report = engine.generate_report()

    assert report.parent == tmp_path / "reports"
    assert engine.last_report == report
    text = report.read_text()
    assert "addon_validation_failed" in text
    assert "Current State: FAILED" in text
    assert "best effort" in text

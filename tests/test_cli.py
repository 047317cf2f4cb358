"""Tests for CLI commands."""
import json
from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from alerts.factory import build_components
from main import cli
from fakes import make_anomaly, FakeDetector


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def components(temp_db, sample_config):
    return build_components(sample_config, temp_db, detector=FakeDetector())


def _invoke(runner, components, args):
    return runner.invoke(cli, args, obj={"_components": components})


def test_cli_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Pet Health Alerts" in result.output


def test_cli_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output


def test_rules_help(runner):
    result = runner.invoke(cli, ["rules", "--help"])
    assert result.exit_code == 0
    for cmd in ("list", "add", "delete", "defaults"):
        assert cmd in result.output


def test_rules_add_from_options_and_list(runner, components):
    result = _invoke(runner, components, [
        "rules", "add", "u1", "--name", "Frequency watch", "--pet", "p1",
        "--type", "frequency", "--severity", "high", "--confidence", "80",
        "--max-per-day", "1", "--cooldown", "6",
    ])
    assert result.exit_code == 0, result.output
    assert "Created rule" in result.output

    result = _invoke(runner, components, ["rules", "list", "u1"])
    assert result.exit_code == 0
    assert "Frequency" in result.output


def test_rules_add_from_file(runner, components, tmp_path):
    path = tmp_path / "rule.yaml"
    path.write_text(yaml.safe_dump({
        "name": "From file",
        "triggers": {"anomaly_types": ["health_decline"], "severity_levels": ["medium", "high"]},
    }))
    result = _invoke(runner, components, ["rules", "add", "u1", "--file", str(path)])
    assert result.exit_code == 0, result.output
    assert components["rules"].get_user_rules("u1")[0].name == "From file"


def test_rules_add_invalid(runner, components):
    result = _invoke(runner, components, ["rules", "add", "u1", "--name", "No triggers"])
    assert result.exit_code == 1
    assert "Invalid rule" in result.output


def test_rules_delete(runner, components):
    _invoke(runner, components, ["rules", "defaults", "u1"])
    rule_id = components["rules"].get_user_rules("u1")[0].id
    assert _invoke(runner, components, ["rules", "delete", str(rule_id)]).exit_code == 0
    assert _invoke(runner, components, ["rules", "delete", str(rule_id)]).exit_code == 1


def test_rules_defaults(runner, components):
    result = _invoke(runner, components, ["rules", "defaults", "u1"])
    assert result.exit_code == 0
    assert "Created 3 default rule(s)" in result.output


def test_check_triggers_and_json(runner, components):
    _invoke(runner, components, ["rules", "defaults", "u1"])
    components["detector"].anomalies["p1"] = [
        make_anomaly(anomaly_type="health_decline", severity="high", confidence=90),
    ]
    result = _invoke(runner, components, ["check", "u1", "p1", "--json"])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert len(data) == 1
    assert data[0]["ruleName"] == "Declining health warning"


def test_check_dry_run_does_not_trigger(runner, components):
    _invoke(runner, components, ["rules", "defaults", "u1"])
    components["detector"].anomalies["p1"] = [make_anomaly(anomaly_type="frequency", severity="high")]
    result = _invoke(runner, components, ["check", "u1", "p1", "--dry-run"])
    assert result.exit_code == 0, result.output
    assert components["rules"].get_statistics("u1")["totalTriggered"] == 0


def test_check_failure_exits_nonzero(runner, components):
    _invoke(runner, components, ["rules", "defaults", "u1"])
    components["detector"].errors["p1"] = RuntimeError("detector down")
    result = _invoke(runner, components, ["check", "u1", "p1"])
    assert result.exit_code == 1
    assert "Alert check failed" in result.output


def test_batch_json(runner, components):
    result = _invoke(runner, components, ["batch", "--json"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["totalUsersChecked"] == 0


def test_stats_and_notifications(runner, components):
    _invoke(runner, components, ["users", "set", "u1", "--email", "owner@test.com"])
    _invoke(runner, components, ["pets", "add", "p1", "u1", "Biscuit"])
    _invoke(runner, components, ["rules", "defaults", "u1"])
    components["detector"].anomalies["p1"] = [make_anomaly(confidence=90)]
    _invoke(runner, components, ["check", "u1", "p1"])

    stats = json.loads(_invoke(runner, components, ["stats", "u1", "--json"]).stdout)
    assert stats["totalTriggered"] == 1

    result = _invoke(runner, components, ["notifications", "u1"])
    assert result.exit_code == 0
    assert len(components["db"].get_notifications("u1")) == 1
    assert components["db"].get_contact("u1")["email"] == "owner@test.com"


def test_real_components_from_env(runner, tmp_path, monkeypatch):
    monkeypatch.setenv("PET_ALERTS_DB_PATH", str(tmp_path / "cli.db"))
    result = runner.invoke(cli, ["rules", "defaults", "u1"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / "cli.db").exists()


def test_users_set_token_keeps_email(runner, components):
    _invoke(runner, components, ["users", "set", "u1", "--email", "owner@test.com"])
    result = _invoke(runner, components, ["users", "set", "u1", "--token", "abc"])
    assert result.exit_code == 0
    assert components["db"].get_contact("u1") == {"email": "owner@test.com", "device_tokens": ["abc"]}


def test_rules_templates_and_add_from_template(runner, components):
    result = _invoke(runner, components, ["rules", "templates", "--json"])
    assert result.exit_code == 0
    assert "emergency_alert" in [t["id"] for t in json.loads(result.stdout)]

    result = _invoke(runner, components, ["rules", "add", "u1", "--template", "emergency_alert",
                                          "--pet", "p1"])
    assert result.exit_code == 0, result.output
    rules = components["rules"].get_user_rules("u1")
    assert [(r.name, r.pet_id) for r in rules] == [("Emergency health alert", "p1")]

    assert _invoke(runner, components, ["rules", "add", "u1", "--template", "nope"]).exit_code == 1


def test_notification_stats_json(runner, components):
    _invoke(runner, components, ["rules", "defaults", "u1"])
    components["detector"].anomalies["p1"] = [make_anomaly(confidence=90)]
    _invoke(runner, components, ["check", "u1", "p1"])

    result = _invoke(runner, components, ["notification-stats", "u1", "--json"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["totalNotifications"] == 1
    assert _invoke(runner, components, ["notification-stats", "u1", "--days", "0"]).exit_code == 2


def test_maintain_json(runner, components):
    result = _invoke(runner, components, ["maintain", "--json"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["expiredDeleted"] == 0
    assert data["processed"] == 0


def test_email_test_not_configured(runner, components):
    result = _invoke(runner, components, ["email", "test"])
    assert result.exit_code == 1
    assert "not configured" in result.output


@patch("notifications.email_sender.smtplib.SMTP")
def test_email_test_connects(mock_smtp_class, runner, components, monkeypatch):
    monkeypatch.setenv("PET_ALERTS_SMTP_USER", "user")
    monkeypatch.setenv("PET_ALERTS_SMTP_PASS", "pass")
    components["config"]["email"] = {"smtp_host": "smtp.test.com", "from_address": "alerts@test.com"}
    server = MagicMock()
    server.noop.return_value = (250, b"OK")
    mock_smtp_class.return_value.__enter__ = MagicMock(return_value=server)
    mock_smtp_class.return_value.__exit__ = MagicMock(return_value=False)

    result = _invoke(runner, components, ["email", "test"])
    assert result.exit_code == 0, result.output
    server.login.assert_called_once_with("user", "pass")
    server.send_message.assert_not_called()

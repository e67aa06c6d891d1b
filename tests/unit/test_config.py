"""
Unit tests for configuration loading (timer_workflows/config/settings.py)

Tests covering:
- Settings from environment variables and explicit overrides
- Rules YAML loading with JSON-schema validation
- SecretRedactionFilter for logging
"""

import json
import logging
from pathlib import Path

import pytest

from timer_workflows.config.settings import (
    DEFAULT_RULES_SCHEMA,
    ConfigurationError,
    SecretRedactionFilter,
    Settings,
    load_rule_definitions,
    setup_logging_redaction,
)

PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_KEYS = [
    "WORKFLOW_TIMEZONE",
    "WORKFLOW_EXECUTION_RETENTION_HOURS",
    "WORKFLOW_MAX_EXECUTIONS",
    "WORKFLOW_RULES_FILE",
    "WORKFLOW_RULES_SCHEMA",
    "YOUTRACK_BASE_URL",
    "YOUTRACK_TOKEN",
    "WORKFLOW_WEBHOOK_BASE_URL",
    "SLACK_WEBHOOK_URL",
    "WORKFLOW_COMMANDS_ENABLED",
    "WORKFLOW_COMMAND_TIMEOUT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Run every test without workflow environment variables."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestSettings:
    def test_defaults(self):
        settings = Settings()

        assert settings.timezone == "UTC"
        assert settings.retention_hours == 24
        assert settings.max_executions == 1000
        assert settings.rules_file == "config/rules.yaml"
        assert settings.rules_schema == DEFAULT_RULES_SCHEMA
        assert settings.commands_enabled is False
        assert not settings.is_youtrack_configured()
        assert not settings.is_slack_configured()

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("WORKFLOW_TIMEZONE", "Europe/Berlin")
        monkeypatch.setenv("WORKFLOW_EXECUTION_RETENTION_HOURS", "48")
        monkeypatch.setenv("YOUTRACK_BASE_URL", "https://yt.example.com")
        monkeypatch.setenv("YOUTRACK_TOKEN", "perm:secret-token")
        monkeypatch.setenv("WORKFLOW_COMMANDS_ENABLED", "true")

        settings = Settings()

        assert settings.timezone == "Europe/Berlin"
        assert settings.retention_hours == 48
        assert settings.commands_enabled is True
        assert settings.is_youtrack_configured()

    def test_overrides_win_over_environment(self, monkeypatch):
        monkeypatch.setenv("WORKFLOW_MAX_EXECUTIONS", "10")
        assert Settings(max_executions=5).max_executions == 5

    def test_invalid_integer(self, monkeypatch):
        monkeypatch.setenv("WORKFLOW_MAX_EXECUTIONS", "many")
        with pytest.raises(ConfigurationError, match="WORKFLOW_MAX_EXECUTIONS"):
            Settings()

    def test_non_positive_integer(self, monkeypatch):
        monkeypatch.setenv("WORKFLOW_COMMAND_TIMEOUT", "0")
        with pytest.raises(ConfigurationError):
            Settings()

    def test_invalid_timezone(self):
        with pytest.raises(ConfigurationError, match="WORKFLOW_TIMEZONE"):
            Settings(timezone="Nowhere/Land")

    def test_to_dict_excludes_secrets(self):
        settings = Settings(youtrack_token="perm:abc", slack_webhook_url="https://hooks/x")
        exported = json.dumps(settings.to_dict())
        assert "perm:abc" not in exported
        assert "hooks/x" not in exported


class TestLoadRuleDefinitions:
    def test_default_rules_file_is_valid(self):
        definitions = load_rule_definitions(str(PROJECT_ROOT / "config" / "rules.yaml"))
        assert [d["id"] for d in definitions] == [
            "critical-timer-notification",
            "auto-log-completed-time",
            "daily-summary-report",
        ]

    def test_missing_rules_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_rule_definitions(str(tmp_path / "missing.yaml"))

    def test_missing_schema_file(self, tmp_path):
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text("rules: []\n")
        with pytest.raises(FileNotFoundError):
            load_rule_definitions(str(rules_file), str(tmp_path / "missing.json"))

    def test_invalid_yaml(self, tmp_path):
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text("rules: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_rule_definitions(str(rules_file))

    def test_empty_file_yields_no_rules(self, tmp_path):
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text("")
        assert load_rule_definitions(str(rules_file)) == []

    def test_schema_violation(self, tmp_path):
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text(
            """
rules:
  - id: broken
    name: Broken
    actions:
      - type: send_fax
"""
        )
        with pytest.raises(ValueError, match="validation failed"):
            load_rule_definitions(str(rules_file))

    def test_invalid_schema_json(self, tmp_path):
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text("rules: []\n")
        schema_file = tmp_path / "schema.json"
        schema_file.write_text("{not json")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_rule_definitions(str(rules_file), str(schema_file))


class TestSecretRedactionFilter:
    def _record(self, msg, args=None):
        return logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)

    def test_redacts_message(self):
        redaction = SecretRedactionFilter({"token": "perm:secret-token"})
        record = self._record("Authorization: Bearer perm:secret-token")

        assert redaction.filter(record) is True
        assert record.msg == "Authorization: Bearer ***REDACTED***"

    def test_redacts_args_and_nested_values(self):
        redaction = SecretRedactionFilter({"slack": {"url": "https://hooks.slack.com/T/B/X"}})
        record = self._record("posting to %s", ("https://hooks.slack.com/T/B/X",))

        redaction.filter(record)

        assert record.getMessage() == "posting to ***REDACTED***"

    def test_short_and_missing_values_ignored(self):
        redaction = SecretRedactionFilter({"a": "abc", "b": None})
        record = self._record("abc stays")
        redaction.filter(record)
        assert record.msg == "abc stays"

    def test_setup_logging_redaction_attaches_to_root(self):
        settings = Settings(youtrack_token="perm:root-secret")
        root = logging.getLogger()
        redaction = setup_logging_redaction(settings)
        try:
            assert redaction in root.filters
            assert "perm:root-secret" in redaction.redacted_values
        finally:
            root.removeFilter(redaction)
            for name, instance in logging.root.manager.loggerDict.items():
                if isinstance(instance, logging.Logger):
                    instance.removeFilter(redaction)
                    for handler in instance.handlers:
                        handler.removeFilter(redaction)
            for handler in root.handlers:
                handler.removeFilter(redaction)

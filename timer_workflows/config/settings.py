"""
Configuration loader for the timer workflow engine

Reads runtime settings from environment variables, loads rule definitions
from YAML with JSON-schema validation, and installs log redaction for the
configured secrets.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from timer_workflows.utils.timezone import DEFAULT_TIMEZONE, resolve_timezone

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""

    pass


PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_RULES_SCHEMA = str(PACKAGE_DIR / "rules.schema.json")
DEFAULT_RULES_FILE = "config/rules.yaml"

DEFAULT_RETENTION_HOURS = 24
DEFAULT_MAX_EXECUTIONS = 1000
DEFAULT_COMMAND_TIMEOUT = 30


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'") from e
    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {value}")
    return value


class SecretRedactionFilter(logging.Filter):
    """
    Logging filter that redacts secret values from log records.
    Replaces secret substrings with ***REDACTED*** to prevent accidental leakage.
    """

    def __init__(self, secrets: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.redacted_values: set = set()
        self._extract_secret_values(secrets or {})

    def _extract_secret_values(self, obj: Any, max_depth: int = 5) -> None:
        """Recursively collect string values from nested structures."""
        if max_depth <= 0:
            return

        if isinstance(obj, dict):
            for value in obj.values():
                self._extract_secret_values(value, max_depth - 1)
        elif isinstance(obj, (list, tuple)):
            for item in obj:
                self._extract_secret_values(item, max_depth - 1)
        elif isinstance(obj, str) and len(obj) > 3:
            # Short strings would redact ordinary words
            self.redacted_values.add(obj)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.redacted_values:
            return True
        record.msg = self._redact_string(str(record.msg))
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._redact_string(str(v)) for k, v in record.args.items()}
            else:
                record.args = tuple(self._redact_string(str(arg)) for arg in record.args)
        return True

    def _redact_string(self, text: str) -> str:
        # Longest first so a secret containing another is replaced whole
        for secret in sorted(self.redacted_values, key=len, reverse=True):
            if secret in text:
                text = text.replace(secret, "***REDACTED***")
        return text


class Settings:
    """
    Runtime configuration read from environment variables.

    Keyword arguments override the environment, which keeps tests free of
    monkeypatched process state when they only need one or two values.
    """

    def __init__(self, **overrides: Any):
        self.timezone = overrides.get("timezone", os.getenv("WORKFLOW_TIMEZONE", DEFAULT_TIMEZONE))
        self.retention_hours = overrides.get(
            "retention_hours",
            _env_int("WORKFLOW_EXECUTION_RETENTION_HOURS", DEFAULT_RETENTION_HOURS),
        )
        self.max_executions = overrides.get(
            "max_executions", _env_int("WORKFLOW_MAX_EXECUTIONS", DEFAULT_MAX_EXECUTIONS)
        )
        self.rules_file = overrides.get(
            "rules_file", os.getenv("WORKFLOW_RULES_FILE", DEFAULT_RULES_FILE)
        )
        self.rules_schema = overrides.get(
            "rules_schema", os.getenv("WORKFLOW_RULES_SCHEMA", DEFAULT_RULES_SCHEMA)
        )
        self.youtrack_base_url = overrides.get("youtrack_base_url", os.getenv("YOUTRACK_BASE_URL"))
        self.youtrack_token = overrides.get("youtrack_token", os.getenv("YOUTRACK_TOKEN"))
        self.webhook_base_url = overrides.get(
            "webhook_base_url", os.getenv("WORKFLOW_WEBHOOK_BASE_URL")
        )
        self.slack_webhook_url = overrides.get("slack_webhook_url", os.getenv("SLACK_WEBHOOK_URL"))
        self.commands_enabled = overrides.get(
            "commands_enabled", _env_flag("WORKFLOW_COMMANDS_ENABLED")
        )
        self.command_timeout = overrides.get(
            "command_timeout", _env_int("WORKFLOW_COMMAND_TIMEOUT", DEFAULT_COMMAND_TIMEOUT)
        )

        try:
            resolve_timezone(self.timezone)
        except ValueError as e:
            raise ConfigurationError(f"WORKFLOW_TIMEZONE is invalid: {e}") from e

    def is_youtrack_configured(self) -> bool:
        return bool(self.youtrack_base_url and self.youtrack_token)

    def is_slack_configured(self) -> bool:
        return bool(self.slack_webhook_url)

    def secrets(self) -> Dict[str, Any]:
        """Values that must never appear in logs."""
        return {
            "youtrack_token": self.youtrack_token,
            "slack_webhook_url": self.slack_webhook_url,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Non-secret settings, safe to log."""
        return {
            "timezone": self.timezone,
            "retention_hours": self.retention_hours,
            "max_executions": self.max_executions,
            "rules_file": self.rules_file,
            "youtrack_base_url": self.youtrack_base_url,
            "webhook_base_url": self.webhook_base_url,
            "commands_enabled": self.commands_enabled,
            "command_timeout": self.command_timeout,
        }


def load_rule_definitions(
    rules_path: str, schema_path: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Load rule dictionaries from YAML, validating against the JSON schema.

    Args:
        rules_path: Path to rules.yaml configuration file
        schema_path: Path to rules.schema.json (bundled schema when omitted)

    Returns:
        The list under the top-level 'rules' key (empty for an empty file)

    Raises:
        FileNotFoundError: If a config file is not found
        ValueError: If YAML/JSON parsing or schema validation fails
    """
    schema_path = schema_path or DEFAULT_RULES_SCHEMA
    try:
        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)
    except FileNotFoundError:
        logger.error(f"Rules schema file not found: {schema_path}")
        raise
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in rules schema: {e}")
        raise ValueError(f"Invalid JSON in {schema_path}: {e}") from e

    try:
        with open(rules_path, "r", encoding="utf-8") as f:
            rules_config = yaml.safe_load(f)
    except FileNotFoundError:
        logger.error(f"Rules configuration file not found: {rules_path}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in rules configuration: {e}")
        raise ValueError(f"Invalid YAML in {rules_path}: {e}") from e

    if not rules_config:
        logger.warning(f"Empty rules configuration: {rules_path}")
        return []

    try:
        jsonschema.validate(instance=rules_config, schema=schema)
    except jsonschema.ValidationError as e:
        logger.error(f"Rules configuration failed schema validation: {e.message}")
        raise ValueError(f"Rules configuration validation failed: {e.message}") from e
    except jsonschema.SchemaError as e:
        logger.error(f"Rules schema is invalid: {e.message}")
        raise ValueError(f"Rules schema is invalid: {e.message}") from e

    return list(rules_config.get("rules", []))


def setup_logging_redaction(settings: Optional[Settings] = None) -> SecretRedactionFilter:
    """
    Setup logging redaction for the root logger and every package logger.

    Structured loggers own their stream handlers, so the filter is attached to
    those handlers too; call this after the engine has been built.
    """
    redaction_filter = SecretRedactionFilter((settings or Settings()).secrets())
    targets = [logging.getLogger()] + [
        instance
        for name, instance in logging.root.manager.loggerDict.items()
        if name.startswith("timer_workflows") and isinstance(instance, logging.Logger)
    ]
    for target in targets:
        target.addFilter(redaction_filter)
        for handler in target.handlers:
            handler.addFilter(redaction_filter)
    return redaction_filter

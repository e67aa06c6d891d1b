"""
Bootstrap and command-line entry point for the timer workflow engine

build_engine() wires settings, collaborators, the action executor and the
rule engine, then loads the configured rules file. The CLI exposes the
engine to operators for inspecting rules and dry-running them:

    timer-workflows rules
    timer-workflows test critical-timer-notification --context '{"timer": {...}}'
    timer-workflows event timer_critical --context '{"issue": {...}}'
"""

import argparse
import json
import os
import sys
from datetime import timedelta
from typing import Any, Dict, List, Optional

from timer_workflows.config.settings import ConfigurationError, Settings, setup_logging_redaction
from timer_workflows.exceptions import WorkflowError
from timer_workflows.integrations.command_runner import SubprocessCommandRunner
from timer_workflows.integrations.notifications import (
    LoggingNotificationSink,
    SlackNotificationSink,
)
from timer_workflows.integrations.webhook_client import WebhookClient
from timer_workflows.integrations.youtrack_client import YouTrackClient
from timer_workflows.rules.actions import ActionExecutor, ActionServicesBundle
from timer_workflows.rules.engine import RuleEngine
from timer_workflows.rules.executions import ExecutionLog
from timer_workflows.rules.scheduler import Clock
from timer_workflows.utils.logger import get_logger

logger = get_logger(__name__)


def build_services(settings: Settings) -> ActionServicesBundle:
    """Create the collaborators configured by settings."""
    if settings.is_slack_configured():
        notification_sink: Any = SlackNotificationSink(webhook_url=settings.slack_webhook_url)
    else:
        notification_sink = LoggingNotificationSink()

    issue_tracker = None
    if settings.is_youtrack_configured():
        issue_tracker = YouTrackClient(settings.youtrack_base_url, token=settings.youtrack_token)

    return ActionServicesBundle(
        notification_sink=notification_sink,
        issue_tracker=issue_tracker,
        command_runner=SubprocessCommandRunner(
            enabled=settings.commands_enabled, timeout_seconds=settings.command_timeout
        ),
        http_client=WebhookClient(base_url=settings.webhook_base_url),
    )


def build_engine(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    services: Optional[ActionServicesBundle] = None,
) -> RuleEngine:
    """
    Construct a fully wired RuleEngine.

    Args:
        settings: Runtime settings (read from the environment by default)
        clock: Clock for scheduled rules (ThreadingClock by default)
        services: Collaborators (built from settings by default)

    Returns:
        Engine with the configured rules file loaded, when that file exists

    Raises:
        ConfigurationError: If settings are invalid
        ValueError: If the rules file fails validation
    """
    settings = settings if settings is not None else Settings()
    if services is None:
        services = build_services(settings)
    engine = RuleEngine(
        action_executor=ActionExecutor(services),
        clock=clock,
        execution_log=ExecutionLog(max_entries=settings.max_executions),
        retention=timedelta(hours=settings.retention_hours),
        timezone_name=settings.timezone,
    )

    if settings.rules_file and os.path.exists(settings.rules_file):
        engine.load_rules(settings.rules_file, settings.rules_schema)
    else:
        logger.warning(
            "Rules file not found; engine starts with no rules",
            operation="build_engine",
            context={"rules_file": settings.rules_file},
        )
    logger.info(
        "Workflow engine configured",
        operation="build_engine",
        context={**settings.to_dict(), "rules": len(engine.get_rules())},
    )
    return engine


def _parse_context(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        context = json.loads(raw)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"--context is not valid JSON: {e}") from e
    if not isinstance(context, dict):
        raise argparse.ArgumentTypeError("--context must be a JSON object")
    return context


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timer-workflows", description="Timer workflow rule engine"
    )
    parser.add_argument("--rules-file", help="Rules YAML file (overrides WORKFLOW_RULES_FILE)")
    subcommands = parser.add_subparsers(dest="command", required=True)

    subcommands.add_parser("rules", help="List loaded rules")

    test_parser = subcommands.add_parser("test", help="Run one rule against a test context")
    test_parser.add_argument("rule_id")
    test_parser.add_argument("--context", type=_parse_context, default={})

    event_parser = subcommands.add_parser("event", help="Process a trigger event")
    event_parser.add_argument("event_type")
    event_parser.add_argument("--context", type=_parse_context, default={})

    return parser


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def main(argv: Optional[List[str]] = None, clock: Optional[Clock] = None) -> int:
    """
    CLI entry point.

    Returns:
        Process exit code: 0 on success, 1 on workflow errors, 2 on configuration errors
    """
    args = _build_parser().parse_args(argv)

    try:
        overrides = {"rules_file": args.rules_file} if args.rules_file else {}
        settings = Settings(**overrides)
        engine = build_engine(settings, clock=clock)
        setup_logging_redaction(settings)
    except (ConfigurationError, ValueError, FileNotFoundError) as e:
        logger.error("Failed to start workflow engine", operation="main", error=str(e))
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        if args.command == "rules":
            _print_json([rule.to_dict() for rule in engine.get_rules()])
        elif args.command == "test":
            _print_json(engine.test_rule(args.rule_id, args.context).to_dict())
        else:
            executions = engine.process_event({"type": args.event_type}, args.context)
            _print_json([execution.to_dict() for execution in executions])
    except WorkflowError as e:
        logger.error(f"Command '{args.command}' failed", operation="main", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        engine.cleanup()

    return 0


if __name__ == "__main__":
    sys.exit(main())

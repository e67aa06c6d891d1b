"""
Action Executor Module for Rule Engine

Implements the eight workflow action kinds with dependency injection for
testability. Every handler interpolates its parameters against the rule
context, calls one external collaborator, and returns a small result
descriptor that the engine stores in the execution record.

Failure model:
- MissingContextError when the context lacks data a handler needs
  (issue id, timer); never retried.
- ActionExecutionError wrapping any collaborator failure, raised after the
  action's retry policy is exhausted.
Either failure aborts only the action that raised it.
"""

import shlex
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from timer_workflows.domain.rule import Action, ActionType
from timer_workflows.exceptions import ActionExecutionError, MissingContextError
from timer_workflows.integrations.notifications import Notification
from timer_workflows.rules.interpolation import interpolate, interpolate_value, resolve_path
from timer_workflows.utils.logger import get_logger, StructuredLogger

ActionHandler = Callable[["ActionServicesBundle", Dict[str, Any], Dict[str, Any]], Dict[str, Any]]
CustomActionHandler = Callable[[Dict[str, Any], Dict[str, Any]], Any]


@dataclass(frozen=True)
class ActionServicesBundle:
    """
    Bundle of collaborators needed by action handlers.

    Passed to ActionExecutor during application bootstrap. Any collaborator
    may be None; actions needing a missing collaborator fail with
    ActionExecutionError instead of crashing the engine.

    Attributes:
        notification_sink: Object with send(Notification)
        issue_tracker: Object with update_issue/add_comment/assign_user/log_time
        command_runner: Object with run(command)
        http_client: Object with call(url, method, payload)
        logger: StructuredLogger for action logs
    """

    notification_sink: Optional[Any] = None
    issue_tracker: Optional[Any] = None
    command_runner: Optional[Any] = None
    http_client: Optional[Any] = None
    logger: StructuredLogger = field(default_factory=lambda: get_logger(__name__))


def _require(services: ActionServicesBundle, name: str) -> Any:
    collaborator = getattr(services, name)
    if collaborator is None:
        raise RuntimeError(f"{name} not configured in ActionServicesBundle")
    return collaborator


def _require_issue_id(action_type: ActionType, context: Dict[str, Any]) -> str:
    issue_id = resolve_path(context, "issue.id")
    if issue_id in (None, ""):
        raise MissingContextError(action_type.value, "issue.id")
    return str(issue_id)


# ============================================================================
# Handlers
# ============================================================================


def send_notification(
    services: ActionServicesBundle, parameters: Dict[str, Any], context: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Send a notification through the configured sink.

    Parameters:
        title, message: Interpolated text
        type: Severity ("critical", "warning", "success", "info")
        recipients: Optional list of group handles
        channel: Optional channel override
    """
    recipients = interpolate_value(parameters.get("recipients") or [], context)
    if isinstance(recipients, str):
        recipients = [recipients]

    notification = Notification(
        title=interpolate(parameters.get("title") or "", context),
        message=interpolate(parameters.get("message") or "", context),
        type=parameters.get("type") or "info",
        recipients=list(recipients),
        channel=interpolate(parameters.get("channel"), context),
    )
    _require(services, "notification_sink").send(notification)
    return {
        "sent": True,
        "title": notification.title,
        "message": notification.message,
        "type": notification.type,
    }


def update_issue(
    services: ActionServicesBundle, parameters: Dict[str, Any], context: Dict[str, Any]
) -> Dict[str, Any]:
    """Update issue fields; parameters may nest them under 'fields' or list them directly."""
    issue_id = _require_issue_id(ActionType.UPDATE_ISSUE, context)
    raw_fields = parameters.get("fields", parameters)
    fields = interpolate_value(dict(raw_fields), context)
    _require(services, "issue_tracker").update_issue(issue_id, fields)
    return {"updated": True, "issue_id": issue_id, "fields": fields}


def add_comment(
    services: ActionServicesBundle, parameters: Dict[str, Any], context: Dict[str, Any]
) -> Dict[str, Any]:
    issue_id = _require_issue_id(ActionType.ADD_COMMENT, context)
    text = interpolate(parameters.get("text") or "", context)
    if not text:
        raise ValueError("add_comment requires non-empty 'text' parameter")
    visibility = parameters.get("visibility")
    _require(services, "issue_tracker").add_comment(issue_id, text, visibility)
    return {"comment_added": True, "issue_id": issue_id, "text": text}


def assign_user(
    services: ActionServicesBundle, parameters: Dict[str, Any], context: Dict[str, Any]
) -> Dict[str, Any]:
    issue_id = _require_issue_id(ActionType.ASSIGN_USER, context)
    user_id = interpolate(parameters.get("user_id", parameters.get("userId")), context)
    if not user_id:
        raise ValueError("assign_user requires 'user_id' parameter")
    _require(services, "issue_tracker").assign_user(issue_id, str(user_id))
    return {"assigned": True, "issue_id": issue_id, "user_id": user_id}


def log_time(
    services: ActionServicesBundle, parameters: Dict[str, Any], context: Dict[str, Any]
) -> Dict[str, Any]:
    """Log the timer's elapsed time as a work item on the context issue."""
    if not isinstance(context.get("timer"), dict):
        raise MissingContextError(ActionType.LOG_TIME.value, "timer")
    issue_id = _require_issue_id(ActionType.LOG_TIME, context)

    duration_ms = resolve_path(context, "timer.elapsedMs") or 0
    work_type = parameters.get("type")
    description = interpolate(parameters.get("description"), context)
    _require(services, "issue_tracker").log_time(issue_id, duration_ms, work_type, description)
    return {
        "time_logged": True,
        "issue_id": issue_id,
        "duration_ms": duration_ms,
        "type": work_type,
    }


def run_command(
    services: ActionServicesBundle, parameters: Dict[str, Any], context: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Run a command through the configured runner.

    The template is split into arguments before interpolation, so context
    values always land inside a single argument.
    """
    argv = [interpolate(arg, context) for arg in shlex.split(parameters.get("command") or "")]
    if not argv:
        raise ValueError("run_command requires 'command' parameter")
    outcome = _require(services, "command_runner").run(argv) or {}
    return {"executed": True, "command": shlex.join(argv), "exit_code": outcome.get("exit_code")}


def webhook(
    services: ActionServicesBundle, parameters: Dict[str, Any], context: Dict[str, Any]
) -> Dict[str, Any]:
    url = interpolate(parameters.get("url") or "", context)
    if not url:
        raise ValueError("webhook requires 'url' parameter")
    method = (parameters.get("method") or "POST").upper()
    payload = interpolate_value(parameters.get("payload"), context)
    response = _require(services, "http_client").call(url, method, payload) or {}
    return {
        "called": True,
        "url": url,
        "method": method,
        "status_code": response.get("status_code"),
    }


ACTION_HANDLERS: Dict[ActionType, ActionHandler] = {
    ActionType.SEND_NOTIFICATION: send_notification,
    ActionType.UPDATE_ISSUE: update_issue,
    ActionType.ADD_COMMENT: add_comment,
    ActionType.ASSIGN_USER: assign_user,
    ActionType.LOG_TIME: log_time,
    ActionType.RUN_COMMAND: run_command,
    ActionType.WEBHOOK: webhook,
}


# ============================================================================
# Executor
# ============================================================================


class ActionExecutor:
    """
    Dispatches actions by type and applies retry policies.

    Custom actions name a handler registered with register_custom_action();
    a custom action without a handler name is a no-op that reports success.
    """

    def __init__(
        self,
        services: Optional[ActionServicesBundle] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.services = services if services is not None else ActionServicesBundle()
        self.logger = self.services.logger
        self._sleep = sleep
        self._custom_handlers: Dict[str, CustomActionHandler] = {}
        self._handlers: Dict[ActionType, ActionHandler] = dict(ACTION_HANDLERS)
        self._handlers[ActionType.CUSTOM] = self._run_custom

        missing = set(ActionType) - set(self._handlers)
        if missing:
            raise TypeError(f"No handler for action types: {sorted(m.value for m in missing)}")

    def register_custom_action(self, name: str, handler: CustomActionHandler) -> None:
        """
        Register a custom action handler.

        Args:
            name: Value of the action's 'handler' parameter
            handler: Callable taking (interpolated parameters, context)

        Raises:
            TypeError: If handler is not callable
        """
        if not callable(handler):
            raise TypeError(f"Custom action handler must be callable, got {type(handler)}")
        self._custom_handlers[name] = handler
        self.logger.debug(
            f"Registered custom action handler: {name}", operation="register_custom_action"
        )

    def _run_custom(
        self, services: ActionServicesBundle, parameters: Dict[str, Any], context: Dict[str, Any]
    ) -> Dict[str, Any]:
        name = parameters.get("handler")
        if not name:
            return {"executed": True, "custom": True}

        handler = self._custom_handlers.get(name)
        if handler is None:
            raise LookupError(f"No custom action handler registered for '{name}'")

        resolved = interpolate_value(
            {k: v for k, v in parameters.items() if k != "handler"}, context
        )
        result = handler(resolved, context)
        return result if isinstance(result, dict) else {"executed": True, "result": result}

    def execute(
        self, action: Action, context: Dict[str, Any], rule_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Execute one action, retrying per its retry policy.

        Returns:
            Result descriptor from the handler

        Raises:
            MissingContextError: Required context fields are absent
            ActionExecutionError: The handler failed on every allowed attempt
        """
        try:
            action_type = ActionType(action.type)
        except ValueError as e:
            raise ActionExecutionError(
                str(action.type), LookupError(f"Unknown action type: {action.type}")
            ) from e
        handler = self._handlers[action_type]
        policy = action.retry_policy
        max_attempts = policy.max_attempts if policy else 1

        log_context = {"rule_id": rule_id, "action_type": action_type.value}
        attempt = 0
        while True:
            attempt += 1
            try:
                result = handler(self.services, action.parameters or {}, context)
                self.logger.info(
                    f"Action '{action_type.value}' completed",
                    operation="execute_action",
                    context={**log_context, "attempt": attempt, "status": "success"},
                )
                return result

            except MissingContextError as e:
                self.logger.error(
                    f"Action '{action_type.value}' missing context",
                    operation="execute_action",
                    context={**log_context, "missing": e.missing},
                    error=str(e),
                )
                raise

            except Exception as e:
                if attempt >= max_attempts:
                    self.logger.error(
                        f"Action '{action_type.value}' failed",
                        operation="execute_action",
                        context={**log_context, "attempts": attempt, "status": "failed"},
                        error=str(e),
                    )
                    raise ActionExecutionError(
                        action_type.value,
                        e,
                        attempts=attempt,
                        context_data={"rule_id": rule_id},
                    ) from e

                delay = policy.delay_before(attempt + 1)
                self.logger.warning(
                    f"Retrying action '{action_type.value}'",
                    operation="execute_action",
                    context={
                        **log_context,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "delay_seconds": delay,
                    },
                    error=str(e),
                )
                if delay > 0:
                    self._sleep(delay)

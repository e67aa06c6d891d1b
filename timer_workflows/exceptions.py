"""
Exception hierarchy for the workflow rule engine.

Two failure tiers exist: per-action failures (MissingContextError,
ActionExecutionError) are captured into an execution's results, while
EngineError marks the whole execution as failed.
"""

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base exception for all rule engine errors."""

    pass


class RuleNotFoundError(WorkflowError, KeyError):
    """
    Raised when a rule id is not present in the rule store.

    Also a KeyError so callers treating the store like a mapping keep working.
    """

    def __init__(self, rule_id: str):
        super().__init__(rule_id)
        self.rule_id = rule_id

    def __str__(self) -> str:
        return f"Rule not found: {self.rule_id}"


class DuplicateRuleError(WorkflowError):
    """Raised when adding a rule whose id is already registered."""

    def __init__(self, rule_id: str):
        super().__init__(f"Rule already exists: {rule_id}")
        self.rule_id = rule_id


class InvalidContextError(WorkflowError, ValueError):
    """Raised when an event or its context is malformed at process_event entry."""

    pass


class ConditionEvaluationError(WorkflowError):
    """
    Raised inside the condition evaluator for malformed conditions.

    Never escapes evaluate_conditions(); the condition evaluates to False.
    """

    pass


class MissingContextError(WorkflowError):
    """
    Raised when an action needs context fields that the event did not carry.

    Attributes:
        action_type: Action that required the data
        missing: Dot-path of the missing field
    """

    def __init__(self, action_type: str, missing: str):
        super().__init__(f"Action '{action_type}' requires '{missing}' in context")
        self.action_type = action_type
        self.missing = missing


class ActionExecutionError(WorkflowError):
    """
    Wraps a collaborator failure with the action that triggered it.

    Attributes:
        action_type: Name of the action that failed (e.g., "webhook")
        original_error: The exception raised by the handler or collaborator
        attempts: Number of attempts made before giving up
        context_data: Additional details (parameters, rule id)
    """

    def __init__(
        self,
        action_type: str,
        original_error: Exception,
        attempts: int = 1,
        context_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(f"Action '{action_type}' failed: {original_error}")
        self.action_type = action_type
        self.original_error = original_error
        self.attempts = attempts
        self.context_data = context_data or {}

    def __repr__(self) -> str:
        return (
            f"ActionExecutionError(action_type={self.action_type!r}, "
            f"original_error={self.original_error!r}, "
            f"attempts={self.attempts!r}, "
            f"context_data={self.context_data!r})"
        )


class EngineError(WorkflowError):
    """Unexpected orchestration failure; the only error that fails an execution."""

    def __init__(self, message: str, rule_id: Optional[str] = None):
        super().__init__(message)
        self.rule_id = rule_id

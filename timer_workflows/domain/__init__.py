"""Domain models - rules and their executions."""

from .execution import Execution, ExecutionStatus
from .rule import (
    Action,
    ActionType,
    Condition,
    ConditionOperator,
    ConditionType,
    RetryPolicy,
    Rule,
    Schedule,
    ScheduleType,
    TriggerEvent,
    TriggerEventType,
)

__all__ = [
    "Action",
    "ActionType",
    "Condition",
    "ConditionOperator",
    "ConditionType",
    "Execution",
    "ExecutionStatus",
    "RetryPolicy",
    "Rule",
    "Schedule",
    "ScheduleType",
    "TriggerEvent",
    "TriggerEventType",
]

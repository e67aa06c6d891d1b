"""
Workflow rule domain model.

A rule bundles ordered conditions (ANDed) and ordered actions, bound to one or
more trigger event types and optionally to a periodic schedule.

Design Note:
    from_dict() accepts both the snake_case keys used in Python code and the
    camelCase keys used by the web client payloads (triggerEvents, retryPolicy,
    maxAttempts, ...), so rule files exported from either side load unchanged.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from timer_workflows.utils.timezone import resolve_timezone


class ConditionType(str, Enum):
    TIMER_DURATION = "timer_duration"
    TIMER_STATUS = "timer_status"
    ISSUE_STATE = "issue_state"
    USER_ROLE = "user_role"
    PROJECT = "project"
    TIME_OF_DAY = "time_of_day"
    CUSTOM = "custom"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"
    MATCHES_REGEX = "matches_regex"


class ActionType(str, Enum):
    SEND_NOTIFICATION = "send_notification"
    UPDATE_ISSUE = "update_issue"
    ADD_COMMENT = "add_comment"
    ASSIGN_USER = "assign_user"
    LOG_TIME = "log_time"
    RUN_COMMAND = "run_command"
    WEBHOOK = "webhook"
    CUSTOM = "custom"


class TriggerEventType(str, Enum):
    TIMER_STARTED = "timer_started"
    TIMER_STOPPED = "timer_stopped"
    TIMER_CRITICAL = "timer_critical"
    TIMER_LONG = "timer_long"
    ISSUE_UPDATED = "issue_updated"
    USER_ACTION = "user_action"
    SCHEDULED = "scheduled"


class ScheduleType(str, Enum):
    INTERVAL = "interval"
    DAILY = "daily"
    WEEKLY = "weekly"


def _pick(data: Dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    """Read a key in either naming style, preferring snake_case."""
    if snake in data:
        return data[snake]
    return data.get(camel, default)


def _enum_value(enum_cls, raw: Any, what: str) -> str:
    """Validate that raw is a member value of enum_cls and return the plain string."""
    value = raw.value if isinstance(raw, Enum) else raw
    try:
        return enum_cls(value).value
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"Invalid {what} '{raw}'. Must be one of: {allowed}") from e


@dataclass
class Condition:
    """
    Boolean predicate over the event context.

    Attributes:
        type: ConditionType value; unknown strings are kept and fail closed
        operator: ConditionOperator value; unknown strings are kept and fail closed
        value: Expected value compared against the context
        field: Dot-path into the context, used by the custom type
    """

    type: str
    operator: str
    value: Any = None
    field: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        if not isinstance(data, dict):
            raise ValueError("Condition must be a dictionary")
        if "type" not in data:
            raise ValueError("Condition missing 'type' field")
        if "operator" not in data:
            raise ValueError(f"Condition '{data['type']}' missing 'operator' field")

        raw_type = data["type"]
        raw_operator = data["operator"]
        return cls(
            type=raw_type.value if isinstance(raw_type, Enum) else str(raw_type),
            operator=raw_operator.value if isinstance(raw_operator, Enum) else str(raw_operator),
            value=data.get("value"),
            field=data.get("field"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type, "operator": self.operator, "value": self.value}
        if self.field is not None:
            result["field"] = self.field
        return result


@dataclass
class RetryPolicy:
    """Retry settings for one action."""

    max_attempts: int = 1
    delay_ms: int = 0
    backoff_multiplier: float = 1.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("retry_policy.max_attempts must be at least 1")
        if self.delay_ms < 0:
            raise ValueError("retry_policy.delay_ms must not be negative")

    def delay_before(self, attempt: int) -> float:
        """
        Seconds to wait before the given attempt number (2, 3, ...).

        Multipliers below 1 are treated as 1 so delays never shrink.
        """
        multiplier = max(1.0, float(self.backoff_multiplier))
        return (self.delay_ms * multiplier ** (attempt - 2)) / 1000.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryPolicy":
        return cls(
            max_attempts=int(_pick(data, "max_attempts", "maxAttempts", 1)),
            delay_ms=int(_pick(data, "delay_ms", "delayMs", 0)),
            backoff_multiplier=float(_pick(data, "backoff_multiplier", "backoffMultiplier", 1.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "delay_ms": self.delay_ms,
            "backoff_multiplier": self.backoff_multiplier,
        }


@dataclass
class Action:
    """One unit of side-effecting work run when a rule's conditions hold."""

    type: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    retry_policy: Optional[RetryPolicy] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        if not isinstance(data, dict):
            raise ValueError("Action must be a dictionary")
        if "type" not in data:
            raise ValueError("Action missing 'type' field")

        parameters = _pick(data, "parameters", "params", {}) or {}
        if not isinstance(parameters, dict):
            raise ValueError(f"Action '{data['type']}': 'parameters' must be a dictionary")

        retry_data = _pick(data, "retry_policy", "retryPolicy")
        return cls(
            type=_enum_value(ActionType, data["type"], "action type"),
            parameters=copy.deepcopy(parameters),
            retry_policy=RetryPolicy.from_dict(retry_data) if retry_data else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type, "parameters": copy.deepcopy(self.parameters)}
        if self.retry_policy:
            result["retry_policy"] = self.retry_policy.to_dict()
        return result


@dataclass
class TriggerEvent:
    """Typed occurrence fed to rule matching; filters are carried but not matched."""

    type: str
    filters: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "TriggerEvent":
        if isinstance(data, TriggerEvent):
            return cls(type=data.type, filters=copy.deepcopy(data.filters))
        if isinstance(data, (str, TriggerEventType)):
            return cls(type=_enum_value(TriggerEventType, data, "trigger event type"))
        if not isinstance(data, dict) or "type" not in data:
            raise ValueError("Trigger event must be a dictionary with a 'type' field")
        filters = data.get("filters") or {}
        if not isinstance(filters, dict):
            raise ValueError("Trigger event 'filters' must be a dictionary")
        return cls(
            type=_enum_value(TriggerEventType, data["type"], "trigger event type"),
            filters=copy.deepcopy(filters),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "filters": copy.deepcopy(self.filters)}


@dataclass
class Schedule:
    """
    Periodic trigger configuration.

    expression holds milliseconds for interval schedules; for daily and weekly
    schedules it is informational (cron-like) and firing uses elapsed periods.
    """

    type: str
    expression: str = ""
    timezone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Schedule":
        if not isinstance(data, dict) or "type" not in data:
            raise ValueError("Schedule must be a dictionary with a 'type' field")
        if data.get("timezone"):
            resolve_timezone(data["timezone"])
        return cls(
            type=_enum_value(ScheduleType, data["type"], "schedule type"),
            expression=str(data.get("expression", "")),
            timezone=data.get("timezone"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type, "expression": self.expression}
        if self.timezone:
            result["timezone"] = self.timezone
        return result


@dataclass
class Rule:
    """
    Named, prioritized bundle of conditions and actions.

    Attributes:
        id: Unique identifier within a rule store
        name: Display name
        description: Free text
        enabled: Disabled rules never match events and are never scheduled
        priority: Lower runs first; ties keep store insertion order
        conditions: ANDed predicates
        actions: Executed sequentially in declared order
        trigger_events: Event types that select this rule
        schedule: Optional periodic trigger
        metadata: Free-form data, never interpreted by the engine
    """

    id: str
    name: str
    description: str = ""
    enabled: bool = True
    priority: int = 0
    conditions: List[Condition] = field(default_factory=list)
    actions: List[Action] = field(default_factory=list)
    trigger_events: List[TriggerEvent] = field(default_factory=list)
    schedule: Optional[Schedule] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def trigger_types(self) -> set:
        return {trigger.type for trigger in self.trigger_events}

    def is_triggered_by(self, event_type: str) -> bool:
        return event_type in self.trigger_types

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rule":
        """
        Parse and validate a rule from a dictionary (YAML, JSON or API payload).

        Raises:
            ValueError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError("Rule must be a dictionary")
        for required in ("id", "name"):
            if not data.get(required):
                raise ValueError(f"Rule missing required field: '{required}'")

        rule_id = str(data["id"])

        conditions_data = data.get("conditions", []) or []
        actions_data = data.get("actions", []) or []
        triggers_data = _pick(data, "trigger_events", "triggerEvents", []) or []
        if not isinstance(conditions_data, list):
            raise ValueError(f"Rule '{rule_id}': 'conditions' must be a list")
        if not isinstance(actions_data, list):
            raise ValueError(f"Rule '{rule_id}': 'actions' must be a list")
        if not isinstance(triggers_data, list):
            raise ValueError(f"Rule '{rule_id}': 'trigger_events' must be a list")

        try:
            conditions = [Condition.from_dict(c) for c in conditions_data]
            actions = [Action.from_dict(a) for a in actions_data]
            triggers = [TriggerEvent.from_dict(t) for t in triggers_data]
            schedule_data = data.get("schedule")
            schedule = Schedule.from_dict(schedule_data) if schedule_data else None
            priority = int(data.get("priority", 0))
        except (TypeError, ValueError) as e:
            raise ValueError(f"Rule '{rule_id}': {e}") from e

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError(f"Rule '{rule_id}': 'metadata' must be a dictionary")

        return cls(
            id=rule_id,
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            enabled=bool(data.get("enabled", True)),
            priority=priority,
            conditions=conditions,
            actions=actions,
            trigger_events=triggers,
            schedule=schedule,
            metadata=copy.deepcopy(metadata),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "priority": self.priority,
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "trigger_events": [t.to_dict() for t in self.trigger_events],
            "schedule": self.schedule.to_dict() if self.schedule else None,
            "metadata": copy.deepcopy(self.metadata),
        }


_CAMEL_FIELD_NAMES = {"triggerEvents": "trigger_events"}


def normalize_rule_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert partial-update values given as plain dictionaries into model objects.

    Lets callers pass the same shapes accepted by Rule.from_dict, e.g.
    update_rule("r1", schedule={"type": "interval", "expression": "60000"}).

    Raises:
        ValueError: If a value is malformed
    """
    normalized: Dict[str, Any] = {}
    for key, value in updates.items():
        name = _CAMEL_FIELD_NAMES.get(key, key)
        if name == "conditions":
            value = [c if isinstance(c, Condition) else Condition.from_dict(c) for c in value]
        elif name == "actions":
            value = [a if isinstance(a, Action) else Action.from_dict(a) for a in value]
        elif name == "trigger_events":
            value = [TriggerEvent.from_dict(t) for t in value]
        elif name == "schedule" and value is not None and not isinstance(value, Schedule):
            value = Schedule.from_dict(value)
        elif name == "priority":
            value = int(value)
        elif name == "enabled":
            value = bool(value)
        normalized[name] = value
    return normalized

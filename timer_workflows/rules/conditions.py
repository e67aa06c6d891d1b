"""
Condition Evaluator for Rule Engine

Evaluates a rule's AND-combined condition list against an event context.

Each ConditionType maps to one fixed location in the context (timer, issue,
user, current time or a custom dot-path); each ConditionOperator compares that
value with the condition's expected value.

Conditions fail closed: an unknown type or operator, or an invalid regex,
evaluates to False with a warning and never raises out of this module.
"""

import logging
import math
import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable

from timer_workflows.domain.rule import Condition, ConditionOperator, ConditionType
from timer_workflows.exceptions import ConditionEvaluationError
from timer_workflows.rules.interpolation import resolve_path

logger = logging.getLogger(__name__)


# ============================================================================
# Value resolvers (one per ConditionType)
# ============================================================================


def _timer_duration(context: Dict[str, Any], condition: Condition) -> Any:
    elapsed = resolve_path(context, "timer.elapsedMs")
    return 0 if elapsed is None else elapsed


def _timer_status(context: Dict[str, Any], condition: Condition) -> Any:
    return resolve_path(context, "timer.status")


def _issue_state(context: Dict[str, Any], condition: Condition) -> Any:
    return resolve_path(context, "issue.state")


def _user_role(context: Dict[str, Any], condition: Condition) -> Any:
    return resolve_path(context, "user.role")


def _project(context: Dict[str, Any], condition: Condition) -> Any:
    return resolve_path(context, "issue.projectShortName")


def _time_of_day(context: Dict[str, Any], condition: Condition) -> Any:
    """
    Current hour (0-23).

    Uses context['current']['hour'] computed in the configured timezone when
    the context was validated; falls back to the local wall clock.
    """
    hour = resolve_path(context, "current.hour")
    if hour is None:
        hour = datetime.now().hour
    return hour


def _custom(context: Dict[str, Any], condition: Condition) -> Any:
    if not condition.field:
        return None
    return resolve_path(context, condition.field)


_VALUE_RESOLVERS: Dict[ConditionType, Callable[[Dict[str, Any], Condition], Any]] = {
    ConditionType.TIMER_DURATION: _timer_duration,
    ConditionType.TIMER_STATUS: _timer_status,
    ConditionType.ISSUE_STATE: _issue_state,
    ConditionType.USER_ROLE: _user_role,
    ConditionType.PROJECT: _project,
    ConditionType.TIME_OF_DAY: _time_of_day,
    ConditionType.CUSTOM: _custom,
}


# ============================================================================
# Operators
# ============================================================================


def _strict_equals(actual: Any, expected: Any) -> bool:
    """Equality that does not let bool and int compare equal (True != 1)."""
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def _as_number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        raise ValueError(f"not numeric: {value!r}")
    number = float(value)
    if math.isnan(number):
        raise ValueError("NaN")
    return number


def _numeric(compare: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def _op(actual: Any, expected: Any) -> bool:
        try:
            return compare(_as_number(actual), _as_number(expected))
        except (TypeError, ValueError):
            return False

    return _op


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _contains(actual: Any, expected: Any) -> bool:
    return _as_text(expected) in _as_text(actual)


def _matches_regex(actual: Any, expected: Any) -> bool:
    try:
        pattern = re.compile(_as_text(expected))
    except re.error as e:
        raise ConditionEvaluationError(f"Invalid regex '{expected}': {e}") from e
    return pattern.search(_as_text(actual)) is not None


_OPERATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _strict_equals,
    ConditionOperator.NOT_EQUALS: lambda actual, expected: not _strict_equals(actual, expected),
    ConditionOperator.GREATER_THAN: _numeric(lambda a, b: a > b),
    ConditionOperator.LESS_THAN: _numeric(lambda a, b: a < b),
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.MATCHES_REGEX: _matches_regex,
}


def _check_coverage(
    resolvers: Dict[ConditionType, Any], operators: Dict[ConditionOperator, Any]
) -> None:
    missing_types = set(ConditionType) - set(resolvers)
    if missing_types:
        raise TypeError(f"No resolver for condition types: {sorted(t.value for t in missing_types)}")
    missing_operators = set(ConditionOperator) - set(operators)
    if missing_operators:
        raise TypeError(
            f"No implementation for operators: {sorted(o.value for o in missing_operators)}"
        )


_check_coverage(_VALUE_RESOLVERS, _OPERATORS)


# ============================================================================
# Public API
# ============================================================================


def _evaluate(condition: Condition, context: Dict[str, Any]) -> bool:
    try:
        condition_type = ConditionType(condition.type)
    except ValueError as e:
        raise ConditionEvaluationError(f"Unknown condition type '{condition.type}'") from e

    try:
        operator = ConditionOperator(condition.operator)
    except ValueError as e:
        raise ConditionEvaluationError(f"Unknown condition operator '{condition.operator}'") from e

    actual = _VALUE_RESOLVERS[condition_type](context, condition)
    result = _OPERATORS[operator](actual, condition.value)

    logger.debug(
        f"{condition_type.value} {operator.value} {condition.value!r}: "
        f"actual={actual!r}, result={result}"
    )
    return result


def evaluate_condition(condition: Condition, context: Dict[str, Any]) -> bool:
    """
    Evaluate a single condition against the context.

    Args:
        condition: Condition to evaluate
        context: Validated event context

    Returns:
        bool: Comparison result; False for malformed conditions

    Example:
        >>> cond = Condition(type="timer_duration", operator="greater_than", value=1000)
        >>> evaluate_condition(cond, {"timer": {"elapsedMs": 5000}})
        True
    """
    try:
        return bool(_evaluate(condition, context))
    except ConditionEvaluationError as e:
        logger.warning(f"Condition evaluated to False: {e}")
        return False
    except Exception as e:
        logger.warning(
            f"Unexpected error evaluating condition '{condition.type}': {e}", exc_info=True
        )
        return False


def evaluate_conditions(conditions: Iterable[Condition], context: Dict[str, Any]) -> bool:
    """
    AND all conditions, short-circuiting on the first False.

    An empty condition list is satisfied.
    """
    for condition in conditions:
        if not evaluate_condition(condition, context):
            return False
    return True

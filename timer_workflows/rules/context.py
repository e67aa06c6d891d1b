"""
Context Builder for Rule Engine

Builds and validates the data snapshot passed to condition evaluation and
template interpolation. A context is a plain dictionary with optional
``timer``, ``issue``, ``user`` and ``current`` sections plus any extra keys
needed by custom conditions.

The ``current`` section is filled in at validation time from the configured
timezone so that time_of_day conditions and ``${current.date}`` placeholders
agree within one dispatch.
"""

from typing import Any, Dict, Mapping, Optional
from datetime import datetime
import logging

from timer_workflows.exceptions import InvalidContextError
from timer_workflows.utils.timezone import now_in, to_epoch_ms

logger = logging.getLogger(__name__)

CONTEXT_VERSION = 1

SECTION_KEYS = ("timer", "issue", "user", "current")


def current_section(moment: datetime) -> Dict[str, Any]:
    """Describe a point in time for rule evaluation."""
    return {
        "date": moment.date().isoformat(),
        "time": moment.strftime("%H:%M:%S"),
        "hour": moment.hour,
        "weekday": moment.strftime("%A"),
        "timestamp": to_epoch_ms(moment) if moment.tzinfo else None,
        "iso": moment.isoformat(),
    }


def build_context(
    timer: Optional[Mapping[str, Any]] = None,
    issue: Optional[Mapping[str, Any]] = None,
    user: Optional[Mapping[str, Any]] = None,
    current_time: Optional[datetime] = None,
    timezone_name: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Build context object for rule evaluation.

    Args:
        timer: Timer snapshot (elapsedMs, status, startTime, ...)
        issue: Issue snapshot (id, key, state, projectShortName, ...)
        user: Acting user (name, login, role, ...)
        current_time: Evaluation time (defaults to now in timezone_name)
        timezone_name: IANA zone used when current_time is not given
        **extra: Additional top-level keys for custom conditions

    Returns:
        Validated context dictionary

    Example:
        >>> context = build_context(timer={"elapsedMs": 32400000}, issue={"key": "TEST-123"})
        >>> executions = engine.process_event({"type": "timer_critical"}, context)
    """
    context: Dict[str, Any] = dict(extra)
    if timer is not None:
        context["timer"] = dict(timer)
    if issue is not None:
        context["issue"] = dict(issue)
    if user is not None:
        context["user"] = dict(user)
    if current_time is not None:
        context["current"] = current_section(current_time)

    return validate_context(context, timezone_name=timezone_name)


def validate_context(
    context: Optional[Mapping[str, Any]],
    timezone_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Validate a context once at event ingress and return a normalized copy.

    Sections that are present must be mappings. The ``current`` section is
    added when missing and the context ``version`` is stamped.

    Raises:
        InvalidContextError: If the context or one of its sections is malformed
    """
    if context is None:
        context = {}
    if not isinstance(context, Mapping):
        raise InvalidContextError(
            f"Context must be a mapping, got {type(context).__name__}"
        )

    normalized: Dict[str, Any] = {}
    for key, value in context.items():
        if not isinstance(key, str):
            raise InvalidContextError(f"Context keys must be strings, got {key!r}")
        normalized[key] = value

    for section in SECTION_KEYS:
        value = normalized.get(section)
        if value is not None and not isinstance(value, Mapping):
            raise InvalidContextError(
                f"Context section '{section}' must be a mapping, got {type(value).__name__}"
            )
        if value is not None:
            normalized[section] = dict(value)

    if "current" not in normalized or normalized["current"] is None:
        try:
            moment = now or now_in(timezone_name)
        except ValueError as e:
            raise InvalidContextError(str(e)) from e
        normalized["current"] = current_section(moment)

    normalized.setdefault("version", CONTEXT_VERSION)

    logger.debug(
        f"Validated context sections: {sorted(k for k in SECTION_KEYS if k in normalized)}"
    )
    return normalized

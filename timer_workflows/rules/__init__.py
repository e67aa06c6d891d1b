"""Rule Engine Module"""

from .engine import RuleEngine
from .context import build_context, validate_context
from .conditions import evaluate_condition, evaluate_conditions
from .interpolation import interpolate, interpolate_value
from .actions import ActionExecutor, ActionServicesBundle
from .store import RuleStore
from .executions import ExecutionLog
from .scheduler import Clock, Scheduler, ThreadingClock

__all__ = [
    "RuleEngine",
    "build_context",
    "validate_context",
    "evaluate_condition",
    "evaluate_conditions",
    "interpolate",
    "interpolate_value",
    "ActionExecutor",
    "ActionServicesBundle",
    "RuleStore",
    "ExecutionLog",
    "Clock",
    "Scheduler",
    "ThreadingClock",
]

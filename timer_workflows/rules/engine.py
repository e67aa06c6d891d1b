"""
Rule Engine Core Module

Matches trigger events to enabled rules and runs them:
- Selects rules whose trigger set contains the event type
- Orders them by priority (ties keep insertion order)
- Evaluates each rule's conditions with AND logic
- Executes actions sequentially, recording results per action type
- Records every run as an Execution in the execution log

Failure isolation:
- A failing action is recorded in the execution results and the rule
  carries on with its next action; the execution still completes.
- An unexpected engine error fails that execution only; the remaining
  rules of the same event still run.
"""

import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from timer_workflows.config.settings import load_rule_definitions
from timer_workflows.domain.execution import Execution, ExecutionStatus, SKIPPED_RESULT_KEY
from timer_workflows.domain.rule import (
    Condition,
    Rule,
    TriggerEvent,
    TriggerEventType,
    normalize_rule_updates,
)
from timer_workflows.exceptions import (
    ActionExecutionError,
    EngineError,
    InvalidContextError,
    MissingContextError,
    RuleNotFoundError,
)
from timer_workflows.rules.actions import ActionExecutor
from timer_workflows.rules.conditions import evaluate_conditions
from timer_workflows.rules.context import validate_context
from timer_workflows.rules.executions import ExecutionLog
from timer_workflows.rules.scheduler import Clock, Scheduler, ThreadingClock
from timer_workflows.rules.store import RuleStore
from timer_workflows.utils.logger import get_logger
from timer_workflows.utils.timezone import utc_now

logger = get_logger(__name__)

DEFAULT_RETENTION = timedelta(hours=24)

ConditionsEvaluator = Callable[[Iterable[Condition], Dict[str, Any]], bool]


class RuleEngine:
    """
    Workflow rule engine.

    Construct one instance in the host application and pass it to the code
    that posts events; scheduled rules fire on the injected clock.
    """

    def __init__(
        self,
        action_executor: Optional[ActionExecutor] = None,
        clock: Optional[Clock] = None,
        store: Optional[RuleStore] = None,
        execution_log: Optional[ExecutionLog] = None,
        retention: timedelta = DEFAULT_RETENTION,
        timezone_name: Optional[str] = None,
        conditions_evaluator: ConditionsEvaluator = evaluate_conditions,
        now: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize rule engine.

        Args:
            action_executor: Executor with collaborators wired in
            clock: Clock for scheduled rules (ThreadingClock by default)
            store: Rule store (a new empty store by default)
            execution_log: Execution log (a new bounded log by default)
            retention: Age after which cleanup() purges executions
            timezone_name: Zone used for the context's 'current' section
            conditions_evaluator: AND-evaluator for rule conditions
            now: UTC clock for execution timestamps
        """
        self.action_executor = action_executor if action_executor is not None else ActionExecutor()
        self.store = store if store is not None else RuleStore()
        self.execution_log = execution_log if execution_log is not None else ExecutionLog()
        self.scheduler = Scheduler(
            clock if clock is not None else ThreadingClock(), self._on_schedule_tick
        )
        # Store writes and their scheduler bookkeeping happen under one lock
        self._lock = threading.RLock()
        self.retention = retention
        self.timezone_name = timezone_name
        self._evaluate_conditions = conditions_evaluator
        self._now = now

    # ------------------------------------------------------------------ #
    # Rule management
    # ------------------------------------------------------------------ #

    def add_rule(self, rule: Union[Rule, Mapping[str, Any]]) -> Rule:
        """
        Register a rule and schedule it when it has a schedule.

        Raises:
            DuplicateRuleError: If the id is already registered
            ValueError: If a rule dictionary is malformed
        """
        if not isinstance(rule, Rule):
            rule = Rule.from_dict(dict(rule))

        with self._lock:
            stored = self.store.add(rule)
            self.scheduler.register(stored)
        logger.info(
            "Workflow rule added",
            operation="add_rule",
            context={"rule_id": stored.id, "name": stored.name, "priority": stored.priority},
        )
        return stored

    def remove_rule(self, rule_id: str) -> None:
        """Remove a rule and cancel its schedule; unknown ids are ignored."""
        with self._lock:
            removed = self.store.remove(rule_id)
            self.scheduler.unregister(rule_id)
        logger.info(
            "Workflow rule removed",
            operation="remove_rule",
            context={"rule_id": rule_id, "existed": removed is not None},
        )

    def update_rule(self, rule_id: str, **updates: Any) -> Rule:
        """
        Update rule fields and re-register its schedule.

        Raises:
            RuleNotFoundError: If the rule does not exist
            ValueError: If updates name unknown fields
        """
        changes = normalize_rule_updates(updates)
        with self._lock:
            updated = self.store.update(rule_id, **changes)
            self.scheduler.register(updated)
        logger.info(
            "Workflow rule updated",
            operation="update_rule",
            context={"rule_id": rule_id, "fields": sorted(updates)},
        )
        return updated

    def enable_rule(self, rule_id: str) -> Rule:
        return self.update_rule(rule_id, enabled=True)

    def disable_rule(self, rule_id: str) -> Rule:
        return self.update_rule(rule_id, enabled=False)

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        return self.store.get(rule_id)

    def get_rules(self) -> List[Rule]:
        return self.store.list()

    def load_rules(self, rules_path: str, schema_path: Optional[str] = None) -> int:
        """
        Load rules from a YAML file and register them.

        Args:
            rules_path: Path to rules.yaml
            schema_path: Optional JSON schema to validate against first

        Returns:
            Number of rules added

        Raises:
            FileNotFoundError: If a file is missing
            ValueError: If YAML, schema validation or rule parsing fails
            DuplicateRuleError: If a rule id is already registered
        """
        definitions = load_rule_definitions(rules_path, schema_path)
        rules = []
        for index, definition in enumerate(definitions):
            try:
                rules.append(Rule.from_dict(definition))
            except ValueError as e:
                logger.error(
                    f"Failed to parse rule [{index}]",
                    operation="load_rules",
                    context={"rules_path": str(rules_path)},
                    error=str(e),
                )
                raise

        for rule in rules:
            self.add_rule(rule)

        logger.info(
            f"Successfully loaded {len(rules)} rules from {rules_path}",
            operation="load_rules",
            context={"rules_path": str(rules_path), "count": len(rules)},
        )
        return len(rules)

    # ------------------------------------------------------------------ #
    # Event processing
    # ------------------------------------------------------------------ #

    def process_event(
        self,
        event: Union[TriggerEvent, Mapping[str, Any], str],
        context: Optional[Mapping[str, Any]] = None,
    ) -> List[Execution]:
        """
        Main entry point: run every enabled rule triggered by the event.

        Args:
            event: TriggerEvent, {"type": ...} dictionary or bare type string
            context: Event context (timer/issue/user/current sections)

        Returns:
            Executions produced, in execution order

        Raises:
            InvalidContextError: If the event or context is malformed
        """
        try:
            trigger = TriggerEvent.from_dict(event)
        except ValueError as e:
            raise InvalidContextError(f"Invalid trigger event: {e}") from e
        validated = validate_context(context, timezone_name=self.timezone_name)

        rules = self.store.ordered_matching(
            lambda rule: rule.enabled and rule.is_triggered_by(trigger.type)
        )

        logger.info(
            "Processing workflow event",
            operation="process_event_start",
            context={
                "event_type": trigger.type,
                "applicable_rules": [rule.id for rule in rules],
            },
        )

        executions = self._dispatch(rules, trigger, validated)

        completed = sum(1 for e in executions if e.status is ExecutionStatus.COMPLETED)
        logger.info(
            f"Event processing complete: {len(rules)} rules matched, "
            f"{completed} completed, {len(rules) - completed} failed",
            operation="process_event_complete",
            context={"event_type": trigger.type, "rules_matched": len(rules)},
        )
        return executions

    def _dispatch(
        self, rules: List[Rule], trigger: TriggerEvent, context: Dict[str, Any]
    ) -> List[Execution]:
        executions: List[Execution] = []
        for rule in rules:
            try:
                executions.append(self.execute_rule(rule, trigger, context))
            except Exception as e:
                logger.error(
                    f"Unexpected error processing rule '{rule.id}'",
                    operation="process_event",
                    context={"rule_id": rule.id, "event_type": trigger.type},
                    error=str(e),
                )
        return executions

    def execute_rule(
        self,
        rule: Rule,
        trigger: TriggerEvent,
        context: Dict[str, Any],
        raise_errors: bool = False,
    ) -> Execution:
        """
        Evaluate a rule's conditions and run its actions.

        Args:
            rule: Rule to run (enabled/trigger filters are not applied here)
            trigger: Event that caused the run
            context: Validated context
            raise_errors: Re-raise engine-level failures as EngineError

        Returns:
            The finished Execution
        """
        try:
            execution = Execution.start(rule.id, trigger, context, now=self._now())
        except Exception as e:
            raise EngineError(f"Cannot snapshot context for rule '{rule.id}': {e}", rule_id=rule.id) from e
        self.execution_log.append(execution)

        log_context = {
            "rule_id": rule.id,
            "execution_id": execution.id,
            "event_type": trigger.type,
        }

        try:
            if not self._evaluate_conditions(rule.conditions, context):
                execution.record_result(SKIPPED_RESULT_KEY, "Conditions not met")
                execution.complete(now=self._now())
                logger.debug(
                    "Rule conditions not met, skipping",
                    operation="execute_rule",
                    context={**log_context, "result": "skipped"},
                )
                return execution

            failed_actions = 0
            for action in rule.actions:
                try:
                    result = self.action_executor.execute(action, context, rule_id=rule.id)
                except (ActionExecutionError, MissingContextError) as e:
                    failed_actions += 1
                    result = {"error": str(e)}
                execution.record_result(action.type, result)

            execution.complete(now=self._now())
            logger.info(
                f"Rule '{rule.id}' executed: {len(rule.actions) - failed_actions} action(s) "
                f"succeeded, {failed_actions} failed",
                operation="execute_rule",
                context={**log_context, "status": execution.status.value},
                duration_ms=execution.duration_ms,
            )

        except Exception as e:
            if not execution.is_finished:
                execution.fail(str(e), now=self._now())
            logger.error(
                f"Rule execution failed: '{rule.id}'",
                operation="execute_rule",
                context={**log_context, "status": execution.status.value},
                error=str(e),
            )
            if raise_errors:
                if isinstance(e, EngineError):
                    raise
                raise EngineError(f"Rule '{rule.id}' failed: {e}", rule_id=rule.id) from e

        return execution

    def test_rule(self, rule_id: str, context: Optional[Mapping[str, Any]] = None) -> Execution:
        """
        Run one rule against a test context, bypassing enabled/trigger filters.

        Per-action failures are recorded in the execution results.

        Raises:
            RuleNotFoundError: If the rule does not exist
            InvalidContextError: If the context is malformed
            EngineError: If the run fails at engine level
        """
        rule = self.store.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)

        validated = validate_context(context, timezone_name=self.timezone_name)
        trigger = TriggerEvent(type=TriggerEventType.USER_ACTION.value)
        return self.execute_rule(rule, trigger, validated, raise_errors=True)

    def _on_schedule_tick(self, rule_id: str, generation: int) -> None:
        """
        Dispatch a scheduled trigger for one rule; drop jobs whose rule vanished.

        Ticks from a job that has since been replaced or cancelled are ignored,
        so they can never cancel the rule's current job.
        """
        with self._lock:
            if not self.scheduler.is_current(rule_id, generation):
                logger.debug(
                    "Ignoring tick from a superseded job",
                    operation="scheduled_tick",
                    context={"rule_id": rule_id, "generation": generation},
                )
                return

            rule = self.store.get(rule_id)
            if rule is None or not rule.enabled:
                self.scheduler.unregister(rule_id)
                logger.warning(
                    "Scheduled tick for missing or disabled rule; job cancelled",
                    operation="scheduled_tick",
                    context={"rule_id": rule_id},
                )
                return

        timezone_name = rule.schedule.timezone if rule.schedule else None
        context = validate_context({}, timezone_name=timezone_name or self.timezone_name)
        trigger = TriggerEvent(type=TriggerEventType.SCHEDULED.value, filters={"rule_id": rule_id})
        self._dispatch([rule], trigger, context)

    # ------------------------------------------------------------------ #
    # Execution history
    # ------------------------------------------------------------------ #

    def get_executions(self, rule_id: Optional[str] = None) -> List[Execution]:
        return self.execution_log.list(rule_id)

    def cleanup(self) -> int:
        """
        Cancel every scheduled job and purge executions older than the retention window.

        Returns:
            Number of executions purged
        """
        cancelled = self.scheduler.cancel_all()
        cutoff = self._now() - self.retention
        purged = self.execution_log.purge_older_than(cutoff)
        logger.info(
            "Workflow engine cleanup completed",
            operation="cleanup",
            context={"jobs_cancelled": cancelled, "executions_purged": purged},
        )
        return purged

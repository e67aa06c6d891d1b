"""
Periodic scheduling of rules.

The Scheduler turns each enabled rule's Schedule into a fixed firing period
and registers one repeating job per rule id with a Clock. On every tick the
job hands the rule id to the engine, which synthesizes a ``scheduled``
trigger event.

Daily and weekly schedules fire every 24h / 7d of elapsed time counted from
registration; their cron-like expression is informational only.
"""

import threading
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from timer_workflows.domain.rule import Rule, Schedule, ScheduleType
from timer_workflows.utils.logger import get_logger

logger = get_logger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
WEEK_MS = 7 * DAY_MS


class Clock(Protocol):
    """Timer capability used by the scheduler."""

    def schedule(self, period_ms: int, fn: Callable[[], None]) -> Any:
        """Call fn every period_ms milliseconds until cancelled; return a handle."""

    def cancel(self, handle: Any) -> None:
        """Stop a job returned by schedule(). Cancelling twice is harmless."""


class _RepeatingJob:
    def __init__(self, period_ms: int, fn: Callable[[], None]):
        self.period_seconds = period_ms / 1000.0
        self.fn = fn
        self._lock = threading.Lock()
        self._cancelled = False
        self._timer: Optional[threading.Timer] = None

    def start(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._timer = threading.Timer(self.period_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        if self._cancelled:
            return
        try:
            self.fn()
        except Exception as e:
            logger.error("Scheduled job raised", operation="scheduled_tick", error=str(e))
        self.start()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()


class ThreadingClock:
    """Clock backed by daemon threading.Timer chains."""

    def schedule(self, period_ms: int, fn: Callable[[], None]) -> _RepeatingJob:
        job = _RepeatingJob(period_ms, fn)
        job.start()
        return job

    def cancel(self, handle: _RepeatingJob) -> None:
        handle.cancel()


def period_for(schedule: Schedule) -> Optional[int]:
    """
    Firing period in milliseconds, or None when the schedule is unusable.

    Example:
        >>> period_for(Schedule(type="interval", expression="60000"))
        60000
        >>> period_for(Schedule(type="daily", expression="0 18 * * *"))
        86400000
    """
    schedule_type = ScheduleType(schedule.type)
    if schedule_type is ScheduleType.DAILY:
        return DAY_MS
    if schedule_type is ScheduleType.WEEKLY:
        return WEEK_MS

    try:
        period = int(str(schedule.expression).strip())
    except ValueError:
        return None
    return period if period > 0 else None


class Scheduler:
    """
    One live clock job per rule id.

    Args:
        clock: Clock implementation (ThreadingClock in production)
        on_tick: Callback receiving (rule id, job generation) on every period elapse
    """

    def __init__(self, clock: Clock, on_tick: Callable[[str, int], None]):
        self.clock = clock
        self.on_tick = on_tick
        self._lock = threading.RLock()
        self._jobs: Dict[str, Tuple[int, Any]] = {}
        self._generation = 0

    def register(self, rule: Rule) -> bool:
        """
        (Re)schedule a rule. Any previous job for the id is cancelled first.

        Returns:
            True if a job is now live for the rule
        """
        with self._lock:
            self.unregister(rule.id)

            if not rule.enabled or rule.schedule is None:
                return False

            period_ms = period_for(rule.schedule)
            if period_ms is None:
                logger.warning(
                    "Invalid schedule expression; rule not scheduled",
                    operation="schedule_rule",
                    context={
                        "rule_id": rule.id,
                        "type": rule.schedule.type,
                        "expression": rule.schedule.expression,
                    },
                )
                return False

            rule_id = rule.id
            self._generation += 1
            generation = self._generation
            handle = self.clock.schedule(period_ms, lambda: self.on_tick(rule_id, generation))
            self._jobs[rule_id] = (generation, handle)
            logger.debug(
                "Rule scheduled",
                operation="schedule_rule",
                context={"rule_id": rule_id, "period_ms": period_ms, "generation": generation},
            )
            return True

    def unregister(self, rule_id: str) -> bool:
        with self._lock:
            job = self._jobs.pop(rule_id, None)
            if job is None:
                return False
            self.clock.cancel(job[1])
            logger.debug("Rule unscheduled", operation="unschedule_rule", context={"rule_id": rule_id})
            return True

    def cancel_all(self) -> int:
        with self._lock:
            rule_ids = list(self._jobs)
            for rule_id in rule_ids:
                self.unregister(rule_id)
            return len(rule_ids)

    def scheduled_rule_ids(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def is_scheduled(self, rule_id: str) -> bool:
        with self._lock:
            return rule_id in self._jobs

    def is_current(self, rule_id: str, generation: int) -> bool:
        """True if generation identifies the live job for rule_id."""
        with self._lock:
            job = self._jobs.get(rule_id)
            return job is not None and job[0] == generation

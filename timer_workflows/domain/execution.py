"""
Execution audit record.

An execution is created when a rule is dispatched, moves from running to
exactly one terminal state, and is frozen once end_time is set.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from timer_workflows.domain.rule import TriggerEvent
from timer_workflows.exceptions import EngineError
from timer_workflows.utils.timezone import to_epoch_ms, utc_now


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)

SKIPPED_RESULT_KEY = "skipped"


def new_execution_id(now: Optional[datetime] = None) -> str:
    """Build an execution id such as exec_1729260000000_3f9a1c2b7."""
    moment = now or utc_now()
    return f"exec_{to_epoch_ms(moment)}_{uuid.uuid4().hex[:9]}"


@dataclass
class Execution:
    """
    Record of one rule's evaluation-and-action run for one event.

    Attributes:
        id: Unique execution id
        rule_id: Rule that was executed
        trigger_event: Snapshot of the triggering event
        context: Deep copy of the context at dispatch time
        start_time: UTC start timestamp
        end_time: UTC end timestamp, set exactly once
        status: Current ExecutionStatus
        error: Engine-level failure message (failed executions only)
        results: Action type -> result descriptor or {"error": message}
    """

    id: str
    rule_id: str
    trigger_event: TriggerEvent
    context: Dict[str, Any]
    start_time: datetime
    end_time: Optional[datetime] = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    error: Optional[str] = None
    results: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def start(
        cls,
        rule_id: str,
        trigger_event: TriggerEvent,
        context: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> "Execution":
        """Create an execution already in the running state."""
        start_time = now or utc_now()
        return cls(
            id=new_execution_id(start_time),
            rule_id=rule_id,
            trigger_event=TriggerEvent.from_dict(trigger_event),
            context=copy.deepcopy(context),
            start_time=start_time,
            status=ExecutionStatus.RUNNING,
        )

    @property
    def is_finished(self) -> bool:
        return self.end_time is not None

    @property
    def duration_ms(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds() * 1000

    def record_result(self, key: str, result: Any) -> None:
        self._ensure_open()
        self.results[key] = result

    def complete(self, now: Optional[datetime] = None) -> None:
        self._finish(ExecutionStatus.COMPLETED, now)

    def fail(self, error: str, now: Optional[datetime] = None) -> None:
        self._ensure_open()
        self.error = error
        self._finish(ExecutionStatus.FAILED, now)

    def _finish(self, status: ExecutionStatus, now: Optional[datetime]) -> None:
        self._ensure_open()
        self.status = status
        self.end_time = now or utc_now()

    def _ensure_open(self) -> None:
        if self.end_time is not None or self.status in TERMINAL_STATUSES:
            raise EngineError(
                f"Execution {self.id} already finished with status '{self.status.value}'",
                rule_id=self.rule_id,
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "trigger_event": self.trigger_event.to_dict(),
            "context": copy.deepcopy(self.context),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "status": self.status.value,
            "error": self.error,
            "results": copy.deepcopy(self.results),
        }

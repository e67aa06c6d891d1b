"""
Bounded, append-only log of rule executions.
"""

import threading
from collections import OrderedDict
from datetime import datetime
from typing import List, Optional

from timer_workflows.domain.execution import Execution

DEFAULT_MAX_ENTRIES = 1000


class ExecutionLog:
    """
    Execution records keyed by id, in append order.

    When max_entries is exceeded the oldest record is evicted.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._lock = threading.RLock()
        self._executions: "OrderedDict[str, Execution]" = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._executions)

    def append(self, execution: Execution) -> None:
        with self._lock:
            if execution.id in self._executions:
                raise ValueError(f"Execution already logged: {execution.id}")
            self._executions[execution.id] = execution
            while len(self._executions) > self.max_entries:
                self._executions.popitem(last=False)

    def get(self, execution_id: str) -> Optional[Execution]:
        with self._lock:
            return self._executions.get(execution_id)

    def list(self, rule_id: Optional[str] = None) -> List[Execution]:
        with self._lock:
            executions = list(self._executions.values())
        if rule_id is None:
            return executions
        return [execution for execution in executions if execution.rule_id == rule_id]

    def purge_older_than(self, cutoff: datetime) -> int:
        """Drop executions that started before cutoff; returns how many were removed."""
        with self._lock:
            stale = [
                execution_id
                for execution_id, execution in self._executions.items()
                if execution.start_time < cutoff
            ]
            for execution_id in stale:
                del self._executions[execution_id]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._executions.clear()

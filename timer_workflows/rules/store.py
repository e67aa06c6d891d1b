"""
Thread-safe in-memory rule registry.

Keeps rules in insertion order so that rules with equal priority run in the
order they were added. Reads hand out deep copies; the only way to change a
stored rule is through add/update/remove.
"""

import copy
import dataclasses
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from timer_workflows.domain.rule import Rule
from timer_workflows.exceptions import DuplicateRuleError, RuleNotFoundError

_UPDATABLE_FIELDS = frozenset(f.name for f in dataclasses.fields(Rule)) - {"id"}


class RuleStore:
    """Registry of rules keyed by id, guarded by a re-entrant lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._rules: Dict[str, Tuple[int, Rule]] = {}
        self._sequence = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        with self._lock:
            return rule_id in self._rules

    def add(self, rule: Rule) -> Rule:
        """
        Register a new rule.

        Raises:
            DuplicateRuleError: If a rule with the same id exists
        """
        with self._lock:
            if rule.id in self._rules:
                raise DuplicateRuleError(rule.id)
            self._sequence += 1
            stored = copy.deepcopy(rule)
            self._rules[rule.id] = (self._sequence, stored)
            return copy.deepcopy(stored)

    def remove(self, rule_id: str) -> Optional[Rule]:
        """Remove a rule; returns the removed rule or None when it was absent."""
        with self._lock:
            entry = self._rules.pop(rule_id, None)
            return entry[1] if entry else None

    def update(self, rule_id: str, **changes: Any) -> Rule:
        """
        Apply field changes to a stored rule, keeping its insertion position.

        Raises:
            RuleNotFoundError: If the rule does not exist
            ValueError: If changes name unknown fields or try to change the id
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update rule fields: {sorted(unknown)}")

        with self._lock:
            entry = self._rules.get(rule_id)
            if entry is None:
                raise RuleNotFoundError(rule_id)
            sequence, current = entry
            updated = dataclasses.replace(current, **copy.deepcopy(changes))
            self._rules[rule_id] = (sequence, updated)
            return copy.deepcopy(updated)

    def get(self, rule_id: str) -> Optional[Rule]:
        with self._lock:
            entry = self._rules.get(rule_id)
            return copy.deepcopy(entry[1]) if entry else None

    def list(self) -> List[Rule]:
        """All rules in insertion order."""
        with self._lock:
            entries = sorted(self._rules.values(), key=lambda item: item[0])
            return [copy.deepcopy(rule) for _, rule in entries]

    def ordered_matching(self, predicate: Callable[[Rule], bool]) -> List[Rule]:
        """Rules satisfying predicate, sorted by (priority, insertion order)."""
        with self._lock:
            entries = [entry for entry in self._rules.values() if predicate(entry[1])]
            entries.sort(key=lambda item: (item[1].priority, item[0]))
            return [copy.deepcopy(rule) for _, rule in entries]

    def clear(self) -> None:
        with self._lock:
            self._rules.clear()

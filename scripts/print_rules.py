#!/usr/bin/env python3
"""
Print a summary of a workflow rules file.

Usage:
    python scripts/print_rules.py [path/to/rules.yaml]

Parses every rule the same way the engine does, then lists triggers,
schedules, conditions and actions per rule plus usage counts per type.
"""

import logging
import sys
from collections import Counter
from pathlib import Path
from typing import List

from timer_workflows.config.settings import DEFAULT_RULES_SCHEMA, load_rule_definitions
from timer_workflows.domain.rule import Rule
from timer_workflows.rules.scheduler import period_for

logging.basicConfig(level=logging.INFO, format="%(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def print_rules_summary(rules: List[Rule]) -> None:
    print("\n" + "=" * 80)
    print("WORKFLOW RULES SUMMARY")
    print("=" * 80)

    enabled = sum(1 for rule in rules if rule.enabled)
    print(f"\nTotal Rules: {len(rules)}")
    print(f"  - Enabled:  {enabled}")
    print(f"  - Disabled: {len(rules) - enabled}")

    condition_types: Counter = Counter()
    action_types: Counter = Counter()

    for rule in sorted(rules, key=lambda r: r.priority):
        status = "ENABLED" if rule.enabled else "DISABLED"
        print(f"\n[{rule.priority}] {rule.id} - {rule.name} [{status}]")
        if rule.description:
            print(f"    Description: {rule.description}")
        print(f"    Triggers: {', '.join(sorted(rule.trigger_types)) or '(none)'}")
        if rule.schedule:
            period = period_for(rule.schedule)
            every = f"every {period} ms" if period else "not schedulable"
            print(f"    Schedule: {rule.schedule.type} '{rule.schedule.expression}' ({every})")

        print(f"    Conditions ({len(rule.conditions)}):")
        for condition in rule.conditions:
            condition_types[condition.type] += 1
            print(f"      - {condition.type} {condition.operator} {condition.value!r}")

        print(f"    Actions ({len(rule.actions)}):")
        for action in rule.actions:
            action_types[action.type] += 1
            keys = ", ".join(sorted(action.parameters)) or "no parameters"
            print(f"      - {action.type} ({keys})")

    print("\n" + "-" * 80)
    print(f"Condition Types Used ({len(condition_types)}):")
    for name, count in sorted(condition_types.items()):
        print(f"  - {name}: {count} occurrence(s)")
    print(f"Action Types Used ({len(action_types)}):")
    for name, count in sorted(action_types.items()):
        print(f"  - {name}: {count} occurrence(s)")
    print("=" * 80 + "\n")


def main(argv: List[str]) -> int:
    project_root = Path(__file__).resolve().parent.parent
    rules_path = Path(argv[0]) if argv else project_root / "config" / "rules.yaml"

    try:
        definitions = load_rule_definitions(str(rules_path), DEFAULT_RULES_SCHEMA)
        rules = [Rule.from_dict(definition) for definition in definitions]
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return 1

    print_rules_summary(rules)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))

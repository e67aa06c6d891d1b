"""
Unit tests for condition evaluation.

Covers every condition type's value source, every operator, AND semantics
and fail-closed handling of malformed conditions.
"""

import logging

import pytest

from timer_workflows.domain.rule import Condition, ConditionOperator, ConditionType
from timer_workflows.rules import conditions
from timer_workflows.rules.conditions import evaluate_condition, evaluate_conditions


@pytest.fixture
def context():
    return {
        "timer": {"elapsedMs": 32400000, "status": "critical"},
        "issue": {"id": "2-17", "state": "In Progress", "projectShortName": "TEST", "votes": 3},
        "user": {"role": "developer", "active": True},
        "current": {"hour": 18},
    }


def cond(type_, operator, value=None, field=None):
    return Condition(type=type_, operator=operator, value=value, field=field)


class TestValueSources:
    """Each condition type reads one fixed context location."""

    def test_timer_duration(self, context):
        assert evaluate_condition(cond("timer_duration", "greater_than", 28800000), context)

    def test_timer_duration_defaults_to_zero(self):
        assert evaluate_condition(cond("timer_duration", "equals", 0), {"timer": {}})
        assert evaluate_condition(cond("timer_duration", "less_than", 1), {})

    def test_timer_status(self, context):
        assert evaluate_condition(cond("timer_status", "equals", "critical"), context)

    def test_issue_state(self, context):
        assert evaluate_condition(cond("issue_state", "not_equals", "Done"), context)

    def test_user_role(self, context):
        assert evaluate_condition(cond("user_role", "equals", "developer"), context)

    def test_project(self, context):
        assert evaluate_condition(cond("project", "equals", "TEST"), context)

    def test_time_of_day_uses_current_hour(self, context):
        assert evaluate_condition(cond("time_of_day", "greater_than", 17), context)
        assert not evaluate_condition(cond("time_of_day", "less_than", 9), context)

    def test_time_of_day_falls_back_to_wall_clock(self):
        assert evaluate_condition(cond("time_of_day", "less_than", 24), {})

    def test_custom_field_path(self, context):
        assert evaluate_condition(cond("custom", "equals", 3, field="issue.votes"), context)

    def test_custom_without_field_compares_none(self, context):
        assert not evaluate_condition(cond("custom", "equals", "x"), context)


class TestOperators:
    def test_equals_is_type_strict(self, context):
        assert not evaluate_condition(cond("custom", "equals", 1, field="user.active"), context)
        assert evaluate_condition(cond("custom", "equals", True, field="user.active"), context)
        assert not evaluate_condition(cond("custom", "equals", "3", field="issue.votes"), context)

    def test_not_equals_with_missing_value(self, context):
        assert evaluate_condition(cond("custom", "not_equals", "x", field="issue.missing"), context)

    def test_numeric_comparisons_coerce_strings(self, context):
        assert evaluate_condition(cond("timer_duration", "greater_than", "28800000"), context)
        assert evaluate_condition(cond("custom", "less_than", "10", field="issue.votes"), context)

    @pytest.mark.parametrize("value", ["eight hours", None, True, float("nan")])
    def test_non_numeric_comparisons_are_false(self, context, value):
        assert not evaluate_condition(cond("timer_duration", "greater_than", value), context)

    def test_contains(self, context):
        assert evaluate_condition(cond("issue_state", "contains", "Progress"), context)
        assert not evaluate_condition(cond("issue_state", "contains", "Done"), context)

    def test_contains_on_missing_value(self, context):
        assert not evaluate_condition(cond("custom", "contains", "a", field="nothing"), context)

    def test_matches_regex(self, context):
        assert evaluate_condition(cond("project", "matches_regex", "^TE"), context)
        assert not evaluate_condition(cond("project", "matches_regex", "^PROD"), context)


class TestDispatchCoverage:
    def test_tables_cover_every_member(self):
        conditions._check_coverage(conditions._VALUE_RESOLVERS, conditions._OPERATORS)

    def test_missing_resolver_raises_type_error(self):
        resolvers = dict(conditions._VALUE_RESOLVERS)
        del resolvers[ConditionType.PROJECT]
        with pytest.raises(TypeError, match="project"):
            conditions._check_coverage(resolvers, conditions._OPERATORS)

    def test_missing_operator_raises_type_error(self):
        operators = dict(conditions._OPERATORS)
        del operators[ConditionOperator.CONTAINS]
        with pytest.raises(TypeError, match="contains"):
            conditions._check_coverage(conditions._VALUE_RESOLVERS, operators)


class TestFailClosed:
    def test_unknown_type_is_false(self, context, caplog):
        with caplog.at_level(logging.WARNING):
            assert not evaluate_condition(cond("weather", "equals", "sunny"), context)
        assert "Unknown condition type" in caplog.text

    def test_unknown_operator_is_false(self, context):
        assert not evaluate_condition(cond("project", "starts_with", "TE"), context)

    def test_invalid_regex_is_false(self, context, caplog):
        with caplog.at_level(logging.WARNING):
            assert not evaluate_condition(cond("project", "matches_regex", "[unclosed"), context)
        assert "Invalid regex" in caplog.text


class TestEvaluateConditions:
    def test_empty_list_is_true(self, context):
        assert evaluate_conditions([], context) is True

    def test_all_must_hold(self, context):
        conditions = [
            cond("timer_duration", "greater_than", 28800000),
            cond("timer_status", "equals", "critical"),
        ]
        assert evaluate_conditions(conditions, context)

        conditions.append(cond("issue_state", "equals", "Done"))
        assert not evaluate_conditions(conditions, context)

    def test_short_circuits_after_first_false(self, context):
        seen = []

        class Spy(dict):
            def get(self, key, default=None):
                seen.append(key)
                return super().get(key, default)

        spy_context = dict(context, issue=Spy(context["issue"]))
        conditions = [
            cond("timer_status", "equals", "stopped"),
            cond("issue_state", "equals", "In Progress"),
        ]

        assert not evaluate_conditions(conditions, spy_context)
        assert seen == []

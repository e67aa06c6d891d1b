"""
Unit tests for template interpolation (timer_workflows/rules/interpolation.py)
"""

from types import SimpleNamespace

from timer_workflows.rules.interpolation import interpolate, interpolate_value, resolve_path


CONTEXT = {
    "issue": {"key": "TEST-123", "id": "2-17", "tags": ["urgent", "backend"]},
    "user": {"name": "John Doe", "email": None},
    "timer": {"elapsedMs": 32400000, "running": True},
}


class TestResolvePath:
    """Dot-path lookup used by conditions and templates."""

    def test_nested_dict_lookup(self):
        assert resolve_path(CONTEXT, "issue.key") == "TEST-123"

    def test_missing_segment_returns_none(self):
        assert resolve_path(CONTEXT, "issue.assignee.name") is None
        assert resolve_path(CONTEXT, "nothing") is None

    def test_list_index(self):
        assert resolve_path(CONTEXT, "issue.tags.1") == "backend"
        assert resolve_path(CONTEXT, "issue.tags.5") is None

    def test_attribute_lookup(self):
        context = {"issue": SimpleNamespace(key="OBJ-1")}
        assert resolve_path(context, "issue.key") == "OBJ-1"

    def test_methods_and_private_names_never_resolve(self):
        context = {"issue": SimpleNamespace(key="OBJ-1", _token="secret")}
        assert resolve_path(CONTEXT, "issue.key.upper") is None
        assert resolve_path(CONTEXT, "issue.__class__") is None
        assert resolve_path(context, "issue._token") is None
        assert interpolate("${issue.key.upper}", CONTEXT) == "${issue.key.upper}"

    def test_zero_and_false_are_values(self):
        assert resolve_path({"a": {"b": 0}}, "a.b") == 0
        assert resolve_path({"a": {"b": False}}, "a.b") is False


class TestInterpolate:
    """Single string substitution."""

    def test_replaces_tokens(self):
        result = interpolate("Timer for ${issue.key} by ${user.name}", CONTEXT)
        assert result == "Timer for TEST-123 by John Doe"

    def test_numbers_are_stringified(self):
        assert interpolate("${timer.elapsedMs} ms", CONTEXT) == "32400000 ms"

    def test_booleans_render_lowercase(self):
        assert interpolate("running=${timer.running}", CONTEXT) == "running=true"

    def test_missing_token_left_untouched(self):
        assert interpolate("Assignee: ${issue.assignee}", CONTEXT) == "Assignee: ${issue.assignee}"

    def test_none_value_left_untouched(self):
        assert interpolate("Mail ${user.email}", CONTEXT) == "Mail ${user.email}"

    def test_string_without_tokens_unchanged(self):
        assert interpolate("plain text", CONTEXT) == "plain text"

    def test_non_string_returned_as_is(self):
        assert interpolate(42, CONTEXT) == 42
        assert interpolate(None, CONTEXT) is None

    def test_same_token_twice(self):
        assert interpolate("${issue.key}/${issue.key}", CONTEXT) == "TEST-123/TEST-123"


class TestInterpolateValue:
    """Recursive interpolation of parameter trees."""

    def test_nested_structures(self):
        payload = {
            "date": "${issue.key}",
            "includeCharts": True,
            "count": 3,
            "items": ["${user.name}", 7, {"deep": "${issue.id}"}],
        }

        result = interpolate_value(payload, CONTEXT)

        assert result == {
            "date": "TEST-123",
            "includeCharts": True,
            "count": 3,
            "items": ["John Doe", 7, {"deep": "2-17"}],
        }

    def test_input_tree_not_mutated(self):
        payload = {"message": "${issue.key}"}
        interpolate_value(payload, CONTEXT)
        assert payload == {"message": "${issue.key}"}

    def test_tuple_preserved(self):
        assert interpolate_value(("${issue.key}", 1), CONTEXT) == ("TEST-123", 1)

    def test_none_passes_through(self):
        assert interpolate_value(None, CONTEXT) is None

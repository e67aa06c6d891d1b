"""
Template interpolation for action parameters.

Rewrites ``${dot.path}`` placeholders with values resolved from the rule
context. Tokens that cannot be resolved are left in place so that a broken
template is visible in the delivered message instead of silently blanked.
"""

import re
from collections.abc import Mapping
from typing import Any, Dict

_PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}]+)\}")

_MISSING = object()


def resolve_path(context: Any, path: str) -> Any:
    """
    Resolve a dot-delimited path by sequential key lookup.

    Supports mapping keys, list indices and public data attributes of
    objects placed in the context. Underscore-prefixed names and callables
    (methods) never resolve.

    Returns:
        The resolved value, or None when any segment is missing

    Example:
        >>> resolve_path({"issue": {"key": "TEST-1"}}, "issue.key")
        'TEST-1'
        >>> resolve_path({"issue": {}}, "issue.key") is None
        True
    """
    value = _lookup(context, path)
    return None if value is _MISSING else value


def _lookup(context: Any, path: str) -> Any:
    value: Any = context

    for part in path.strip().split("."):
        if value is None:
            return _MISSING
        if isinstance(value, Mapping):
            value = value.get(part, _MISSING)
        elif isinstance(value, (list, tuple)) and part.lstrip("-").isdigit():
            index = int(part)
            value = value[index] if -len(value) <= index < len(value) else _MISSING
        elif part.startswith("_"):
            return _MISSING
        else:
            value = getattr(value, part, _MISSING)
            if callable(value):
                return _MISSING

        if value is _MISSING:
            return _MISSING

    return value


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def interpolate(template: Any, context: Dict[str, Any]) -> Any:
    """
    Substitute every ``${path}`` token in a string.

    Unresolvable tokens (missing key or None value) keep their original text.
    Non-string input is returned unchanged.

    Example:
        >>> interpolate("Timer for ${issue.key}", {"issue": {"key": "TEST-1"}})
        'Timer for TEST-1'
        >>> interpolate("${a.b}", {"a": {}})
        '${a.b}'
    """
    if not isinstance(template, str):
        return template

    def _substitute(match: "re.Match[str]") -> str:
        value = _lookup(context, match.group(1))
        if value is _MISSING or value is None:
            return match.group(0)
        return _render(value)

    return _PLACEHOLDER_PATTERN.sub(_substitute, template)


def interpolate_value(value: Any, context: Dict[str, Any]) -> Any:
    """
    Recursively interpolate a parameter tree.

    Dicts, lists and tuples are rebuilt; only string leaves are rewritten.
    Numbers, booleans and None pass through untouched.
    """
    if isinstance(value, str):
        return interpolate(value, context)

    if isinstance(value, dict):
        return {key: interpolate_value(item, context) for key, item in value.items()}

    if isinstance(value, list):
        return [interpolate_value(item, context) for item in value]

    if isinstance(value, tuple):
        return tuple(interpolate_value(item, context) for item in value)

    return value

"""
Unit tests for timezone utility helpers and context building.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytz

from timer_workflows.exceptions import InvalidContextError
from timer_workflows.rules.context import build_context, current_section, validate_context
from timer_workflows.utils.timezone import now_in, resolve_timezone, to_epoch_ms, utc_now


def test_resolve_timezone_defaults_to_utc():
    assert resolve_timezone(None) is pytz.utc
    assert resolve_timezone("") is pytz.utc


def test_resolve_timezone_unknown_raises_value_error():
    with pytest.raises(ValueError, match="Unknown timezone"):
        resolve_timezone("Atlantis/Capital")


def test_now_in_is_aware_in_requested_zone():
    current = now_in("Asia/Seoul")
    assert current.utcoffset() == timedelta(hours=9)


def test_utc_now_is_aware():
    assert utc_now().tzinfo is not None


def test_to_epoch_ms():
    assert to_epoch_ms(datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)) == 1000


class TestContext:
    MOMENT = datetime(2025, 3, 14, 18, 5, 9, tzinfo=timezone.utc)

    def test_current_section(self):
        section = current_section(self.MOMENT)
        assert section["date"] == "2025-03-14"
        assert section["time"] == "18:05:09"
        assert section["hour"] == 18
        assert section["weekday"] == "Friday"
        assert section["timestamp"] == to_epoch_ms(self.MOMENT)

    def test_validate_adds_current_and_version(self):
        context = validate_context({"issue": {"key": "TEST-1"}}, now=self.MOMENT)
        assert context["current"]["hour"] == 18
        assert context["version"] == 1
        assert context["issue"] == {"key": "TEST-1"}

    def test_validate_uses_timezone(self):
        context = validate_context({}, timezone_name="Asia/Seoul")
        expected_hour = now_in("Asia/Seoul").hour
        assert context["current"]["hour"] in (expected_hour, (expected_hour - 1) % 24)

    def test_validate_keeps_supplied_current(self):
        context = validate_context({"current": {"hour": 7}})
        assert context["current"] == {"hour": 7}

    def test_validate_none_is_empty_context(self):
        assert set(validate_context(None)) == {"current", "version"}

    @pytest.mark.parametrize(
        "bad",
        ["text", {1: "numeric key"}, {"timer": ["not", "mapping"]}, {"user": "jdoe"}],
    )
    def test_validate_rejects_malformed(self, bad):
        with pytest.raises(InvalidContextError):
            validate_context(bad)

    def test_validate_unknown_timezone(self):
        with pytest.raises(InvalidContextError):
            validate_context({}, timezone_name="Atlantis/Capital")

    def test_build_context(self):
        context = build_context(
            timer={"elapsedMs": 1000},
            issue={"key": "TEST-9"},
            user={"name": "Ann"},
            current_time=self.MOMENT,
            sprint="S1",
        )
        assert context["timer"]["elapsedMs"] == 1000
        assert context["current"]["date"] == "2025-03-14"
        assert context["sprint"] == "S1"

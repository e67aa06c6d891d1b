"""
Shared fixtures: a manual clock and recording collaborators.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

import pytest

from timer_workflows.rules.actions import ActionExecutor, ActionServicesBundle
from timer_workflows.rules.engine import RuleEngine


class FakeClock:
    """Clock whose jobs fire only when a test advances time."""

    def __init__(self):
        self.now_ms = 0
        self._next_handle = 0
        self.jobs: Dict[int, Dict[str, Any]] = {}

    def schedule(self, period_ms: int, fn: Callable[[], None]) -> int:
        self._next_handle += 1
        self.jobs[self._next_handle] = {
            "period_ms": period_ms,
            "fn": fn,
            "next_ms": self.now_ms + period_ms,
        }
        return self._next_handle

    def cancel(self, handle: int) -> None:
        self.jobs.pop(handle, None)

    def advance(self, ms: int) -> None:
        """Move time forward, firing due jobs in due-time order."""
        target = self.now_ms + ms
        while True:
            due = [
                (job["next_ms"], handle)
                for handle, job in self.jobs.items()
                if job["next_ms"] <= target
            ]
            if not due:
                break
            next_ms, handle = min(due)
            job = self.jobs[handle]
            self.now_ms = next_ms
            job["next_ms"] += job["period_ms"]
            job["fn"]()
        self.now_ms = target

    @property
    def active_jobs(self) -> int:
        return len(self.jobs)


class RecordingNotificationSink:
    def __init__(self):
        self.sent: List[Any] = []

    def send(self, notification):
        self.sent.append(notification)


class RecordingIssueTracker:
    def __init__(self):
        self.calls: List[tuple] = []

    def update_issue(self, issue_id, fields):
        self.calls.append(("update_issue", issue_id, fields))

    def add_comment(self, issue_id, text, visibility=None):
        self.calls.append(("add_comment", issue_id, text, visibility))

    def assign_user(self, issue_id, user_id):
        self.calls.append(("assign_user", issue_id, user_id))

    def log_time(self, issue_id, duration_ms, work_type=None, description=None):
        self.calls.append(("log_time", issue_id, duration_ms, work_type, description))


class RecordingCommandRunner:
    def __init__(self, exit_code: int = 0):
        self.commands: List[str] = []
        self.exit_code = exit_code

    def run(self, command):
        self.commands.append(command)
        return {"exit_code": self.exit_code, "stdout": "", "stderr": ""}


class RecordingHttpClient:
    def __init__(self, status_code: int = 200):
        self.calls: List[tuple] = []
        self.status_code = status_code

    def call(self, url, method="POST", payload=None):
        self.calls.append((url, method, payload))
        return {"status_code": self.status_code, "body": None}


FIXED_NOW = datetime(2025, 3, 14, 18, 30, tzinfo=timezone.utc)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def notification_sink():
    return RecordingNotificationSink()


@pytest.fixture
def issue_tracker():
    return RecordingIssueTracker()


@pytest.fixture
def command_runner():
    return RecordingCommandRunner()


@pytest.fixture
def http_client():
    return RecordingHttpClient()


@pytest.fixture
def services(notification_sink, issue_tracker, command_runner, http_client):
    return ActionServicesBundle(
        notification_sink=notification_sink,
        issue_tracker=issue_tracker,
        command_runner=command_runner,
        http_client=http_client,
    )


@pytest.fixture
def sleeps():
    """List collecting every delay the action executor sleeps for."""
    return []


@pytest.fixture
def executor(services, sleeps):
    return ActionExecutor(services, sleep=sleeps.append)


@pytest.fixture
def engine(executor, fake_clock):
    return RuleEngine(action_executor=executor, clock=fake_clock, now=lambda: FIXED_NOW)


@pytest.fixture
def critical_context():
    """Context of a timer that has run for nine hours."""
    return {
        "timer": {"elapsedMs": 32_400_000, "status": "critical", "startTime": 1700000000000},
        "issue": {
            "id": "2-17",
            "key": "TEST-123",
            "summary": "Fix login bug",
            "state": "In Progress",
            "projectShortName": "TEST",
        },
        "user": {"name": "John Doe", "login": "jdoe", "role": "developer"},
    }

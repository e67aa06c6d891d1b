"""
Unit tests for the YouTrack client (timer_workflows/integrations/youtrack_client.py)
"""

from unittest.mock import MagicMock

import pytest
import requests

from timer_workflows.integrations.youtrack_client import IssueTrackerError, YouTrackClient


def response(status_code=200, payload=None, text=""):
    mock = MagicMock()
    mock.status_code = status_code
    mock.content = b"{}" if payload is not None else b""
    mock.json.return_value = payload
    mock.text = text
    return mock


@pytest.fixture
def session():
    mock = MagicMock()
    mock.headers = {}
    mock.post.return_value = response(payload={"id": "1-1"})
    return mock


@pytest.fixture
def client(session):
    return YouTrackClient("https://yt.example.com/", token="perm:token", session=session)


def posted(session):
    args, kwargs = session.post.call_args
    return args[0], kwargs["json"]


class TestYouTrackClient:
    def test_requires_base_url(self):
        with pytest.raises(ValueError):
            YouTrackClient("")

    def test_bearer_header(self, client, session):
        assert session.headers["Authorization"] == "Bearer perm:token"

    def test_update_issue_splits_attributes_and_custom_fields(self, client, session):
        client.update_issue("2-17", {"summary": "New title", "State": "Done", "Estimation": 60})

        url, body = posted(session)
        assert url == "https://yt.example.com/api/issues/2-17"
        assert body["summary"] == "New title"
        assert body["customFields"] == [
            {"name": "State", "value": {"name": "Done"}},
            {"name": "Estimation", "value": 60},
        ]

    def test_add_comment_with_visibility(self, client, session):
        client.add_comment("2-17", "Please review", "team")

        url, body = posted(session)
        assert url.endswith("/api/issues/2-17/comments")
        assert body["text"] == "Please review"
        assert body["visibility"]["permittedGroups"] == [{"name": "team"}]

    def test_add_comment_without_visibility(self, client, session):
        client.add_comment("2-17", "Public note")
        _, body = posted(session)
        assert "visibility" not in body

    def test_assign_user(self, client, session):
        client.assign_user("2-17", "jdoe")
        _, body = posted(session)
        assert body["customFields"][0]["value"] == {"login": "jdoe"}

    @pytest.mark.parametrize(
        "duration_ms,minutes",
        [(32_400_000, 540), (90_001, 2), (0, 1)],
    )
    def test_log_time_rounds_up_to_minutes(self, client, session, duration_ms, minutes):
        client.log_time("2-17", duration_ms, "Development", "From timer")

        url, body = posted(session)
        assert url.endswith("/api/issues/2-17/timeTracking/workItems")
        assert body["duration"] == {"minutes": minutes}
        assert body["type"] == {"name": "Development"}
        assert body["text"] == "From timer"

    def test_http_error_raises(self, client, session):
        session.post.return_value = response(status_code=403, text="Forbidden")

        with pytest.raises(IssueTrackerError) as exc_info:
            client.add_comment("2-17", "text")

        assert exc_info.value.status_code == 403
        assert "Forbidden" in str(exc_info.value)

    def test_network_error_wrapped(self, client, session):
        session.post.side_effect = requests.ConnectionError("unreachable")
        with pytest.raises(IssueTrackerError):
            client.update_issue("2-17", {"State": "Done"})

    def test_returns_parsed_json(self, client):
        assert client.add_comment("2-17", "text") == {"id": "1-1"}

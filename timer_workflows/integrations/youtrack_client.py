"""
YouTrack Issue Tracker Client

Performs the four issue mutations workflow actions need (update fields,
comment, assign, log work) against the YouTrack REST API with a bearer-token
authenticated requests session.
"""

import math
import time
from typing import Any, Dict, Optional

import requests

from timer_workflows.utils.logger import get_logger, log_operation, mask_secret

logger = get_logger(__name__)


class IssueTrackerError(RuntimeError):
    """Raised when YouTrack rejects a request or cannot be reached."""

    def __init__(
        self,
        operation: str,
        issue_id: Optional[str],
        status_code: Optional[int] = None,
        response_snippet: Optional[str] = None,
    ) -> None:
        issue_fragment = f" for issue {issue_id}" if issue_id else ""
        status_fragment = f" (HTTP {status_code})" if status_code is not None else ""
        snippet_fragment = (
            f" - {response_snippet.strip()}" if response_snippet and response_snippet.strip() else ""
        )
        super().__init__(
            f"YouTrack request failed during {operation}{issue_fragment}"
            f"{status_fragment}{snippet_fragment}"
        )
        self.operation = operation
        self.issue_id = issue_id
        self.status_code = status_code
        self.response_snippet = response_snippet


class YouTrackClient:
    """
    Client for the YouTrack issue REST API.

    Status codes 401/403 surface as permission failures, everything >= 400 as
    IssueTrackerError; network errors are wrapped the same way.
    """

    # Fields sent as top-level issue attributes rather than custom fields
    ISSUE_ATTRIBUTES = ("summary", "description")
    ASSIGNEE_FIELD = "Assignee"

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 15,
    ):
        """
        Initialize YouTrack client.

        Args:
            base_url: YouTrack instance URL, e.g. "https://youtrack.example.com"
            token: Permanent token used as bearer credentials
            session: Optional requests.Session (useful for testing)
            timeout_seconds: Per-request timeout
        """
        if not base_url:
            raise ValueError("YouTrack base_url is required")

        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

        logger.debug(
            "YouTrack client configured",
            operation="youtrack_init",
            context={"base_url": self.base_url, "token": mask_secret(token)},
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    @log_operation("youtrack_update_issue")
    def update_issue(self, issue_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update issue attributes and custom fields.

        summary/description are sent as issue attributes; any other key is sent
        as a custom field whose value is matched by name (e.g. {"State": "Done"}).
        """
        body: Dict[str, Any] = {}
        custom_fields = []
        for name, value in fields.items():
            if name in self.ISSUE_ATTRIBUTES:
                body[name] = value
            else:
                custom_fields.append({"name": name, "value": self._field_value(value)})
        if custom_fields:
            body["customFields"] = custom_fields

        return self._post(f"/api/issues/{issue_id}", body, "update_issue", issue_id)

    @log_operation("youtrack_add_comment")
    def add_comment(
        self, issue_id: str, text: str, visibility: Optional[str] = None
    ) -> Dict[str, Any]:
        """Add a comment, optionally limited to one group."""
        body: Dict[str, Any] = {"text": text}
        if visibility:
            body["visibility"] = {
                "$type": "LimitedVisibility",
                "permittedGroups": [{"name": visibility}],
            }
        return self._post(f"/api/issues/{issue_id}/comments", body, "add_comment", issue_id)

    @log_operation("youtrack_assign_user")
    def assign_user(self, issue_id: str, user_login: str) -> Dict[str, Any]:
        """Set the Assignee field to the given user login."""
        body = {
            "customFields": [
                {
                    "name": self.ASSIGNEE_FIELD,
                    "$type": "SingleUserIssueCustomField",
                    "value": {"login": user_login},
                }
            ]
        }
        return self._post(f"/api/issues/{issue_id}", body, "assign_user", issue_id)

    @log_operation("youtrack_log_time")
    def log_time(
        self,
        issue_id: str,
        duration_ms: int,
        work_type: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a work item. Durations are rounded up to whole minutes,
        the smallest unit YouTrack accepts.
        """
        minutes = max(1, math.ceil(duration_ms / 60000))
        body: Dict[str, Any] = {
            "duration": {"minutes": minutes},
            "date": int(time.time() * 1000),
        }
        if description:
            body["text"] = description
        if work_type:
            body["type"] = {"name": work_type}

        return self._post(
            f"/api/issues/{issue_id}/timeTracking/workItems", body, "log_time", issue_id
        )

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _field_value(value: Any) -> Any:
        if isinstance(value, str):
            return {"name": value}
        return value

    def _post(
        self, path: str, body: Dict[str, Any], operation: str, issue_id: str
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(
                url, json=body, params={"fields": "id"}, timeout=self.timeout_seconds
            )
        except requests.RequestException as e:
            raise IssueTrackerError(operation, issue_id, response_snippet=str(e)) from e

        if response.status_code >= 400:
            raise IssueTrackerError(
                operation,
                issue_id,
                status_code=response.status_code,
                response_snippet=(response.text or "")[:200],
            )

        try:
            return response.json() if response.content else {}
        except ValueError:
            return {}

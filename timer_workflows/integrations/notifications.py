"""
Notification sinks for send_notification actions.

SlackNotificationSink posts to a Slack incoming webhook with retry handling;
LoggingNotificationSink writes notifications to the structured log for hosts
without a chat integration.
"""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from timer_workflows.utils.logger import get_logger, mask_secret, StructuredLogger


class NotificationError(Exception):
    """Raised when a notification cannot be delivered."""


_LEVEL_EMOJI = {
    "critical": "🚨",
    "warning": "⚠️",
    "success": "✅",
    "info": "ℹ️",
}


@dataclass
class Notification:
    """
    Notification produced by a send_notification action.

    Attributes:
        title: Short headline
        message: Body text (already interpolated)
        type: Severity such as "critical", "warning", "success", "info"
        recipients: Group or user handles the host should route to
        channel: Optional Slack channel override
    """

    title: str
    message: str
    type: str = "info"
    recipients: List[str] = field(default_factory=list)
    channel: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "recipients": list(self.recipients),
            "channel": self.channel,
        }


class LoggingNotificationSink:
    """Sink that records notifications in the structured log and keeps the last few."""

    def __init__(self, logger: Optional[StructuredLogger] = None, history_size: int = 100):
        self.logger = logger or get_logger(__name__)
        self.history_size = history_size
        self.sent: List[Notification] = []

    def send(self, notification: Notification) -> None:
        self.logger.info(
            notification.title or "Workflow notification",
            operation="send_notification",
            context=notification.to_dict(),
        )
        self.sent.append(notification)
        if len(self.sent) > self.history_size:
            del self.sent[0]


class SlackNotificationSink:
    """
    Sink for sending notifications through a Slack incoming webhook.

    Attributes:
        webhook_url: Slack incoming webhook URL
        logger: Structured logger instance
        max_retries: Number of delivery attempts
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        http_client: Optional[requests.Session] = None,
        logger: Optional[StructuredLogger] = None,
        max_retries: int = 3,
        retry_delay_seconds: float = 0.5,
        timeout_seconds: float = 10,
    ) -> None:
        """
        Initialize the Slack sink.

        Args:
            webhook_url: Slack incoming webhook URL (from SLACK_WEBHOOK_URL if None)
            http_client: Optional requests-like session (useful for testing)
            logger: Optional structured logger instance
            max_retries: Number of attempts when sending messages
            retry_delay_seconds: Base delay between retries (linear backoff)
            timeout_seconds: Per-request timeout handed to requests
        """
        self.logger = logger or get_logger(__name__)
        self.http_client = http_client or requests.Session()
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.timeout_seconds = timeout_seconds
        self.webhook_url = webhook_url or os.getenv("SLACK_WEBHOOK_URL")

    def send(self, notification: Notification) -> None:
        """
        Deliver a notification.

        Raises:
            NotificationError: If the webhook is not configured or every attempt fails
        """
        if not self.webhook_url:
            raise NotificationError("Slack webhook URL not configured")

        self._dispatch(self.build_payload(notification), action="send_notification")

    @staticmethod
    def build_payload(notification: Notification) -> Dict[str, Any]:
        emoji = _LEVEL_EMOJI.get(notification.type, _LEVEL_EMOJI["info"])
        text = f"{emoji} *{notification.title}*\n{notification.message}"
        if notification.recipients:
            text += "\nRecipients: " + ", ".join(f"`{r}`" for r in notification.recipients)

        payload: Dict[str, Any] = {
            "text": f"{notification.title}: {notification.message}",
            "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": text}}],
        }
        if notification.channel:
            payload["channel"] = notification.channel
        return payload

    def _dispatch(self, payload: Dict[str, Any], action: str) -> None:
        """Send payload to Slack webhook with retry handling."""
        body = json.dumps(payload)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                self.logger.debug(
                    "Sending Slack notification",
                    operation=action,
                    context={"status": "attempt", "attempt": attempt},
                )

                response = self.http_client.post(
                    self.webhook_url,
                    headers={"Content-Type": "application/json"},
                    data=body,
                    timeout=self.timeout_seconds,
                )

                if response.status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", 60))
                    self.logger.warning(
                        "Slack rate limited",
                        operation=action,
                        context={
                            "status": "rate_limited",
                            "attempt": attempt,
                            "retry_after": retry_after,
                        },
                    )
                    raise NotificationError(f"Rate limited; retry after {retry_after}s")

                if response.status_code >= 400:
                    raise NotificationError(
                        f"Slack responded with {response.status_code}: {response.text}"
                    )

                self.logger.debug(
                    "Slack notification delivered",
                    operation=action,
                    context={"status": "success", "attempt": attempt},
                )
                return

            except (requests.RequestException, NotificationError) as exc:
                last_error = exc
                if attempt >= self.max_retries:
                    break

                self.logger.warning(
                    "Retrying Slack delivery",
                    operation=action,
                    context={"status": "retry", "attempt": attempt},
                    error=str(exc),
                )
                time.sleep(self.retry_delay_seconds * attempt)

        self.logger.error(
            "Slack delivery failed",
            operation=action,
            context={"status": "failed", "webhook": mask_secret(self.webhook_url)},
            error=str(last_error),
        )
        raise NotificationError(f"Slack delivery failed: {last_error}") from last_error

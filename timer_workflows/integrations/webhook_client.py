"""
HTTP client behind webhook actions.

Relative URLs (e.g. "/api/reports/daily-summary") are joined to the configured
base URL; timeouts live here, not in the engine.
"""

from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests

from timer_workflows.utils.logger import get_logger, StructuredLogger


class WebhookError(Exception):
    """Raised when a webhook call fails or returns an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class WebhookClient:
    """Thin requests wrapper implementing call(url, method, payload)."""

    ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 10,
        headers: Optional[Dict[str, str]] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.base_url = base_url
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds
        self.headers = dict(headers or {})
        self.logger = logger or get_logger(__name__)

    def resolve_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        if not self.base_url:
            raise WebhookError(f"Relative webhook URL '{url}' but no base URL configured")
        return urljoin(self.base_url.rstrip("/") + "/", url.lstrip("/"))

    def call(self, url: str, method: str = "POST", payload: Any = None) -> Dict[str, Any]:
        """
        Send the request and return {"status_code", "body"}.

        GET and DELETE send the payload as query parameters, other methods as JSON.

        Raises:
            WebhookError: On unsupported method, network failure or HTTP >= 400
        """
        method = (method or "POST").upper()
        if method not in self.ALLOWED_METHODS:
            raise WebhookError(f"Unsupported HTTP method: {method}")

        target = self.resolve_url(url)
        request_kwargs: Dict[str, Any] = {"headers": self.headers, "timeout": self.timeout_seconds}
        if payload is not None:
            if method in ("GET", "DELETE"):
                request_kwargs["params"] = payload
            else:
                request_kwargs["json"] = payload

        self.logger.debug(
            "Calling webhook",
            operation="webhook_call",
            context={"url": target, "method": method},
        )

        try:
            response = self.session.request(method, target, **request_kwargs)
        except requests.RequestException as e:
            raise WebhookError(f"Webhook {method} {target} failed: {e}") from e

        if response.status_code >= 400:
            raise WebhookError(
                f"Webhook {method} {target} responded with {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json() if response.content else None
        except ValueError:
            body = response.text

        return {"status_code": response.status_code, "body": body}

"""Badge and notification sinks - the outputs the sync cycle drives."""

import json
import os
import tempfile
from datetime import datetime, timezone
from http.client import HTTPSConnection, HTTPConnection, HTTPException
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlparse
from .constants import DEFAULT_HTTP_TIMEOUT_SECS
from .logging import get_logger

logger = get_logger(__name__)


def utc_timestamp() -> str:
    """Current UTC time as ISO 8601 with a Z suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class BadgeSinkError(Exception):
    """Raised when a badge cannot be drawn or cleared."""


class NotificationDispatchError(Exception):
    """Raised when a notification cannot be delivered or cleared."""


class BadgeSink:
    """Interface for something that can display a short badge."""

    def set_badge(self, text: str, background_color: str, color: str) -> None:
        raise NotImplementedError

    def clear_badge(self) -> None:
        raise NotImplementedError


class NotificationSink:
    """Interface for something that can show one identified notification."""

    def create(self, notification_id: str, title: str, message: str) -> None:
        raise NotImplementedError

    def clear(self, notification_id: str) -> None:
        raise NotImplementedError


class LogBadgeSink(BadgeSink):
    """Badge sink that logs the badge and keeps the current value in memory."""

    def __init__(self):
        self.current: Optional[Dict[str, str]] = None

    def set_badge(self, text: str, background_color: str, color: str) -> None:
        self.current = {"text": text, "background_color": background_color, "color": color}
        logger.info(f"Badge: {text} ({background_color})")

    def clear_badge(self) -> None:
        self.current = None
        logger.info("Badge cleared")


class FileBadgeSink(BadgeSink):
    """Write the badge as a small JSON document for status bars to pick up.

    The file is replaced atomically so readers never see a partial document.
    A cleared badge is written as empty text.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _write(self, payload: Dict) -> None:
        payload["updated"] = utc_timestamp()
        try:
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise BadgeSinkError(f"Failed to write badge file {self.path}: {e}") from e

    def set_badge(self, text: str, background_color: str, color: str) -> None:
        self._write({"text": text, "background_color": background_color, "color": color})

    def clear_badge(self) -> None:
        self._write({"text": "", "background_color": None, "color": None})


class LogNotificationSink(NotificationSink):
    """Notification sink that logs notifications; tracks the visible one."""

    def __init__(self):
        self.active: Dict[str, Dict[str, str]] = {}

    def create(self, notification_id: str, title: str, message: str) -> None:
        self.active[notification_id] = {"title": title, "message": message}
        logger.info(f"Notification [{notification_id}] {title}: {message}")

    def clear(self, notification_id: str) -> None:
        if self.active.pop(notification_id, None) is not None:
            logger.debug(f"Cleared notification {notification_id}")


class WebhookNotificationSink(NotificationSink):
    """Posts notifications as JSON to a webhook URL."""

    def __init__(self, webhook_url: str, timeout_secs: float = DEFAULT_HTTP_TIMEOUT_SECS):
        """
        Initialize webhook sink.

        Args:
            webhook_url: Endpoint receiving POSTed JSON payloads
            timeout_secs: Connection timeout in seconds
        """
        self.webhook_url = webhook_url
        self.timeout_secs = timeout_secs

    def post_webhook(self, payload: Dict) -> None:
        """
        Post payload to webhook URL.

        Args:
            payload: Dictionary to send as JSON

        Raises:
            NotificationDispatchError: On a bad URL, connection or protocol
                failure, or HTTP error status
        """
        url = urlparse(self.webhook_url)
        if url.scheme not in ("http", "https") or not url.hostname:
            raise NotificationDispatchError(f"Invalid webhook URL: {self.webhook_url!r}")
        conn_cls = HTTPSConnection if url.scheme == "https" else HTTPConnection

        body = json.dumps(payload)
        path = url.path or "/"
        if url.query:
            path += "?" + url.query

        headers = {"Content-Type": "application/json"}
        conn = None
        try:
            port = url.port or (443 if url.scheme == "https" else 80)
            conn = conn_cls(url.hostname, port, timeout=self.timeout_secs)
            conn.request("POST", path, body=body, headers=headers)
            resp = conn.getresponse()
            _ = resp.read()  # Consume response
        except (OSError, HTTPException, ValueError) as e:
            raise NotificationDispatchError(f"Failed to post webhook: {e}") from e
        finally:
            if conn is not None:
                conn.close()

        if resp.status >= 400:
            raise NotificationDispatchError(f"Webhook returned status {resp.status}: {resp.reason}")
        logger.debug(f"Webhook posted successfully: {body}")

    def create(self, notification_id: str, title: str, message: str) -> None:
        self.post_webhook({
            "type": "notification",
            "action": "create",
            "id": notification_id,
            "title": title,
            "message": message,
            "ts": utc_timestamp(),
        })

    def clear(self, notification_id: str) -> None:
        self.post_webhook({
            "type": "notification",
            "action": "clear",
            "id": notification_id,
            "ts": utc_timestamp(),
        })

from __future__ import annotations

import logging
from dataclasses import dataclass, field

"""Notification sinks.

toast(): non-blocking progress message. alert(): completion or error notice;
the return value is an acknowledgement that callers never depend on.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "LoggingNotifier",
    "RecordingNotifier",
]


class LoggingNotifier:
    """Notifications as INFO log lines."""

    def toast(self, message: str, title: str = "", duration_seconds: float | None = None) -> None:
        if title:
            logger.info("%s: %s", title, message)
        else:
            logger.info("%s", message)

    def alert(self, message: str) -> bool:
        for line in message.splitlines() or [""]:
            logger.info("ALERT %s", line)
        return True


@dataclass
class RecordingNotifier:
    """Keeps every notification in memory."""
    toasts: list[tuple[str, str]] = field(default_factory=list)
    alerts: list[str] = field(default_factory=list)

    def toast(self, message: str, title: str = "", duration_seconds: float | None = None) -> None:
        self.toasts.append((title, message))

    def alert(self, message: str) -> bool:
        self.alerts.append(message)
        return True

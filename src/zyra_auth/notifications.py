"""User-facing notifications raised by the session controller."""

from __future__ import annotations

import logging
from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"


def session_expiring_notice(warning_before_seconds: float) -> Notification:
    minutes = max(1, round(warning_before_seconds / 60))
    unit = "minute" if minutes == 1 else "minutes"
    return Notification(
        title="Session Expiring Soon",
        description=(
            f"You will be logged out in {minutes} {unit} due to inactivity. "
            "Move your mouse or click to stay logged in."
        ),
    )


SESSION_EXPIRED = Notification(
    title="Session Expired",
    description="You have been logged out due to inactivity.",
    variant="destructive",
)


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingNotifier:
    """Notifier that writes notifications to the log."""

    def notify(self, notification: Notification) -> None:
        level = logging.WARNING if notification.variant == "destructive" else logging.INFO
        logger.log(level, "notification: %s - %s", notification.title, notification.description)

"""User activity source feeding the inactivity timer."""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

ACTIVITY_EVENTS = frozenset(
    {"mousedown", "mousemove", "keypress", "scroll", "touchstart", "click"}
)

ActivityListener = Callable[[str], None]


class ActivityMonitor:
    """Fan-out of host UI activity events to subscribed listeners.

    Hosts call ``dispatch`` for every input event; only the qualifying event
    types in ``ACTIVITY_EVENTS`` reach listeners.
    """

    def __init__(self) -> None:
        self._listeners: list[ActivityListener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: ActivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def dispatch(self, event_type: str) -> bool:
        """Deliver ``event_type``; returns False when it does not qualify."""
        if event_type not in ACTIVITY_EVENTS:
            return False
        for listener in list(self._listeners):
            try:
                listener(event_type)
            except Exception:
                logger.exception("activity_listener_failed: %s", event_type)
        return True

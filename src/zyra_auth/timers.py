"""Inactivity timer pair driving the automatic logout."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TimerState(str, Enum):
    DORMANT = "dormant"
    ARMED = "armed"
    WARNED = "warned"
    LOGGED_OUT = "logged_out"


class InactivityTimer:
    """Owns the warning/logout timer pair for one authenticated identity.

    Nothing is scheduled until ``record_activity`` is called at least once, so a
    session restored on startup cannot expire before the user does anything.
    Every (re)arm cancels the previous pair before scheduling the next one; at
    most one pair is live at any time.
    """

    def __init__(
        self,
        *,
        timeout: float,
        warning_delay: float,
        on_warning: Callable[[], None],
        on_timeout: Callable[[], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        if not 0 <= warning_delay < timeout:
            raise ValueError("warning_delay must be within [0, timeout)")
        self.timeout = timeout
        self.warning_delay = warning_delay
        self._on_warning = on_warning
        self._on_timeout = on_timeout
        self._loop = loop
        self.warning_handle: asyncio.TimerHandle | None = None
        self.logout_handle: asyncio.TimerHandle | None = None
        self.has_activity = False
        self.warning_shown = False
        self.state = TimerState.DORMANT

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def is_armed(self) -> bool:
        return self.warning_handle is not None or self.logout_handle is not None

    def record_activity(self) -> None:
        if not self.has_activity:
            self.has_activity = True
            logger.info("first_user_activity_detected: starting session timers")
        self.reset()

    def reset(self) -> None:
        """Re-arm from now; a no-op until the first activity was seen."""
        if not self.has_activity:
            return
        self.arm()

    def arm(self) -> None:
        self._cancel_handles()
        self.warning_handle = self.loop.call_later(self.warning_delay, self._fire_warning)
        self.logout_handle = self.loop.call_later(self.timeout, self._fire_logout)
        self.state = TimerState.ARMED

    def disarm(self) -> None:
        self._cancel_handles()
        self.has_activity = False
        self.state = TimerState.DORMANT

    def _cancel_handles(self) -> None:
        if self.warning_handle is not None:
            self.warning_handle.cancel()
            self.warning_handle = None
        if self.logout_handle is not None:
            self.logout_handle.cancel()
            self.logout_handle = None
        self.warning_shown = False

    def _fire_warning(self) -> None:
        self.warning_handle = None
        if self.warning_shown:
            return
        self.warning_shown = True
        self.state = TimerState.WARNED
        self._on_warning()

    def _fire_logout(self) -> None:
        self.logout_handle = None
        self.state = TimerState.LOGGED_OUT
        self._on_timeout()

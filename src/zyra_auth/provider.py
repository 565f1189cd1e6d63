"""Identity provider contract, change subscriptions and session persistence."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from pydantic import ValidationError

from .models import AuthChangeEvent, AuthResult, Session

logger = logging.getLogger(__name__)

AuthStateListener = Callable[[AuthChangeEvent, Optional[Session]], None]


class Subscription:
    """Handle returned by ``on_auth_state_change``."""

    def __init__(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._unsubscribe()


class IdentityProvider(Protocol):
    """External auth service owning credentials, sessions and OAuth.

    Actions report provider-side failures through ``AuthResult.error``.
    """

    async def get_session(self) -> AuthResult: ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult: ...

    async def sign_up(
        self, email: str, password: str, *, data: dict[str, Any] | None = None
    ) -> AuthResult: ...

    async def sign_in_with_oauth(self, provider: str, *, redirect_to: str) -> AuthResult: ...

    async def sign_out(self) -> AuthResult: ...

    async def set_session(self, session: Session | dict[str, Any]) -> AuthResult: ...

    async def refresh_session(self) -> AuthResult: ...

    def on_auth_state_change(self, listener: AuthStateListener) -> Subscription: ...


class AuthEventEmitter:
    """Listener registry shared by provider implementations."""

    def __init__(self) -> None:
        self._listeners: list[AuthStateListener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def on_auth_state_change(self, listener: AuthStateListener) -> Subscription:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(remove)

    def emit(self, event: AuthChangeEvent, session: Session | None) -> None:
        logger.debug("auth_state_change: %s", event.value)
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("auth_listener_failed: %s", event.value)


class SessionStorage(Protocol):
    def load(self) -> Session | None: ...

    def save(self, session: Session) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStorage:
    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    def load(self) -> Session | None:
        return self._session

    def save(self, session: Session) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = None


class FileSessionStorage:
    """Persists the current session as JSON; unreadable files count as empty."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Session | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return Session.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as exc:
            logger.warning("stored_session_invalid: %s (%s)", self.path, exc.__class__.__name__)
            return None

    def save(self, session: Session) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(session.model_dump_json(), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

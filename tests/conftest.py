from __future__ import annotations

import asyncio
from typing import Any

import pytest
from zyra_auth.activity import ActivityMonitor
from zyra_auth.client import ZyraBackendClient
from zyra_auth.config import Settings
from zyra_auth.controller import SessionController
from zyra_auth.models import AuthChangeEvent, AuthResult, Identity, Session
from zyra_auth.navigation import MemoryNavigator
from zyra_auth.notifications import Notification
from zyra_auth.provider import AuthEventEmitter

API_BASE = "https://api.zyra.test"
APP_ORIGIN = "https://app.zyra.test"
AUTH_URL = "https://auth.zyra.test/auth/v1"


def build_session(
    user_id: str = "user-1",
    email: str = "a@b.com",
    token: str = "token-1",
) -> Session:
    return Session(
        access_token=token,
        refresh_token=f"refresh-{user_id}",
        expires_in=3600,
        user=Identity(id=user_id, email=email),
    )


class FakeHandle:
    def __init__(self, when: float, callback, args) -> None:
        self._when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    def when(self) -> float:
        return self._when

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class FakeLoop:
    """Virtual clock implementing the ``call_later`` subset the timers use."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now
        self.handles: list[FakeHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback, *args) -> FakeHandle:
        handle = FakeHandle(self.now + delay, callback, args)
        self.handles.append(handle)
        return handle

    def live_handles(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.cancelled() and h.when() > self.now]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self.live_handles() if h.when() <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when())
            self.now = handle.when()
            handle.cancel()
            handle._callback(*handle._args)
        self.now = target


class FakeIdentityProvider(AuthEventEmitter):
    def __init__(self, session: Session | None = None) -> None:
        super().__init__()
        self.stored = session
        self.session_error: str | None = None
        self.get_session_gate: asyncio.Event | None = None
        self.sign_in_result: AuthResult | None = None
        self.calls: list[tuple[Any, ...]] = []

    async def get_session(self) -> AuthResult:
        self.calls.append(("get_session",))
        if self.get_session_gate is not None:
            await self.get_session_gate.wait()
        if self.session_error:
            return AuthResult.failure(self.session_error)
        return AuthResult(data={"session": self.stored})

    def _signed_in(self, session: Session) -> AuthResult:
        self.stored = session
        self.emit(AuthChangeEvent.SIGNED_IN, session)
        return AuthResult(data={"session": session, "user": session.user})

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        self.calls.append(("sign_in", email, password))
        if self.sign_in_result is not None:
            return self.sign_in_result
        return self._signed_in(build_session(email=email))

    async def sign_up(self, email, password, *, data=None) -> AuthResult:
        self.calls.append(("sign_up", email, data))
        return self._signed_in(build_session(user_id="user-new", email=email))

    async def sign_in_with_oauth(self, provider: str, *, redirect_to: str) -> AuthResult:
        self.calls.append(("oauth", provider, redirect_to))
        return AuthResult(
            data={"provider": provider, "url": f"https://idp.test/authorize?provider={provider}"}
        )

    async def sign_out(self) -> AuthResult:
        self.calls.append(("sign_out",))
        self.stored = None
        self.emit(AuthChangeEvent.SIGNED_OUT, None)
        return AuthResult()

    async def set_session(self, session) -> AuthResult:
        self.calls.append(("set_session",))
        installed = session if isinstance(session, Session) else Session.model_validate(session)
        return self._signed_in(installed)

    async def refresh_session(self) -> AuthResult:
        self.calls.append(("refresh",))
        if self.stored is None:
            return AuthResult.failure("auth_session_missing")
        self.emit(AuthChangeEvent.TOKEN_REFRESHED, self.stored)
        return AuthResult(data={"session": self.stored, "user": self.stored.user})


class RecordingNotifier:
    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    @property
    def titles(self) -> list[str]:
        return [n.title for n in self.notifications]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        api_base_url=API_BASE,
        app_origin=APP_ORIGIN,
        auth_url=AUTH_URL,
        auth_api_key="anon-key",
        profile_retry_delay_seconds=0.01,
    )


@pytest.fixture
def make_session():
    return build_session


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def navigator() -> MemoryNavigator:
    return MemoryNavigator(APP_ORIGIN, "/dashboard")


@pytest.fixture
def activity() -> ActivityMonitor:
    return ActivityMonitor()


@pytest.fixture
def backend(settings) -> ZyraBackendClient:
    return ZyraBackendClient(settings)


@pytest.fixture
def controller(
    settings, provider, backend, navigator, notifier, activity, fake_loop
) -> SessionController:
    return SessionController(
        provider,
        backend,
        settings=settings,
        navigator=navigator,
        notifier=notifier,
        activity=activity,
        timer_loop=fake_loop,
    )

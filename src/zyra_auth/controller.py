"""Session controller: auth state, sign-in/out flows and inactivity logout."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional

import sentry_sdk

from .activity import ActivityMonitor
from .client import (
    BackendAuthError,
    BackendConnectionError,
    BackendError,
    ZyraBackendClient,
)
from .config import Settings
from .models import (
    AppProfile,
    AuthChangeEvent,
    AuthError,
    AuthResult,
    AuthState,
    Identity,
    Session,
)
from .navigation import (
    MemoryNavigator,
    Navigator,
    is_password_reset_path,
    should_redirect_on_sign_out,
)
from .notifications import SESSION_EXPIRED, LoggingNotifier, Notifier, session_expiring_notice
from .provider import IdentityProvider, Subscription
from .timers import InactivityTimer

logger = logging.getLogger(__name__)

StateListener = Callable[[AuthState], None]


def _extract_session(data: Any) -> Session | None:
    if isinstance(data, Session):
        return data
    if isinstance(data, dict):
        candidate = data.get("session")
        if isinstance(candidate, Session):
            return candidate
        if isinstance(candidate, dict):
            return Session.model_validate(candidate)
    return None


class SessionController:
    """Single source of truth for who is signed in.

    Lifecycle is explicit: ``start()`` checks for a persisted session and
    subscribes to provider events, ``stop()`` tears everything down. Async
    continuations capture the generation they were started in and become no-ops
    once ``stop()`` (or a restart) has moved the controller on.

    Provider events are handled synchronously, so updating the session and
    deciding whether to fetch the profile happen without an intervening await.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        backend: ZyraBackendClient,
        *,
        settings: Settings | None = None,
        navigator: Navigator | None = None,
        notifier: Notifier | None = None,
        activity: ActivityMonitor | None = None,
        timer_loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.provider = provider
        self.backend = backend
        self.navigator = navigator or MemoryNavigator(self.settings.app_origin)
        self.notifier = notifier or LoggingNotifier()
        self.activity = activity or ActivityMonitor()
        self.timer = InactivityTimer(
            timeout=self.settings.inactivity_timeout_seconds,
            warning_delay=self.settings.warning_delay_seconds,
            on_warning=self._show_inactivity_warning,
            on_timeout=self._on_inactivity_timeout,
            loop=timer_loop,
        )

        self._identity: Identity | None = None
        self._session: Session | None = None
        self._app_profile: AppProfile | None = None
        self._is_loading = True
        self._is_signing_in = False
        self._is_registering = False
        self._is_signing_out = False

        self._mounted = False
        self._generation = 0
        self._subscription: Subscription | None = None
        self._init_watchdog: asyncio.TimerHandle | None = None
        self._init_task: asyncio.Task | None = None
        self._activity_unsubscribe: Callable[[], None] | None = None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[StateListener] = []

    # -- exposed state -------------------------------------------------

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def app_profile(self) -> AppProfile | None:
        return self._app_profile

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    @property
    def is_signing_in(self) -> bool:
        return self._is_signing_in

    @property
    def is_registering(self) -> bool:
        return self._is_registering

    @property
    def is_signing_out(self) -> bool:
        return self._is_signing_out

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    def snapshot(self) -> AuthState:
        return AuthState(
            identity=self._identity,
            session=self._session,
            app_profile=self._app_profile,
            is_loading=self._is_loading,
            is_signing_in=self._is_signing_in,
            is_registering=self._is_registering,
            is_signing_out=self._is_signing_out,
        )

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a consumer notified with a fresh snapshot on every change."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # -- lifecycle -----------------------------------------------------

    async def start(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._generation += 1
        self._is_loading = True
        loop = asyncio.get_running_loop()
        self._init_watchdog = loop.call_later(
            self.settings.init_timeout_seconds, self._on_init_timeout
        )
        self._init_task = self._spawn(self.initialize())
        self.subscribe_to_provider_changes()

    async def stop(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        if self._init_watchdog is not None:
            self._init_watchdog.cancel()
            self._init_watchdog = None
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._detach_activity()
        self.timer.disarm()

        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def __aenter__(self) -> "SessionController":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def ready(self) -> None:
        """Wait for the initial session check started by ``start()``."""
        if self._init_task is not None:
            await asyncio.shield(self._init_task)

    async def wait_for_background_tasks(self) -> None:
        """Wait until fire-and-forget work (profile fetches, logout calls) settles."""
        current = asyncio.current_task()
        while True:
            pending = [task for task in self._tasks if task is not current and not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _alive(self, generation: int) -> bool:
        return self._mounted and generation == self._generation

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background_task_failed: %s", exc, exc_info=exc)

    def _on_init_timeout(self) -> None:
        self._init_watchdog = None
        if self._mounted and self._is_loading:
            logger.warning(
                "initial_session_check_timed_out after %.1fs",
                self.settings.init_timeout_seconds,
            )
            self._is_loading = False
            self._emit_change()

    def _finish_loading(self) -> None:
        if self._init_watchdog is not None:
            self._init_watchdog.cancel()
            self._init_watchdog = None
        if self._is_loading:
            self._is_loading = False
            self._emit_change()

    # -- state mutation ------------------------------------------------

    def _emit_change(self) -> None:
        if not self._mounted:
            return
        state = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("state_listener_failed")

    def _apply_session(self, session: Session | None) -> None:
        previous = self._identity
        self._session = session
        self._identity = session.user if session is not None else None
        if self._identity is None:
            self._app_profile = None
        elif previous is not None and previous.id != self._identity.id:
            self._app_profile = None
            self.timer.disarm()
        self._sync_activity_tracking()
        self._emit_change()

    def _clear_auth_state(self) -> None:
        self._apply_session(None)

    def _set_app_profile(self, profile: AppProfile | None) -> None:
        if profile is not None and self._session is None:
            return
        self._app_profile = profile
        self._emit_change()

    # -- initialization and provider events ----------------------------

    async def initialize(self) -> None:
        generation = self._generation
        try:
            result = await self.provider.get_session()
            if not self._alive(generation):
                return
            if result.error is not None:
                logger.error("initial_session_error: %s", result.error.message)
                self._clear_auth_state()
                return
            session = _extract_session(result.data)
            self._apply_session(session)
            if session is not None and session.access_token:
                self._spawn(
                    self.fetch_app_profile(session.access_token, user_id=session.user.id)
                )
        except Exception as exc:
            if self._alive(generation):
                logger.exception("initial_session_setup_failed")
                sentry_sdk.capture_exception(exc)
                self._clear_auth_state()
        finally:
            if self._alive(generation):
                self._finish_loading()

    def subscribe_to_provider_changes(self) -> Subscription:
        if self._subscription is None or not self._subscription.active:
            self._subscription = self.provider.on_auth_state_change(self._on_auth_state_change)
        return self._subscription

    def _on_auth_state_change(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        if not self._mounted:
            return
        try:
            self._apply_session(session)
            if event == AuthChangeEvent.SIGNED_IN and session is not None and session.access_token:
                self._spawn(
                    self.fetch_app_profile(session.access_token, user_id=session.user.id)
                )
            elif event == AuthChangeEvent.SIGNED_OUT:
                self._set_app_profile(None)
                self._redirect_after_sign_out()
        except Exception:
            logger.exception("auth_state_change_failed: %s", event.value)

    def _redirect_after_sign_out(self) -> None:
        path = self.navigator.current_path
        if should_redirect_on_sign_out(
            path,
            auth_prefixes=self.settings.auth_path_prefixes,
            password_reset_prefixes=self.settings.password_reset_prefixes,
        ):
            logger.info("redirecting_to_sign_in from %s", path)
            self.navigator.redirect(self.settings.sign_in_path)

    # -- app profile ---------------------------------------------------

    async def fetch_app_profile(
        self, token_override: str | None = None, *, user_id: str | None = None
    ) -> AppProfile | None:
        """Load the backend profile; never raises for transport failures.

        Pass the token explicitly when reacting to a fresh sign-in rather than
        relying on ``self.session``. ``user_id`` names the account the token
        belongs to and defaults to the current identity; the result is dropped
        if a different user (or nobody) is signed in by the time it arrives.
        """
        generation = self._generation
        token = token_override or (self._session.access_token if self._session else None)
        if not token:
            self._set_app_profile(None)
            return None
        owner = user_id or (self._identity.id if self._identity is not None else None)

        attempts = self.settings.profile_retries + 1
        for attempt in range(attempts):
            try:
                profile = await self.backend.get_me(
                    token, timeout=self.settings.profile_timeout_seconds
                )
            except BackendAuthError:
                logger.info("app_profile_unauthorized")
                if self._owns_profile(generation, owner):
                    self._set_app_profile(None)
                return None
            except BackendError as exc:
                if attempt + 1 >= attempts:
                    logger.warning(
                        "app_profile_fetch_failed after %d attempts: %s", attempts, exc
                    )
                    if self._owns_profile(generation, owner):
                        self._set_app_profile(None)
                    return None
                await asyncio.sleep(self.settings.profile_retry_delay_seconds)
                continue

            if not self._owns_profile(generation, owner) or self._session is None:
                logger.debug("app_profile_discarded: user %s no longer signed in", owner)
                return None
            self._set_app_profile(profile)
            return profile
        return None

    def _owns_profile(self, generation: int, owner: str | None) -> bool:
        if not self._alive(generation) or self._identity is None:
            return False
        return owner is None or self._identity.id == owner

    # -- inactivity ----------------------------------------------------

    def _sync_activity_tracking(self) -> None:
        if self._identity is None:
            self._detach_activity()
            self.timer.disarm()
            return
        if self._activity_unsubscribe is None:
            self._activity_unsubscribe = self.activity.subscribe(self._on_activity)

    def _detach_activity(self) -> None:
        if self._activity_unsubscribe is not None:
            self._activity_unsubscribe()
            self._activity_unsubscribe = None

    def _on_activity(self, event_type: str) -> None:
        if not self._mounted or self._identity is None:
            return
        self.timer.record_activity()

    def _show_inactivity_warning(self) -> None:
        if not self._mounted:
            return
        logger.info("inactivity_warning_shown")
        self.notifier.notify(
            session_expiring_notice(self.settings.warning_before_timeout_seconds)
        )

    def _on_inactivity_timeout(self) -> None:
        if self._mounted:
            self._spawn(self._handle_inactivity_logout())

    async def _handle_inactivity_logout(self) -> None:
        if not self._mounted:
            return
        path = self.navigator.current_path
        if is_password_reset_path(path, self.settings.password_reset_prefixes):
            logger.info("inactivity_logout_skipped: password reset flow")
            return
        logger.info("session_timeout: logging out due to inactivity")
        self.notifier.notify(SESSION_EXPIRED)
        result = await self._guarded("inactivity_sign_out", self.provider.sign_out())
        if not result.ok:
            logger.warning("inactivity_sign_out_failed: %s", result.error.message)

    # -- actions -------------------------------------------------------

    async def _guarded(self, action: str, call: Awaitable[AuthResult]) -> AuthResult:
        try:
            return await call
        except Exception as exc:
            logger.exception("%s_failed", action)
            return AuthResult.failure(str(exc) or f"{action}_failed")

    async def sign_in(self, email: str, password: str) -> AuthResult:
        self._is_signing_in = True
        self._emit_change()
        try:
            return await self._guarded(
                "sign_in", self.provider.sign_in_with_password(email, password)
            )
        finally:
            self._is_signing_in = False
            self._emit_change()

    async def sign_up(self, email: str, password: str, display_name: str) -> AuthResult:
        self._is_registering = True
        self._emit_change()
        try:
            return await self._guarded(
                "sign_up",
                self.provider.sign_up(email, password, data={"full_name": display_name}),
            )
        finally:
            self._is_registering = False
            self._emit_change()

    async def sign_in_with_oauth(self, provider: str) -> AuthResult:
        redirect_to = f"{self.navigator.origin}{self.settings.callback_path}"
        logger.info("oauth_sign_in: provider=%s redirect_to=%s", provider, redirect_to)
        result = await self._guarded(
            "sign_in_with_oauth",
            self.provider.sign_in_with_oauth(provider, redirect_to=redirect_to),
        )
        url = result.data.get("url") if result.ok and isinstance(result.data, dict) else None
        if url:
            self.navigator.redirect(url)
        return result

    async def sign_out(self) -> AuthResult:
        """Sign out through the provider; its SIGNED_OUT event clears state."""
        self._is_signing_out = True
        self._emit_change()
        try:
            return await self._guarded("sign_out", self.provider.sign_out())
        finally:
            self._is_signing_out = False
            self._emit_change()

    async def _proxy_auth(self, action: str, call: Awaitable[Any]) -> AuthResult:
        try:
            payload = await call
        except BackendConnectionError as exc:
            logger.warning("%s_proxy_unreachable: %s", action, exc)
            return AuthResult.failure(str(exc))
        except BackendError as exc:
            return AuthResult(data=None, error=exc.to_auth_error())

        if not isinstance(payload, dict):
            return AuthResult.failure("backend_invalid_response")
        if payload.get("error"):
            return AuthResult(data=None, error=AuthError.coerce(payload["error"]))

        data = payload.get("data")
        session_data = data.get("session") if isinstance(data, dict) else None
        if session_data:
            # The provider emits SIGNED_IN, which drives profile loading.
            installed = await self._guarded(action, self.provider.set_session(session_data))
            if not installed.ok:
                return installed
        return AuthResult(data=data)

    async def login_via_backend(self, email: str, password: str) -> AuthResult:
        self._is_signing_in = True
        self._emit_change()
        try:
            return await self._proxy_auth("login", self.backend.login(email, password))
        finally:
            self._is_signing_in = False
            self._emit_change()

    async def register_via_backend(self, email: str, password: str, full_name: str) -> AuthResult:
        self._is_registering = True
        self._emit_change()
        try:
            return await self._proxy_auth(
                "register", self.backend.register(email, password, full_name)
            )
        finally:
            self._is_registering = False
            self._emit_change()

    async def logout_via_backend(self) -> AuthResult:
        self._is_signing_out = True
        self._emit_change()
        try:
            token = self._session.access_token if self._session is not None else None
            if token:
                self._spawn(self._notify_backend_logout(token))
            return await self._guarded("logout", self.provider.sign_out())
        finally:
            self._is_signing_out = False
            self._emit_change()

    async def _notify_backend_logout(self, token: str) -> None:
        try:
            await self.backend.logout(token)
        except BackendError as exc:
            logger.debug("backend_logout_ignored: %s", exc)

"""Identity provider backed by a Supabase/GoTrue compatible auth server."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import SecretStr, ValidationError

from .config import Settings
from .models import AuthChangeEvent, AuthResult, Identity, Session
from .provider import AuthEventEmitter, MemorySessionStorage, SessionStorage

logger = logging.getLogger(__name__)

# Refresh slightly before the hard expiry so restored tokens are usable.
EXPIRY_LEEWAY_SECONDS = 10


class GoTrueError(Exception):
    """Raised for failed auth server requests."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


def _secret_value(value: SecretStr | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return str(value)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"auth_error_{response.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"auth_error_{response.status_code}"


def _session_payload(session: Session | None) -> dict[str, Any]:
    return {"session": session, "user": session.user if session else None}


class GoTrueIdentityProvider(AuthEventEmitter):
    """Password, OAuth and refresh flows against GoTrue with local persistence."""

    def __init__(
        self,
        settings: Settings,
        storage: SessionStorage | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.storage = storage or MemorySessionStorage()
        self.http = http or httpx.AsyncClient(
            base_url=settings.auth_url,
            timeout=httpx.Timeout(10.0),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    def _headers(self, token: str | None = None) -> dict[str, str]:
        api_key = _secret_value(self.settings.auth_api_key).strip()
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
        bearer = token or api_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> Any:
        try:
            response = await self.http.request(
                method,
                path,
                params=params,
                json=json,
                headers=self._headers(token),
            )
        except httpx.TimeoutException as exc:
            raise GoTrueError("auth_timeout") from exc
        except httpx.HTTPError as exc:
            raise GoTrueError(f"auth_connection_failed: {exc}") from exc

        if response.status_code >= 400:
            raise GoTrueError(_error_message(response), status=response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise GoTrueError("auth_invalid_response", status=response.status_code) from exc

    def _install(self, session: Session, event: AuthChangeEvent) -> None:
        self.storage.save(session)
        self.emit(event, session)

    async def get_session(self) -> AuthResult:
        session = self.storage.load()
        if session is None:
            return AuthResult(data=_session_payload(None))
        if not session.is_expired(leeway=EXPIRY_LEEWAY_SECONDS):
            return AuthResult(data=_session_payload(session))
        if session.refresh_token:
            return await self.refresh_session()
        logger.info("stored_session_expired_without_refresh_token")
        self.storage.clear()
        return AuthResult(data=_session_payload(None))

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        try:
            body = await self._request(
                "POST",
                "/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
            session = Session.model_validate(body)
        except GoTrueError as exc:
            return AuthResult.failure(str(exc), status=exc.status)
        except ValidationError:
            return AuthResult.failure("auth_invalid_session")
        self._install(session, AuthChangeEvent.SIGNED_IN)
        return AuthResult(data=_session_payload(session))

    async def sign_up(
        self, email: str, password: str, *, data: dict[str, Any] | None = None
    ) -> AuthResult:
        try:
            body = await self._request(
                "POST",
                "/signup",
                json={"email": email, "password": password, "data": data or {}},
            )
            if isinstance(body, dict) and body.get("access_token"):
                session = Session.model_validate(body)
            else:
                # Email confirmation pending: user record only.
                return AuthResult(
                    data={"session": None, "user": Identity.model_validate(body)}
                )
        except GoTrueError as exc:
            return AuthResult.failure(str(exc), status=exc.status)
        except ValidationError:
            return AuthResult.failure("auth_invalid_session")
        self._install(session, AuthChangeEvent.SIGNED_IN)
        return AuthResult(data=_session_payload(session))

    async def sign_in_with_oauth(self, provider: str, *, redirect_to: str) -> AuthResult:
        query = urlencode({"provider": provider, "redirect_to": redirect_to})
        url = f"{self.settings.auth_url.rstrip('/')}/authorize?{query}"
        return AuthResult(data={"provider": provider, "url": url})

    async def sign_out(self) -> AuthResult:
        session = self.storage.load()
        error: GoTrueError | None = None
        if session is not None:
            try:
                await self._request("POST", "/logout", token=session.access_token)
            except GoTrueError as exc:
                if exc.status not in (401, 403, 404):
                    error = exc
                    logger.warning("remote_sign_out_failed: %s", exc)
        # The local session is dropped even when revocation failed.
        self.storage.clear()
        self.emit(AuthChangeEvent.SIGNED_OUT, None)
        if error is not None:
            return AuthResult.failure(str(error), status=error.status)
        return AuthResult()

    async def set_session(self, session: Session | dict[str, Any]) -> AuthResult:
        try:
            installed = (
                session if isinstance(session, Session) else Session.model_validate(session)
            )
        except ValidationError:
            return AuthResult.failure("auth_invalid_session")
        if installed.is_expired(leeway=EXPIRY_LEEWAY_SECONDS) and installed.refresh_token:
            self.storage.save(installed)
            return await self.refresh_session()
        self._install(installed, AuthChangeEvent.SIGNED_IN)
        return AuthResult(data=_session_payload(installed))

    async def refresh_session(self) -> AuthResult:
        current = self.storage.load()
        if current is None or not current.refresh_token:
            return AuthResult.failure("auth_session_missing")
        try:
            body = await self._request(
                "POST",
                "/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": current.refresh_token},
            )
            session = Session.model_validate(body)
        except GoTrueError as exc:
            if exc.status in (400, 401):
                logger.info("refresh_token_rejected: clearing session")
                self.storage.clear()
                self.emit(AuthChangeEvent.SIGNED_OUT, None)
            return AuthResult.failure(str(exc), status=exc.status)
        except ValidationError:
            return AuthResult.failure("auth_invalid_session")
        self._install(session, AuthChangeEvent.TOKEN_REFRESHED)
        return AuthResult(data=_session_payload(session))

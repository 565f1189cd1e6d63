"""HTTP client for the ZYRA backend profile and auth proxy endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from .config import Settings
from .models import AppProfile, AuthError

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Base error for backend request failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    def to_auth_error(self) -> AuthError:
        if isinstance(self.payload, dict) and self.payload:
            return AuthError.coerce(self.payload, status=self.status_code)
        return AuthError(message=str(self), status=self.status_code)


class BackendAuthError(BackendError):
    """Raised when backend rejects the bearer token."""


class BackendNotFoundError(BackendError):
    """Raised when backend resource is not found."""


class BackendConnectionError(BackendError):
    """Raised when backend connection fails or times out."""


class BackendRequestError(BackendError):
    """Raised for non-auth backend errors."""


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"message": response.text} if response.text else None


class ZyraBackendClient:
    """HTTP client for the ZYRA backend API."""

    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.http = http or httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=httpx.Timeout(
                connect=10.0,
                read=30.0,
                write=10.0,
                pool=10.0,
            ),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def call(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        token: str | None = None,
        timeout: float | httpx.Timeout | None = None,
    ) -> Any:
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        kwargs: dict[str, Any] = {"json": json, "headers": headers}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            request = self.http.request(method, path, **kwargs)
            if isinstance(timeout, (int, float)):
                # httpx timeouts are per phase; bound the whole exchange too.
                response = await asyncio.wait_for(request, timeout)
            else:
                response = await request
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            if isinstance(timeout, (int, float)):
                message = f"backend_timeout: Request to {path} timed out after {float(timeout)}s"
            else:
                message = f"backend_timeout: Request to {path} timed out"
            raise BackendConnectionError(message) from exc
        except httpx.HTTPError as exc:
            raise BackendConnectionError(f"backend_connection_failed: {exc}") from exc

        if response.status_code == 401:
            raise BackendAuthError(
                "backend_auth_failed", status_code=401, payload=_decode(response)
            )
        if response.status_code == 404:
            raise BackendNotFoundError(
                "backend_not_found", status_code=404, payload=_decode(response)
            )
        if response.status_code >= 400:
            raise BackendRequestError(
                f"backend_error_{response.status_code}",
                status_code=response.status_code,
                payload=_decode(response),
            )
        return _decode(response)

    async def get_me(self, token: str, *, timeout: float | None = None) -> AppProfile:
        """Fetch the app-level profile for ``token``.

        The endpoint answers either ``{"user": {...}}`` or the bare profile.
        """
        data = await self.call("GET", "/api/me", token=token, timeout=timeout)
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            data = data["user"]
        try:
            return AppProfile.model_validate(data)
        except ValidationError as exc:
            logger.warning("backend_invalid_profile: %s", exc.error_count())
            raise BackendRequestError("backend_invalid_profile", payload=data) from exc

    async def login(self, email: str, password: str) -> Any:
        return await self.call(
            "POST",
            "/api/auth/login",
            json={"email": email, "password": password},
        )

    async def register(self, email: str, password: str, full_name: str) -> Any:
        return await self.call(
            "POST",
            "/api/auth/register",
            json={"email": email, "password": password, "fullName": full_name},
        )

    async def logout(self, token: str) -> None:
        await self.call("POST", "/api/auth/logout", token=token)

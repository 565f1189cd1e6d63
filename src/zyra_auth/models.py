"""Data models for identities, sessions and app profiles."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

import jwt
from pydantic import BaseModel, ConfigDict, Field, model_validator


class AuthChangeEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class Identity(BaseModel):
    """Account record owned by the identity provider."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    email: str | None = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    app_metadata: dict[str, Any] = Field(default_factory=dict)


def _jwt_expiry(token: str) -> int | None:
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp")
    return int(exp) if isinstance(exp, (int, float)) else None


class Session(BaseModel):
    """Bearer credential issued by the identity provider."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    expires_in: int | None = None
    expires_at: int | None = None
    user: Identity

    @model_validator(mode="before")
    @classmethod
    def _fill_expires_at(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("expires_at") is not None:
            return data
        data = dict(data)
        if data.get("expires_in") is not None:
            data["expires_at"] = int(time.time()) + int(data["expires_in"])
        elif isinstance(data.get("access_token"), str):
            data["expires_at"] = _jwt_expiry(data["access_token"])
        return data

    def is_expired(self, now: float | None = None, leeway: int = 0) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current >= self.expires_at - leeway


class AppProfile(BaseModel):
    """Backend-owned user record returned by ``GET /api/me``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    email: str
    full_name: str | None = Field(default=None, alias="fullName")
    role: str = "user"
    plan: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")


class AuthError(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str
    status: int | None = None
    code: str | None = None

    @classmethod
    def coerce(cls, value: Any, *, status: int | None = None) -> "AuthError":
        """Build an error from a backend body, keeping its extra fields."""
        if isinstance(value, AuthError):
            return value
        if isinstance(value, dict):
            body = dict(value)
            message = body.get("message") or body.get("error") or body.get("msg")
            body["message"] = str(message) if message else f"request_failed_{status}"
            if status is not None:
                body.setdefault("status", status)
            try:
                return cls.model_validate(body)
            except ValueError:
                return cls(message=body["message"], status=status)
        return cls(message=str(value) if value else "request_failed", status=status)


class AuthResult(BaseModel):
    """Provider or proxy response handed back to callers unchanged."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: Any = None
    error: AuthError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, message: str, **fields: Any) -> "AuthResult":
        return cls(data=None, error=AuthError(message=message, **fields))


class AuthState(BaseModel):
    """Immutable snapshot of the controller state pushed to consumers."""

    model_config = ConfigDict(frozen=True)

    identity: Identity | None = None
    session: Session | None = None
    app_profile: AppProfile | None = None
    is_loading: bool = True
    is_signing_in: bool = False
    is_registering: bool = False
    is_signing_out: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

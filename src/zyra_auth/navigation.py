"""Navigation seam and the path rules used on forced sign-out."""

from __future__ import annotations

from typing import Iterable, Protocol
from urllib.parse import urlsplit


class Navigator(Protocol):
    @property
    def origin(self) -> str: ...

    @property
    def current_path(self) -> str: ...

    def redirect(self, url: str) -> None: ...


class MemoryNavigator:
    """Navigator for headless hosts and tests; records every redirect."""

    def __init__(self, origin: str, path: str = "/") -> None:
        self._origin = origin.rstrip("/")
        self._path = path
        self.history: list[str] = []

    @property
    def origin(self) -> str:
        return self._origin

    @property
    def current_path(self) -> str:
        return self._path

    def redirect(self, url: str) -> None:
        self.history.append(url)
        parts = urlsplit(url)
        if not parts.netloc or f"{parts.scheme}://{parts.netloc}" == self._origin:
            self._path = parts.path or "/"
            if parts.query:
                self._path = f"{self._path}?{parts.query}"


def _path_only(path: str) -> str:
    return urlsplit(path).path or "/"


def matches_prefix(path: str, prefixes: Iterable[str]) -> bool:
    bare = _path_only(path)
    return any(bare.startswith(prefix) for prefix in prefixes)


def is_password_reset_path(path: str, prefixes: Iterable[str]) -> bool:
    return matches_prefix(path, prefixes)


def should_redirect_on_sign_out(
    path: str,
    *,
    auth_prefixes: Iterable[str],
    password_reset_prefixes: Iterable[str],
) -> bool:
    """True unless ``path`` is the root or part of an auth flow."""
    bare = _path_only(path)
    if bare == "/":
        return False
    if matches_prefix(bare, auth_prefixes):
        return False
    return not matches_prefix(bare, password_reset_prefixes)

"""Local storage of the single intranet session token."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional

from .logger import get_logger

LOGGER = get_logger("session")


class TokenStore:
    """Persist the intranet ``user`` cookie in a file only the owner can read."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[str]:
        if not self._path.exists():
            return None
        token = self._path.read_text(encoding="utf-8").strip()
        return token or None

    def save(self, token: str) -> None:
        token = token.strip()
        if not token:
            raise ValueError("Refusing to store an empty session token")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(token + "\n", encoding="utf-8")
        if os.name != "nt":
            os.chmod(self._path, 0o600)

    def clear(self) -> None:
        if self._path.exists():
            self._path.unlink()


class TokenSession:
    """Session provider backed by a :class:`TokenStore`.

    The token is read lazily and cached in memory. When the intranet rejects
    it, :meth:`on_session_invalid` drops both copies and hands control to the
    ``on_invalid`` callback, which is where a re-login prompt belongs.
    """

    def __init__(
        self,
        store: TokenStore,
        on_invalid: Optional[Callable[[], None]] = None,
    ) -> None:
        self._store = store
        self._on_invalid = on_invalid
        self._token: Optional[str] = None

    def get_token(self) -> Optional[str]:
        if self._token is None:
            self._token = self._store.load()
        return self._token

    def set_token(self, token: str) -> None:
        self._store.save(token)
        self._token = token.strip()

    def on_session_invalid(self) -> None:
        LOGGER.warning("Intranet session rejected; cached token cleared. Run `epicheck login` again.")
        self._token = None
        self._store.clear()
        if self._on_invalid is not None:
            self._on_invalid()

    def clear(self) -> None:
        self._token = None
        self._store.clear()


__all__ = ["TokenStore", "TokenSession"]

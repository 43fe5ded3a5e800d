# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import os
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Tuple

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

COOKIE_NAME = os.getenv("CREDGATE_COOKIE_NAME", "credgate_session")
DEFAULT_MAX_AGE_SECONDS = int(os.getenv("CREDGATE_SESSION_MAX_AGE", "28800"))  # 8 hours


def _serializer() -> URLSafeTimedSerializer:
    secret = os.getenv("CREDGATE_SECRET_KEY") or os.getenv("SECRET_KEY")
    if not secret:
        raise RuntimeError("Missing CREDGATE_SECRET_KEY (or SECRET_KEY) in environment")
    salt = os.getenv("CREDGATE_SESSION_SALT", "credgate.session.v1")
    return URLSafeTimedSerializer(secret_key=secret, salt=salt)


@dataclass(frozen=True)
class SessionState:
    token: str
    logged_in: bool
    user_id: int
    username: str


class SessionStore(Protocol):
    def create(self, user_id: int, username: str) -> SessionState: ...

    def read(self, token: str) -> Optional[SessionState]: ...

    def destroy(self, token: str) -> None: ...


class MemorySessionStore:
    """Server-side sessions kept in process memory, keyed by an opaque token.

    Entries older than ``max_age`` seconds are treated as absent and dropped
    on read. A lock keeps each single-token operation atomic.
    """

    def __init__(
        self,
        *,
        max_age: int = DEFAULT_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_age = max_age
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, Tuple[float, SessionState]] = {}

    def create(self, user_id: int, username: str) -> SessionState:
        token = secrets.token_urlsafe(32)
        state = SessionState(token=token, logged_in=True, user_id=user_id, username=username)
        with self._lock:
            self._sweep_locked()
            self._sessions[token] = (self._clock(), state)
        return state

    def cleanup_expired(self) -> int:
        """Drop every expired session; return how many were removed."""
        with self._lock:
            return self._sweep_locked()

    def _sweep_locked(self) -> int:
        now = self._clock()
        stale = [t for t, (created, _) in self._sessions.items() if now - created > self._max_age]
        for t in stale:
            del self._sessions[t]
        return len(stale)

    def read(self, token: str) -> Optional[SessionState]:
        if not token:
            return None
        with self._lock:
            entry = self._sessions.get(token)
            if entry is None:
                return None
            created, state = entry
            if self._clock() - created > self._max_age:
                del self._sessions[token]
                return None
            return state

    def destroy(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def sign_token(token: str) -> str:
    return _serializer().dumps({"t": token})


def unsign_token(value: str, *, max_age: int = DEFAULT_MAX_AGE_SECONDS) -> str:
    """Return the session token carried by a cookie value, or "" if it is forged or stale."""
    if not value:
        return ""
    s = _serializer()
    try:
        data = s.loads(value, max_age=max_age)
    except (BadSignature, BadTimeSignature):
        return ""
    return str((data or {}).get("t") or "").strip()

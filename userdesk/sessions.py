"""Session tokens for signed-in accounts, indexed by account."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Set

DEFAULT_IDLE_TIMEOUT = timedelta(hours=8)
DEFAULT_MAX_LIFETIME = timedelta(days=7)


@dataclass
class _Session:
    uid: str
    issued_at: datetime
    last_seen: datetime


class SessionRegistry:
    """Opaque tokens mapped to account ids.

    A token lapses after ``idle_timeout`` without use, and in any case once
    ``max_lifetime`` has passed since it was issued. Tokens are indexed per
    account so every session of one account can be ended together, for
    example when the account disappears from the account database.
    """

    def __init__(
        self,
        *,
        idle_timeout: timedelta = DEFAULT_IDLE_TIMEOUT,
        max_lifetime: timedelta = DEFAULT_MAX_LIFETIME,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if idle_timeout <= timedelta(0) or max_lifetime <= timedelta(0):
            raise ValueError("Session timeouts must be positive")
        self._idle_timeout = idle_timeout
        self._max_lifetime = max_lifetime
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sessions: Dict[str, _Session] = {}
        self._by_account: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    @property
    def cookie_max_age(self) -> int:
        # the browser keeps the cookie no longer than the server honours it
        return int(min(self._idle_timeout, self._max_lifetime).total_seconds())

    def _lapsed(self, session: _Session, now: datetime) -> bool:
        return (
            now - session.last_seen >= self._idle_timeout
            or now - session.issued_at >= self._max_lifetime
        )

    def _discard(self, token: str) -> Optional[_Session]:
        session = self._sessions.pop(token, None)
        if session is None:
            return None
        tokens = self._by_account.get(session.uid)
        if tokens is not None:
            tokens.discard(token)
            if not tokens:
                del self._by_account[session.uid]
        return session

    def issue(self, uid: str) -> str:
        """Start a session for ``uid``; lapsed sessions are swept on the way."""

        token = secrets.token_urlsafe(32)
        now = self._clock()
        with self._lock:
            for stale in [t for t, s in self._sessions.items() if self._lapsed(s, now)]:
                self._discard(stale)
            self._sessions[token] = _Session(uid=uid, issued_at=now, last_seen=now)
            self._by_account.setdefault(uid, set()).add(token)
        return token

    def resolve(self, token: str) -> Optional[str]:
        now = self._clock()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if self._lapsed(session, now):
                self._discard(token)
                return None
            session.last_seen = now
            return session.uid

    def revoke(self, token: str) -> bool:
        with self._lock:
            return self._discard(token) is not None

    def revoke_all(self, uid: str) -> int:
        """End every session belonging to ``uid`` and return how many there were."""

        with self._lock:
            tokens = list(self._by_account.get(uid, ()))
            for token in tokens:
                self._discard(token)
        return len(tokens)


__all__ = ["DEFAULT_IDLE_TIMEOUT", "DEFAULT_MAX_LIFETIME", "SessionRegistry"]

"""Email/password authentication provider and its per-browser client."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .accounts import Account, AccountDatabase, AccountExistsError, is_valid_email
from .sessions import SessionRegistry

logger = logging.getLogger("userdesk.auth")

INVALID_CREDENTIAL = "auth/invalid-credential"
EMAIL_ALREADY_IN_USE = "auth/email-already-in-use"
INVALID_EMAIL = "auth/invalid-email"
OPERATION_NOT_ALLOWED = "auth/operation-not-allowed"
WEAK_PASSWORD = "auth/weak-password"

MIN_PASSWORD_LENGTH = 6


class AuthError(Exception):
    """Provider failure carrying a machine-readable ``code``."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{message} ({code})")


@dataclass(frozen=True)
class Identity:
    """The authenticated account as seen by consumers of the provider."""

    uid: str
    email: str

    @classmethod
    def from_account(cls, account: Account) -> "Identity":
        return cls(uid=account.uid, email=account.email)


AuthListener = Callable[[Optional[Identity]], None]


class AuthProvider:
    """Verifies credentials against :class:`AccountDatabase` and issues sessions."""

    def __init__(
        self,
        accounts: AccountDatabase,
        sessions: SessionRegistry,
        *,
        allow_signup: bool = True,
        min_password_length: int = MIN_PASSWORD_LENGTH,
    ) -> None:
        self._accounts = accounts
        self._sessions = sessions
        self._allow_signup = allow_signup
        self._min_password_length = min_password_length

    @property
    def sessions(self) -> SessionRegistry:
        return self._sessions

    def sign_in_with_password(self, email: str, password: str) -> Tuple[str, Identity]:
        account = self._accounts.authenticate(email, password) if email and password else None
        if account is None:
            raise AuthError(INVALID_CREDENTIAL, "Invalid email or password")
        return self._sessions.issue(account.uid), Identity.from_account(account)

    def create_account_with_password(self, email: str, password: str) -> Tuple[str, Identity]:
        if not self._allow_signup:
            raise AuthError(OPERATION_NOT_ALLOWED, "Password sign-up is disabled")
        if not is_valid_email(email.strip()):
            raise AuthError(INVALID_EMAIL, "The email address is badly formatted")
        if len(password) < self._min_password_length:
            raise AuthError(
                WEAK_PASSWORD,
                f"Password should be at least {self._min_password_length} characters",
            )
        try:
            account = self._accounts.create_account(email, password)
        except AccountExistsError as exc:
            raise AuthError(EMAIL_ALREADY_IN_USE, str(exc)) from exc
        logger.info("Created account %s", account.uid)
        return self._sessions.issue(account.uid), Identity.from_account(account)

    def sign_out(self, token: str) -> None:
        self._sessions.revoke(token)

    def resolve(self, token: Optional[str]) -> Optional[Identity]:
        if not token:
            return None
        uid = self._sessions.resolve(token)
        if uid is None:
            return None
        account = self._accounts.get_account(uid)
        if account is None:
            # the account was removed; none of its sessions may outlive it
            ended = self._sessions.revoke_all(uid)
            logger.info("Ended %d session(s) of removed account %s", ended, uid)
            return None
        return Identity.from_account(account)


class AuthClient:
    """Client-side view of the provider for one browser session.

    Holds the current session token and pushes identity changes to
    subscribers. A new subscriber immediately receives the current identity.
    """

    def __init__(self, provider: AuthProvider, token: Optional[str] = None) -> None:
        self._provider = provider
        self._token = token
        self._identity = provider.resolve(token)
        if self._identity is None:
            self._token = None
        self._listeners: Dict[int, AuthListener] = {}
        self._next_listener = 0
        self._lock = threading.Lock()

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._identity

    def sign_in_with_password(self, email: str, password: str) -> Identity:
        token, identity = self._provider.sign_in_with_password(email, password)
        self._replace_session(token, identity)
        return identity

    def create_account_with_password(self, email: str, password: str) -> Identity:
        token, identity = self._provider.create_account_with_password(email, password)
        self._replace_session(token, identity)
        return identity

    def sign_out(self) -> None:
        """End the local session; it is cleared even when revoking the token fails."""

        token = self._token
        try:
            if token:
                self._provider.sign_out(token)
        finally:
            self._token = None
            self._identity = None
            self._notify()

    def subscribe_to_auth_changes(self, callback: AuthListener) -> Callable[[], None]:
        with self._lock:
            key = self._next_listener
            self._next_listener += 1
            self._listeners[key] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(key, None)

        callback(self._identity)
        return unsubscribe

    def _replace_session(self, token: str, identity: Identity) -> None:
        previous = self._token
        if previous and previous != token:
            self._provider.sign_out(previous)
        self._token = token
        self._identity = identity
        self._notify()

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        identity = self._identity
        for listener in listeners:
            listener(identity)


__all__ = [
    "AuthClient",
    "AuthError",
    "AuthListener",
    "AuthProvider",
    "EMAIL_ALREADY_IN_USE",
    "INVALID_CREDENTIAL",
    "INVALID_EMAIL",
    "Identity",
    "MIN_PASSWORD_LENGTH",
    "OPERATION_NOT_ALLOWED",
    "WEAK_PASSWORD",
]

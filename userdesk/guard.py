"""Session state derived from authentication changes, plus route gating."""

from __future__ import annotations

import functools
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .auth import (
    EMAIL_ALREADY_IN_USE,
    INVALID_EMAIL,
    OPERATION_NOT_ALLOWED,
    WEAK_PASSWORD,
    AuthClient,
    AuthError,
    Identity,
)

logger = logging.getLogger("userdesk.guard")

HOME_ROUTE = "/"
LOGIN_ROUTE = "/login"
SIGNUP_ROUTE = "/signup"
PUBLIC_ROUTES = frozenset({LOGIN_ROUTE, SIGNUP_ROUTE})

SIGN_IN_ERROR = "Failed to sign in. Please check your credentials."
LOGOUT_ERROR = "Failed to log out. Please try again."

_SIGNUP_MESSAGES = {
    EMAIL_ALREADY_IN_USE: "This email is already registered. Please try logging in instead.",
    INVALID_EMAIL: "Invalid email address format.",
    OPERATION_NOT_ALLOWED: "Email/password accounts are not enabled. Please contact support.",
    WEAK_PASSWORD: "Password should be at least 6 characters long.",
}


class SessionState(str, Enum):
    """Lifecycle of the client-side session."""

    UNKNOWN = "unknown"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class Session:
    state: SessionState = SessionState.UNKNOWN
    user: Optional[Identity] = None

    @property
    def loading(self) -> bool:
        return self.state is SessionState.UNKNOWN


class LoadingIndicator:
    """Placeholder rendered by gated views while the session is unresolved."""

    def __repr__(self) -> str:
        return "LOADING_INDICATOR"


LOADING_INDICATOR = LoadingIndicator()


def signup_error_message(exc: BaseException) -> str:
    """Map a sign-up failure to the message shown next to the form."""

    if isinstance(exc, AuthError):
        message = _SIGNUP_MESSAGES.get(exc.code)
        if message is not None:
            return message
        return f"Failed to create account: {exc.message}"
    return "An unexpected error occurred. Please try again."


def is_public_route(route: str) -> bool:
    return route in PUBLIC_ROUTES


class SessionGuard:
    """Subscribe to an :class:`AuthClient` and keep a three-state session.

    Use as a context manager: entering subscribes to auth changes and leaving
    unsubscribes, so no notification reaches a discarded consumer.
    """

    def __init__(
        self,
        client: AuthClient,
        *,
        route: str,
        navigate: Callable[[str], None],
    ) -> None:
        self._client = client
        self._route = route
        self._navigate = navigate
        self._session = Session()
        self._error: Optional[str] = None
        self._active = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def user(self) -> Optional[Identity]:
        return self._session.user

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def route(self) -> str:
        return self._route

    @property
    def client(self) -> AuthClient:
        return self._client

    def start(self) -> None:
        if self._active:
            raise RuntimeError("Session guard is already subscribed")
        self._session = Session()
        self._active = True
        try:
            self._unsubscribe = self._client.subscribe_to_auth_changes(self._handle_change)
        except Exception:
            self._active = False
            raise

    def stop(self) -> None:
        self._active = False
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    def __enter__(self) -> "SessionGuard":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _handle_change(self, identity: Optional[Identity]) -> None:
        if not self._active:
            return
        if identity is not None:
            self._session = Session(SessionState.AUTHENTICATED, identity)
            return
        self._session = Session(SessionState.UNAUTHENTICATED)
        if not is_public_route(self._route):
            self._navigate(LOGIN_ROUTE)

    def sign_in(self, email: str, password: str) -> None:
        self._error = None
        try:
            self._client.sign_in_with_password(email, password)
        except Exception:
            self._error = SIGN_IN_ERROR
            raise
        self._navigate(HOME_ROUTE)

    def sign_up(self, email: str, password: str) -> None:
        self._error = None
        try:
            self._client.create_account_with_password(email, password)
        except Exception as exc:
            self._error = signup_error_message(exc)
            raise
        self._navigate(HOME_ROUTE)

    def logout(self) -> None:
        """Sign out without raising; failures are logged and kept in ``error``."""

        self._error = None
        try:
            self._client.sign_out()
        except Exception:
            logger.exception("Error logging out")
            self._error = LOGOUT_ERROR
        self._session = Session(SessionState.UNAUTHENTICATED)
        self._navigate(LOGIN_ROUTE)


def protected_route(
    view: Optional[Callable[..., Any]] = None,
    *,
    loading: Callable[[], Any] = lambda: LOADING_INDICATOR,
):
    """Gate ``view`` on the session held by the guard passed as first argument.

    Renders ``loading()`` while the session is unknown, ``None`` while the
    guard redirects an anonymous visitor, and the view once authenticated.
    """

    def decorate(func: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(guard: SessionGuard, *args: Any, **kwargs: Any) -> Any:
                session = guard.session
                if session.loading:
                    return loading()
                if session.user is None:
                    return None
                return await func(guard, *args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(guard: SessionGuard, *args: Any, **kwargs: Any) -> Any:
            session = guard.session
            if session.loading:
                return loading()
            if session.user is None:
                return None
            return func(guard, *args, **kwargs)

        return wrapper

    if view is not None:
        return decorate(view)
    return decorate


__all__ = [
    "HOME_ROUTE",
    "LOADING_INDICATOR",
    "LOGIN_ROUTE",
    "LOGOUT_ERROR",
    "PUBLIC_ROUTES",
    "SIGNUP_ROUTE",
    "SIGN_IN_ERROR",
    "Session",
    "SessionGuard",
    "SessionState",
    "is_public_route",
    "protected_route",
    "signup_error_message",
]

"""Application factories combining the resource API and the web dashboard."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Callable, Optional

from fastapi import FastAPI

from .accounts import AccountDatabase
from .api import register_api_routes, register_error_handlers
from .auth import AuthProvider
from .client import DirectUsersClient, HttpUsersClient
from .config import Settings, load_settings
from .sessions import SessionRegistry
from .store import DocumentStore
from .users import UserService
from .web import register_ui_routes

logger = logging.getLogger("userdesk.service")


def _build_client_factory(settings: Settings, service: UserService) -> Callable[[], Any]:
    if settings.dashboard_transport == "http":
        logger.info("Dashboard talks to the resource API at %s", settings.api_url)
        return lambda: HttpUsersClient(settings.api_url)
    return lambda: DirectUsersClient(service)


def create_app(
    *,
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    accounts: Optional[AccountDatabase] = None,
    sessions: Optional[SessionRegistry] = None,
    client_factory: Optional[Callable[[], Any]] = None,
    include_api: bool = True,
    include_web: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application.

    Collaborators are constructed from ``settings`` unless passed in, which
    lets tests substitute their own store or dashboard transport.
    """

    settings = settings or load_settings()

    if store is None:
        store = DocumentStore(settings.database_path)
    store.initialize()
    service = UserService(store)

    app = FastAPI(
        title="UserDesk API",
        version="0.1.0",
        description="User records with email/password sign-in and a management dashboard.",
    )
    app.state.settings = settings
    app.state.store = store
    app.state.user_service = service

    register_error_handlers(app)

    if include_api:
        register_api_routes(app, service)

    if include_web:
        if accounts is None:
            accounts = AccountDatabase(settings.database_path)
        accounts.initialize()
        if sessions is None:
            sessions = SessionRegistry(idle_timeout=timedelta(hours=settings.session_ttl_hours))
        if not settings.secure_cookies:
            logger.warning(
                "Session cookies are not marked as secure. Only disable secure cookies for"
                " local development."
            )
        provider = AuthProvider(accounts, sessions, allow_signup=settings.allow_signup)
        app.state.auth_provider = provider
        register_ui_routes(
            app,
            provider,
            client_factory=client_factory or _build_client_factory(settings, service),
            secure_cookies=settings.secure_cookies,
        )

    return app


def create_api_app(*, settings: Optional[Settings] = None, store: Optional[DocumentStore] = None) -> FastAPI:
    """Return an application exposing only the JSON resource API."""

    return create_app(settings=settings, store=store, include_api=True, include_web=False)


def create_web_app(
    *,
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    accounts: Optional[AccountDatabase] = None,
    client_factory: Optional[Callable[[], Any]] = None,
) -> FastAPI:
    """Return an application exposing only the web dashboard."""

    return create_app(
        settings=settings,
        store=store,
        accounts=accounts,
        client_factory=client_factory,
        include_api=False,
        include_web=True,
    )


__all__ = ["create_app", "create_api_app", "create_web_app"]

"""Browser interface: sign-in, sign-up and the user management dashboard."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from .auth import AuthClient, AuthError, AuthProvider
from .dashboard import DELETE_CONFIRMATION, EMPTY_STATE_MESSAGE, DashboardController
from .guard import (
    HOME_ROUTE,
    LOADING_INDICATOR,
    LOGIN_ROUTE,
    SIGNUP_ROUTE,
    SessionGuard,
    protected_route,
)
from .users import UserDraft

logger = logging.getLogger("userdesk.web")

SESSION_COOKIE_NAME = "userdesk_session"
TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


class _Navigator:
    """Collects the redirect requested by a guard while handling one request."""

    def __init__(self) -> None:
        self.target: Optional[str] = None

    def __call__(self, path: str) -> None:
        self.target = path


def _template_environment() -> Jinja2Templates:
    return Jinja2Templates(directory=str(TEMPLATE_DIR))


async def _parse_form(request: Request) -> Dict[str, str]:
    body_bytes = await request.body()
    content_type = request.headers.get("content-type", "")
    charset = "utf-8"
    if "charset=" in content_type:
        charset = content_type.split("charset=", 1)[1].split(";", 1)[0].strip() or "utf-8"
    try:
        decoded = body_bytes.decode(charset)
    except (LookupError, UnicodeDecodeError):
        decoded = body_bytes.decode("utf-8", errors="ignore")
    data = parse_qs(decoded, keep_blank_values=True)
    return {key: values[0] for key, values in data.items() if values}


def _draft_from_form(form: Dict[str, str]) -> UserDraft:
    return UserDraft(name=form.get("name", ""), email=form.get("email", ""))


def register_ui_routes(
    app: FastAPI,
    provider: AuthProvider,
    *,
    client_factory: Callable[[], Any],
    secure_cookies: bool,
) -> None:
    """Expose the HTML interface on the provided FastAPI app."""

    templates = _template_environment()
    router = APIRouter(include_in_schema=False)

    def _open_guard(request: Request, route: str) -> tuple[SessionGuard, _Navigator]:
        client = AuthClient(provider, request.cookies.get(SESSION_COOKIE_NAME))
        navigator = _Navigator()
        return SessionGuard(client, route=route, navigate=navigator), navigator

    def _sync_session_cookie(request: Request, response: Response, guard: SessionGuard) -> None:
        token = guard.client.token
        if token:
            response.set_cookie(
                SESSION_COOKIE_NAME,
                token,
                max_age=provider.sessions.cookie_max_age,
                secure=secure_cookies,
                httponly=True,
                samesite="lax",
                path="/",
            )
        elif SESSION_COOKIE_NAME in request.cookies:
            response.delete_cookie(SESSION_COOKIE_NAME, path="/")

    def _redirect(target: str) -> RedirectResponse:
        return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)

    def _render(
        request: Request,
        name: str,
        context: Dict[str, Any],
        *,
        status_code: int = status.HTTP_200_OK,
    ) -> HTMLResponse:
        return templates.TemplateResponse(request, name, context, status_code=status_code)

    def _respond(
        request: Request,
        guard: SessionGuard,
        navigator: _Navigator,
        result: Optional[Response],
    ) -> Response:
        if result is LOADING_INDICATOR:
            response: Response = _render(request, "loading.html", {"user": None})
        elif result is None:
            response = _redirect(navigator.target or LOGIN_ROUTE)
        else:
            response = result
        _sync_session_cookie(request, response, guard)
        return response

    def _render_dashboard(
        request: Request,
        guard: SessionGuard,
        controller: DashboardController,
        *,
        status_code: int = status.HTTP_200_OK,
    ) -> HTMLResponse:
        return _render(
            request,
            "dashboard.html",
            {
                "user": guard.user,
                "controller": controller,
                "empty_message": EMPTY_STATE_MESSAGE,
            },
            status_code=status_code,
        )

    def _render_auth_page(
        request: Request,
        name: str,
        *,
        email: str = "",
        error: Optional[str] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> HTMLResponse:
        return _render(
            request,
            name,
            {"user": None, "email": email, "error": error},
            status_code=status_code,
        )

    @protected_route
    async def _dashboard_view(
        guard: SessionGuard,
        request: Request,
        *,
        new: bool,
        edit: Optional[str],
    ) -> Response:
        controller = DashboardController(client_factory())
        await controller.refresh()
        if edit:
            existing = controller.find(edit)
            if existing is not None:
                controller.open_edit(existing)
        elif new:
            controller.open_create()
        return _render_dashboard(request, guard, controller)

    @protected_route
    async def _create_view(guard: SessionGuard, request: Request, draft: UserDraft) -> Response:
        controller = DashboardController(client_factory())
        await controller.refresh()
        controller.open_create()
        if await controller.create(draft):
            return _redirect(HOME_ROUTE)
        return _render_dashboard(
            request, guard, controller, status_code=status.HTTP_400_BAD_REQUEST
        )

    @protected_route
    async def _update_view(
        guard: SessionGuard,
        request: Request,
        user_id: str,
        draft: UserDraft,
    ) -> Response:
        controller = DashboardController(client_factory())
        await controller.refresh()
        existing = controller.find(user_id)
        if existing is not None:
            controller.open_edit(existing)
        if await controller.update(user_id, draft):
            return _redirect(HOME_ROUTE)
        return _render_dashboard(
            request, guard, controller, status_code=status.HTTP_400_BAD_REQUEST
        )

    @protected_route
    async def _confirm_delete_view(guard: SessionGuard, request: Request, user_id: str) -> Response:
        controller = DashboardController(client_factory())
        await controller.refresh()
        target = controller.find(user_id)
        if target is None:
            return _render_dashboard(request, guard, controller)
        return _render(
            request,
            "confirm_delete.html",
            {"user": guard.user, "target": target, "question": DELETE_CONFIRMATION},
        )

    @protected_route
    async def _delete_view(
        guard: SessionGuard,
        request: Request,
        user_id: str,
        confirmed: bool,
    ) -> Response:
        controller = DashboardController(client_factory())
        await controller.refresh()
        removed = await controller.remove(user_id, lambda: confirmed)
        if removed or not confirmed:
            return _redirect(HOME_ROUTE)
        return _render_dashboard(
            request, guard, controller, status_code=status.HTTP_400_BAD_REQUEST
        )

    @router.get("/", response_class=HTMLResponse, name="ui_dashboard")
    async def dashboard(request: Request, new: bool = False, edit: Optional[str] = None):
        guard, navigator = _open_guard(request, HOME_ROUTE)
        with guard:
            result = await _dashboard_view(guard, request, new=new, edit=edit)
        return _respond(request, guard, navigator, result)

    @router.post("/dashboard/users", name="ui_create_user")
    async def create_user(request: Request):
        draft = _draft_from_form(await _parse_form(request))
        guard, navigator = _open_guard(request, HOME_ROUTE)
        with guard:
            result = await _create_view(guard, request, draft)
        return _respond(request, guard, navigator, result)

    @router.post("/dashboard/users/{user_id}", name="ui_update_user")
    async def update_user(user_id: str, request: Request):
        draft = _draft_from_form(await _parse_form(request))
        guard, navigator = _open_guard(request, HOME_ROUTE)
        with guard:
            result = await _update_view(guard, request, user_id, draft)
        return _respond(request, guard, navigator, result)

    @router.get("/dashboard/users/{user_id}/delete", response_class=HTMLResponse, name="ui_confirm_delete")
    async def confirm_delete(user_id: str, request: Request):
        guard, navigator = _open_guard(request, HOME_ROUTE)
        with guard:
            result = await _confirm_delete_view(guard, request, user_id)
        return _respond(request, guard, navigator, result)

    @router.post("/dashboard/users/{user_id}/delete", name="ui_delete_user")
    async def delete_user(user_id: str, request: Request):
        form = await _parse_form(request)
        confirmed = form.get("confirm", "").strip().lower() == "yes"
        guard, navigator = _open_guard(request, HOME_ROUTE)
        with guard:
            result = await _delete_view(guard, request, user_id, confirmed)
        return _respond(request, guard, navigator, result)

    @router.get(LOGIN_ROUTE, response_class=HTMLResponse, name="ui_login")
    async def login_form(request: Request):
        guard, navigator = _open_guard(request, LOGIN_ROUTE)
        with guard:
            if guard.user is not None:
                response: Response = _redirect(HOME_ROUTE)
            else:
                response = _render_auth_page(request, "login.html")
        _sync_session_cookie(request, response, guard)
        return response

    @router.post(LOGIN_ROUTE, name="ui_login_submit")
    async def login_submit(request: Request):
        form = await _parse_form(request)
        email = form.get("email", "").strip()
        password = form.get("password", "")
        guard, navigator = _open_guard(request, LOGIN_ROUTE)
        with guard:
            if not email or not password:
                response: Response = _render_auth_page(
                    request,
                    "login.html",
                    email=email,
                    error="Please provide both email and password.",
                    status_code=status.HTTP_400_BAD_REQUEST,
                )
            else:
                try:
                    guard.sign_in(email, password)
                except AuthError:
                    logger.warning("Failed web login attempt for %s", email)
                    response = _render_auth_page(
                        request,
                        "login.html",
                        email=email,
                        error=guard.error,
                        status_code=status.HTTP_400_BAD_REQUEST,
                    )
                else:
                    logger.info("Account %s signed in", guard.client.current_identity.uid)
                    response = _redirect(navigator.target or HOME_ROUTE)
        _sync_session_cookie(request, response, guard)
        return response

    @router.get(SIGNUP_ROUTE, response_class=HTMLResponse, name="ui_signup")
    async def signup_form(request: Request):
        guard, navigator = _open_guard(request, SIGNUP_ROUTE)
        with guard:
            if guard.user is not None:
                response: Response = _redirect(HOME_ROUTE)
            else:
                response = _render_auth_page(request, "signup.html")
        _sync_session_cookie(request, response, guard)
        return response

    @router.post(SIGNUP_ROUTE, name="ui_signup_submit")
    async def signup_submit(request: Request):
        form = await _parse_form(request)
        email = form.get("email", "").strip()
        password = form.get("password", "")
        confirmation = form.get("confirm_password", "")
        guard, navigator = _open_guard(request, SIGNUP_ROUTE)
        with guard:
            if password != confirmation:
                response: Response = _render_auth_page(
                    request,
                    "signup.html",
                    email=email,
                    error="Passwords do not match.",
                    status_code=status.HTTP_400_BAD_REQUEST,
                )
            else:
                try:
                    guard.sign_up(email, password)
                except AuthError as exc:
                    logger.warning("Sign-up rejected for %s (%s)", email, exc.code)
                    response = _render_auth_page(
                        request,
                        "signup.html",
                        email=email,
                        error=guard.error,
                        status_code=status.HTTP_400_BAD_REQUEST,
                    )
                else:
                    response = _redirect(navigator.target or HOME_ROUTE)
        _sync_session_cookie(request, response, guard)
        return response

    @router.get("/logout", name="ui_logout")
    async def logout(request: Request):
        guard, navigator = _open_guard(request, HOME_ROUTE)
        with guard:
            guard.logout()
        response = _redirect(navigator.target or LOGIN_ROUTE)
        _sync_session_cookie(request, response, guard)
        return response

    app.include_router(router)


__all__ = ["SESSION_COOKIE_NAME", "register_ui_routes"]

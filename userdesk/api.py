"""HTTP handlers exposing the user resource."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import anyio
from fastapi import APIRouter, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .errors import InvalidArgument, MethodNotAllowed, UserDeskError
from .users import UserDraft, UserRecord, UserService

logger = logging.getLogger("userdesk.api")

FUNCTION_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _error_response(exc: UserDeskError) -> JSONResponse:
    headers = None
    if isinstance(exc, MethodNotAllowed) and exc.allowed:
        headers = {"Allow": exc.allowed}
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message},
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Translate failures into status codes without leaking internal detail."""

    @app.exception_handler(UserDeskError)
    async def userdesk_error_handler(request: Request, exc: UserDeskError):
        if exc.http_status >= 500:
            logger.error("%s on %s %s", exc.code, request.method, request.url.path)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Rejected request body on %s: %s", request.url.path, exc.errors())
        return _error_response(InvalidArgument())

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )


def _require_method(request: Request, expected: str) -> None:
    if request.method != expected:
        raise MethodNotAllowed(allowed=expected)


async def _read_draft(request: Request) -> UserDraft:
    try:
        payload: Any = await request.json()
    except ValueError as exc:
        raise InvalidArgument() from exc
    if not isinstance(payload, dict):
        raise InvalidArgument()
    try:
        return UserDraft.model_validate(payload)
    except ValidationError as exc:
        raise InvalidArgument() from exc


def _dump(record: UserRecord) -> Dict[str, Any]:
    return record.model_dump(mode="json", by_alias=True)


def register_api_routes(app: FastAPI, service: UserService) -> None:
    """Expose the REST routes and the per-operation function endpoints."""

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    router = APIRouter(tags=["users"])

    @router.get("/users", response_model=List[UserRecord])
    async def list_users() -> List[UserRecord]:
        return await anyio.to_thread.run_sync(service.list_users)

    @router.get("/users/{user_id}", response_model=UserRecord)
    async def get_user(user_id: str) -> UserRecord:
        return await anyio.to_thread.run_sync(service.get_user, user_id)

    @router.post("/users", response_model=UserRecord)
    async def create_user(draft: UserDraft) -> UserRecord:
        return await anyio.to_thread.run_sync(service.create_user, draft)

    @router.put("/users/{user_id}", response_model=UserRecord)
    async def update_user(user_id: str, draft: UserDraft) -> UserRecord:
        return await anyio.to_thread.run_sync(service.update_user, user_id, draft)

    @router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_user(user_id: str) -> Response:
        await anyio.to_thread.run_sync(service.delete_user, user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # One endpoint per operation, each checking its own verb before touching
    # the store. Mirrors deployments where every handler is a separate function.
    functions = APIRouter(prefix="/functions", tags=["functions"])

    @functions.api_route("/getUsers", methods=FUNCTION_METHODS)
    async def get_users_function(request: Request) -> JSONResponse:
        _require_method(request, "GET")
        users = await anyio.to_thread.run_sync(service.list_users)
        return JSONResponse([_dump(user) for user in users])

    @functions.api_route("/getUserById/{user_id}", methods=FUNCTION_METHODS)
    async def get_user_by_id_function(user_id: str, request: Request) -> JSONResponse:
        _require_method(request, "GET")
        user = await anyio.to_thread.run_sync(service.get_user, user_id)
        return JSONResponse(_dump(user))

    @functions.api_route("/createUser", methods=FUNCTION_METHODS)
    async def create_user_function(request: Request) -> JSONResponse:
        _require_method(request, "POST")
        draft = await _read_draft(request)
        user = await anyio.to_thread.run_sync(service.create_user, draft)
        return JSONResponse(_dump(user))

    @functions.api_route("/updateUser/{user_id}", methods=FUNCTION_METHODS)
    async def update_user_function(user_id: str, request: Request) -> JSONResponse:
        _require_method(request, "PUT")
        draft = await _read_draft(request)
        user = await anyio.to_thread.run_sync(service.update_user, user_id, draft)
        return JSONResponse(_dump(user))

    @functions.api_route("/deleteUser/{user_id}", methods=FUNCTION_METHODS)
    async def delete_user_function(user_id: str, request: Request) -> Response:
        _require_method(request, "DELETE")
        await anyio.to_thread.run_sync(service.delete_user, user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    app.include_router(router)
    app.include_router(functions)


__all__ = ["FUNCTION_METHODS", "register_api_routes", "register_error_handlers"]

"""Transports the dashboard uses to reach the user resource."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import anyio
import httpx
from pydantic import ValidationError

from .errors import Internal, ServiceUnavailable, error_for_status
from .users import UserDraft, UserRecord, UserService

logger = logging.getLogger("userdesk.client")


def _normalize_base_url(base_url: str) -> str:
    cleaned = (base_url or "").strip()
    if not cleaned:
        raise ValueError("API base URL must not be empty")
    return cleaned.rstrip("/")


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("detail", "message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


def _draft_payload(draft: UserDraft) -> dict:
    return {"name": draft.name, "email": draft.email}


def _to_record(payload: Any) -> UserRecord:
    try:
        return UserRecord.model_validate(payload)
    except ValidationError as exc:
        raise Internal("Service returned an unexpected response format") from exc


class HttpUsersClient:
    """Talk to the resource API over HTTP.

    Status codes are mapped back onto :mod:`userdesk.errors`; transport
    failures become :class:`~userdesk.errors.ServiceUnavailable`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = _normalize_base_url(base_url)
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _request(self, method: str, path: str, *, json: Any = None) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning("Failed to reach %s%s: %s", self._base_url, path, exc)
            raise ServiceUnavailable() from exc

        if response.status_code >= 400:
            try:
                payload: object = response.json()
            except ValueError:
                payload = response.text
            message = _extract_error_message(payload, response.reason_phrase)
            raise error_for_status(response.status_code, message)
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise Internal("Service returned an unexpected response format") from exc

    async def list_users(self) -> List[UserRecord]:
        response = await self._request("GET", "/users")
        payload = self._decode(response)
        if not isinstance(payload, list):
            raise Internal("Service returned an unexpected response format")
        return [_to_record(item) for item in payload]

    async def get_user(self, user_id: str) -> UserRecord:
        response = await self._request("GET", f"/users/{user_id}")
        return _to_record(self._decode(response))

    async def create_user(self, draft: UserDraft) -> UserRecord:
        response = await self._request("POST", "/users", json=_draft_payload(draft))
        return _to_record(self._decode(response))

    async def update_user(self, user_id: str, draft: UserDraft) -> UserRecord:
        response = await self._request("PUT", f"/users/{user_id}", json=_draft_payload(draft))
        return _to_record(self._decode(response))

    async def delete_user(self, user_id: str) -> None:
        await self._request("DELETE", f"/users/{user_id}")


class DirectUsersClient:
    """Call :class:`UserService` in-process, off the event loop."""

    def __init__(self, service: UserService) -> None:
        self._service = service

    async def list_users(self) -> List[UserRecord]:
        return await anyio.to_thread.run_sync(self._service.list_users)

    async def get_user(self, user_id: str) -> UserRecord:
        return await anyio.to_thread.run_sync(self._service.get_user, user_id)

    async def create_user(self, draft: UserDraft) -> UserRecord:
        return await anyio.to_thread.run_sync(self._service.create_user, draft)

    async def update_user(self, user_id: str, draft: UserDraft) -> UserRecord:
        return await anyio.to_thread.run_sync(self._service.update_user, user_id, draft)

    async def delete_user(self, user_id: str) -> None:
        await anyio.to_thread.run_sync(self._service.delete_user, user_id)


__all__ = ["DirectUsersClient", "HttpUsersClient"]

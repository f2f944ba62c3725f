"""State and actions behind the user management dashboard."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .errors import InvalidArgument, UserDeskError
from .users import UserDraft, UserRecord

logger = logging.getLogger("userdesk.dashboard")

LOAD_ERROR = "Failed to load users. Please check your database permissions or connection."
CREATE_ERROR = "Failed to create user. Please check your database permissions or connection."
UPDATE_ERROR = "Failed to update user. Please check your database permissions or connection."
DELETE_ERROR = "Failed to delete user. Please check your database permissions or connection."
EMPTY_STATE_MESSAGE = "No users found."
DELETE_CONFIRMATION = "Are you sure you want to delete this user?"


def _failure_message(exc: UserDeskError, fallback: str) -> str:
    # validation failures carry their own message
    if isinstance(exc, InvalidArgument):
        return exc.message
    return fallback


class DashboardController:
    """Owns the displayed list of users and the single open form.

    Every successful mutation is followed by a full :meth:`refresh`, so the
    list always mirrors what the store returned last. Editing an existing
    record and creating a new one are mutually exclusive.
    """

    def __init__(self, client) -> None:
        self._client = client
        self.users: List[UserRecord] = []
        self.busy = False
        self.error: Optional[str] = None
        self.editing: Optional[UserRecord] = None
        self.creating = False
        self.draft: Optional[UserDraft] = None

    @property
    def form_mode(self) -> Optional[str]:
        if self.editing is not None:
            return "edit"
        if self.creating:
            return "create"
        return None

    @property
    def is_empty(self) -> bool:
        return not self.users

    def find(self, user_id: str) -> Optional[UserRecord]:
        for user in self.users:
            if user.id == user_id:
                return user
        return None

    def open_create(self) -> None:
        self.editing = None
        self.creating = True
        self.draft = UserDraft(name="", email="")

    def open_edit(self, user: UserRecord) -> None:
        self.creating = False
        self.editing = user
        self.draft = user.to_draft()

    def cancel(self) -> None:
        self.creating = False
        self.editing = None
        self.draft = None

    async def refresh(self) -> bool:
        self.busy = True
        self.error = None
        try:
            users = await self._client.list_users()
        except UserDeskError as exc:
            logger.warning("Error loading users: %s", exc.message)
            self.error = LOAD_ERROR
            return False
        finally:
            self.busy = False
        self.users = list(users)
        return True

    async def create(self, draft: UserDraft) -> bool:
        if self.form_mode != "create":
            self.open_create()
        self.draft = draft
        self.busy = True
        self.error = None
        try:
            await self._client.create_user(draft)
        except UserDeskError as exc:
            logger.warning("Error creating user: %s", exc.message)
            self.busy = False
            self.error = _failure_message(exc, CREATE_ERROR)
            return False
        self.cancel()
        await self.refresh()
        return True

    async def update(self, user_id: str, draft: UserDraft) -> bool:
        self.draft = draft
        self.busy = True
        self.error = None
        try:
            await self._client.update_user(user_id, draft)
        except UserDeskError as exc:
            logger.warning("Error updating user %s: %s", user_id, exc.message)
            self.busy = False
            self.error = _failure_message(exc, UPDATE_ERROR)
            return False
        self.cancel()
        await self.refresh()
        return True

    async def remove(self, user_id: str, confirm: Callable[[], bool]) -> bool:
        """Delete ``user_id`` once ``confirm()`` agrees; returns whether it was removed."""

        if not confirm():
            return False
        self.busy = True
        self.error = None
        try:
            await self._client.delete_user(user_id)
        except UserDeskError as exc:
            logger.warning("Error deleting user %s: %s", user_id, exc.message)
            self.busy = False
            self.error = DELETE_ERROR
            return False
        if self.editing is not None and self.editing.id == user_id:
            self.cancel()
        await self.refresh()
        return True


__all__ = [
    "CREATE_ERROR",
    "DELETE_CONFIRMATION",
    "DELETE_ERROR",
    "DashboardController",
    "EMPTY_STATE_MESSAGE",
    "LOAD_ERROR",
    "UPDATE_ERROR",
]

"""User records and the operations that govern their lifecycle."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import Internal, InvalidArgument, NotFound, ServiceUnavailable
from .store import SERVER_TIMESTAMP, Document, DocumentStore, StoreError, StoreUnavailable

logger = logging.getLogger("userdesk.users")

USERS_COLLECTION = "users"


class UserDraft(BaseModel):
    """Unsaved ``{name, email}`` pair submitted by a form or API client."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None

    def is_complete(self) -> bool:
        return bool(self.name and self.name.strip()) and bool(self.email and self.email.strip())


class UserRecord(BaseModel):
    """A persisted user as returned to clients."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    email: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def from_document(cls, document: Document) -> "UserRecord":
        return cls.model_validate(document.to_dict())

    def to_draft(self) -> UserDraft:
        return UserDraft(name=self.name, email=self.email)


def _require_fields(draft: UserDraft) -> tuple[str, str]:
    if not draft.is_complete():
        raise InvalidArgument()
    assert draft.name is not None and draft.email is not None
    return draft.name, draft.email


@contextmanager
def _store_failures(action: str, *args: object) -> Iterator[None]:
    try:
        yield
    except StoreUnavailable as exc:
        logger.error(action + " (store unavailable: %s)", *args, exc)
        raise ServiceUnavailable() from exc
    except StoreError as exc:
        logger.exception(action, *args)
        raise Internal() from exc


class UserService:
    """Single-document CRUD over the ``users`` collection.

    Every operation reads or writes at most one document. Store failures are
    logged and reported as :class:`~userdesk.errors.Internal`, or
    :class:`~userdesk.errors.ServiceUnavailable` when the database cannot be
    reached, so no storage detail reaches the caller.
    """

    def __init__(self, store: DocumentStore, *, collection: str = USERS_COLLECTION) -> None:
        self._store = store
        self._collection_name = collection

    @property
    def _users(self):
        return self._store.collection(self._collection_name)

    def list_users(self) -> List[UserRecord]:
        with _store_failures("Error getting users"):
            documents = self._users.list()
        return [UserRecord.from_document(document) for document in documents]

    def get_user(self, user_id: str) -> UserRecord:
        with _store_failures("Error getting user %s", user_id):
            document = self._users.get(user_id)
        if document is None:
            raise NotFound()
        return UserRecord.from_document(document)

    def create_user(self, draft: UserDraft) -> UserRecord:
        name, email = _require_fields(draft)
        with _store_failures("Error creating user"):
            document = self._users.add(
                {
                    "name": name,
                    "email": email,
                    "createdAt": SERVER_TIMESTAMP,
                    "updatedAt": SERVER_TIMESTAMP,
                }
            )
        logger.info("Created user %s", document.id)
        return UserRecord.from_document(document)

    def update_user(self, user_id: str, draft: UserDraft) -> UserRecord:
        name, email = _require_fields(draft)
        with _store_failures("Error updating user %s", user_id):
            document = self._users.update(
                user_id,
                {"name": name, "email": email, "updatedAt": SERVER_TIMESTAMP},
            )
        if document is None:
            raise NotFound()
        logger.info("Updated user %s", user_id)
        return UserRecord.from_document(document)

    def delete_user(self, user_id: str) -> None:
        with _store_failures("Error deleting user %s", user_id):
            removed = self._users.delete(user_id)
        if not removed:
            raise NotFound()
        logger.info("Deleted user %s", user_id)


__all__ = ["USERS_COLLECTION", "UserDraft", "UserRecord", "UserService"]

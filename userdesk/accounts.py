"""SQLite-backed persistence for email/password login accounts."""
from __future__ import annotations

import re
import secrets
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from passlib.context import CryptContext

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AccountExistsError(ValueError):
    """Raised when an email address is already registered."""


@dataclass(frozen=True)
class Account:
    """A login account known to the local authentication provider."""

    uid: str
    email: str
    created_at: datetime


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def normalise_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_PATTERN.match(email))


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


class AccountDatabase:
    """Stores accounts in the ``accounts`` table of the application database."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    uid TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                """
            )
        conn.close()

    def create_account(self, email: str, password: str) -> Account:
        """Create a new account; the caller validates email format and password strength."""

        if not password:
            raise ValueError("Password must not be empty")

        normalized_email = normalise_email(email)
        created_at = _current_timestamp()
        uid = secrets.token_urlsafe(21)
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO accounts (uid, email, password_hash, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (uid, normalized_email, hash_password(password), created_at.isoformat()),
                )
        except sqlite3.IntegrityError as exc:
            raise AccountExistsError("An account with that email already exists") from exc
        finally:
            conn.close()

        return Account(uid=uid, email=normalized_email, created_at=created_at)

    def get_account(self, uid: str) -> Optional[Account]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM accounts WHERE uid = ?", (uid,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return self._row_to_account(row)

    def authenticate(self, email: str, password: str) -> Optional[Account]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM accounts WHERE email = ?",
                (normalise_email(email),),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        if not verify_password(password, row["password_hash"]):
            return None
        return self._row_to_account(row)

    def delete_account(self, email: str) -> bool:
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    "DELETE FROM accounts WHERE email = ?", (normalise_email(email),)
                )
        finally:
            conn.close()
        return cursor.rowcount > 0

    def list_accounts(self) -> List[Account]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM accounts ORDER BY created_at").fetchall()
        finally:
            conn.close()
        return [self._row_to_account(row) for row in rows]

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> Account:
        return Account(
            uid=row["uid"],
            email=row["email"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


__all__ = [
    "Account",
    "AccountDatabase",
    "AccountExistsError",
    "hash_password",
    "is_valid_email",
    "normalise_email",
    "verify_password",
]

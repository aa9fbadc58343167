"""SQLite-backed persistence for user accounts."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from .config import resolve_database_path
from .models import UNSET, User, UserPatch

logger = logging.getLogger("accounts.database")


class DatabaseError(RuntimeError):
    """Raised when the store cannot complete an operation."""


class DuplicateUserError(ValueError):
    """Raised when an email address or username is already taken."""


class UserNotFoundError(LookupError):
    """Raised when an operation targets a user that does not exist."""


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


_USER_COLUMNS = "id, email, username, password_hash, first_name, last_name, created_at, updated_at"


class Database:
    """Thin wrapper around SQLite for the ``users`` table.

    Every public method runs a single parameterized statement on a
    short-lived connection, so one instance can be shared between request
    threads.
    """

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise DatabaseError(f"Unable to open database at {self._path}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError as exc:
            raise DuplicateUserError("Email or username already exists") from exc
        except sqlite3.Error as exc:
            raise DatabaseError(str(exc)) from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._transaction() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    username TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    first_name TEXT,
                    last_name TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_users_created_at ON users(created_at);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        email: str,
        username: str,
        password_hash: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        """Insert a new user row.

        Raises :class:`DuplicateUserError` when the email or username collides
        with an existing account; which of the two is not reported.
        """

        if not password_hash:
            raise ValueError("password_hash must not be empty")

        created_at = _current_timestamp()
        serialized = _serialize_datetime(created_at)
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO users (
                    email, username, password_hash, first_name, last_name, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    email,
                    username,
                    password_hash,
                    first_name or None,
                    last_name or None,
                    serialized,
                    serialized,
                ),
            )
            user_id = cursor.lastrowid

        return User(
            id=int(user_id),
            email=email,
            username=username,
            password_hash=password_hash,
            first_name=first_name or None,
            last_name=last_name or None,
            created_at=created_at,
            updated_at=created_at,
        )

    def get_user(self, user_id: int) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._decode_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE email = ?",
                (email,),
            ).fetchone()
        if row is None:
            return None
        return self._decode_user(row)

    def list_users(self) -> List[User]:
        """Return every user, newest first.

        Rows that cannot be decoded are logged and left out of the result.
        """

        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users ORDER BY created_at DESC, id DESC"
            ).fetchall()

        users: List[User] = []
        for row in rows:
            try:
                users.append(self._row_to_user(row))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping undecodable user row %s: %s", row["id"], exc)
        return users

    def update_user_names(self, user_id: int, patch: UserPatch) -> User:
        """Apply ``patch`` to the user's name fields and bump ``updated_at``."""

        assignments: List[str] = []
        values: List[object] = []
        for column in ("first_name", "last_name"):
            value = getattr(patch, column)
            if value is UNSET:
                continue
            assignments.append(f"{column} = ?")
            values.append(value)
        assignments.append("updated_at = ?")
        values.append(_serialize_datetime(_current_timestamp()))
        values.append(user_id)

        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE users SET {', '.join(assignments)} WHERE id = ?",
                values,
            )
            if cursor.rowcount == 0:
                raise UserNotFoundError(f"User {user_id} not found")
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()

        if row is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return self._decode_user(row)

    def delete_user(self, user_id: int) -> int:
        """Delete the user and return the number of rows removed."""

        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            deleted = cursor.rowcount
        if deleted == 0:
            raise UserNotFoundError(f"User {user_id} not found")
        return deleted

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _decode_user(self, row: sqlite3.Row) -> User:
        try:
            return self._row_to_user(row)
        except (TypeError, ValueError) as exc:
            raise DatabaseError(f"User row {row['id']} could not be decoded") from exc

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            email=str(row["email"]),
            username=str(row["username"]),
            password_hash=str(row["password_hash"]),
            first_name=row["first_name"],
            last_name=row["last_name"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )


__all__ = [
    "Database",
    "DatabaseError",
    "DuplicateUserError",
    "UserNotFoundError",
    "resolve_database_path",
]

"""User credential stores."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Protocol

from signup_scanner.constants import USER_DB_PATH
from signup_scanner.models import Credential, UserRecord

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    email TEXT,
    access_token TEXT,
    refresh_token TEXT,
    token_expiry INTEGER,
    last_refreshed_at INTEGER
);
"""

# Field name accepted by write() -> column name
_COLUMNS = {
    "email": "email",
    "access_token": "access_token",
    "refresh_token": "refresh_token",
    "expiry_ms": "token_expiry",
    "last_refreshed_at": "last_refreshed_at",
}


class UserStore(Protocol):
    def read(self, user_id: str) -> UserRecord | None: ...

    def write(self, user_id: str, fields: dict) -> None: ...


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - set(_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown user fields: {', '.join(sorted(unknown))}")


class InMemoryUserStore:
    """Dict-backed store, for embedding and tests."""

    def __init__(self) -> None:
        self._rows: dict[str, dict] = {}
        self._lock = threading.Lock()
        self.writes: list[tuple[str, dict]] = []

    def read(self, user_id: str) -> UserRecord | None:
        with self._lock:
            row = self._rows.get(user_id)
            if row is None:
                return None
            return _record_from_fields(user_id, row)

    def write(self, user_id: str, fields: dict) -> None:
        _check_fields(fields)
        with self._lock:
            self._rows.setdefault(user_id, {}).update(fields)
            self.writes.append((user_id, dict(fields)))


def _record_from_fields(user_id: str, row: dict) -> UserRecord:
    return UserRecord(
        user_id=user_id,
        email=row.get("email") or "",
        credential=Credential(
            access_token=row.get("access_token"),
            refresh_token=row.get("refresh_token"),
            expiry_ms=row.get("expiry_ms"),
            last_refreshed_at=row.get("last_refreshed_at"),
        ),
    )


class SqliteUserStore:
    """Persistent SQLite store for user credentials."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = Path(db_path or USER_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_CREATE_TABLES_SQL)

    # --- public API ---

    def read(self, user_id: str) -> UserRecord | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM users WHERE user_id = ?", (user_id,)
            ).fetchone()
        if row is None:
            return None
        return UserRecord(
            user_id=row["user_id"],
            email=row["email"] or "",
            credential=Credential(
                access_token=row["access_token"],
                refresh_token=row["refresh_token"],
                expiry_ms=row["token_expiry"],
                last_refreshed_at=row["last_refreshed_at"],
            ),
        )

    def write(self, user_id: str, fields: dict) -> None:
        """Insert the user if missing, then update only the given fields."""
        _check_fields(fields)
        with self._lock, self._conn:
            self._conn.execute("INSERT OR IGNORE INTO users (user_id) VALUES (?)", (user_id,))
            if not fields:
                return
            assignments = ", ".join(f"{_COLUMNS[name]} = ?" for name in fields)
            self._conn.execute(
                f"UPDATE users SET {assignments} WHERE user_id = ?",
                (*fields.values(), user_id),
            )

    def list_users(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute("SELECT user_id FROM users ORDER BY user_id").fetchall()
        return [r["user_id"] for r in rows]

    def delete(self, user_id: str) -> bool:
        with self._lock, self._conn:
            cursor = self._conn.execute("DELETE FROM users WHERE user_id = ?", (user_id,))
        return cursor.rowcount > 0

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- context manager ---

    def __enter__(self) -> SqliteUserStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()

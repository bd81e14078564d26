"""SQLite store for issued API keys."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

from llm_gateway.ledger.usage_store import DEFAULT_DB_PATH, to_db_time
from llm_gateway.models.keys import ApiKeyRecord

_COLUMNS = (
    "id, user_id, name, key_hash, key_prefix, source, is_active, "
    "last_used_at, created_at, expires_at"
)


def _time_or_none(value: datetime | None) -> str | None:
    return to_db_time(value) if value is not None else None


class KeyStore:
    """Owner-scoped key records. Revocation is a soft delete."""

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS api_keys (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    key_hash TEXT NOT NULL UNIQUE,
                    key_prefix TEXT NOT NULL,
                    source TEXT NOT NULL DEFAULT 'proxy',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    last_used_at TEXT,
                    created_at TEXT NOT NULL,
                    expires_at TEXT
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_api_keys_user ON api_keys(user_id, created_at)"
            )

    def insert(self, record: ApiKeyRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO api_keys ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.user_id,
                    record.name,
                    record.key_hash,
                    record.key_prefix,
                    record.source,
                    1 if record.is_active else 0,
                    _time_or_none(record.last_used_at),
                    to_db_time(record.created_at),
                    _time_or_none(record.expires_at),
                ),
            )

    def get(self, key_id: str, user_id: str) -> ApiKeyRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM api_keys WHERE id = ? AND user_id = ?",
                (key_id, user_id),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def find_by_hash(self, key_hash: str) -> ApiKeyRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM api_keys WHERE key_hash = ?", (key_hash,)
            ).fetchone()
        return self._row_to_record(row) if row else None

    def list_for_user(self, user_id: str) -> list[ApiKeyRecord]:
        """All of a user's keys, revoked ones included, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM api_keys WHERE user_id = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (user_id,),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def deactivate(self, key_id: str, user_id: str) -> bool:
        """Mark a key revoked. Returns False if it was missing or already inactive."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE api_keys SET is_active = 0 "
                "WHERE id = ? AND user_id = ? AND is_active = 1",
                (key_id, user_id),
            )
            return cursor.rowcount == 1

    def touch(self, key_id: str, used_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE api_keys SET last_used_at = ? WHERE id = ?",
                (to_db_time(used_at), key_id),
            )

    @staticmethod
    def _row_to_record(row: tuple) -> ApiKeyRecord:
        return ApiKeyRecord(
            id=row[0],
            user_id=row[1],
            name=row[2],
            key_hash=row[3],
            key_prefix=row[4],
            source=row[5],
            is_active=bool(row[6]),
            last_used_at=datetime.fromisoformat(row[7]) if row[7] else None,
            created_at=datetime.fromisoformat(row[8]),
            expires_at=datetime.fromisoformat(row[9]) if row[9] else None,
        )

"""SQLite-backed append-only usage ledger."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

from llm_gateway.models.usage import UsageEntry, as_utc

DEFAULT_DB_PATH = Path.home() / ".llm-gateway" / "gateway.db"

_COLUMNS = (
    "id, user_id, api_key_id, model, provider, input_tokens, output_tokens, "
    "total_tokens, cost_micros, latency_ms, success, error_message, created_at"
)


def to_db_time(value: datetime) -> str:
    """UTC ISO-8601 with fixed precision, so text order is time order."""
    return as_utc(value).isoformat(timespec="microseconds")


class UsageStore:
    """SQLite-backed ledger of usage entries with WAL mode. Rows are never updated."""

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
                CREATE TABLE IF NOT EXISTS usage_entries (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    api_key_id TEXT,
                    model TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    input_tokens INTEGER NOT NULL DEFAULT 0,
                    output_tokens INTEGER NOT NULL DEFAULT 0,
                    total_tokens INTEGER NOT NULL DEFAULT 0,
                    cost_micros INTEGER NOT NULL DEFAULT 0,
                    latency_ms INTEGER,
                    success INTEGER NOT NULL DEFAULT 1,
                    error_message TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_usage_user_time "
                "ON usage_entries(user_id, created_at)"
            )

    @staticmethod
    def _entry_params(entry: UsageEntry) -> tuple:
        return (
            entry.id,
            entry.user_id,
            entry.api_key_id,
            entry.model,
            entry.provider,
            entry.input_tokens,
            entry.output_tokens,
            entry.total_tokens,
            entry.cost_micros,
            entry.latency_ms,
            1 if entry.success else 0,
            entry.error_message,
            to_db_time(entry.created_at),
        )

    def append(self, entry: UsageEntry) -> None:
        """Append one entry to the ledger."""
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO usage_entries ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._entry_params(entry),
            )

    def append_many(self, entries: list[UsageEntry]) -> None:
        """Append several entries in one transaction."""
        if not entries:
            return
        with self._connect() as conn:
            conn.executemany(
                f"INSERT INTO usage_entries ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [self._entry_params(e) for e in entries],
            )

    def list_for_user(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> list[UsageEntry]:
        """Entries for one user with created_at in [start, end], newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM usage_entries "
                "WHERE user_id = ? AND created_at >= ? AND created_at <= ? "
                "ORDER BY created_at DESC, rowid DESC",
                (user_id, to_db_time(start), to_db_time(end)),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def get_global_stats(self) -> dict:
        """Request count and total cost across every user."""
        with self._connect() as conn:
            row = conn.execute(
                """SELECT
                       COUNT(*) as total_requests,
                       SUM(cost_micros) as total_cost_micros,
                       SUM(CASE WHEN success = 1 THEN 1 ELSE 0 END) as success_count
                   FROM usage_entries"""
            ).fetchone()
        total_requests = row[0] or 0
        return {
            "total_requests": total_requests,
            "total_cost_micros": row[1] or 0,
            "success_rate": (row[2] / total_requests * 100) if total_requests else 0.0,
        }

    @staticmethod
    def _row_to_entry(row: tuple) -> UsageEntry:
        return UsageEntry(
            id=row[0],
            user_id=row[1],
            api_key_id=row[2],
            model=row[3],
            provider=row[4],
            input_tokens=row[5],
            output_tokens=row[6],
            total_tokens=row[7],
            cost_micros=row[8],
            latency_ms=row[9],
            success=bool(row[10]),
            error_message=row[11],
            created_at=datetime.fromisoformat(row[12]),
        )

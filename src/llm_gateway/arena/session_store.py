"""SQLite store for arena comparison sessions."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path

from llm_gateway.ledger.usage_store import DEFAULT_DB_PATH, to_db_time
from llm_gateway.models.arena import ComparisonSession, ModelResponse

HISTORY_LIMIT = 50


class SessionStore:
    """Owner-scoped comparison sessions. Only winner/voted_at are ever updated."""

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
                CREATE TABLE IF NOT EXISTS arena_sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    prompt TEXT NOT NULL,
                    system_prompt TEXT,
                    models_json TEXT NOT NULL,
                    responses_json TEXT NOT NULL,
                    winner TEXT,
                    voted_at TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_arena_user_time "
                "ON arena_sessions(user_id, created_at)"
            )

    def insert(self, session: ComparisonSession) -> None:
        responses = {
            model: response.model_dump(exclude_none=True)
            for model, response in session.responses.items()
        }
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO arena_sessions
                   (id, user_id, prompt, system_prompt, models_json, responses_json,
                    winner, voted_at, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    session.id,
                    session.user_id,
                    session.prompt,
                    session.system_prompt,
                    json.dumps(session.models),
                    json.dumps(responses, ensure_ascii=False),
                    session.winner,
                    to_db_time(session.voted_at) if session.voted_at else None,
                    to_db_time(session.created_at),
                ),
            )

    def get(self, session_id: str, user_id: str) -> ComparisonSession | None:
        """Look up a session; sessions owned by someone else are invisible."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM arena_sessions WHERE id = ? AND user_id = ?",
                (session_id, user_id),
            ).fetchone()
        return self._row_to_session(row) if row else None

    def set_winner(
        self,
        session_id: str,
        user_id: str,
        winner: str,
        voted_at: datetime,
    ) -> bool:
        """Record the vote unless one is already present. Returns False if nothing changed."""
        with self._connect() as conn:
            cursor = conn.execute(
                """UPDATE arena_sessions SET winner = ?, voted_at = ?
                   WHERE id = ? AND user_id = ? AND winner IS NULL""",
                (winner, to_db_time(voted_at), session_id, user_id),
            )
            return cursor.rowcount == 1

    def list_for_user(self, user_id: str, limit: int = HISTORY_LIMIT) -> list[ComparisonSession]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM arena_sessions WHERE user_id = ? "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [self._row_to_session(row) for row in rows]

    @staticmethod
    def _row_to_session(row: tuple) -> ComparisonSession:
        responses = json.loads(row[5])
        return ComparisonSession(
            id=row[0],
            user_id=row[1],
            prompt=row[2],
            system_prompt=row[3],
            models=json.loads(row[4]),
            responses={m: ModelResponse(**r) for m, r in responses.items()},
            winner=row[6],
            voted_at=datetime.fromisoformat(row[7]) if row[7] else None,
            created_at=datetime.fromisoformat(row[8]),
        )

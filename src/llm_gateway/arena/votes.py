"""Records the single winning vote on a comparison session."""

from __future__ import annotations

import logging
import sqlite3

from llm_gateway.arena.session_store import SessionStore
from llm_gateway.errors import ConflictError, InternalError, NotFoundError, ValidationError
from llm_gateway.models.arena import ComparisonSession
from llm_gateway.models.usage import utc_now

logger = logging.getLogger(__name__)


class VoteRecorder:
    """First vote wins; any later vote on the same session raises ConflictError."""

    def __init__(self, sessions: SessionStore):
        self.sessions = sessions

    def record_vote(self, user_id: str, session_id: str, winner: str) -> ComparisonSession:
        if not session_id or not isinstance(session_id, str):
            raise ValidationError("Session ID is required")
        if not winner or not isinstance(winner, str):
            raise ValidationError("Winner is required")

        try:
            session = self.sessions.get(session_id, user_id)
        except sqlite3.Error as e:
            raise InternalError("Failed to load comparison session") from e
        if session is None:
            raise NotFoundError("Session", session_id)

        if winner not in session.models:
            raise ValidationError(f"Invalid winner: {winner!r} is not one of {session.models}")
        if session.winner is not None:
            raise ConflictError(f"Session already has a winner: {session.winner}")

        voted_at = utc_now()
        try:
            updated = self.sessions.set_winner(session_id, user_id, winner, voted_at)
        except sqlite3.Error as e:
            logger.exception("Failed to record vote on session %s", session_id)
            raise InternalError("Failed to record vote") from e
        if not updated:
            # Another vote landed between the read and the conditional update.
            raise ConflictError("Session already has a winner")

        logger.info("Vote recorded: session=%s winner=%s", session_id, winner)
        return session.model_copy(update={"winner": winner, "voted_at": voted_at})

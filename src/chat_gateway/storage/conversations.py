from __future__ import annotations

from uuid import uuid4

from chat_gateway.storage.models import ConversationTurn
from chat_gateway.storage.store import GatewayStore, utc_now

_TITLE_CHARS = 60


def default_title(message: str) -> str:
    return message.strip()[:_TITLE_CHARS] or "New conversation"


class ConversationStore:
    def __init__(self, store: GatewayStore):
        self._store = store

    def get_session(self, session_id: str) -> dict | None:
        row = self._store.execute(
            "SELECT * FROM sessions WHERE id = ? LIMIT 1",
            (session_id,),
        ).fetchone()
        return dict(row) if row is not None else None

    def list_sessions(self, account_id: str, *, limit: int = 20) -> list[dict]:
        rows = self._store.execute(
            """
            SELECT id, account_id, title, created_at, updated_at
            FROM sessions
            WHERE account_id = ?
            ORDER BY updated_at DESC, created_at DESC
            LIMIT ?
            """,
            (account_id, max(1, limit)),
        ).fetchall()
        return [dict(row) for row in rows]

    def ensure_session(self, session_id: str | None, account_id: str, *, title: str) -> str:
        """Return ``session_id`` if it belongs to ``account_id``, otherwise start a new session."""
        if session_id:
            session = self.get_session(session_id)
            if session is not None:
                if session["account_id"] != account_id:
                    raise ValueError(f"Session {session_id} belongs to another account")
                return session_id

        sid = session_id or str(uuid4())
        now = utc_now()
        with self._store.transaction():
            self._store.execute(
                """
                INSERT INTO sessions (id, account_id, title, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (sid, account_id, title, now, now),
            )
        return sid

    def append_turn(
        self,
        session_id: str,
        role: str,
        text: str,
        *,
        model: str | None = None,
        tokens_used: int = 0,
        cost_cents: int = 0,
    ) -> str:
        message_id = str(uuid4())
        now = utc_now()
        with self._store.transaction():
            row = self._store.execute(
                "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            next_seq = int(row["max_seq"]) + 1
            self._store.execute(
                """
                INSERT INTO messages (id, session_id, seq, role, content, created_at, model, tokens_used, cost_cents)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (message_id, session_id, next_seq, role, text, now, model, max(0, tokens_used), cost_cents),
            )
            self._store.execute(
                "UPDATE sessions SET updated_at = ? WHERE id = ?",
                (now, session_id),
            )
        return message_id

    def load_recent_turns(self, session_id: str, limit: int) -> list[ConversationTurn]:
        """The most recent ``limit`` turns, oldest first."""
        rows = self._store.execute(
            """
            SELECT role, content FROM (
                SELECT seq, role, content
                FROM messages
                WHERE session_id = ?
                ORDER BY seq DESC
                LIMIT ?
            )
            ORDER BY seq ASC
            """,
            (session_id, max(1, limit)),
        ).fetchall()
        return [ConversationTurn(role=row["role"], text=row["content"]) for row in rows]

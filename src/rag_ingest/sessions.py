"""In-memory chat session store.

A :class:`SessionStore` is constructed once and passed to whatever needs
it (the FastAPI app factory, tests); there is no module-level instance.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from rag_ingest.config import settings

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_now)
    sources: list[dict[str, Any]] | None = None


class ChatSession(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    messages: list[ChatMessage] = Field(default_factory=list)
    collection_name: str | None = None


class SessionStore:
    """Thread-safe registry of chat sessions.

    Lifecycle: :meth:`create` → :meth:`add_message` / :meth:`get` →
    :meth:`expire` or :meth:`delete`.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, ChatSession] = {}
        self._lock = threading.Lock()

    def create(self, collection_name: str | None = None, session_id: str | None = None) -> ChatSession:
        """Create a session, or return the existing one when *session_id* is known."""
        with self._lock:
            if session_id and session_id in self._sessions:
                return self._sessions[session_id]
            session = ChatSession(collection_name=collection_name)
            if session_id:
                session.id = session_id
            self._sessions[session.id] = session
        logger.info("Created chat session %s", session.id)
        return session

    def get(self, session_id: str) -> ChatSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def add_message(
        self,
        session_id: str,
        role: Role,
        content: str,
        sources: list[dict[str, Any]] | None = None,
    ) -> ChatMessage:
        """Append a message to *session_id*.

        Raises
        ------
        KeyError
            If the session does not exist.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise KeyError(f"Session {session_id} not found")
            message = ChatMessage(role=role, content=content, sources=sources)
            session.messages.append(message)
            session.updated_at = message.timestamp
        logger.debug("Added %s message to session %s", role, session_id)
        return message

    def _recent(self, session_id: str, max_messages: int) -> list[ChatMessage]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return []
            return list(session.messages[-max_messages:]) if max_messages > 0 else []

    def formatted_history(self, session_id: str, max_messages: int = 10) -> str:
        """Render the last *max_messages* as ``Human:`` / ``Assistant:`` lines."""
        recent = self._recent(session_id, max_messages)
        if not recent:
            return "No previous conversation."
        return "\n".join(
            f"{'Human' if m.role == 'user' else 'Assistant'}: {m.content}" for m in recent
        )

    def history_pairs(self, session_id: str, max_messages: int = 10) -> list[tuple[str, str]]:
        """Return ``(question, answer)`` pairs from the last *max_messages*."""
        recent = self._recent(session_id, max_messages)
        pairs: list[tuple[str, str]] = []
        for i in range(0, len(recent) - 1, 2):
            if recent[i].role == "user" and recent[i + 1].role == "assistant":
                pairs.append((recent[i].content, recent[i + 1].content))
        return pairs

    def expire(self, max_age_hours: float = settings.session_max_age_hours) -> int:
        """Delete sessions idle for longer than *max_age_hours*; return how many."""
        cutoff = _now() - timedelta(hours=max_age_hours)
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if s.updated_at < cutoff]
            for sid in stale:
                del self._sessions[sid]
        if stale:
            logger.info("Expired %d idle session(s)", len(stale))
        return len(stale)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def all(self) -> list[ChatSession]:
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

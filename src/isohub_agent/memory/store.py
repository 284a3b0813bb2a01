"""Chat-session store interface and an in-memory adapter."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from isohub_agent.types import ConversationSession, Message


class SessionStore(Protocol):
    """Contract of the external chat-session log store."""

    async def get_session(
        self, session_id: str, organization_id: str
    ) -> ConversationSession | None:
        """Return the latest persisted state of a session, if any."""

    async def append_session(
        self,
        session_id: str,
        organization_id: str,
        messages: Sequence[Message],
        model_used: str,
        tokens: int,
        latency_ms: float,
        user_id: int | None = None,
    ) -> None:
        """Persist a session's full message list (append/replace)."""


class InMemorySessionStore:
    """Session store used for tests and local prototyping.

    `append_session` replaces the stored message list with the given one,
    which the orchestrator builds as prior history + the new turn.
    """

    def __init__(self) -> None:
        self._sessions: dict[tuple[str, str], ConversationSession] = {}
        self.latencies: dict[str, float] = {}

    async def get_session(
        self, session_id: str, organization_id: str
    ) -> ConversationSession | None:
        return self._sessions.get((organization_id, session_id))

    async def append_session(
        self,
        session_id: str,
        organization_id: str,
        messages: Sequence[Message],
        model_used: str,
        tokens: int,
        latency_ms: float,
        user_id: int | None = None,
    ) -> None:
        key = (organization_id, session_id)
        current = self._sessions.get(key)
        if current is None:
            current = ConversationSession(
                session_id=session_id,
                organization_id=organization_id,
                user_id=user_id,
            )
        self._sessions[key] = ConversationSession(
            session_id=session_id,
            organization_id=organization_id,
            user_id=current.user_id if current.user_id is not None else user_id,
            messages=tuple(messages),
            model_used=model_used,
            total_tokens=current.total_tokens + tokens,
            created_at=current.created_at,
        )
        self.latencies[session_id] = latency_ms

    def seed(self, session: ConversationSession) -> None:
        self._sessions[(session.organization_id, session.session_id)] = session

    def __len__(self) -> int:
        return len(self._sessions)

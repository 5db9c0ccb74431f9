"""Conversation memory and the session persistence seam.

Responsibilities:
- Append-only conversation history helpers
- `SessionStore`: the load/save interface a persistence collaborator provides
- `InMemorySessionStore`: process-local store for embedding and tests

There is no locking: two processes sharing a durable store can race.
"""

from __future__ import annotations

import time
from typing import Literal, Protocol
from uuid import uuid4

from layr.schemas import ConversationMessage, Plan, Session, utc_now


class SessionStore(Protocol):
    """Persistence collaborator for sessions."""

    async def load(self, session_id: str) -> Session | None:
        ...

    async def save(self, session: Session) -> None:
        ...


class InMemorySessionStore:
    """Keeps deep copies of sessions in a dict."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    async def load(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def save(self, session: Session) -> None:
        session.updated_at = utc_now()
        self._sessions[session.id] = session.model_copy(deep=True)

    async def list_ids(self) -> list[str]:
        """Session IDs, newest first."""
        ordered = sorted(self._sessions.values(), key=lambda s: s.created_at, reverse=True)
        return [s.id for s in ordered]


def new_session(title: str | None = None, description: str | None = None) -> Session:
    session = Session(id=f"session_{int(time.time() * 1000)}_{uuid4().hex[:9]}")
    if title:
        session.title = title
    if description:
        session.description = description
    return session


def append_message(
    session: Session,
    role: Literal["user", "assistant", "system"],
    content: str,
) -> ConversationMessage:
    message = ConversationMessage(role=role, content=content)
    session.conversation.append(message)
    return message


def record_plan(session: Session, plan: Plan, provider: str | None) -> None:
    """Make `plan` the session's current plan and count the interaction."""
    session.plans.append(plan)
    session.current_plan = plan
    record_interaction(session, provider)


def record_interaction(session: Session, provider: str | None) -> None:
    if provider:
        session.metadata.llm_provider = provider
    session.metadata.total_interactions += 1

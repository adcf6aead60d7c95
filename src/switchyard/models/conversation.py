"""Conversation state models: turns and per-session state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field


class Role(StrEnum):
    USER = "user"
    AGENT = "agent"


class TurnStatus(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNROUTED = "unrouted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationTurn(BaseModel):
    """A single recorded message. Never modified once appended."""

    model_config = {"frozen": True}

    role: Role
    content: str
    agent_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    status: TurnStatus = TurnStatus.COMPLETED
    error_kind: Optional[str] = None


class ConversationState(BaseModel):
    """Ordered turn history of one session plus the last routing decision."""

    model_config = {"frozen": True}

    session_id: str
    turns: tuple[ConversationTurn, ...] = ()
    last_selected_agent_id: Optional[str] = None

    @property
    def is_new(self) -> bool:
        return not self.turns

    def with_turns(
        self, *turns: ConversationTurn, selected_agent_id: str | None = None
    ) -> ConversationState:
        """Return a new state with ``turns`` appended.

        ``last_selected_agent_id`` is only replaced when ``selected_agent_id`` is given.
        """
        update: dict = {"turns": self.turns + turns}
        if selected_agent_id is not None:
            update["last_selected_agent_id"] = selected_agent_id
        return self.model_copy(update=update)

    def recent(self, limit: int) -> tuple[ConversationTurn, ...]:
        if limit <= 0:
            return ()
        return self.turns[-limit:]

    def exchanges_for(
        self, agent_id: str, max_pairs: int
    ) -> list[tuple[ConversationTurn, ConversationTurn]]:
        """Last ``max_pairs`` completed (user, agent) exchanges handled by ``agent_id``.

        Failed, cancelled and unrouted exchanges are skipped so the model only
        sees alternating user/assistant messages it actually produced.
        """
        pairs: list[tuple[ConversationTurn, ConversationTurn]] = []
        i = 0
        turns = self.turns
        while i < len(turns) - 1:
            user, reply = turns[i], turns[i + 1]
            if user.role is Role.USER and reply.role is Role.AGENT:
                if (
                    reply.agent_id == agent_id
                    and user.status is TurnStatus.COMPLETED
                    and reply.status is TurnStatus.COMPLETED
                ):
                    pairs.append((user, reply))
                i += 2
            else:
                i += 1
        if max_pairs <= 0:
            return []
        return pairs[-max_pairs:]

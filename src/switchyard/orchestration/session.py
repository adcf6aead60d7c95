"""Per-session runtime state: phase machine, turn lock and pinning."""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import Optional

from switchyard.core.exceptions import SessionStateError


class SessionPhase(StrEnum):
    NEW = "new"
    ROUTING = "routing"
    INVOKING = "invoking"
    RESPONDED = "responded"
    CLOSED = "closed"


# Pinned sessions go straight to INVOKING.
ALLOWED_TRANSITIONS: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.NEW: frozenset({SessionPhase.ROUTING, SessionPhase.INVOKING, SessionPhase.CLOSED}),
    SessionPhase.ROUTING: frozenset(
        {SessionPhase.INVOKING, SessionPhase.RESPONDED, SessionPhase.CLOSED}
    ),
    SessionPhase.INVOKING: frozenset({SessionPhase.RESPONDED, SessionPhase.CLOSED}),
    SessionPhase.RESPONDED: frozenset(
        {SessionPhase.ROUTING, SessionPhase.INVOKING, SessionPhase.CLOSED}
    ),
    SessionPhase.CLOSED: frozenset(),
}


class Session:
    """Runtime companion of a stored conversation.

    ``lock`` serializes turns. A streaming turn keeps it until the stream
    finishes.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.lock = asyncio.Lock()
        self.phase = SessionPhase.NEW
        self.pinned_agent_id: Optional[str] = None
        self.pending = 0  # turns queued or running, including an open stream

    @property
    def closed(self) -> bool:
        return self.phase is SessionPhase.CLOSED

    @property
    def idle(self) -> bool:
        return self.pending == 0 and self.pinned_agent_id is None

    def transition(self, target: SessionPhase) -> None:
        if target not in ALLOWED_TRANSITIONS[self.phase]:
            raise SessionStateError(
                f"Session {self.session_id!r} cannot move from {self.phase} to {target}"
            )
        self.phase = target

    def settle(self) -> bool:
        """Move to RESPONDED. False when the session was closed mid-turn."""
        if self.closed:
            return False
        self.transition(SessionPhase.RESPONDED)
        return True

    def restore(self, phase: SessionPhase) -> None:
        """Roll back a turn interrupted before anything was recorded."""
        if self.phase in (SessionPhase.ROUTING, SessionPhase.INVOKING):
            self.phase = phase

    def close(self) -> None:
        self.phase = SessionPhase.CLOSED
        self.pinned_agent_id = None

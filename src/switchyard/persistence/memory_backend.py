"""In-memory backends for unit tests and single-process use, dict-backed."""

from __future__ import annotations

import threading
from collections.abc import Sequence

from switchyard.models.conversation import ConversationState, ConversationTurn


class MemoryConversationStore:
    """Dict-backed IConversationStore."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, ConversationState] = {}

    def load(self, session_id: str) -> ConversationState:
        return self._states.get(session_id) or ConversationState(session_id=session_id)

    def append(
        self,
        session_id: str,
        turns: Sequence[ConversationTurn],
        selected_agent_id: str | None = None,
    ) -> ConversationState:
        with self._lock:
            state = self.load(session_id).with_turns(*turns, selected_agent_id=selected_agent_id)
            self._states[session_id] = state
        return state

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._states.pop(session_id, None)

    def session_ids(self) -> list[str]:
        return list(self._states)

"""Redis backend implementing IConversationStore."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import redis

from switchyard.core.exceptions import StorageError
from switchyard.models.conversation import ConversationState, ConversationTurn


class RedisConversationStore:
    """IConversationStore keeping each session as a Redis list plus a state hash.

    Keys::

        <prefix>:session:<id>:turns   LIST of JSON-encoded turns
        <prefix>:session:<id>:state   HASH with last_selected_agent_id
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        key_prefix: str = "switchyard",
        ttl_seconds: int = 0,
        client: Any = None,
    ) -> None:
        self._key_prefix = key_prefix
        self._ttl_seconds = ttl_seconds
        self._client = client or redis.Redis(
            host=host, port=port, db=db, decode_responses=True,
        )

    def _keys(self, session_id: str) -> tuple[str, str]:
        base = f"{self._key_prefix}:session:{session_id}"
        return f"{base}:turns", f"{base}:state"

    def load(self, session_id: str) -> ConversationState:
        turns_key, state_key = self._keys(session_id)
        try:
            raw_turns = self._client.lrange(turns_key, 0, -1)
            last_selected = self._client.hget(state_key, "last_selected_agent_id")
        except Exception as exc:
            raise StorageError(f"Redis load failed for session={session_id!r}: {exc}") from exc
        return ConversationState(
            session_id=session_id,
            turns=tuple(ConversationTurn.model_validate(json.loads(t)) for t in raw_turns),
            last_selected_agent_id=last_selected or None,
        )

    def append(
        self,
        session_id: str,
        turns: Sequence[ConversationTurn],
        selected_agent_id: str | None = None,
    ) -> ConversationState:
        turns_key, state_key = self._keys(session_id)
        try:
            pipe = self._client.pipeline(transaction=True)
            if turns:
                pipe.rpush(turns_key, *(t.model_dump_json() for t in turns))
            if selected_agent_id is not None:
                pipe.hset(state_key, "last_selected_agent_id", selected_agent_id)
            if self._ttl_seconds > 0:
                pipe.expire(turns_key, self._ttl_seconds)
                pipe.expire(state_key, self._ttl_seconds)
            pipe.execute()
        except Exception as exc:
            raise StorageError(f"Redis append failed for session={session_id!r}: {exc}") from exc
        return self.load(session_id)

    def delete(self, session_id: str) -> None:
        try:
            self._client.delete(*self._keys(session_id))
        except Exception as exc:
            raise StorageError(f"Redis delete failed for session={session_id!r}: {exc}") from exc

"""Unit tests for RedisConversationStore using fakeredis."""

from __future__ import annotations

from unittest.mock import patch

import fakeredis
import pytest

from switchyard.core.exceptions import StorageError
from switchyard.models.conversation import ConversationTurn, Role, TurnStatus
from switchyard.persistence.redis_backend import RedisConversationStore


def _exchange(text: str, agent_id: str | None = "tech", status=TurnStatus.COMPLETED) -> list[ConversationTurn]:
    return [
        ConversationTurn(role=Role.USER, content=text, agent_id=agent_id, status=status),
        ConversationTurn(role=Role.AGENT, content=f"re: {text}", agent_id=agent_id, status=status),
    ]


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
def fake_client(fake_server):
    return fakeredis.FakeRedis(server=fake_server, decode_responses=True)


@pytest.fixture
def store(fake_client):
    with patch("redis.Redis", return_value=fake_client):
        return RedisConversationStore(host="localhost", port=6379, db=0)


class TestLoad:
    def test_unknown_session_is_new(self, store):
        assert store.load("missing").is_new


class TestAppend:
    def test_round_trips_turns(self, store):
        store.append("s1", _exchange("one"), selected_agent_id="tech")
        state = store.append("s1", _exchange("two"), selected_agent_id="tech")
        assert [t.content for t in state.turns] == ["one", "re: one", "two", "re: two"]
        assert state.last_selected_agent_id == "tech"

    def test_keys_use_prefix(self, store, fake_client):
        store.append("s1", _exchange("one"), selected_agent_id="tech")
        assert fake_client.llen("switchyard:session:s1:turns") == 2
        assert fake_client.hget("switchyard:session:s1:state", "last_selected_agent_id") == "tech"

    def test_unrouted_turns_keep_last_selection(self, store):
        store.append("s1", _exchange("one"), selected_agent_id="tech")
        state = store.append("s1", _exchange("??", agent_id=None, status=TurnStatus.UNROUTED))
        assert state.last_selected_agent_id == "tech"
        assert state.turns[-1].status is TurnStatus.UNROUTED

    def test_ttl_applied(self, fake_client):
        store = RedisConversationStore(client=fake_client, ttl_seconds=120)
        store.append("s1", _exchange("one"), selected_agent_id="tech")
        assert 0 < fake_client.ttl("switchyard:session:s1:turns") <= 120
        assert 0 < fake_client.ttl("switchyard:session:s1:state") <= 120

    def test_no_ttl_by_default(self, store, fake_client):
        store.append("s1", _exchange("one"))
        assert fake_client.ttl("switchyard:session:s1:turns") == -1


class TestDelete:
    def test_removes_session(self, store):
        store.append("s1", _exchange("one"), selected_agent_id="tech")
        store.delete("s1")
        assert store.load("s1").is_new

    def test_noop_on_missing_session(self, store):
        store.delete("never_existed")  # should not raise


class TestErrorWrapping:
    def test_load_wraps_redis_error(self):
        s = RedisConversationStore.__new__(RedisConversationStore)
        s._client = None  # will cause AttributeError -> StorageError
        s._key_prefix = "switchyard"
        with pytest.raises(StorageError):
            s.load("s1")

    def test_append_wraps_redis_error(self):
        s = RedisConversationStore.__new__(RedisConversationStore)
        s._client = None
        s._key_prefix = "switchyard"
        s._ttl_seconds = 0
        with pytest.raises(StorageError):
            s.append("s1", _exchange("one"))

"""Unit tests for DynamoDBConversationStore using moto."""

from __future__ import annotations

import boto3
import pytest
from moto import mock_aws

from switchyard.core.exceptions import StorageError
from switchyard.models.conversation import ConversationTurn, Role, TurnStatus
from switchyard.persistence.dynamodb_backend import DynamoDBConversationStore

TABLE = "switchyard-conversations"
TABLE_SUFFIX = "-test"
REGION = "us-east-1"

# ---------- helpers ----------

def _create_table(client, name: str):
    """Create a DynamoDB table with PK/SK key schema."""
    client.create_table(
        TableName=name,
        KeySchema=[
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )


def _exchange(text: str, agent_id: str | None = "tech", status=TurnStatus.COMPLETED) -> list[ConversationTurn]:
    return [
        ConversationTurn(role=Role.USER, content=text, agent_id=agent_id, status=status),
        ConversationTurn(
            role=Role.AGENT,
            content=f"re: {text}",
            agent_id=agent_id,
            status=status,
            error_kind="BackendInvocationError" if status is TurnStatus.FAILED else None,
        ),
    ]


# ---------- fixtures ----------

@pytest.fixture
def aws():
    with mock_aws():
        ddb = boto3.resource("dynamodb", region_name=REGION)
        _create_table(boto3.client("dynamodb", region_name=REGION), f"{TABLE}{TABLE_SUFFIX}")
        yield ddb


@pytest.fixture
def store(aws):
    return DynamoDBConversationStore(table_suffix=TABLE_SUFFIX, region=REGION)


@pytest.fixture
def table(aws):
    return aws.Table(f"{TABLE}{TABLE_SUFFIX}")


# ---------- tests ----------

class TestLoad:
    def test_unknown_session_is_new(self, store):
        state = store.load("missing")
        assert state.is_new
        assert state.last_selected_agent_id is None

    def test_missing_table_wrapped(self, aws):
        store = DynamoDBConversationStore(table_name="nope", region=REGION)
        with pytest.raises(StorageError):
            store.load("s1")


class TestAppend:
    def test_round_trips_turns_in_order(self, store):
        store.append("s1", _exchange("one"), selected_agent_id="tech")
        state = store.append("s1", _exchange("two", agent_id="biz"), selected_agent_id="biz")

        assert [t.content for t in state.turns] == ["one", "re: one", "two", "re: two"]
        assert [t.agent_id for t in state.turns] == ["tech", "tech", "biz", "biz"]
        assert state.last_selected_agent_id == "biz"
        assert state.turns[0].timestamp.tzinfo is not None

    def test_item_layout(self, store, table):
        store.append("s1", _exchange("one"), selected_agent_id="tech")
        items = {item["SK"]: item for item in table.scan()["Items"]}
        assert set(items) == {"STATE", "TURN#00000000", "TURN#00000001"}
        assert items["STATE"]["PK"] == "SESSION#s1"
        assert items["STATE"]["turn_count"] == 2
        assert items["TURN#00000001"]["role"] == "agent"

    def test_unrouted_turns_keep_last_selection(self, store):
        store.append("s1", _exchange("one"), selected_agent_id="tech")
        state = store.append("s1", _exchange("??", agent_id=None, status=TurnStatus.UNROUTED))
        assert state.last_selected_agent_id == "tech"
        assert state.turns[-1].agent_id is None
        assert state.turns[-1].status is TurnStatus.UNROUTED

    def test_failure_metadata_round_trips(self, store):
        state = store.append("s1", _exchange("boom", status=TurnStatus.FAILED), selected_agent_id="tech")
        assert state.turns[1].status is TurnStatus.FAILED
        assert state.turns[1].error_kind == "BackendInvocationError"

    def test_ttl_attribute_written(self, aws, table):
        store = DynamoDBConversationStore(table_suffix=TABLE_SUFFIX, region=REGION, ttl_seconds=3600)
        store.append("s1", _exchange("one"), selected_agent_id="tech")
        assert all("expires_at" in item for item in table.scan()["Items"])

    def test_no_ttl_by_default(self, store, table):
        store.append("s1", _exchange("one"))
        assert not any("expires_at" in item for item in table.scan()["Items"])

    def test_conflicting_turn_rejected(self, store, table):
        table.put_item(Item={"PK": "SESSION#s1", "SK": "TURN#00000000", "role": "user", "content": "x"})
        with pytest.raises(StorageError):
            store.append("s1", _exchange("one"))


class TestDelete:
    def test_removes_all_session_items(self, store, table):
        store.append("s1", _exchange("one"), selected_agent_id="tech")
        store.append("s2", _exchange("two"), selected_agent_id="tech")
        store.delete("s1")
        assert store.load("s1").is_new
        assert {item["PK"] for item in table.scan()["Items"]} == {"SESSION#s2"}

    def test_missing_session_is_noop(self, store):
        store.delete("never")

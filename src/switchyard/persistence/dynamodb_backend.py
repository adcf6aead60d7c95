"""DynamoDB backend implementing IConversationStore.

Single-table layout, one partition per session::

    PK = SESSION#<session_id>   SK = STATE          turn_count, last_selected_agent_id
    PK = SESSION#<session_id>   SK = TURN#00000000  role, content, agent_id, ...

Turn items are written with ``attribute_not_exists`` so two writers racing
on the same session cannot overwrite each other's turns.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from switchyard.core.exceptions import StorageError
from switchyard.models.conversation import ConversationState, ConversationTurn

STATE_SK = "STATE"
TURN_PREFIX = "TURN#"
TURN_FIELDS = ("role", "content", "agent_id", "timestamp", "status", "error_kind")


def _session_pk(session_id: str) -> str:
    return f"SESSION#{session_id}"


def _turn_sk(seq: int) -> str:
    return f"{TURN_PREFIX}{seq:08d}"


def _to_int(value: Any) -> int:
    return int(value) if isinstance(value, (Decimal, int)) else 0


class DynamoDBConversationStore:
    """Production IConversationStore backed by a DynamoDB table."""

    def __init__(
        self,
        table_name: str = "switchyard-conversations",
        table_suffix: str = "",
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        ttl_seconds: int = 0,
    ) -> None:
        self._table_name = f"{table_name}{table_suffix}"
        self._ttl_seconds = ttl_seconds
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._ddb = boto3.resource("dynamodb", **kwargs)
        self._table = self._ddb.Table(self._table_name)

    @property
    def table_name(self) -> str:
        return self._table_name

    def _query_session(self, session_id: str, *, keys_only: bool = False) -> list[dict[str, Any]]:
        """Query every item in a session partition, following pagination."""
        kwargs: dict[str, Any] = {"KeyConditionExpression": Key("PK").eq(_session_pk(session_id))}
        if keys_only:
            kwargs["ProjectionExpression"] = "PK, SK"
        items: list[dict[str, Any]] = []
        while True:
            resp = self._table.query(**kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def _expires_at(self) -> int | None:
        if self._ttl_seconds <= 0:
            return None
        return int(time.time()) + self._ttl_seconds

    # ---- IConversationStore methods ----

    def load(self, session_id: str) -> ConversationState:
        try:
            items = self._query_session(session_id)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"DynamoDB query failed for session={session_id!r}: {exc}") from exc

        last_selected: str | None = None
        turn_items: list[dict[str, Any]] = []
        for item in items:
            if item["SK"] == STATE_SK:
                last_selected = item.get("last_selected_agent_id")
            elif item["SK"].startswith(TURN_PREFIX):
                turn_items.append(item)
        turn_items.sort(key=lambda i: i["SK"])
        turns = tuple(
            ConversationTurn.model_validate({f: item[f] for f in TURN_FIELDS if f in item})
            for item in turn_items
        )
        return ConversationState(
            session_id=session_id, turns=turns, last_selected_agent_id=last_selected
        )

    def append(
        self,
        session_id: str,
        turns: Sequence[ConversationTurn],
        selected_agent_id: str | None = None,
    ) -> ConversationState:
        pk = _session_pk(session_id)
        expires_at = self._expires_at()
        try:
            state = self._table.get_item(Key={"PK": pk, "SK": STATE_SK}).get("Item") or {}
            seq = _to_int(state.get("turn_count"))
            for turn in turns:
                item = {"PK": pk, "SK": _turn_sk(seq), **turn.model_dump(mode="json")}
                if expires_at is not None:
                    item["expires_at"] = expires_at
                self._table.put_item(Item=item, ConditionExpression="attribute_not_exists(SK)")
                seq += 1

            updates = ["turn_count = :count"]
            values: dict[str, Any] = {":count": seq}
            if selected_agent_id is not None:
                updates.append("last_selected_agent_id = :agent")
                values[":agent"] = selected_agent_id
            if expires_at is not None:
                updates.append("expires_at = :exp")
                values[":exp"] = expires_at
            self._table.update_item(
                Key={"PK": pk, "SK": STATE_SK},
                UpdateExpression="SET " + ", ".join(updates),
                ExpressionAttributeValues=values,
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise StorageError(
                    f"Concurrent append detected for session={session_id!r}"
                ) from exc
            raise StorageError(f"DynamoDB append failed for session={session_id!r}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"DynamoDB append failed for session={session_id!r}: {exc}") from exc
        return self.load(session_id)

    def delete(self, session_id: str) -> None:
        try:
            keys = self._query_session(session_id, keys_only=True)
            with self._table.batch_writer() as batch:
                for key in keys:
                    batch.delete_item(Key={"PK": key["PK"], "SK": key["SK"]})
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"DynamoDB delete failed for session={session_id!r}: {exc}") from exc

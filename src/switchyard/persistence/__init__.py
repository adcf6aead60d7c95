"""Pluggable conversation stores behind the IConversationStore protocol."""

from __future__ import annotations

from switchyard.core.config import AppSettings
from switchyard.core.protocols import IConversationStore
from switchyard.persistence.dynamodb_backend import DynamoDBConversationStore
from switchyard.persistence.memory_backend import MemoryConversationStore
from switchyard.persistence.redis_backend import RedisConversationStore


def create_conversation_store(settings: AppSettings | None = None) -> IConversationStore:
    """Create the conversation store selected by ``settings.storage.backend``."""
    if settings is None:
        settings = AppSettings()

    backend = settings.storage.backend
    if backend == "dynamodb":
        return DynamoDBConversationStore(
            table_name=settings.dynamodb.table_name,
            table_suffix=settings.dynamodb.table_suffix,
            region=settings.dynamodb.region,
            endpoint_url=settings.dynamodb.endpoint_url,
            ttl_seconds=settings.storage.ttl_seconds,
        )
    if backend == "redis":
        return RedisConversationStore(
            host=settings.redis.host,
            port=settings.redis.port,
            db=settings.redis.db,
            key_prefix=settings.redis.key_prefix,
            ttl_seconds=settings.storage.ttl_seconds,
        )
    return MemoryConversationStore()

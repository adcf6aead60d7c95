"""Shared test doubles: re-export in-memory backends and scripted fakes."""

from __future__ import annotations

from switchyard.classifiers.static_ranker import StaticRanker
from switchyard.model_providers.mock_provider import MockModelBackend, ScriptedResponse
from switchyard.persistence.memory_backend import MemoryConversationStore
from switchyard.retrieval.knowledge_base import StaticRetriever

__all__ = [
    "MemoryConversationStore",
    "MockModelBackend",
    "ScriptedResponse",
    "StaticRanker",
    "StaticRetriever",
]

"""Protocol interfaces for all Switchyard capabilities.

Backends, guardrails, retrievers, rankers, tool handlers and stores are
plugged in structurally: no inheritance required, easy to fake in tests
and to check with isinstance().
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Protocol, runtime_checkable

from switchyard.models.agents import AgentDescriptor, RankedAgent
from switchyard.models.conversation import ConversationState, ConversationTurn
from switchyard.models.responses import (
    GenerationRequest,
    ModelEvent,
    ModelOutput,
    Passage,
    ToolInvocationRequest,
    ToolInvocationResult,
)


# ---------------------------------------------------------------------------
# Model Backend
# ---------------------------------------------------------------------------

@runtime_checkable
class IModelBackend(Protocol):
    """Text-generation capability (Bedrock Converse, mock)."""

    async def generate(self, request: GenerationRequest) -> ModelOutput: ...

    def generate_stream(self, request: GenerationRequest) -> AsyncIterator[ModelEvent]: ...


# ---------------------------------------------------------------------------
# Guardrail
# ---------------------------------------------------------------------------

@runtime_checkable
class IGuardrail(Protocol):
    """Content-safety policy applied to model input/output."""

    async def apply(self, content: str, source: str = "INPUT") -> str: ...


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

@runtime_checkable
class IRetriever(Protocol):
    """Context retrieval (knowledge bases, vector stores)."""

    async def fetch_context(self, query: str) -> list[Passage]: ...


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

@runtime_checkable
class IRanker(Protocol):
    """Scores candidate agents for a query. Higher score is a better fit."""

    async def rank(
        self,
        query: str,
        candidates: Sequence[AgentDescriptor],
        history: Sequence[ConversationTurn] = (),
    ) -> list[RankedAgent]: ...


# ---------------------------------------------------------------------------
# Tool Handler
# ---------------------------------------------------------------------------

@runtime_checkable
class IToolHandler(Protocol):
    """Executes a tool call requested by the model and returns its result."""

    async def __call__(self, request: ToolInvocationRequest) -> ToolInvocationResult | None: ...


# ---------------------------------------------------------------------------
# Persistence: Conversation Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IConversationStore(Protocol):
    """Append-only conversation history keyed by session id."""

    def load(self, session_id: str) -> ConversationState: ...

    def append(
        self,
        session_id: str,
        turns: Sequence[ConversationTurn],
        selected_agent_id: str | None = None,
    ) -> ConversationState: ...

    def delete(self, session_id: str) -> None: ...

"""Agent metadata models used for routing."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AgentDescriptor(BaseModel):
    """Immutable routing metadata for a registered agent."""

    model_config = {"frozen": True}

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    capabilities: frozenset[str] = frozenset()
    streaming_supported: bool = False


class RankedAgent(BaseModel):
    """One ranking entry produced by a ranker."""

    model_config = {"frozen": True}

    agent_id: str
    score: float

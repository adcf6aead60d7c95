"""Invocation request/response models shared by adapters and backends."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from switchyard.models.conversation import TurnStatus


class InferenceConfig(BaseModel):
    """Inference parameters forwarded to the model backend."""

    max_tokens: int = 1000
    temperature: float = 0.0
    top_p: float = 0.9
    stop_sequences: list[str] = Field(default_factory=list)


class ToolSpec(BaseModel):
    """Declaration of a tool the model may call."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class ToolInvocationRequest(BaseModel):
    """Model-issued request to call a named tool. Transient, never persisted."""

    model_config = {"frozen": True}

    tool_use_id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolInvocationResult(BaseModel):
    """Caller-supplied result fed back into the next model call."""

    tool_use_id: str
    content: Any = None
    status: Literal["success", "error"] = "success"


class Passage(BaseModel):
    """A retrieved context passage."""

    text: str
    source: str = ""
    score: Optional[float] = None


class GenerationRequest(BaseModel):
    """Everything a backend needs for one model call."""

    system_prompt: str
    messages: list[dict[str, Any]]
    inference_config: InferenceConfig = Field(default_factory=InferenceConfig)
    tools: list[ToolSpec] = Field(default_factory=list)
    tool_choice: Optional[str] = None  # force a specific tool by name


class ModelOutput(BaseModel):
    """Composed result of a non-streaming backend call."""

    text: str = ""
    tool_calls: list[ToolInvocationRequest] = Field(default_factory=list)
    stop_reason: str = "end_turn"
    message: dict[str, Any] = Field(default_factory=dict)
    usage: dict[str, int] = Field(default_factory=dict)


class ModelEvent(BaseModel):
    """One event of a streaming backend call."""

    type: Literal["text", "tool_call", "stop"]
    text: str = ""
    tool_call: Optional[ToolInvocationRequest] = None
    stop_reason: Optional[str] = None
    message: dict[str, Any] = Field(default_factory=dict)


class ResponseChunk(BaseModel):
    """Chunk delivered to callers of a streaming turn."""

    type: Literal["text", "tool_call"]
    text: str = ""
    tool_call: Optional[ToolInvocationRequest] = None


class AgentResponse(BaseModel):
    """Composed outcome of a single turn."""

    session_id: str = ""
    agent_id: Optional[str] = None
    output: str = ""
    status: TurnStatus = TurnStatus.COMPLETED
    error_kind: Optional[str] = None
    tool_calls: list[ToolInvocationRequest] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is TurnStatus.COMPLETED

"""Mock model backend for local development and testing.

Returns canned or scripted responses. No real LLM calls.
"""

from __future__ import annotations

from collections import deque
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

from switchyard.agents import messages
from switchyard.core.exceptions import BackendInvocationError
from switchyard.models.responses import (
    GenerationRequest,
    ModelEvent,
    ModelOutput,
    ToolInvocationRequest,
)


@dataclass
class ScriptedResponse:
    """One scripted model reply.

    ``chunks`` controls how the text is split when streamed; ``fail_after``
    makes the stream raise after that many text chunks.
    """

    text: str = ""
    tool_calls: list[ToolInvocationRequest] = field(default_factory=list)
    chunks: list[str] | None = None
    fail_after: int | None = None

    def stream_parts(self) -> list[str]:
        if self.chunks is not None:
            return list(self.chunks)
        if not self.text:
            return []
        words = self.text.split(" ")
        parts = [w + " " for w in words[:-1]] + [words[-1]]
        return [p for p in parts if p]


class MockModelBackend:
    """IModelBackend implementation that returns deterministic mock responses.

    Scripted responses queued with :meth:`queue` are consumed first, in order.
    After that, keyword matches registered with :meth:`set_response` are tried
    against the last user text, then ``default_response``.
    """

    def __init__(self, default_response: str = "Mock LLM response") -> None:
        self._default_response = default_response
        self._canned_responses: dict[str, str] = {}
        self._script: deque[ScriptedResponse] = deque()
        self.requests: list[GenerationRequest] = []
        self.chunks_emitted = 0

    def set_response(self, prompt_contains: str, response: str) -> None:
        """Register a canned response for prompts containing a keyword."""
        self._canned_responses[prompt_contains] = response

    def queue(
        self,
        text: str = "",
        *,
        tool_calls: Sequence[ToolInvocationRequest] = (),
        chunks: Sequence[str] | None = None,
        fail_after: int | None = None,
    ) -> None:
        """Queue the next scripted reply."""
        self._script.append(
            ScriptedResponse(
                text=text,
                tool_calls=list(tool_calls),
                chunks=list(chunks) if chunks is not None else None,
                fail_after=fail_after,
            )
        )

    @property
    def system_prompts(self) -> list[str]:
        return [r.system_prompt for r in self.requests]

    def _next(self, request: GenerationRequest) -> ScriptedResponse:
        self.requests.append(request)
        if self._script:
            return self._script.popleft()
        last_content = _last_user_text(request)
        for keyword, response in self._canned_responses.items():
            if keyword in last_content:
                return ScriptedResponse(text=response)
        return ScriptedResponse(text=self._default_response)

    async def generate(self, request: GenerationRequest) -> ModelOutput:
        reply = self._next(request)
        if reply.fail_after is not None:
            raise BackendInvocationError("Mock backend failure", code="MockFailure")
        return ModelOutput(
            text=reply.text,
            tool_calls=reply.tool_calls,
            stop_reason="tool_use" if reply.tool_calls else "end_turn",
            message=messages.assistant_message(reply.text, reply.tool_calls),
        )

    async def generate_stream(self, request: GenerationRequest) -> AsyncIterator[ModelEvent]:
        reply = self._next(request)
        parts = reply.stream_parts()
        if reply.fail_after is not None:
            parts = parts[: reply.fail_after]
        for part in parts:
            self.chunks_emitted += 1
            yield ModelEvent(type="text", text=part)
        if reply.fail_after is not None:
            raise BackendInvocationError("Mock stream cut off", code="MockFailure")
        for call in reply.tool_calls:
            yield ModelEvent(type="tool_call", tool_call=call)
        yield ModelEvent(
            type="stop",
            stop_reason="tool_use" if reply.tool_calls else "end_turn",
            message=messages.assistant_message(reply.text, reply.tool_calls),
        )


def _last_user_text(request: GenerationRequest) -> str:
    for message in reversed(request.messages):
        if message.get("role") == "user":
            text = messages.message_text(message)
            if text:
                return text
    return ""

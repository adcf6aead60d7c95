"""SSE encoding for streamed turns.

Each event is a single ``data: {json}\\n\\n`` line. Event types:
CHUNK, TOOL_CALL, ERROR, COMPLETE.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator

from switchyard.agents.stream import ResponseStream
from switchyard.models.responses import AgentResponse, ToolInvocationRequest

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_sse(data: dict) -> str:
    """Format a dict as an SSE data event."""
    return f"data: {json.dumps(data)}\n\n"


def chunk_event(text: str) -> dict:
    return {"type": "CHUNK", "text": text}


def tool_call_event(call: ToolInvocationRequest) -> dict:
    return {
        "type": "TOOL_CALL",
        "toolUseId": call.tool_use_id,
        "name": call.name,
        "arguments": call.arguments,
    }


def error_event(message: str, error_kind: str | None = None) -> dict:
    return {"type": "ERROR", "message": message, "errorKind": error_kind}


def complete_event(session_id: str, agent_id: str | None, status: str) -> dict:
    return {"type": "COMPLETE", "sessionId": session_id, "agentId": agent_id, "status": status}


async def stream_events(stream: ResponseStream) -> AsyncIterator[str]:
    """Relay a response stream as SSE events.

    Closing the generator (client disconnect) closes the stream, which
    records the turn as cancelled.
    """
    try:
        async for chunk in stream:
            if chunk.type == "text":
                yield encode_sse(chunk_event(chunk.text))
            elif chunk.tool_call is not None:
                yield encode_sse(tool_call_event(chunk.tool_call))
        yield encode_sse(complete_event(stream.session_id, stream.agent_id, str(stream.status)))
    except Exception as exc:
        logger.warning("Streamed turn failed for session=%s: %s", stream.session_id, exc)
        yield encode_sse(error_event(str(exc), type(exc).__name__))
    finally:
        await stream.aclose()


async def response_events(response: AgentResponse) -> AsyncIterator[str]:
    """Replay an already composed response as SSE events."""
    if response.output:
        yield encode_sse(chunk_event(response.output))
    if not response.ok and response.error_kind:
        yield encode_sse(error_event(response.output, response.error_kind))
    yield encode_sse(complete_event(response.session_id, response.agent_id, str(response.status)))

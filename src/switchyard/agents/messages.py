"""Builders for Converse-shaped message dicts.

Backends receive and return messages as ``{"role": ..., "content": [blocks]}``
where a block is ``{"text": ...}``, ``{"toolUse": ...}`` or ``{"toolResult": ...}``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from pydantic_core import to_jsonable_python

from switchyard.core.types import ConverseMessage
from switchyard.models.conversation import ConversationTurn, Role
from switchyard.models.responses import ToolInvocationRequest, ToolInvocationResult


def text_message(role: str, text: str) -> ConverseMessage:
    return {"role": role, "content": [{"text": text}]}


def assistant_message(text: str, tool_calls: Sequence[ToolInvocationRequest] = ()) -> ConverseMessage:
    content: list[dict[str, Any]] = []
    if text:
        content.append({"text": text})
    for call in tool_calls:
        content.append(
            {"toolUse": {"toolUseId": call.tool_use_id, "name": call.name, "input": call.arguments}}
        )
    return {"role": "assistant", "content": content}


def _result_content(content: Any) -> list[dict[str, Any]]:
    if content is None:
        return [{"text": ""}]
    if isinstance(content, str):
        return [{"text": content}]
    payload = to_jsonable_python(content)
    if not isinstance(payload, dict):
        payload = {"result": payload}
    return [{"json": payload}]


def tool_results_message(results: Iterable[ToolInvocationResult]) -> ConverseMessage:
    return {
        "role": "user",
        "content": [
            {
                "toolResult": {
                    "toolUseId": result.tool_use_id,
                    "content": _result_content(result.content),
                    "status": result.status,
                }
            }
            for result in results
        ],
    }


def from_turns(turns: Iterable[ConversationTurn]) -> list[ConverseMessage]:
    return [
        text_message("user" if turn.role is Role.USER else "assistant", turn.content)
        for turn in turns
    ]


def message_text(message: ConverseMessage) -> str:
    """Concatenate the text blocks of a message."""
    return "".join(block.get("text", "") for block in message.get("content", []))

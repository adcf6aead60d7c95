"""Bedrock model backend over the Converse / ConverseStream APIs.

boto3 is blocking, so calls and stream reads run in worker threads.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from switchyard.core.exceptions import BackendInvocationError
from switchyard.models.responses import (
    GenerationRequest,
    ModelEvent,
    ModelOutput,
    ToolInvocationRequest,
)

logger = logging.getLogger(__name__)

# Exception events that can appear inside a ConverseStream response.
_STREAM_ERRORS = (
    "internalServerException",
    "modelStreamErrorException",
    "validationException",
    "throttlingException",
    "serviceUnavailableException",
)

_END = object()


def create_bedrock_client(
    service: str, region: str = "us-east-1", endpoint_url: str | None = None
) -> Any:
    kwargs: dict = {
        "region_name": region,
        "config": Config(retries={"max_attempts": 3, "mode": "adaptive"}),
    }
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    return boto3.client(service, **kwargs)


def _wrap_error(exc: Exception) -> BackendInvocationError:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        return BackendInvocationError(error.get("Message", str(exc)), code=error.get("Code"))
    return BackendInvocationError(str(exc), code=type(exc).__name__)


def _tool_calls(content: list[dict[str, Any]]) -> list[ToolInvocationRequest]:
    return [
        ToolInvocationRequest(
            tool_use_id=block["toolUse"]["toolUseId"],
            name=block["toolUse"]["name"],
            arguments=block["toolUse"].get("input") or {},
        )
        for block in content
        if "toolUse" in block
    ]


class BedrockModelBackend:
    """Production IModelBackend backed by Amazon Bedrock Converse."""

    def __init__(
        self,
        model_id: str,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        client: Any = None,
    ) -> None:
        self._model_id = model_id
        self._client = client or create_bedrock_client("bedrock-runtime", region, endpoint_url)

    @property
    def model_id(self) -> str:
        return self._model_id

    def _converse_kwargs(self, request: GenerationRequest) -> dict[str, Any]:
        cfg = request.inference_config
        kwargs: dict[str, Any] = {
            "modelId": self._model_id,
            "messages": request.messages,
            "system": [{"text": request.system_prompt}],
            "inferenceConfig": {
                "maxTokens": cfg.max_tokens,
                "temperature": cfg.temperature,
                "topP": cfg.top_p,
                "stopSequences": cfg.stop_sequences,
            },
        }
        if request.tools:
            tool_config: dict[str, Any] = {
                "tools": [
                    {
                        "toolSpec": {
                            "name": tool.name,
                            "description": tool.description,
                            "inputSchema": {"json": tool.input_schema},
                        }
                    }
                    for tool in request.tools
                ]
            }
            if request.tool_choice:
                tool_config["toolChoice"] = {"tool": {"name": request.tool_choice}}
            kwargs["toolConfig"] = tool_config
        return kwargs

    async def generate(self, request: GenerationRequest) -> ModelOutput:
        kwargs = self._converse_kwargs(request)
        try:
            resp = await asyncio.to_thread(self._client.converse, **kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise _wrap_error(exc) from exc

        try:
            message = resp["output"]["message"]
            content = message.get("content", [])
        except (KeyError, TypeError) as exc:
            raise BackendInvocationError(
                f"Malformed Converse response: missing {exc}", code="MalformedResponse"
            ) from exc

        usage = resp.get("usage", {})
        logger.debug(
            "Converse model=%s stop=%s tokens in=%s out=%s",
            self._model_id, resp.get("stopReason"),
            usage.get("inputTokens"), usage.get("outputTokens"),
        )
        return ModelOutput(
            text="".join(block.get("text", "") for block in content),
            tool_calls=_tool_calls(content),
            stop_reason=resp.get("stopReason", "end_turn"),
            message=message,
            usage={k: v for k, v in usage.items() if isinstance(v, int)},
        )

    async def generate_stream(self, request: GenerationRequest) -> AsyncIterator[ModelEvent]:
        kwargs = self._converse_kwargs(request)
        try:
            resp = await asyncio.to_thread(self._client.converse_stream, **kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise _wrap_error(exc) from exc

        stream = resp["stream"]
        events = iter(stream)
        content: list[dict[str, Any]] = []
        text_parts: list[str] = []
        tool_use: dict[str, Any] | None = None
        tool_input = ""
        try:
            while True:
                try:
                    event = await asyncio.to_thread(next, events, _END)
                except (ClientError, BotoCoreError) as exc:
                    raise _wrap_error(exc) from exc
                if event is _END:
                    break

                for name in _STREAM_ERRORS:
                    if name in event:
                        raise BackendInvocationError(
                            event[name].get("message", name), code=name
                        )

                if "contentBlockStart" in event:
                    start = event["contentBlockStart"].get("start", {})
                    if "toolUse" in start:
                        tool_use = dict(start["toolUse"])
                        tool_input = ""
                elif "contentBlockDelta" in event:
                    delta = event["contentBlockDelta"]["delta"]
                    if "text" in delta:
                        text_parts.append(delta["text"])
                        yield ModelEvent(type="text", text=delta["text"])
                    elif "toolUse" in delta:
                        tool_input += delta["toolUse"].get("input", "")
                elif "contentBlockStop" in event:
                    if tool_use is not None:
                        try:
                            arguments = json.loads(tool_input) if tool_input else {}
                        except json.JSONDecodeError as exc:
                            raise BackendInvocationError(
                                f"Tool input for {tool_use.get('name')} is not valid JSON",
                                code="MalformedResponse",
                            ) from exc
                        call = ToolInvocationRequest(
                            tool_use_id=tool_use["toolUseId"],
                            name=tool_use["name"],
                            arguments=arguments,
                        )
                        content.append(
                            {"toolUse": {"toolUseId": call.tool_use_id, "name": call.name, "input": arguments}}
                        )
                        yield ModelEvent(type="tool_call", tool_call=call)
                        tool_use = None
                    elif text_parts:
                        content.append({"text": "".join(text_parts)})
                        text_parts = []
                elif "messageStop" in event:
                    if text_parts:
                        content.append({"text": "".join(text_parts)})
                        text_parts = []
                    yield ModelEvent(
                        type="stop",
                        stop_reason=event["messageStop"].get("stopReason", "end_turn"),
                        message={"role": "assistant", "content": content},
                    )
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

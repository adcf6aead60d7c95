"""AgentAdapter: one model backend behind a uniform turn contract.

The adapter owns the agent's system prompt and composes the optional
capabilities around the backend call:

1. guardrail on the user input,
2. retrieval of extra context appended to the system prompt,
3. the model call itself, looping through tool round trips,
4. guardrail on the composed output (non-streaming only).
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import aclosing
from typing import Any

from switchyard.agents import messages
from switchyard.agents.stream import ResponseStream
from switchyard.agents.tools import AgentTools
from switchyard.core.config import AppSettings
from switchyard.core.exceptions import (
    BackendInvocationError,
    ToolInvocationError,
    ToolInvocationTimeoutError,
)
from switchyard.core.protocols import IGuardrail, IModelBackend, IRetriever, IToolHandler
from switchyard.core.types import ConverseMessage, TemplateValue, TemplateVariables
from switchyard.models.conversation import ConversationTurn
from switchyard.models.responses import (
    AgentResponse,
    GenerationRequest,
    InferenceConfig,
    Passage,
    ResponseChunk,
    ToolInvocationRequest,
    ToolInvocationResult,
    ToolSpec,
)
from switchyard.prompts.template import PromptTemplate

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """\
You are {{AGENT_NAME}}.
{{AGENT_DESCRIPTION}}
Answer using your own area of expertise, keep the conversation going in a \
natural way, and ask a short clarifying question when the request is ambiguous. \
If you do not know the answer, say so instead of guessing."""

CONTEXT_HEADER = "\n\nUse the following context to answer the user's question:\n"


class AgentAdapter:
    """Wraps a text-generation backend with prompt, tools, guardrail and retrieval."""

    def __init__(
        self,
        backend: IModelBackend,
        *,
        prompt: PromptTemplate | str | None = None,
        inference_config: InferenceConfig | None = None,
        tools: AgentTools | None = None,
        tool_specs: Sequence[ToolSpec] = (),
        tool_handler: IToolHandler | None = None,
        guardrail: IGuardrail | None = None,
        retriever: IRetriever | None = None,
        tool_timeout: float = 30.0,
        retrieval_timeout: float = 5.0,
        max_tool_rounds: int = 20,
        strict_templates: bool = False,
    ) -> None:
        if prompt is None:
            prompt = PromptTemplate(template=DEFAULT_SYSTEM_PROMPT)
        elif isinstance(prompt, str):
            prompt = PromptTemplate(template=prompt)
        self._prompt = prompt
        self._backend = backend
        self._inference_config = inference_config or InferenceConfig()
        self._tool_specs = list(tool_specs) or (tools.specs() if tools else [])
        self._tool_handler = tool_handler if tool_handler is not None else tools
        self._guardrail = guardrail
        self._retriever = retriever
        self._tool_timeout = tool_timeout
        self._retrieval_timeout = retrieval_timeout
        self._max_tool_rounds = max_tool_rounds
        self._strict_templates = strict_templates

    @classmethod
    def from_settings(
        cls, backend: IModelBackend, settings: AppSettings, **kwargs: Any
    ) -> AgentAdapter:
        """Build an adapter using the configured inference defaults and timeouts."""
        llm = settings.llm
        orch = settings.orchestrator
        kwargs.setdefault(
            "inference_config",
            InferenceConfig(
                max_tokens=llm.max_tokens,
                temperature=llm.temperature,
                top_p=llm.top_p,
                stop_sequences=list(llm.stop_sequences),
            ),
        )
        kwargs.setdefault("tool_timeout", orch.tool_timeout)
        kwargs.setdefault("retrieval_timeout", settings.retrieval.timeout)
        kwargs.setdefault("max_tool_rounds", orch.max_tool_rounds)
        kwargs.setdefault("strict_templates", orch.strict_templates)
        return cls(backend, **kwargs)

    # ---- system prompt ----

    @property
    def prompt(self) -> PromptTemplate:
        return self._prompt

    def set_system_prompt(
        self, template: str, variables: TemplateVariables | None = None
    ) -> None:
        """Replace the prompt template and its variables as a whole."""
        self._prompt = PromptTemplate(
            template=template,
            variables={
                name: value if isinstance(value, str) else list(value)
                for name, value in (variables or {}).items()
            },
        )

    def system_prompt(self, extra: Mapping[str, TemplateValue] | None = None) -> str:
        return self._prompt.render(extra, strict=self._strict_templates)

    # ---- invocation ----

    async def invoke(
        self,
        context: Sequence[ConversationTurn],
        user_input: str,
        *,
        stream: bool = False,
        extra_variables: Mapping[str, TemplateValue] | None = None,
    ) -> AgentResponse | ResponseStream:
        """Run one turn.

        Returns a composed ``AgentResponse``, or a lazy ``ResponseStream``
        when ``stream`` is set. Streaming work starts on first iteration.
        """
        if stream:
            return ResponseStream(
                self.stream_chunks(context, user_input, extra_variables),
                tool_timeout=self._tool_timeout,
            )
        return await self._complete(context, user_input, extra_variables)

    async def _complete(
        self,
        context: Sequence[ConversationTurn],
        user_input: str,
        extra_variables: Mapping[str, TemplateValue] | None,
    ) -> AgentResponse:
        system_prompt, conversation = await self._prepare(context, user_input, extra_variables)
        calls: list[ToolInvocationRequest] = []
        results: dict[str, ToolInvocationResult] = {}

        for round_no in itertools.count():
            output = await self._backend.generate(self._request(system_prompt, conversation))
            if not output.tool_calls:
                text = output.text
                if self._guardrail is not None:
                    text = await self._guardrail.apply(text, source="OUTPUT")
                return AgentResponse(output=text, tool_calls=calls)

            self._check_rounds(round_no)
            conversation.append(
                output.message or messages.assistant_message(output.text, output.tool_calls)
            )
            round_results = []
            for call in output.tool_calls:
                calls.append(call)
                round_results.append(await self._run_tool(call, results))
            conversation.append(messages.tool_results_message(round_results))

    async def stream_chunks(
        self,
        context: Sequence[ConversationTurn],
        user_input: str,
        extra_variables: Mapping[str, TemplateValue] | None = None,
    ) -> AsyncIterator[ResponseChunk]:
        """Yield text and tool-call chunks as the backend produces them."""
        system_prompt, conversation = await self._prepare(context, user_input, extra_variables)
        results: dict[str, ToolInvocationResult] = {}

        for round_no in itertools.count():
            text_parts: list[str] = []
            tool_calls: list[ToolInvocationRequest] = []
            final_message: ConverseMessage | None = None
            stopped = False

            events = self._backend.generate_stream(self._request(system_prompt, conversation))
            async with aclosing(events):
                async for event in events:
                    if event.type == "text":
                        text_parts.append(event.text)
                        yield ResponseChunk(type="text", text=event.text)
                    elif event.type == "tool_call" and event.tool_call is not None:
                        tool_calls.append(event.tool_call)
                    elif event.type == "stop":
                        final_message = event.message or None
                        stopped = True

            if not stopped:
                raise BackendInvocationError(
                    "Model stream ended before completion", code="IncompleteStream"
                )
            if not tool_calls:
                return

            self._check_rounds(round_no)
            conversation.append(
                final_message or messages.assistant_message("".join(text_parts), tool_calls)
            )
            round_results = []
            for call in tool_calls:
                yield ResponseChunk(type="tool_call", tool_call=call)
                round_results.append(await self._run_tool(call, results))
            conversation.append(messages.tool_results_message(round_results))

    # ---- helpers ----

    def _request(self, system_prompt: str, conversation: list[ConverseMessage]) -> GenerationRequest:
        return GenerationRequest(
            system_prompt=system_prompt,
            messages=list(conversation),
            inference_config=self._inference_config,
            tools=self._tool_specs,
        )

    async def _prepare(
        self,
        context: Sequence[ConversationTurn],
        user_input: str,
        extra_variables: Mapping[str, TemplateValue] | None,
    ) -> tuple[str, list[ConverseMessage]]:
        if self._guardrail is not None:
            user_input = await self._guardrail.apply(user_input, source="INPUT")

        system_prompt = self.system_prompt(extra_variables)
        passages = await self._retrieve(user_input)
        if passages:
            system_prompt += CONTEXT_HEADER + "\n\n".join(p.text for p in passages)

        conversation = messages.from_turns(context)
        conversation.append(messages.text_message("user", user_input))
        return system_prompt, conversation

    async def _retrieve(self, query: str) -> list[Passage]:
        if self._retriever is None:
            return []
        try:
            async with asyncio.timeout(self._retrieval_timeout):
                return list(await self._retriever.fetch_context(query))
        except Exception as exc:
            logger.warning("Retrieval failed, continuing without extra context: %r", exc)
            return []

    def _check_rounds(self, round_no: int) -> None:
        if round_no >= self._max_tool_rounds:
            raise ToolInvocationError(
                f"No final answer after {self._max_tool_rounds} tool round trips"
            )

    async def _run_tool(
        self, call: ToolInvocationRequest, results: dict[str, ToolInvocationResult]
    ) -> ToolInvocationResult:
        if call.tool_use_id in results:
            logger.warning(
                "Tool call %s (%s) repeated in the same turn; reusing its result",
                call.tool_use_id, call.name,
            )
            return results[call.tool_use_id]
        if self._tool_handler is None:
            raise ToolInvocationError(
                f"Model requested tool {call.name!r} but the agent has no tool handler"
            )

        timeout = asyncio.timeout(self._tool_timeout)
        try:
            async with timeout:
                result = await self._tool_handler(call)
        except TimeoutError as exc:
            if timeout.expired():
                raise ToolInvocationTimeoutError(call.name, self._tool_timeout) from exc
            raise

        if result is None:
            raise ToolInvocationError(
                f"No result supplied for tool {call.name!r} ({call.tool_use_id})"
            )
        if result.tool_use_id != call.tool_use_id:
            result = result.model_copy(update={"tool_use_id": call.tool_use_id})
        results[call.tool_use_id] = result
        return result

"""Model-backed ranker: asks an LLM to score every candidate agent.

The model is forced to answer through the ``rank_agents`` tool so the
ranking arrives as structured input rather than free text.
"""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import BaseModel, ValidationError

from switchyard.agents import messages
from switchyard.core.exceptions import BackendInvocationError
from switchyard.core.protocols import IModelBackend
from switchyard.models.agents import AgentDescriptor, RankedAgent
from switchyard.models.conversation import ConversationTurn, Role
from switchyard.models.responses import GenerationRequest, InferenceConfig, ToolSpec
from switchyard.prompts.template import render

RANK_TOOL = ToolSpec(
    name="rank_agents",
    description="Report how well each agent fits the user's latest message.",
    input_schema={
        "type": "object",
        "properties": {
            "rankings": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "agent_id": {"type": "string"},
                        "score": {"type": "number", "minimum": 0, "maximum": 1},
                    },
                    "required": ["agent_id", "score"],
                },
            }
        },
        "required": ["rankings"],
    },
)

CLASSIFIER_PROMPT = """\
You route messages in a multi-agent assistant. Each agent below is listed as \
"id: name - description [capabilities]".

<agents>
{{AGENT_DESCRIPTIONS}}
</agents>

Recent conversation, oldest first. Assistant lines show which agent replied:

<history>
{{HISTORY}}
</history>

Score every agent between 0 and 1 for how well it can handle the user's \
latest message. Short follow-ups ("yes", "tell me more", "and tomorrow?") \
usually continue with the agent that answered last. Give 0 to agents that \
clearly do not apply. Answer only by calling the rank_agents tool with the \
exact agent ids."""

NO_HISTORY = "(no previous messages)"


class _Rankings(BaseModel):
    rankings: list[RankedAgent]


def describe_agent(descriptor: AgentDescriptor) -> str:
    line = f"{descriptor.id}: {descriptor.name} - {descriptor.description}"
    if descriptor.capabilities:
        line += f" [{', '.join(sorted(descriptor.capabilities))}]"
    return line


def format_history(history: Sequence[ConversationTurn]) -> list[str]:
    lines = []
    for turn in history:
        if turn.role is Role.USER:
            lines.append(f"user: {turn.content}")
        else:
            lines.append(f"assistant [{turn.agent_id or 'none'}]: {turn.content}")
    return lines


class ModelRanker:
    """IRanker that scores candidates with a single forced tool call."""

    def __init__(
        self,
        backend: IModelBackend,
        *,
        prompt: str = CLASSIFIER_PROMPT,
        inference_config: InferenceConfig | None = None,
    ) -> None:
        self._backend = backend
        self._prompt = prompt
        self._inference_config = inference_config or InferenceConfig(
            max_tokens=1000, temperature=0.0, top_p=0.9
        )

    async def rank(
        self,
        query: str,
        candidates: Sequence[AgentDescriptor],
        history: Sequence[ConversationTurn] = (),
    ) -> list[RankedAgent]:
        system_prompt = render(
            self._prompt,
            {
                "AGENT_DESCRIPTIONS": [describe_agent(d) for d in candidates],
                "HISTORY": format_history(history) or NO_HISTORY,
            },
        )
        output = await self._backend.generate(
            GenerationRequest(
                system_prompt=system_prompt,
                messages=[messages.text_message("user", query)],
                inference_config=self._inference_config,
                tools=[RANK_TOOL],
                tool_choice=RANK_TOOL.name,
            )
        )
        for call in output.tool_calls:
            if call.name != RANK_TOOL.name:
                continue
            try:
                return _Rankings.model_validate(call.arguments).rankings
            except ValidationError as exc:
                raise BackendInvocationError(
                    f"Invalid rank_agents arguments: {exc.errors()}", code="MalformedResponse"
                ) from exc
        raise BackendInvocationError(
            "Classifier model did not call rank_agents", code="MalformedResponse"
        )

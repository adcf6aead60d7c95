"""Intent classification: pick the agent that handles a user turn.

Ranking is delegated to an ``IRanker``; this module owns the selection
policy applied to the ranking:

- entries for unknown agents, or scoring at or below ``min_score``, are dropped.
  The bound is exclusive: with the default ``min_score`` of 0.0 an all-zero
  ranking selects nobody and raises ``NoSuitableAgentError``;
- the highest score wins;
- on an exact tie the agent selected for the previous turn wins, otherwise
  the earliest registered agent.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from switchyard.core.exceptions import NoSuitableAgentError
from switchyard.core.protocols import IRanker
from switchyard.models.agents import AgentDescriptor, RankedAgent
from switchyard.models.conversation import ConversationState

logger = logging.getLogger(__name__)


def select_agent(
    ranked: Sequence[RankedAgent],
    candidates: Sequence[AgentDescriptor],
    last_selected_agent_id: str | None = None,
    min_score: float = 0.0,
) -> str:
    order = {descriptor.id: index for index, descriptor in enumerate(candidates)}
    best: dict[str, float] = {}
    for entry in ranked:
        if entry.agent_id not in order or entry.score <= min_score:
            continue
        if entry.agent_id not in best or entry.score > best[entry.agent_id]:
            best[entry.agent_id] = entry.score
    if not best:
        raise NoSuitableAgentError("No agent scored above the routing threshold")

    top = max(best.values())
    tied = [agent_id for agent_id, score in best.items() if score == top]
    if last_selected_agent_id in tied:
        return last_selected_agent_id
    return min(tied, key=order.__getitem__)


class IntentClassifier:
    """Selects an agent id for a turn from ranker scores and session history."""

    def __init__(
        self,
        ranker: IRanker,
        *,
        min_score: float = 0.0,
        history_turns: int = 10,
        log_output: bool = False,
    ) -> None:
        self._ranker = ranker
        self._min_score = min_score
        self._history_turns = history_turns
        self._log_output = log_output

    async def classify(
        self,
        state: ConversationState,
        descriptors: Sequence[AgentDescriptor],
        user_input: str,
    ) -> str:
        candidates = list(descriptors)
        if not candidates:
            raise NoSuitableAgentError("No agents are registered")

        ranked = await self._ranker.rank(
            user_input, candidates, history=state.recent(self._history_turns)
        )
        if self._log_output:
            logger.info(
                "Classifier ranking session=%s: %s",
                state.session_id,
                ", ".join(f"{r.agent_id}={r.score:.2f}" for r in ranked) or "(empty)",
            )
        return select_agent(ranked, candidates, state.last_selected_agent_id, self._min_score)

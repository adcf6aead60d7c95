"""Fixed-score ranker for unit tests and local development."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from switchyard.models.agents import AgentDescriptor, RankedAgent
from switchyard.models.conversation import ConversationTurn


class StaticRanker:
    """IRanker returning preset scores for whichever candidates are known.

    Keyword rules registered with :meth:`route_keyword` take precedence:
    a query containing the keyword scores that agent 1.0.
    """

    def __init__(self, scores: Mapping[str, float] | None = None) -> None:
        self._scores: dict[str, float] = dict(scores or {})
        self._keywords: dict[str, str] = {}
        self.error: Exception | None = None
        self.queries: list[str] = []

    def set_scores(self, scores: Mapping[str, float]) -> None:
        self._scores = dict(scores)

    def route_keyword(self, keyword: str, agent_id: str) -> None:
        self._keywords[keyword.lower()] = agent_id

    async def rank(
        self,
        query: str,
        candidates: Sequence[AgentDescriptor],
        history: Sequence[ConversationTurn] = (),
    ) -> list[RankedAgent]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        lowered = query.lower()
        for keyword, agent_id in self._keywords.items():
            if keyword in lowered:
                return [RankedAgent(agent_id=agent_id, score=1.0)]
        known = {d.id for d in candidates}
        return [
            RankedAgent(agent_id=agent_id, score=score)
            for agent_id, score in self._scores.items()
            if agent_id in known
        ]

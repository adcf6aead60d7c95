"""Retrievers: Bedrock Knowledge Bases and a static in-memory double."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from switchyard.core.exceptions import RetrievalError
from switchyard.model_providers.bedrock_provider import create_bedrock_client
from switchyard.models.responses import Passage


class KnowledgeBaseRetriever:
    """IRetriever backed by the bedrock-agent-runtime Retrieve API."""

    def __init__(
        self,
        knowledge_base_id: str,
        number_of_results: int = 5,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        client: Any = None,
    ) -> None:
        self._knowledge_base_id = knowledge_base_id
        self._number_of_results = number_of_results
        self._client = client or create_bedrock_client("bedrock-agent-runtime", region, endpoint_url)

    async def fetch_context(self, query: str) -> list[Passage]:
        try:
            resp = await asyncio.to_thread(
                self._client.retrieve,
                knowledgeBaseId=self._knowledge_base_id,
                retrievalQuery={"text": query},
                retrievalConfiguration={
                    "vectorSearchConfiguration": {"numberOfResults": self._number_of_results}
                },
            )
        except (ClientError, BotoCoreError) as exc:
            raise RetrievalError(
                f"Retrieve failed for knowledge base {self._knowledge_base_id}: {exc}"
            ) from exc

        passages: list[Passage] = []
        for result in resp.get("retrievalResults", []):
            text = result.get("content", {}).get("text", "")
            if not text:
                continue
            location = result.get("location", {})
            source = location.get("s3Location", {}).get("uri", "") or location.get("type", "")
            passages.append(Passage(text=text, source=source, score=result.get("score")))
        return passages


class StaticRetriever:
    """IRetriever returning fixed passages, for tests and local dev."""

    def __init__(self, passages: Sequence[str | Passage] = (), error: Exception | None = None) -> None:
        self._passages = [p if isinstance(p, Passage) else Passage(text=p) for p in passages]
        self._error = error
        self.queries: list[str] = []

    async def fetch_context(self, query: str) -> list[Passage]:
        self.queries.append(query)
        if self._error is not None:
            raise self._error
        return list(self._passages)

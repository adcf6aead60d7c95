"""Orchestrator assembly from application settings."""

from __future__ import annotations

from typing import Any

from switchyard.agents.adapter import AgentAdapter
from switchyard.agents.registry import AgentRegistry
from switchyard.classifiers.intent_classifier import IntentClassifier
from switchyard.classifiers.model_ranker import ModelRanker
from switchyard.core.config import AppSettings
from switchyard.core.protocols import IConversationStore, IModelBackend, IRanker
from switchyard.guardrails.bedrock_guardrail import BedrockGuardrail
from switchyard.model_providers import create_model_backend
from switchyard.orchestration.orchestrator import Orchestrator
from switchyard.persistence import create_conversation_store
from switchyard.retrieval.knowledge_base import KnowledgeBaseRetriever


def create_agent_adapter(
    settings: AppSettings | None = None,
    backend: IModelBackend | None = None,
    **kwargs: Any,
) -> AgentAdapter:
    """Create an adapter on the configured backend.

    The guardrail and knowledge base retriever are attached when their ids
    are configured, unless passed explicitly.
    """
    if settings is None:
        settings = AppSettings()
    if settings.guardrail.guardrail_id and "guardrail" not in kwargs:
        kwargs["guardrail"] = BedrockGuardrail(
            guardrail_id=settings.guardrail.guardrail_id,
            version=settings.guardrail.version,
            region=settings.llm.region,
            endpoint_url=settings.llm.endpoint_url,
        )
    if settings.retrieval.knowledge_base_id and "retriever" not in kwargs:
        kwargs["retriever"] = KnowledgeBaseRetriever(
            knowledge_base_id=settings.retrieval.knowledge_base_id,
            number_of_results=settings.retrieval.number_of_results,
            region=settings.llm.region,
            endpoint_url=settings.llm.endpoint_url,
        )
    return AgentAdapter.from_settings(backend or create_model_backend(settings), settings, **kwargs)


def create_orchestrator(
    settings: AppSettings | None = None,
    ranker: IRanker | None = None,
    store: IConversationStore | None = None,
) -> Orchestrator:
    """Create an orchestrator with an empty registry.

    The default ranker asks ``settings.llm.classifier_model`` to score agents.
    """
    if settings is None:
        settings = AppSettings()
    if ranker is None:
        ranker = ModelRanker(create_model_backend(settings, settings.llm.classifier_model))
    orch = settings.orchestrator
    classifier = IntentClassifier(
        ranker,
        min_score=orch.min_score,
        history_turns=orch.classifier_history_turns,
        log_output=orch.log_classifier_output,
    )
    return Orchestrator(
        AgentRegistry(),
        store or create_conversation_store(settings),
        classifier,
        settings,
    )

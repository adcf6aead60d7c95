"""Pluggable model backends behind the IModelBackend protocol."""

from __future__ import annotations

from switchyard.core.config import AppSettings
from switchyard.core.protocols import IModelBackend
from switchyard.model_providers.bedrock_provider import BedrockModelBackend
from switchyard.model_providers.mock_provider import MockModelBackend


def create_model_backend(
    settings: AppSettings | None = None, model_id: str | None = None
) -> IModelBackend:
    """Create the configured model backend.

    ``model_id`` overrides ``settings.llm.bedrock_model`` (the classifier uses
    its own model).
    """
    if settings is None:
        settings = AppSettings()

    if settings.llm.provider == "bedrock":
        return BedrockModelBackend(
            model_id=model_id or settings.llm.bedrock_model,
            region=settings.llm.region,
            endpoint_url=settings.llm.endpoint_url,
        )
    return MockModelBackend()

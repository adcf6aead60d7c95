"""Bedrock Guardrails via the ApplyGuardrail API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from switchyard.core.exceptions import BackendInvocationError, GuardrailViolationError
from switchyard.model_providers.bedrock_provider import create_bedrock_client

logger = logging.getLogger(__name__)


def _has_blocking_action(node: Any) -> bool:
    """True when any assessment entry reports a BLOCKED action."""
    if isinstance(node, dict):
        if node.get("action") == "BLOCKED":
            return True
        return any(_has_blocking_action(v) for v in node.values())
    if isinstance(node, list):
        return any(_has_blocking_action(v) for v in node)
    return False


class BedrockGuardrail:
    """IGuardrail backed by a pre-configured Bedrock guardrail.

    Blocking interventions raise ``GuardrailViolationError``. Non-blocking
    interventions (e.g. PII anonymisation) return the masked text.
    """

    def __init__(
        self,
        guardrail_id: str,
        version: str = "DRAFT",
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        client: Any = None,
    ) -> None:
        self._guardrail_id = guardrail_id
        self._version = version
        self._client = client or create_bedrock_client("bedrock-runtime", region, endpoint_url)

    async def apply(self, content: str, source: str = "INPUT") -> str:
        try:
            resp = await asyncio.to_thread(
                self._client.apply_guardrail,
                guardrailIdentifier=self._guardrail_id,
                guardrailVersion=self._version,
                source=source,
                content=[{"text": {"text": content}}],
            )
        except ClientError as exc:
            error = exc.response.get("Error", {})
            raise BackendInvocationError(
                f"ApplyGuardrail failed: {error.get('Message', exc)}", code=error.get("Code")
            ) from exc
        except BotoCoreError as exc:
            raise BackendInvocationError(
                f"ApplyGuardrail failed: {exc}", code=type(exc).__name__
            ) from exc

        if resp.get("action") != "GUARDRAIL_INTERVENED":
            return content

        outputs = "".join(o.get("text", "") for o in resp.get("outputs", []))
        if _has_blocking_action(resp.get("assessments", [])):
            logger.info("Guardrail %s blocked %s content", self._guardrail_id, source.lower())
            raise GuardrailViolationError(self._guardrail_id, source, outputs)
        logger.debug("Guardrail %s masked %s content", self._guardrail_id, source.lower())
        return outputs or content

"""Agent listing and prompt management endpoints."""

from __future__ import annotations

from typing import Annotated, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from switchyard.api.routes.deps import get_orchestrator
from switchyard.orchestration.orchestrator import Orchestrator

router = APIRouter(tags=["agents"])


class SystemPromptBody(BaseModel):
    template: str
    variables: dict[str, Union[str, list[str]]] = {}


@router.get("/agents")
async def list_agents(
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
) -> list[dict]:
    return [descriptor.model_dump(mode="json") for descriptor in orchestrator.agents()]


@router.put("/agents/{agent_id}/system-prompt")
async def set_system_prompt(
    agent_id: str,
    body: SystemPromptBody,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
) -> dict:
    """Replace the agent's prompt template and variables."""
    orchestrator.set_system_prompt(agent_id, body.template, body.variables)
    return {"agent_id": agent_id, "status": "updated"}

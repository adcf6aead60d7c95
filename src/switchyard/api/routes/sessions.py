"""Session endpoints: turns, history, pinning and close."""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from switchyard.agents.stream import ResponseStream
from switchyard.api.routes.deps import get_orchestrator
from switchyard.api.sse import SSE_HEADERS, response_events, stream_events
from switchyard.models.responses import AgentResponse
from switchyard.orchestration.orchestrator import Orchestrator

router = APIRouter(prefix="/sessions", tags=["sessions"])

OrchestratorDep = Annotated[Orchestrator, Depends(get_orchestrator)]


class TurnBody(BaseModel):
    input: str
    stream: bool = False


class PinBody(BaseModel):
    agent_id: Optional[str] = None


@router.post("/{session_id}/turns", response_model=None)
async def post_turn(
    session_id: str, body: TurnBody, orchestrator: OrchestratorDep
) -> AgentResponse | StreamingResponse:
    """Route one user turn. ``stream`` selects an SSE response."""
    result = await orchestrator.route_turn(session_id, body.input, stream=body.stream)
    if isinstance(result, ResponseStream):
        events = stream_events(result)
    elif body.stream:
        events = response_events(result)
    else:
        return result
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/{session_id}")
async def get_session(session_id: str, orchestrator: OrchestratorDep) -> dict:
    state = await orchestrator.get_state(session_id)
    return {
        **state.model_dump(mode="json"),
        "phase": str(orchestrator.session_phase(session_id)),
        "pinned_agent_id": orchestrator.pinned_agent(session_id),
    }


@router.delete("/{session_id}", status_code=204)
async def close_session(session_id: str, orchestrator: OrchestratorDep) -> None:
    await orchestrator.close_session(session_id)


@router.put("/{session_id}/pin")
async def pin_session(
    session_id: str, orchestrator: OrchestratorDep, body: Optional[PinBody] = None
) -> dict:
    agent_id = await orchestrator.pin_session(session_id, body.agent_id if body else None)
    return {"session_id": session_id, "pinned_agent_id": agent_id}


@router.delete("/{session_id}/pin", status_code=204)
async def unpin_session(session_id: str, orchestrator: OrchestratorDep) -> None:
    await orchestrator.unpin_session(session_id)

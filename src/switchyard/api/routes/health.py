"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready", response_model=None)
async def ready(request: Request) -> dict | JSONResponse:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        return JSONResponse(status_code=503, content={"status": "starting"})
    return {"status": "ready", "agents": len(orchestrator.agents())}

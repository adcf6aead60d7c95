"""FastAPI application with lifespan, router mounting and error mapping."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from switchyard.api.routes import agents, health, sessions
from switchyard.core.config import AppSettings
from switchyard.core.exceptions import (
    AgentNotFoundError,
    DuplicateAgentIdError,
    SessionStateError,
    StorageError,
    SwitchyardError,
)
from switchyard.core.logging import configure_logging
from switchyard.orchestration import create_orchestrator
from switchyard.orchestration.orchestrator import Orchestrator

ERROR_STATUS: dict[type[SwitchyardError], int] = {
    AgentNotFoundError: 404,
    DuplicateAgentIdError: 409,
    SessionStateError: 409,
    StorageError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize and tear down application resources."""
    settings = app.state.settings
    configure_logging(settings.log_level)
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = create_orchestrator(settings)
    yield


async def _switchyard_error(request: Request, exc: Exception) -> JSONResponse:
    status = next(
        (code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500
    )
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


def create_app(
    orchestrator: Orchestrator | None = None, settings: AppSettings | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Pass ``orchestrator`` to serve pre-registered agents. Otherwise one is
    built from settings at startup.
    """
    app = FastAPI(
        title="Switchyard Agent Router",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings or AppSettings()
    app.state.orchestrator = orchestrator
    app.add_exception_handler(SwitchyardError, _switchyard_error)
    app.include_router(health.router)
    app.include_router(agents.router)
    app.include_router(sessions.router)
    return app

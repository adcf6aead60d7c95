"""Switchyard exception hierarchy."""

from __future__ import annotations


class SwitchyardError(Exception):
    """Base exception for all Switchyard errors."""


class DuplicateAgentIdError(SwitchyardError):
    """An agent with the same id is already registered."""

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id!r} is already registered")


class AgentNotFoundError(SwitchyardError):
    """No agent is registered under the requested id."""

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id!r} is not registered")


class NoSuitableAgentError(SwitchyardError):
    """The classifier could not select an agent for the turn."""


class TemplateRenderError(SwitchyardError):
    """Strict rendering found placeholders without a bound variable."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Unresolved template placeholders: {', '.join(missing)}")


class BackendInvocationError(SwitchyardError):
    """Model backend call failed (timeout, throttling, malformed response)."""

    def __init__(self, message: str, code: str | None = None) -> None:
        self.code = code
        super().__init__(f"[{code}] {message}" if code else message)


class GuardrailViolationError(SwitchyardError):
    """Content was blocked by the configured guardrail policy."""

    def __init__(self, guardrail_id: str, source: str, message: str = "") -> None:
        self.guardrail_id = guardrail_id
        self.source = source
        super().__init__(
            f"Guardrail {guardrail_id} intervened on {source.lower()}"
            + (f": {message}" if message else "")
        )


class ToolInvocationError(SwitchyardError):
    """A tool round trip did not produce a usable result."""


class ToolInvocationTimeoutError(ToolInvocationError):
    """The tool handler did not return within the configured timeout."""

    def __init__(self, tool_name: str, timeout: float) -> None:
        self.tool_name = tool_name
        self.timeout = timeout
        super().__init__(f"Tool {tool_name!r} timed out after {timeout:g}s")


class RetrievalError(SwitchyardError):
    """Retrieval capability failed. Non-fatal: the turn proceeds without context."""


class StorageError(SwitchyardError):
    """Conversation store operation failed."""


class SessionStateError(SwitchyardError):
    """Operation is not valid for the session's current state."""

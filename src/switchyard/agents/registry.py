"""Agent registry: the single source of routing candidates.

Read-mostly. Writers build a new mapping under a lock and swap it in, so
readers always see a complete snapshot without locking.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, NamedTuple

from switchyard.core.exceptions import AgentNotFoundError, DuplicateAgentIdError
from switchyard.models.agents import AgentDescriptor

if TYPE_CHECKING:
    from switchyard.agents.adapter import AgentAdapter

logger = logging.getLogger(__name__)


class RegisteredAgent(NamedTuple):
    descriptor: AgentDescriptor
    adapter: AgentAdapter


class AgentRegistry:
    """Copy-on-write registry of descriptors and their adapters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # dicts preserve insertion order, which is the registration order
        self._entries: dict[str, RegisteredAgent] = {}

    def register(self, descriptor: AgentDescriptor, adapter: AgentAdapter) -> None:
        with self._lock:
            if descriptor.id in self._entries:
                raise DuplicateAgentIdError(descriptor.id)
            entries = dict(self._entries)
            entries[descriptor.id] = RegisteredAgent(descriptor, adapter)
            self._entries = entries
        logger.info("Registered agent id=%s name=%s", descriptor.id, descriptor.name)

    def deregister(self, agent_id: str) -> AgentDescriptor:
        with self._lock:
            if agent_id not in self._entries:
                raise AgentNotFoundError(agent_id)
            entries = dict(self._entries)
            removed = entries.pop(agent_id)
            self._entries = entries
        logger.info("Deregistered agent id=%s", agent_id)
        return removed.descriptor

    def get(self, agent_id: str) -> AgentDescriptor:
        return self.entry(agent_id).descriptor

    def adapter(self, agent_id: str) -> AgentAdapter:
        return self.entry(agent_id).adapter

    def entry(self, agent_id: str) -> RegisteredAgent:
        try:
            return self._entries[agent_id]
        except KeyError:
            raise AgentNotFoundError(agent_id) from None

    def list(self) -> list[AgentDescriptor]:
        """Descriptors in registration order."""
        return [entry.descriptor for entry in self._entries.values()]

    def snapshot(self) -> tuple[RegisteredAgent, ...]:
        return tuple(self._entries.values())

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

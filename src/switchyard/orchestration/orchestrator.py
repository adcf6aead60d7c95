"""Orchestrator: routes each user turn to one agent and records the exchange.

Turn lifecycle per session::

    NEW -> ROUTING -> INVOKING -> RESPONDED -> ROUTING -> ...
                  \\-> RESPONDED (fallback)

Pinned sessions skip ROUTING. ``close_session`` is the only way to CLOSED.
Every turn ends in history as completed, failed, cancelled or unrouted.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Mapping
from functools import partial

from switchyard.agents.adapter import AgentAdapter
from switchyard.agents.registry import AgentRegistry, RegisteredAgent
from switchyard.agents.stream import ResponseStream
from switchyard.classifiers.intent_classifier import IntentClassifier
from switchyard.core.config import AppSettings
from switchyard.core.exceptions import (
    AgentNotFoundError,
    BackendInvocationError,
    NoSuitableAgentError,
    SessionStateError,
)
from switchyard.core.protocols import IConversationStore
from switchyard.core.types import TemplateVariables
from switchyard.models.agents import AgentDescriptor
from switchyard.models.conversation import ConversationState, ConversationTurn, Role, TurnStatus
from switchyard.models.responses import AgentResponse
from switchyard.orchestration.session import Session, SessionPhase

logger = logging.getLogger(__name__)


class Orchestrator:
    """Registry, classifier and conversation store wired into a turn loop."""

    def __init__(
        self,
        registry: AgentRegistry,
        store: IConversationStore,
        classifier: IntentClassifier,
        settings: AppSettings | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._classifier = classifier
        self._config = (settings or AppSettings()).orchestrator
        self._sessions: OrderedDict[str, Session] = OrderedDict()

    # ---- agents ----

    def register_agent(self, descriptor: AgentDescriptor, adapter: AgentAdapter) -> None:
        self._registry.register(descriptor, adapter)

    def deregister_agent(self, agent_id: str) -> AgentDescriptor:
        return self._registry.deregister(agent_id)

    def agents(self) -> list[AgentDescriptor]:
        return self._registry.list()

    def set_system_prompt(
        self, agent_id: str, template: str, variables: TemplateVariables | None = None
    ) -> None:
        """Replace an agent's prompt. Applies from the next turn that agent handles."""
        self._registry.adapter(agent_id).set_system_prompt(template, variables)
        logger.info("System prompt replaced for agent id=%s", agent_id)

    # ---- sessions ----

    async def get_state(self, session_id: str) -> ConversationState:
        return await asyncio.to_thread(self._store.load, session_id)

    async def pin_session(self, session_id: str, agent_id: str | None = None) -> str:
        """Route every following turn of the session to one agent.

        Without ``agent_id`` the session is pinned to its last selected agent.
        """
        if agent_id is None:
            state = await self.get_state(session_id)
            agent_id = state.last_selected_agent_id
            if agent_id is None:
                raise SessionStateError(
                    f"Session {session_id!r} has no selected agent to pin"
                )
        if agent_id not in self._registry:
            raise AgentNotFoundError(agent_id)
        self._session(session_id).pinned_agent_id = agent_id
        logger.info("Pinned session=%s to agent=%s", session_id, agent_id)
        return agent_id

    async def unpin_session(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.pinned_agent_id = None

    def pinned_agent(self, session_id: str) -> str | None:
        session = self._sessions.get(session_id)
        return session.pinned_agent_id if session is not None else None

    def session_phase(self, session_id: str) -> SessionPhase:
        session = self._sessions.get(session_id)
        return session.phase if session is not None else SessionPhase.NEW

    async def close_session(self, session_id: str) -> None:
        """Discard the session's history. A later turn with the same id starts afresh."""
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()
        await asyncio.to_thread(self._store.delete, session_id)
        logger.info("Closed session=%s", session_id)

    def _session(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = Session(session_id)
        else:
            self._sessions.move_to_end(session_id)
        return session

    def _turn_done(self, session: Session) -> None:
        """Drop least recently used idle sessions beyond ``max_idle_sessions``.

        Sessions with a queued or running turn, an open stream or a pin are kept.
        """
        session.pending -= 1
        excess = len(self._sessions) - self._config.max_idle_sessions
        if excess <= 0:
            return
        for session_id, candidate in list(self._sessions.items()):
            if excess == 0:
                break
            if candidate.idle:
                del self._sessions[session_id]
                excess -= 1

    def _closed_response(self, session: Session, agent_id: str | None = None) -> AgentResponse:
        logger.info("Session=%s closed during its turn; outcome discarded", session.session_id)
        return AgentResponse(
            session_id=session.session_id,
            agent_id=agent_id,
            status=TurnStatus.CANCELLED,
            error_kind=SessionStateError.__name__,
        )

    # ---- turns ----

    async def route_turn(
        self, session_id: str, user_input: str, *, stream: bool = False
    ) -> AgentResponse | ResponseStream:
        """Process one user turn.

        Returns a ``ResponseStream`` when ``stream`` is requested and the
        selected agent supports streaming, otherwise an ``AgentResponse``.
        A returned stream holds the session until it is consumed or closed,
        and is cancelled if iteration has not started within
        ``stream_idle_timeout``. A turn whose session is closed meanwhile
        returns a cancelled response and records nothing.
        """
        session = self._session(session_id)
        session.pending += 1
        held = handed_off = False
        start_phase = session.phase
        try:
            await session.lock.acquire()
            held = True
            start_phase = session.phase
            if session.closed:
                raise SessionStateError(f"Session {session_id!r} was closed")
            try:
                state = await asyncio.to_thread(self._store.load, session_id)
                if session.closed:
                    return self._closed_response(session)
                entries = {entry.descriptor.id: entry for entry in self._registry.snapshot()}
                entry, fallback = await self._select(session, state, entries, user_input)
            except asyncio.CancelledError:
                await self._record(session, user_input, "", None, TurnStatus.CANCELLED)
                raise
            if session.closed:
                return self._closed_response(session)

            if entry is None:
                await self._record(
                    session, user_input, fallback, None, TurnStatus.UNROUTED
                )
                if not session.settle():
                    return self._closed_response(session)
                return AgentResponse(
                    session_id=session_id, output=fallback, status=TurnStatus.UNROUTED
                )

            session.transition(SessionPhase.INVOKING)
            descriptor, adapter = entry
            context = [
                turn
                for pair in state.exchanges_for(descriptor.id, self._config.max_message_pairs_per_agent)
                for turn in pair
            ]
            extra_variables = {
                "AGENT_NAME": descriptor.name,
                "AGENT_DESCRIPTION": descriptor.description,
            }
            if self._config.log_agent_chat:
                logger.info("session=%s user -> %s: %s", session_id, descriptor.id, user_input)

            if stream and descriptor.streaming_supported:
                response_stream = await adapter.invoke(
                    context, user_input, stream=True, extra_variables=extra_variables
                )
                response_stream.idle_timeout = self._config.stream_idle_timeout
                response_stream.session_id = session_id
                response_stream.agent_id = descriptor.id
                response_stream.add_finish_callback(
                    partial(self._finish_stream, session, descriptor.id, user_input)
                )
                response_stream.expire_unless_started(self._config.stream_idle_timeout)
                held = False
                handed_off = True
                return response_stream

            return await self._invoke(session, descriptor, adapter, context, user_input, extra_variables)
        except BaseException:
            if held:
                session.restore(start_phase)
            raise
        finally:
            if held:
                session.lock.release()
            if not handed_off:
                self._turn_done(session)

    async def _select(
        self,
        session: Session,
        state: ConversationState,
        entries: Mapping[str, RegisteredAgent],
        user_input: str,
    ) -> tuple[RegisteredAgent | None, str]:
        """Pick the agent for the turn, or the fallback message when there is none."""
        pinned = session.pinned_agent_id
        if pinned is not None:
            if pinned in entries:
                logger.info("Routing session=%s to pinned agent=%s", session.session_id, pinned)
                return entries[pinned], ""
            logger.info(
                "Pinned agent=%s no longer registered; unpinning session=%s",
                pinned, session.session_id,
            )
            session.pinned_agent_id = None

        session.transition(SessionPhase.ROUTING)
        try:
            agent_id = await self._classifier.classify(
                state, [entry.descriptor for entry in entries.values()], user_input
            )
        except NoSuitableAgentError as exc:
            default = self._config.default_agent_id
            if default is not None and default in entries:
                logger.info(
                    "No agent selected for session=%s (%s); using default agent=%s",
                    session.session_id, exc, default,
                )
                return entries[default], ""
            logger.info("No agent selected for session=%s: %s", session.session_id, exc)
            return None, self._config.no_selected_agent_message
        except Exception:
            logger.error("Routing failed for session=%s", session.session_id, exc_info=True)
            return None, self._config.general_routing_error_message

        logger.info("Routing session=%s to agent=%s", session.session_id, agent_id)
        return entries[agent_id], ""

    async def _invoke(
        self,
        session: Session,
        descriptor: AgentDescriptor,
        adapter: AgentAdapter,
        context: list[ConversationTurn],
        user_input: str,
        extra_variables: dict[str, str],
    ) -> AgentResponse:
        session_id = session.session_id
        timeout = asyncio.timeout(self._config.invocation_timeout)
        try:
            async with timeout:
                response = await adapter.invoke(context, user_input, extra_variables=extra_variables)
        except asyncio.CancelledError:
            await self._record(session, user_input, "", descriptor.id, TurnStatus.CANCELLED)
            session.settle()
            raise
        except Exception as exc:
            status = TurnStatus.FAILED
            if isinstance(exc, TimeoutError) and timeout.expired():
                status = TurnStatus.CANCELLED
                exc = BackendInvocationError(
                    f"No response within {self._config.invocation_timeout:g}s",
                    code="InvocationTimeout",
                )
            error_kind = type(exc).__name__
            logger.error(
                "Agent %s failed for session=%s: %s",
                descriptor.id, session_id, exc, exc_info=status is TurnStatus.FAILED,
            )
            output = self._config.general_routing_error_message
            await self._record(session, user_input, output, descriptor.id, status, error_kind)
            if not session.settle():
                return self._closed_response(session, descriptor.id)
            return AgentResponse(
                session_id=session_id,
                agent_id=descriptor.id,
                output=output,
                status=status,
                error_kind=error_kind,
            )

        if self._config.log_agent_chat:
            logger.info("session=%s %s -> user: %s", session_id, descriptor.id, response.output)
        await self._record(session, user_input, response.output, descriptor.id, TurnStatus.COMPLETED)
        if not session.settle():
            return self._closed_response(session, descriptor.id)
        return response.model_copy(update={"session_id": session_id, "agent_id": descriptor.id})

    async def _finish_stream(
        self, session: Session, agent_id: str, user_input: str, stream: ResponseStream
    ) -> None:
        try:
            status = stream.status or TurnStatus.CANCELLED
            error_kind = type(stream.error).__name__ if stream.error is not None else None
            content = stream.text
            if status is TurnStatus.FAILED:
                logger.error(
                    "Agent %s stream failed for session=%s: %s",
                    agent_id, session.session_id, stream.error,
                    exc_info=stream.error,
                )
                content = content or self._config.general_routing_error_message
            elif status is TurnStatus.CANCELLED:
                logger.info("Stream cancelled for session=%s agent=%s", session.session_id, agent_id)
            elif self._config.log_agent_chat:
                logger.info("session=%s %s -> user: %s", session.session_id, agent_id, content)
            await self._record(session, user_input, content, agent_id, status, error_kind)
            session.settle()
        finally:
            session.lock.release()
            self._turn_done(session)

    async def _record(
        self,
        session: Session,
        user_input: str,
        output: str,
        agent_id: str | None,
        status: TurnStatus,
        error_kind: str | None = None,
    ) -> None:
        """Append the user turn and its reply. Skipped once the session is closed."""
        if session.closed:
            return
        turns = [
            ConversationTurn(role=Role.USER, content=user_input, agent_id=agent_id, status=status),
            ConversationTurn(
                role=Role.AGENT,
                content=output,
                agent_id=agent_id,
                status=status,
                error_kind=error_kind,
            ),
        ]
        await asyncio.to_thread(self._store.append, session.session_id, turns, agent_id)

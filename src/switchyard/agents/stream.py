"""Cancellable, lazily produced response stream.

A ``ResponseStream`` is finite and not restartable. It ends in exactly one
terminal status: completed when the source is exhausted, failed when the
source raises, cancelled when the consumer closes it, its task is cancelled,
no chunk arrives within ``idle_timeout``, or iteration never starts before
the deadline set by :meth:`expire_unless_started`. The read that follows a
tool call may also take ``tool_timeout`` on top of ``idle_timeout``. Finish
callbacks run once, with the status already set.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Optional

from switchyard.core.exceptions import BackendInvocationError
from switchyard.models.conversation import TurnStatus
from switchyard.models.responses import ResponseChunk, ToolInvocationRequest

logger = logging.getLogger(__name__)

FinishCallback = Callable[["ResponseStream"], Awaitable[None]]


class ResponseStream:
    """Async iterator of ``ResponseChunk`` with explicit cancellation."""

    def __init__(
        self,
        chunks: AsyncIterator[ResponseChunk],
        *,
        idle_timeout: float | None = None,
        tool_timeout: float | None = None,
        session_id: str = "",
        agent_id: str | None = None,
    ) -> None:
        self._chunks = chunks
        self.idle_timeout = idle_timeout
        self.tool_timeout = tool_timeout
        self.session_id = session_id
        self.agent_id = agent_id
        self._callbacks: list[FinishCallback] = []
        self._parts: list[str] = []
        self._tool_calls: list[ToolInvocationRequest] = []
        self._status: Optional[TurnStatus] = None
        self._error: Optional[BaseException] = None
        self._started = False
        self._after_tool_call = False
        self._start_deadline: Optional[asyncio.TimerHandle] = None
        self._expiry: Optional[asyncio.Task[None]] = None

    # ---- introspection ----

    @property
    def text(self) -> str:
        """Text received so far."""
        return "".join(self._parts)

    @property
    def tool_calls(self) -> list[ToolInvocationRequest]:
        return list(self._tool_calls)

    @property
    def status(self) -> Optional[TurnStatus]:
        return self._status

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def finished(self) -> bool:
        return self._status is not None

    def add_finish_callback(self, callback: FinishCallback) -> None:
        self._callbacks.append(callback)

    # ---- iteration ----

    def __aiter__(self) -> ResponseStream:
        return self

    async def __anext__(self) -> ResponseChunk:
        if self._status is not None or self._expiry is not None:
            raise StopAsyncIteration
        self._started = True
        self._cancel_start_deadline()
        limit = self.idle_timeout
        if limit is not None and self._after_tool_call and self.tool_timeout is not None:
            limit += self.tool_timeout
        timeout = asyncio.timeout(limit)
        try:
            async with timeout:
                chunk = await anext(self._chunks)
        except StopAsyncIteration:
            await self._finish(TurnStatus.COMPLETED)
            raise
        except asyncio.CancelledError as exc:
            await self._close_source()
            await self._finish(TurnStatus.CANCELLED, exc)
            raise
        except TimeoutError as exc:
            await self._close_source()
            if not timeout.expired():
                await self._finish(TurnStatus.FAILED, exc)
                raise
            error = BackendInvocationError(
                f"No output within {limit:g}s", code="StreamIdleTimeout"
            )
            await self._finish(TurnStatus.CANCELLED, error)
            raise error from exc
        except Exception as exc:
            await self._close_source()
            await self._finish(TurnStatus.FAILED, exc)
            raise

        self._after_tool_call = chunk.tool_call is not None
        if chunk.type == "text":
            self._parts.append(chunk.text)
        elif chunk.tool_call is not None:
            self._tool_calls.append(chunk.tool_call)
        return chunk

    async def collect(self) -> str:
        """Consume the remaining chunks and return the full text."""
        async for _ in self:
            pass
        return self.text

    # ---- cancellation ----

    def expire_unless_started(self, delay: float | None) -> None:
        """Cancel the stream if nobody starts iterating it within ``delay`` seconds."""
        if delay is None or self._started or self._status is not None:
            return
        self._cancel_start_deadline()
        self._start_deadline = asyncio.get_running_loop().call_later(
            delay, self._on_start_deadline, delay
        )

    def _on_start_deadline(self, delay: float) -> None:
        self._start_deadline = None
        if self._started or self._status is not None:
            return
        self._expiry = asyncio.ensure_future(self._expire(delay))

    async def _expire(self, delay: float) -> None:
        logger.warning(
            "Stream for session=%s agent=%s not consumed within %gs; cancelling",
            self.session_id, self.agent_id, delay,
        )
        await self._close_source()
        await self._finish(
            TurnStatus.CANCELLED,
            BackendInvocationError(
                f"Stream not consumed within {delay:g}s", code="StreamNotConsumed"
            ),
        )

    def _cancel_start_deadline(self) -> None:
        if self._start_deadline is not None:
            self._start_deadline.cancel()
            self._start_deadline = None

    async def aclose(self) -> None:
        """Stop the stream. A no-op once the stream has finished."""
        if self._expiry is not None:
            await self._expiry
            return
        if self._status is not None:
            return
        await self._close_source()
        await self._finish(TurnStatus.CANCELLED)

    async def __aenter__(self) -> ResponseStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _close_source(self) -> None:
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as exc:
            logger.warning("Error while closing response source: %s", exc)

    async def _finish(self, status: TurnStatus, error: BaseException | None = None) -> None:
        if self._status is not None:
            return
        self._cancel_start_deadline()
        self._status = status
        self._error = error
        for callback in self._callbacks:
            await callback(self)

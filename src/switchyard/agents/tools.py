"""Tool declaration, registration and invocation for model tool use.

``AgentTools`` is the default ``IToolHandler``: it dispatches a model-issued
``ToolInvocationRequest`` to the registered Python callable and wraps the
return value in a ``ToolInvocationResult``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from switchyard.models.responses import ToolInvocationRequest, ToolInvocationResult, ToolSpec

logger = logging.getLogger(__name__)


@dataclass
class AgentTool:
    """A callable exposed to the model.

    ``args_schema`` validates the model's arguments before ``func`` is called
    with them as keyword arguments. ``func`` may be sync or async; sync
    callables run in a worker thread.
    """

    name: str
    description: str
    func: Callable[..., Any]
    args_schema: type[BaseModel] | None = None

    def spec(self) -> ToolSpec:
        if self.args_schema is None:
            schema: dict[str, Any] = {"type": "object", "properties": {}}
        else:
            schema = self.args_schema.model_json_schema()
        return ToolSpec(name=self.name, description=self.description, input_schema=schema)

    async def run(self, arguments: dict[str, Any]) -> Any:
        if self.args_schema is not None:
            arguments = self.args_schema.model_validate(arguments).model_dump()
        if inspect.iscoroutinefunction(self.func):
            return await self.func(**arguments)
        return await asyncio.to_thread(self.func, **arguments)


class AgentTools:
    """Manages tool registration and invocation."""

    def __init__(self, tools: Iterable[AgentTool] = ()) -> None:
        self._tools: dict[str, AgentTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: AgentTool) -> None:
        self._tools[tool.name] = tool
        logger.debug("Registered tool: %s", tool.name)

    def get(self, name: str) -> AgentTool:
        if name not in self._tools:
            raise KeyError(f"Tool '{name}' not registered")
        return self._tools[name]

    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return [tool.spec() for tool in self._tools.values()]

    def __bool__(self) -> bool:
        return bool(self._tools)

    async def __call__(self, request: ToolInvocationRequest) -> ToolInvocationResult:
        """Run the requested tool.

        Unknown tools, invalid arguments and tool exceptions are reported back
        to the model as error results so it can recover within the turn.
        """
        tool = self._tools.get(request.name)
        if tool is None:
            logger.warning("Model requested unknown tool %r", request.name)
            return ToolInvocationResult(
                tool_use_id=request.tool_use_id,
                content=f"Tool '{request.name}' is not available",
                status="error",
            )
        try:
            content = await tool.run(request.arguments)
        except ValidationError as exc:
            return ToolInvocationResult(
                tool_use_id=request.tool_use_id,
                content=f"Invalid arguments for '{request.name}': {exc.errors()}",
                status="error",
            )
        except Exception as exc:
            logger.error("Tool %s failed: %s", request.name, exc, exc_info=True)
            return ToolInvocationResult(
                tool_use_id=request.tool_use_id,
                content=f"Tool '{request.name}' failed: {exc}",
                status="error",
            )
        return ToolInvocationResult(tool_use_id=request.tool_use_id, content=content)

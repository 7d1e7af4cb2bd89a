"""
Tool registry and executor.

Tools are plain callables (sync or async) that receive the decoded argument
dict and return a string, a ``ToolResultBlock``, or any JSON-serializable
value. Streaming tools additionally receive an async ``emit(text)`` callback
for intermediate output. A handler raising ``ToolInterruptedError`` stops the
agent once its invocation returns.

Example:
    toolkit = Toolkit()

    async def get_weather(args):
        return f"Sunny in {args['city']}"

    toolkit.register_function(
        get_weather,
        description="Current weather for a city",
        parameters={
            "type": "object",
            "properties": {"city": {"type": "string"}},
            "required": ["city"],
        },
    )

    results = await toolkit.execute([ToolUseBlock(id="1", name="get_weather",
                                                  input={"city": "Paris"})])
"""

from __future__ import annotations

import asyncio
import inspect
import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from agent_react_engine.interruption import InterruptSource, ToolInterruptedError
from agent_react_engine.logging import get_logger
from agent_react_engine.message import ToolResultBlock, ToolUseBlock

logger = get_logger("toolkit")

# (tool_use, chunk) -> None, may be async
ChunkCallback = Callable[[ToolUseBlock, ToolResultBlock], Any]
# Polled at checkpoints; True means stop
StopCheck = Callable[[], bool]
# reason -> None; called when a tool raises ToolInterruptedError
InterruptCallback = Callable[[str | None], Any]

TOOL_INTERRUPTED_MESSAGE = "The tool call interrupted the agent."


class _ChunkCallbackError(Exception):
    """Carries a chunk-callback failure past the tool's own error capture."""

    def __init__(self, error: Exception) -> None:
        super().__init__(str(error))
        self.error = error


@dataclass
class ToolDefinition:
    """Standard tool definition for LLM function calling."""

    name: str
    description: str
    parameters: dict[str, Any]
    handler: Any = None  # callable(args) or callable(args, emit) when streaming
    streaming: bool = False


class BaseTool(ABC):
    """Base class for class-based tools."""

    streaming: bool = False

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]: ...

    @abstractmethod
    async def execute(self, args: dict[str, Any], *extra: Any) -> Any: ...

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
            handler=self.execute,
            streaming=self.streaming,
        )


class Toolkit:
    """
    Registry and executor for tools.

    Args:
        parallel: Run a batch of invocations concurrently (default) or one
            after another
        timeout_seconds: Optional per-invocation timeout
    """

    def __init__(
        self,
        parallel: bool = True,
        timeout_seconds: float | None = None,
    ) -> None:
        self.parallel = parallel
        self.timeout_seconds = timeout_seconds
        self._tools: dict[str, ToolDefinition] = {}
        self._background: set[asyncio.Future[Any]] = set()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, tool: ToolDefinition) -> None:
        if tool.handler is None:
            raise ValueError(f"Tool '{tool.name}' has no handler")
        if tool.name in self._tools:
            logger.debug("Replacing tool: %s", tool.name)
        self._tools[tool.name] = tool

    def register_tool(self, tool: BaseTool) -> None:
        self.register(tool.definition())

    def register_function(
        self,
        fn: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
        streaming: bool = False,
    ) -> ToolDefinition:
        """Register a callable; name and description default to the function's."""
        definition = ToolDefinition(
            name=name or fn.__name__,
            description=description or inspect.getdoc(fn) or "",
            parameters=parameters or {"type": "object", "properties": {}},
            handler=fn,
            streaming=streaming,
        )
        self.register(definition)
        return definition

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def resolve(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        """Tool schema catalog in OpenAI function calling format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in self._tools.values()
        ]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def call_tool(
        self,
        tool_use: ToolUseBlock,
        on_chunk: ChunkCallback | None = None,
        on_interrupt: InterruptCallback | None = None,
    ) -> ToolResultBlock:
        """
        Execute one invocation. Never raises for tool-level failures; they
        come back as error results.

        A handler raising ``ToolInterruptedError`` yields an interrupted
        result and triggers ``on_interrupt``. Failures of ``on_chunk`` are
        not tool failures and propagate.
        """
        tool = self.resolve(tool_use.name)
        if tool is None:
            return ToolResultBlock.error(
                f"Tool '{tool_use.name}' not found", id=tool_use.id, name=tool_use.name
            )

        logger.debug("Executing tool %s with args: %s", tool_use.name, tool_use.input)

        async def emit(text: str) -> None:
            if on_chunk is None:
                return
            chunk = ToolResultBlock(id=tool_use.id, name=tool_use.name, output=text)
            try:
                result = on_chunk(tool_use, chunk)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                raise _ChunkCallbackError(e) from e

        try:
            awaitable = self._run_handler(tool, dict(tool_use.input), emit)
            if self.timeout_seconds is not None:
                output = await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
            else:
                output = await awaitable
        except _ChunkCallbackError as e:
            raise e.error from None
        except ToolInterruptedError as e:
            logger.info("Tool %s requested interruption: %s", tool_use.name, e.reason)
            if on_interrupt is not None:
                on_interrupt(e.reason)
            return ToolResultBlock.interrupted_result(
                tool_use,
                e.reason or TOOL_INTERRUPTED_MESSAGE,
                metadata={"source": InterruptSource.TOOL.value, "reason": e.reason},
            )
        except asyncio.TimeoutError:
            logger.warning("Tool call timed out: %s", tool_use.name)
            return ToolResultBlock.error(
                f"Tool execution failed: timeout after {self.timeout_seconds}s",
                id=tool_use.id,
                name=tool_use.name,
            )
        except Exception as e:
            logger.warning("Tool call failed: %s: %s", tool_use.name, e)
            return ToolResultBlock.error(
                f"Tool execution failed: {_error_message(e)}",
                id=tool_use.id,
                name=tool_use.name,
            )

        return _to_result(output, tool_use)

    async def execute(
        self,
        tool_calls: list[ToolUseBlock],
        should_stop: StopCheck | None = None,
        on_chunk: ChunkCallback | None = None,
        on_interrupt: InterruptCallback | None = None,
    ) -> list[ToolResultBlock | None]:
        """
        Execute a batch of invocations.

        Returns a list index-aligned with ``tool_calls``. Every invocation
        that finished keeps its result. ``should_stop`` is polled after every
        completion, and a tool interrupting the agent counts as a stop. Once
        stopped, no further invocation is started and the slots of those not
        started stay ``None``. Invocations still running at that point are
        left to finish in the background, never cancelled, and their slots
        stay ``None`` as well.
        """
        if not tool_calls:
            return []

        logger.debug("Executing %d tool calls (parallel=%s)", len(tool_calls), self.parallel)

        if self.parallel and len(tool_calls) > 1:
            return await self._execute_parallel(tool_calls, should_stop, on_chunk, on_interrupt)
        return await self._execute_sequential(tool_calls, should_stop, on_chunk, on_interrupt)

    async def _execute_sequential(
        self,
        tool_calls: list[ToolUseBlock],
        should_stop: StopCheck | None,
        on_chunk: ChunkCallback | None,
        on_interrupt: InterruptCallback | None,
    ) -> list[ToolResultBlock | None]:
        results: list[ToolResultBlock | None] = [None] * len(tool_calls)
        for i, tool_use in enumerate(tool_calls):
            if should_stop is not None and should_stop():
                break
            result = await self.call_tool(tool_use, on_chunk, on_interrupt)
            results[i] = result
            if result.interrupted:
                break
        return results

    async def _execute_parallel(
        self,
        tool_calls: list[ToolUseBlock],
        should_stop: StopCheck | None,
        on_chunk: ChunkCallback | None,
        on_interrupt: InterruptCallback | None,
    ) -> list[ToolResultBlock | None]:
        results: list[ToolResultBlock | None] = [None] * len(tool_calls)
        tasks = {
            asyncio.ensure_future(self.call_tool(tool_use, on_chunk, on_interrupt)): i
            for i, tool_use in enumerate(tool_calls)
        }
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                stopped = should_stop is not None and should_stop()
                for task in done:
                    result = task.result()
                    results[tasks[task]] = result
                    stopped = stopped or result.interrupted
                if stopped and pending:
                    logger.debug("Leaving %d running tool call(s) unawaited", len(pending))
                    for task in pending:
                        self._detach(task)
                    break
        except BaseException:
            for task in pending:
                task.cancel()
            raise
        return results

    def _detach(self, task: asyncio.Future[Any]) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    def _run_handler(
        tool: ToolDefinition,
        args: dict[str, Any],
        emit: Callable[[str], Awaitable[None]],
    ) -> Awaitable[Any]:
        async def runner() -> Any:
            result = tool.handler(args, emit) if tool.streaming else tool.handler(args)
            if inspect.isawaitable(result):
                result = await result
            return result

        return runner()


def _to_result(output: Any, tool_use: ToolUseBlock) -> ToolResultBlock:
    if isinstance(output, ToolResultBlock):
        return output.with_id_and_name(tool_use.id, tool_use.name)
    if output is None:
        text = ""
    elif isinstance(output, str):
        text = output
    else:
        text = json.dumps(output, ensure_ascii=False, default=str)
    return ToolResultBlock(id=tool_use.id, name=tool_use.name, output=text)


def _error_message(error: BaseException) -> str:
    message = str(error)
    if message:
        return message
    cause = error.__cause__ or error.__context__
    if cause is not None and str(cause):
        return str(cause)
    return type(error).__name__

"""
Hook pipeline for the agent loop.

Hooks observe and may rewrite every step of a ``ReActAgent`` call. They run
strictly in registration order as a linear chain: a hook that returns a value
hands it to the next hook and, in the end, to the loop. Returning ``None``
leaves the value unchanged. Hook methods may be sync or async.

Extension points, in the order they fire within a call:

    pre_call → pre_reasoning → on_reasoning_chunk* → post_reasoning
      → pre_acting* → on_acting_chunk* → post_acting* → ... → post_call
    on_error (when the call fails)

Example:
    from dataclasses import replace

    from agent_react_engine.hooks import Hook, HookPipeline

    class RedactSecrets(Hook):
        async def post_acting(self, agent, tool_use, result):
            return replace(result, output=result.output.replace(API_KEY, "***"))

    pipeline = HookPipeline([RedactSecrets()])

    @pipeline.on("on_reasoning_chunk")
    def printer(agent, chunk):
        print(chunk.text, end="")
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

from agent_react_engine.logging import get_logger
from agent_react_engine.message import Msg, ToolResultBlock, ToolUseBlock

if TYPE_CHECKING:
    from agent_react_engine.accumulator import ReasoningChunk

logger = get_logger("hooks")

# Extension point names
PRE_CALL = "pre_call"
PRE_REASONING = "pre_reasoning"
ON_REASONING_CHUNK = "on_reasoning_chunk"
POST_REASONING = "post_reasoning"
PRE_ACTING = "pre_acting"
ON_ACTING_CHUNK = "on_acting_chunk"
POST_ACTING = "post_acting"
POST_CALL = "post_call"
ON_ERROR = "on_error"

EXTENSION_POINTS = (
    PRE_CALL,
    PRE_REASONING,
    ON_REASONING_CHUNK,
    POST_REASONING,
    PRE_ACTING,
    ON_ACTING_CHUNK,
    POST_ACTING,
    POST_CALL,
    ON_ERROR,
)

HookErrorPolicy = Literal["log", "raise"]


class ChunkMode(str, Enum):
    """How reasoning chunks are reported to a hook."""

    INCREMENTAL = "incremental"  # only the newly arrived fragment
    CUMULATIVE = "cumulative"  # everything received so far


class Hook:
    """
    Base hook. Every method is a pass-through; override what you need.

    ``agent`` is the calling ``ReActAgent``.
    """

    reasoning_chunk_mode: ChunkMode = ChunkMode.INCREMENTAL

    async def pre_call(self, agent: Any, msgs: list[Msg]) -> None:
        """Called once per ``reply()`` before input is added to memory."""

    async def pre_reasoning(self, agent: Any, msgs: list[Msg]) -> list[Msg] | None:
        """Rewrite the outgoing message list (system prompt + memory)."""
        return msgs

    async def on_reasoning_chunk(self, agent: Any, chunk: Msg) -> None:
        """Observe a text/thinking chunk in ``reasoning_chunk_mode``."""

    async def post_reasoning(self, agent: Any, msgs: list[Msg]) -> list[Msg] | None:
        """Rewrite the finalized messages of a reasoning step before commit."""
        return msgs

    async def pre_acting(self, agent: Any, tool_use: ToolUseBlock) -> ToolUseBlock | None:
        """Rewrite an invocation before it is dispatched."""
        return tool_use

    async def on_acting_chunk(
        self, agent: Any, tool_use: ToolUseBlock, chunk: ToolResultBlock
    ) -> None:
        """Observe intermediate output of a streaming tool."""

    async def post_acting(
        self, agent: Any, tool_use: ToolUseBlock, result: ToolResultBlock
    ) -> ToolResultBlock | None:
        """Rewrite a tool result before commit."""
        return result

    async def post_call(self, agent: Any, msg: Msg) -> Msg | None:
        """Rewrite the final message returned to the caller."""
        return msg

    async def on_error(self, agent: Any, error: BaseException) -> None:
        """Observe a failure that is about to propagate to the caller."""


@dataclass
class _CallbackHook:
    """A single callable bound to one extension point."""

    point: str
    handler: Callable[..., Any]
    reasoning_chunk_mode: ChunkMode = ChunkMode.INCREMENTAL


class HookPipeline:
    """
    Ordered middleware chain of hooks.

    Failure policy:
        ``"log"``   a failing hook is logged and skipped; the chain continues
                    with the last good value.
        ``"raise"`` the exception propagates to the agent loop.
    Failures inside ``on_error`` hooks are always logged.
    """

    def __init__(
        self,
        hooks: list[Hook] | None = None,
        error_policy: HookErrorPolicy = "log",
    ) -> None:
        if error_policy not in ("log", "raise"):
            raise ValueError(f"Unknown hook error policy: {error_policy!r}")
        self.error_policy = error_policy
        self._entries: list[Hook | _CallbackHook] = list(hooks or [])

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, hook: Hook) -> Callable[[], None]:
        """Append a hook; returns a function that removes it."""
        self._entries.append(hook)

        def unregister() -> None:
            self.unregister(hook)

        return unregister

    def unregister(self, hook: Hook) -> bool:
        for i, entry in enumerate(self._entries):
            if entry is hook:
                del self._entries[i]
                return True
        return False

    def on(
        self,
        point: str,
        handler: Callable[..., Any] | None = None,
        chunk_mode: ChunkMode = ChunkMode.INCREMENTAL,
    ) -> Callable[[], None] | Callable[[Callable[..., Any]], Callable[..., Any]]:
        """
        Register a single callable for one extension point.

        Method call returns an unsubscribe function; decorator use returns the
        original function:

            unsub = pipeline.on("post_acting", redact)

            @pipeline.on("on_reasoning_chunk", chunk_mode=ChunkMode.CUMULATIVE)
            def show(agent, chunk): ...
        """
        if point not in EXTENSION_POINTS:
            raise ValueError(f"Unknown extension point: {point!r}")

        if handler is not None:
            entry = _CallbackHook(point=point, handler=handler, reasoning_chunk_mode=chunk_mode)
            self._entries.append(entry)

            def unsubscribe() -> None:
                try:
                    self._entries.remove(entry)
                except ValueError:
                    pass

            return unsubscribe

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.on(point, fn, chunk_mode=chunk_mode)
            return fn

        return decorator

    def clear(self) -> None:
        self._entries.clear()

    @property
    def hooks(self) -> list[Hook | _CallbackHook]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Extension points
    # ------------------------------------------------------------------

    async def pre_call(self, agent: Any, msgs: list[Msg]) -> None:
        await self._notify(PRE_CALL, agent, msgs)

    async def pre_reasoning(self, agent: Any, msgs: list[Msg]) -> list[Msg]:
        return await self._transform(PRE_REASONING, list, agent, msgs)

    async def on_reasoning_chunk(self, agent: Any, chunk: ReasoningChunk) -> None:
        for entry in list(self._entries):
            handler = self._handler(entry, ON_REASONING_CHUNK)
            if handler is None:
                continue
            if entry.reasoning_chunk_mode == ChunkMode.CUMULATIVE:
                msg = chunk.cumulative
            else:
                msg = chunk.incremental
            await self._invoke(ON_REASONING_CHUNK, entry, handler, agent, msg)

    async def post_reasoning(self, agent: Any, msgs: list[Msg]) -> list[Msg]:
        return await self._transform(POST_REASONING, list, agent, msgs)

    async def pre_acting(self, agent: Any, tool_use: ToolUseBlock) -> ToolUseBlock:
        return await self._transform(PRE_ACTING, ToolUseBlock, agent, tool_use)

    async def on_acting_chunk(
        self, agent: Any, tool_use: ToolUseBlock, chunk: ToolResultBlock
    ) -> None:
        await self._notify(ON_ACTING_CHUNK, agent, tool_use, chunk)

    async def post_acting(
        self, agent: Any, tool_use: ToolUseBlock, result: ToolResultBlock
    ) -> ToolResultBlock:
        return await self._transform(POST_ACTING, ToolResultBlock, agent, tool_use, result)

    async def post_call(self, agent: Any, msg: Msg) -> Msg:
        return await self._transform(POST_CALL, Msg, agent, msg)

    async def on_error(self, agent: Any, error: BaseException) -> None:
        for entry in list(self._entries):
            handler = self._handler(entry, ON_ERROR)
            if handler is None:
                continue
            try:
                result = handler(agent, error)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning("on_error hook failed (hook=%s): %s", _hook_name(entry), e)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _handler(entry: Hook | _CallbackHook, point: str) -> Callable[..., Any] | None:
        if isinstance(entry, _CallbackHook):
            return entry.handler if entry.point == point else None
        return getattr(entry, point, None)

    async def _invoke(
        self,
        point: str,
        entry: Hook | _CallbackHook,
        handler: Callable[..., Any],
        *args: Any,
    ) -> tuple[bool, Any]:
        """Run one handler. Returns ``(ok, result)``."""
        try:
            result = handler(*args)
            if inspect.isawaitable(result):
                result = await result
            return True, result
        except Exception as e:
            if self.error_policy == "raise":
                raise
            logger.warning("Hook error (point=%s, hook=%s): %s", point, _hook_name(entry), e)
            return False, None

    async def _notify(self, point: str, agent: Any, *args: Any) -> None:
        for entry in list(self._entries):
            handler = self._handler(entry, point)
            if handler is not None:
                await self._invoke(point, entry, handler, agent, *args)

    async def _transform(self, point: str, expected: type, agent: Any, *args: Any) -> Any:
        """Thread the last positional argument through the chain."""
        *context, value = args
        for entry in list(self._entries):
            handler = self._handler(entry, point)
            if handler is None:
                continue
            ok, result = await self._invoke(point, entry, handler, agent, *context, value)
            if not ok or result is None:
                continue
            if not isinstance(result, expected):
                error = TypeError(
                    f"Hook {_hook_name(entry)} returned {type(result).__name__} "
                    f"from {point}, expected {expected.__name__}"
                )
                if self.error_policy == "raise":
                    raise error
                logger.warning("%s", error)
                continue
            value = result
        return value


def _hook_name(entry: Hook | _CallbackHook) -> str:
    if isinstance(entry, _CallbackHook):
        return getattr(entry.handler, "__name__", repr(entry.handler))
    return type(entry).__name__

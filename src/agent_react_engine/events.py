"""
Agent-level streaming output.

``StreamingHook`` turns hook callbacks into ``AgentEvent`` values and hands
them to an ``emit`` callable. ``ReActAgent.stream()`` uses it to expose a run
as an async iterator.

Example:
    async for event in agent.stream(Msg("user", MsgRole.USER, "hi")):
        if event.type == EventType.REASONING and not event.is_last:
            print(event.msg.text, end="")
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agent_react_engine.hooks import ChunkMode, Hook
from agent_react_engine.message import Msg, ToolResultBlock, ToolUseBlock, tool_result_msg


class EventType(str, Enum):
    REASONING = "reasoning"
    TOOL_RESULT = "tool_result"
    AGENT_RESULT = "agent_result"
    ALL = "all"


@dataclass
class AgentEvent:
    """One item of a streamed run."""

    type: EventType
    msg: Msg
    is_last: bool = False  # final message of its step rather than a chunk


@dataclass
class StreamOptions:
    """Which events ``stream()`` yields and how reasoning chunks look."""

    event_types: set[EventType] = field(default_factory=lambda: {EventType.ALL})
    chunk_mode: ChunkMode = ChunkMode.INCREMENTAL
    include_agent_result: bool = True

    def should_stream(self, event_type: EventType) -> bool:
        if event_type == EventType.AGENT_RESULT and not self.include_agent_result:
            return False
        return EventType.ALL in self.event_types or event_type in self.event_types


class StreamingHook(Hook):
    """Forward reasoning, tool results and the final reply as events."""

    def __init__(
        self,
        emit: Callable[[AgentEvent], Any],
        options: StreamOptions | None = None,
    ) -> None:
        self.emit = emit
        self.options = options or StreamOptions()
        self.reasoning_chunk_mode = self.options.chunk_mode

    async def _send(self, event_type: EventType, msg: Msg, is_last: bool) -> None:
        if not self.options.should_stream(event_type):
            return
        result = self.emit(AgentEvent(type=event_type, msg=msg, is_last=is_last))
        if inspect.isawaitable(result):
            await result

    async def on_reasoning_chunk(self, agent: Any, chunk: Msg) -> None:
        await self._send(EventType.REASONING, chunk, is_last=False)

    async def post_reasoning(self, agent: Any, msgs: list[Msg]) -> None:
        for msg in msgs:
            await self._send(EventType.REASONING, msg, is_last=True)

    async def on_acting_chunk(
        self, agent: Any, tool_use: ToolUseBlock, chunk: ToolResultBlock
    ) -> None:
        await self._send(EventType.TOOL_RESULT, tool_result_msg(chunk, agent.name), is_last=False)

    async def post_acting(
        self, agent: Any, tool_use: ToolUseBlock, result: ToolResultBlock
    ) -> None:
        await self._send(EventType.TOOL_RESULT, tool_result_msg(result, agent.name), is_last=True)

    async def post_call(self, agent: Any, msg: Msg) -> None:
        await self._send(EventType.AGENT_RESULT, msg, is_last=True)

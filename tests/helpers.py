"""Scripted collaborators and assertions shared by the test modules."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Sequence
from typing import Any

from agent_react_engine import model as delta_types
from agent_react_engine.message import Msg, MsgRole, ToolResultBlock, ToolUseBlock
from agent_react_engine.model import ChatDelta, ChatModel, ChatUsage, GenerateOptions
from agent_react_engine.toolkit import Toolkit

WEATHER_SCHEMA = {
    "type": "object",
    "properties": {"city": {"type": "string"}},
    "required": ["city"],
}


class ScriptedModel(ChatModel):
    """
    Model that replays one scripted step per ``stream()`` call.

    A step is a list whose items are ``ChatDelta`` (yielded), exceptions
    (raised) or callables (invoked, awaited if needed, nothing yielded).
    """

    model_name = "scripted"

    def __init__(self, steps: Sequence[list[Any]], delay: float = 0.0) -> None:
        self.steps = [list(step) for step in steps]
        self.delay = delay
        self.calls: list[tuple[Any, list[dict[str, Any]], GenerateOptions | None]] = []

    async def stream(
        self,
        messages: Any,
        tools: list[dict[str, Any]],
        options: GenerateOptions | None = None,
    ) -> AsyncIterator[ChatDelta]:
        self.calls.append((messages, tools, options))
        if not self.steps:
            raise AssertionError("model called more times than scripted")
        for item in self.steps.pop(0):
            if self.delay:
                await asyncio.sleep(self.delay)
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, ChatDelta):
                yield item
                continue
            result = item()
            if inspect.isawaitable(result):
                await result


def text_step(*parts: str) -> list[ChatDelta]:
    return [ChatDelta.text_delta(p) for p in parts]


def tool_step(tc_id: str, name: str, args: dict[str, Any]) -> list[ChatDelta]:
    return [ChatDelta.tool_call(tc_id, name, args)]


def streamed_tool_call(tc_id: str | None, name: str, *fragments: str) -> list[ChatDelta]:
    """A tool call announced, streamed in fragments and closed."""
    deltas = [ChatDelta(type=delta_types.TOOL_CALL_START, tool_call_id=tc_id, tool_name=name)]
    deltas.extend(
        ChatDelta(type=delta_types.TOOL_CALL_DELTA, tool_call_id=tc_id, args_delta=f)
        for f in fragments
    )
    deltas.append(ChatDelta(type=delta_types.TOOL_CALL_END, tool_call_id=tc_id))
    return deltas


def usage_delta(input_tokens: int, output_tokens: int) -> ChatDelta:
    return ChatDelta(
        type=delta_types.USAGE,
        usage=ChatUsage(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def user(text: str) -> Msg:
    return Msg(name="user", role=MsgRole.USER, content=text)


def assert_paired(log: Sequence[Msg]) -> None:
    """Every tool use has exactly one later result with the same id."""
    uses: list[str] = []
    results: list[str] = []
    positions: dict[str, int] = {}
    for i, msg in enumerate(log):
        for block in msg.get_content_blocks(ToolUseBlock):
            uses.append(block.id)
            positions[block.id] = i
        for block in msg.get_content_blocks(ToolResultBlock):
            results.append(block.id)
            assert block.id in positions, f"result {block.id} precedes its invocation"
    assert len(results) == len(set(results)), "duplicate tool results"
    assert sorted(uses) == sorted(results)


def get_weather(args: dict[str, Any]) -> str:
    """Current weather for a city."""
    return f"Sunny in {args['city']}"


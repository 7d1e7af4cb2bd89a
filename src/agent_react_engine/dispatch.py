"""
Tool dispatch and correlation.

The agent's pending invocations are the trailing run of its own tool-use
messages in the log. They are dispatched as one batch and every result is
correlated back to its invocation by position, then re-keyed with the
invocation's id and name.
"""

from __future__ import annotations

from collections.abc import Sequence

from agent_react_engine.logging import get_logger
from agent_react_engine.message import Msg, MsgRole, ToolResultBlock, ToolUseBlock
from agent_react_engine.toolkit import ChunkCallback, InterruptCallback, StopCheck, Toolkit

logger = get_logger("dispatch")


def extract_pending_invocations(messages: Sequence[Msg], agent_name: str) -> list[ToolUseBlock]:
    """
    Return the invocations the agent still has to act on.

    Scans the log backward and collects the maximal contiguous tail of
    assistant messages authored by ``agent_name`` whose blocks are all tool
    uses. The scan stops at the first entry that does not match. Invocations
    are returned in forward (log) order.
    """
    tail: list[Msg] = []
    for msg in reversed(messages):
        if msg.role != MsgRole.ASSISTANT or msg.name != agent_name or not msg.is_tool_use:
            break
        tail.append(msg)

    calls: list[ToolUseBlock] = []
    for msg in reversed(tail):
        calls.extend(msg.get_content_blocks(ToolUseBlock))
    return calls


async def dispatch_tool_calls(
    toolkit: Toolkit,
    tool_calls: Sequence[ToolUseBlock],
    should_stop: StopCheck | None = None,
    on_chunk: ChunkCallback | None = None,
    on_interrupt: InterruptCallback | None = None,
) -> list[ToolResultBlock | None]:
    """
    Execute a batch and correlate results with invocations.

    Returns a list aligned with ``tool_calls``. A ``None`` slot means the
    invocation has no result because interruption was observed, either
    through ``should_stop`` or by a tool interrupting. Every other slot
    carries the invocation's id and name.
    """
    calls = list(tool_calls)
    if not calls:
        return []

    raw = list(
        await toolkit.execute(
            calls, should_stop=should_stop, on_chunk=on_chunk, on_interrupt=on_interrupt
        )
    )
    stopped = (should_stop is not None and should_stop()) or any(
        r is not None and r.interrupted for r in raw
    )

    if len(raw) > len(calls):
        logger.warning("Executor returned %d results for %d calls", len(raw), len(calls))
        raw = raw[: len(calls)]

    results: list[ToolResultBlock | None] = []
    for i, call in enumerate(calls):
        result = raw[i] if i < len(raw) else None
        if result is None:
            if not stopped:
                logger.warning("No result for tool call %s (%s)", call.id, call.name)
                result = ToolResultBlock.error(
                    "Tool execution failed: no result returned", id=call.id, name=call.name
                )
            results.append(result)
            continue
        results.append(result.with_id_and_name(call.id, call.name))
    return results

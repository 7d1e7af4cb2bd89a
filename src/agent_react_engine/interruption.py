"""
Cooperative interruption.

``interrupt()`` only raises a flag. The agent loop polls it at fixed
checkpoints and unwinds through ``AgentInterruptedError``; nothing is
cancelled from the outside. After unwinding, every invocation without a result
gets a synthesized one so the conversation log stays well-paired.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from agent_react_engine.logging import get_logger
from agent_react_engine.message import Msg, MsgRole, ToolResultBlock, ToolUseBlock

logger = get_logger("interruption")


class InterruptSource(str, Enum):
    """Who asked for the interruption."""

    USER = "user"
    TOOL = "tool"
    SYSTEM = "system"


@dataclass
class InterruptContext:
    """Details recorded when an interruption is requested."""

    source: InterruptSource = InterruptSource.USER
    reason: str | None = None
    timestamp: float = field(default_factory=time.time)
    pending_tool_calls: list[ToolUseBlock] = field(default_factory=list)


class AgentInterruptedError(Exception):
    """Raised at a checkpoint once an interruption has been observed."""

    def __init__(self, context: InterruptContext | None = None) -> None:
        self.context = context or InterruptContext()
        super().__init__(self.context.reason or "Agent interrupted")


class ToolInterruptedError(Exception):
    """
    Raised by a tool handler to stop the agent once its invocation returns.

    The invocation gets an interrupted result carrying ``reason`` and the
    agent is interrupted with ``InterruptSource.TOOL``. Invocations of the
    same batch that have not finished get interrupted results as well.

    Example:
        def deploy(args):
            if not args.get("approved"):
                raise ToolInterruptedError("Deployment needs human approval")
            ...
    """

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(reason or "Tool requested interruption")


class InterruptController:
    """
    Interruption flag plus its context.

    ``interrupt()`` is meant to be called from the agent's event loop.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._context: InterruptContext | None = None
        self._pending: list[ToolUseBlock] = []

    @property
    def is_interrupted(self) -> bool:
        return self._event.is_set()

    @property
    def context(self) -> InterruptContext | None:
        return self._context

    def interrupt(
        self,
        reason: str | None = None,
        source: InterruptSource = InterruptSource.USER,
    ) -> InterruptContext:
        """Raise the flag. Repeated calls keep the first context."""
        if self._context is None:
            self._context = InterruptContext(
                source=InterruptSource(source),
                reason=reason,
                pending_tool_calls=list(self._pending),
            )
            logger.info("Interrupt requested (source=%s, reason=%s)", source, reason)
        self._event.set()
        return self._context

    def reset(self) -> None:
        self._event.clear()
        self._context = None
        self._pending = []

    def add_pending(self, tool_calls: Sequence[ToolUseBlock]) -> None:
        """Record invocations known so far; they end up in the context."""
        self._pending.extend(tool_calls)
        if self._context is not None:
            self._context.pending_tool_calls.extend(tool_calls)

    def checkpoint(self) -> None:
        """Raise ``AgentInterruptedError`` if the flag is set."""
        if self._event.is_set():
            raise AgentInterruptedError(self._context)


def find_unresolved_invocations(messages: Sequence[Msg], agent_name: str) -> list[ToolUseBlock]:
    """
    Invocations by ``agent_name`` that have no result anywhere in the log,
    in log order.
    """
    resolved: set[str] = set()
    for msg in messages:
        for block in msg.get_content_blocks(ToolResultBlock):
            resolved.add(block.id)

    unresolved: list[ToolUseBlock] = []
    seen: set[str] = set()
    for msg in messages:
        if msg.role != MsgRole.ASSISTANT or msg.name != agent_name:
            continue
        for block in msg.get_content_blocks(ToolUseBlock):
            if block.id in resolved or block.id in seen:
                continue
            seen.add(block.id)
            unresolved.append(block)
    return unresolved

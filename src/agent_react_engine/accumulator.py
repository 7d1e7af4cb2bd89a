"""
Delta accumulator for one reasoning step.

Folds the ordered ``ChatDelta`` stream of a single model call into finalized
messages:

- at most one merged assistant message (thinking + text),
- one tool-invocation message per distinct tool-call id, in order of first
  appearance.

Text and thinking fragments are surfaced immediately as ``ReasoningChunk``
objects so hooks can observe the stream. A chunk offers both reporting modes
from a single running buffer: ``incremental`` carries only the new fragment,
``cumulative`` carries the buffer as of that fragment. Each view is built on
first access.

Example:
    acc = DeltaAccumulator("assistant")
    async for delta in model.stream(payload, tools):
        update = acc.add(delta)
        for chunk in update.chunks:
            print(chunk.fragment, end="")
    msgs = acc.finalize()
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

from agent_react_engine import model as delta_types
from agent_react_engine.logging import get_logger
from agent_react_engine.message import Msg, MsgRole, TextBlock, ThinkingBlock, ToolUseBlock
from agent_react_engine.model import ChatDelta, ChatUsage
from agent_react_engine.utils.json_parse import parse_tool_arguments

logger = get_logger("accumulator")


@dataclass
class ReasoningChunk:
    """A text or thinking fragment as it arrived, with both reporting views."""

    kind: str  # "text" or "thinking"
    fragment: str
    buffer: str  # buffer content including this fragment
    message_id: str
    agent_name: str

    def _build(self, value: str) -> Msg:
        block = TextBlock(value) if self.kind == delta_types.TEXT else ThinkingBlock(value)
        return Msg(
            name=self.agent_name,
            role=MsgRole.ASSISTANT,
            content=(block,),
            id=self.message_id,
            metadata={"chunk": True},
        )

    @cached_property
    def incremental(self) -> Msg:
        return self._build(self.fragment)

    @cached_property
    def cumulative(self) -> Msg:
        return self._build(self.buffer)


@dataclass
class AccumulatorUpdate:
    """What a single delta produced."""

    chunks: list[ReasoningChunk] = field(default_factory=list)
    released: list[Msg] = field(default_factory=list)


@dataclass
class _ToolCallBuilder:
    id: str
    name: str
    order: int
    raw: str = ""
    args: dict[str, Any] | None = None
    complete: bool = False

    def build(self) -> ToolUseBlock:
        if self.args is not None:
            return ToolUseBlock(id=self.id, name=self.name, input=dict(self.args), raw=self.raw)

        args, parsed_complete = parse_tool_arguments(self.raw)
        if not self.complete or not parsed_complete:
            logger.debug(
                "Tool call %s (%s) finalized with best-effort arguments", self.id, self.name
            )
        return ToolUseBlock(id=self.id, name=self.name, input=args, raw=self.raw)


class DeltaAccumulator:
    """
    Transient state for one reasoning step.

    Create one per model call; discard it after ``finalize()``.
    """

    def __init__(self, agent_name: str, message_id: str | None = None) -> None:
        self.agent_name = agent_name
        self.message_id = message_id or uuid.uuid4().hex
        self._text = ""
        self._thinking = ""
        self._tool_calls: dict[str, _ToolCallBuilder] = {}
        self._released: dict[str, Msg] = {}
        self._last_tool_call_id: str | None = None
        self._usage: ChatUsage | None = None
        self._finalized = False

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def text(self) -> str:
        return self._text

    @property
    def thinking(self) -> str:
        return self._thinking

    @property
    def usage(self) -> ChatUsage | None:
        return self._usage

    @property
    def has_content(self) -> bool:
        return bool(self._text or self._tool_calls)

    @property
    def released_tool_calls(self) -> list[ToolUseBlock]:
        """Tool calls already released, in order of first appearance."""
        return [b for m in self._released.values() for b in m.get_content_blocks(ToolUseBlock)]

    # ------------------------------------------------------------------
    # Folding
    # ------------------------------------------------------------------

    def add(self, delta: ChatDelta) -> AccumulatorUpdate:
        """Fold one delta into the state."""
        if self._finalized:
            raise RuntimeError("DeltaAccumulator already finalized")

        update = AccumulatorUpdate()
        kind = delta.type

        if kind == delta_types.TEXT:
            if delta.text:
                self._text += delta.text
                update.chunks.append(self._chunk(kind, delta.text, self._text))

        elif kind == delta_types.THINKING:
            if delta.text:
                self._thinking += delta.text
                update.chunks.append(self._chunk(kind, delta.text, self._thinking))

        elif kind == delta_types.TOOL_CALL_START:
            self._builder_for(delta, create=True)

        elif kind == delta_types.TOOL_CALL_DELTA:
            builder = self._builder_for(delta, create=True)
            if delta.args_delta:
                builder.raw += delta.args_delta

        elif kind == delta_types.TOOL_CALL_END:
            builder = self._builder_for(delta, create=False)
            if builder is not None:
                builder.complete = True
                update.released = self._release_ready()

        elif kind == delta_types.TOOL_CALL:
            builder = self._builder_for(delta, create=True)
            builder.args = dict(delta.args or {})
            builder.complete = True
            update.released = self._release_ready()

        elif kind == delta_types.USAGE:
            if delta.usage is not None:
                self._usage = delta.usage if self._usage is None else self._usage + delta.usage

        else:
            logger.debug("Ignoring unknown delta type: %s", kind)

        return update

    def finalize(self) -> list[Msg]:
        """
        Build the step's messages.

        Returns the merged text message (if any text arrived) followed by every
        tool-invocation message in order of first appearance. Calls whose
        arguments never completed are kept with best-effort arguments. Without
        text, the thinking is prepended to the first invocation message.
        """
        if self._finalized:
            raise RuntimeError("DeltaAccumulator already finalized")
        self._finalized = True

        msgs: list[Msg] = []
        if self._text:
            blocks: list[Any] = []
            if self._thinking:
                blocks.append(ThinkingBlock(self._thinking))
            blocks.append(TextBlock(self._text))
            metadata: dict[str, Any] = {}
            if self._usage is not None:
                metadata["usage"] = self._usage.to_dict()
            msgs.append(
                Msg(
                    name=self.agent_name,
                    role=MsgRole.ASSISTANT,
                    content=blocks,
                    id=self.message_id,
                    metadata=metadata,
                )
            )
        elif self._thinking and not self._tool_calls:
            logger.debug("Reasoning step produced thinking only; nothing to merge")

        for builder in sorted(self._tool_calls.values(), key=lambda b: b.order):
            msg = self._released.get(builder.id)
            if msg is None:
                msg = self._tool_msg(builder)
            if not msgs and self._thinking:
                # No text message to carry the reasoning; the first invocation does
                msg = msg.with_content((ThinkingBlock(self._thinking), *msg.content))
            msgs.append(msg)
        return msgs

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _chunk(self, kind: str, fragment: str, buffer: str) -> ReasoningChunk:
        return ReasoningChunk(
            kind=kind,
            fragment=fragment,
            buffer=buffer,
            message_id=self.message_id,
            agent_name=self.agent_name,
        )

    def _builder_for(self, delta: ChatDelta, create: bool) -> _ToolCallBuilder | None:
        tc_id = delta.tool_call_id
        if not tc_id:
            # Fragments without an id belong to the call announced last
            continues = delta.type in (delta_types.TOOL_CALL_DELTA, delta_types.TOOL_CALL_END)
            if continues and self._last_tool_call_id is not None:
                tc_id = self._last_tool_call_id
            elif create:
                tc_id = f"call_{uuid.uuid4().hex[:12]}"
            else:
                return None

        builder = self._tool_calls.get(tc_id)
        if builder is None:
            if not create:
                return None
            builder = _ToolCallBuilder(
                id=tc_id, name=delta.tool_name or "", order=len(self._tool_calls)
            )
            self._tool_calls[tc_id] = builder
        elif delta.tool_name and not builder.name:
            builder.name = delta.tool_name

        self._last_tool_call_id = tc_id
        return builder

    def _release_ready(self) -> list[Msg]:
        """Release completed calls whose predecessors are all released."""
        released: list[Msg] = []
        for builder in sorted(self._tool_calls.values(), key=lambda b: b.order):
            if builder.id in self._released:
                continue
            if not builder.complete:
                break
            msg = self._tool_msg(builder)
            self._released[builder.id] = msg
            released.append(msg)
        return released

    def _tool_msg(self, builder: _ToolCallBuilder) -> Msg:
        return Msg(
            name=self.agent_name,
            role=MsgRole.ASSISTANT,
            content=(builder.build(),),
        )

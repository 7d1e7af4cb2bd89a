"""
ReAct agent loop.

One ``reply()`` runs the loop below until the model stops requesting tools,
the iteration limit is hit, or an interruption is observed:

    START → REASONING → FINISH_CHECK ─finished→ TERMINATED
                ↑              │
                └── ACTING ←───┘

Every tool invocation the agent commits gets exactly one result in the log,
whether the call finishes normally, is interrupted, or fails.

Example:
    from agent_react_engine import ReActAgent, Msg, MsgRole
    from agent_react_engine.adapters.openai import OpenAIChatFormatter, OpenAIChatModel

    agent = ReActAgent.create(
        OpenAIChatModel.from_env(),
        tools=[get_weather],
        formatter=OpenAIChatFormatter(),
        sys_prompt="You are a helpful assistant.",
    )
    answer = await agent.reply(Msg("user", MsgRole.USER, "Weather in Paris?"))
    print(answer.text)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from enum import Enum
from typing import Any

from agent_react_engine.accumulator import DeltaAccumulator
from agent_react_engine.config import AgentConfig
from agent_react_engine.dispatch import dispatch_tool_calls, extract_pending_invocations
from agent_react_engine.events import AgentEvent, StreamingHook, StreamOptions
from agent_react_engine.formatter import Formatter, MsgListFormatter
from agent_react_engine.hooks import Hook, HookPipeline
from agent_react_engine.interruption import (
    AgentInterruptedError,
    InterruptContext,
    InterruptController,
    InterruptSource,
    find_unresolved_invocations,
)
from agent_react_engine.logging import get_agent_logger
from agent_react_engine.memory import InMemoryMemory, Memory
from agent_react_engine.message import (
    Msg,
    MsgRole,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    tool_result_msg,
)
from agent_react_engine.model import ChatModel, ChatUsage, GenerateOptions
from agent_react_engine.toolkit import BaseTool, Toolkit, ToolDefinition


class LoopState(str, Enum):
    START = "start"
    REASONING = "reasoning"
    FINISH_CHECK = "finish_check"
    ACTING = "acting"
    TERMINATED = "terminated"


class ReActAgent:
    """
    Reason-then-act agent.

    Args:
        model: Streaming chat model
        toolkit: Tool registry/executor (built from ``config`` if omitted)
        memory: Conversation log (a fresh ``InMemoryMemory`` if omitted)
        formatter: Converts messages to the model's payload
        hooks: A ``HookPipeline`` or a list of ``Hook`` objects
        config: Agent behavior
        options: Generation options forwarded to every model call
    """

    def __init__(
        self,
        model: ChatModel,
        toolkit: Toolkit | None = None,
        memory: Memory | None = None,
        formatter: Formatter | None = None,
        hooks: HookPipeline | list[Hook] | None = None,
        config: AgentConfig | None = None,
        options: GenerateOptions | None = None,
    ) -> None:
        self.model = model
        self.config = config or AgentConfig()
        self._log = get_agent_logger(self.config.name)
        if toolkit is None:
            toolkit = Toolkit(
                parallel=self.config.parallel_tool_calls,
                timeout_seconds=self.config.tool_timeout_seconds,
            )
        self.toolkit = toolkit
        self.memory = memory if memory is not None else InMemoryMemory()
        self.formatter = formatter or MsgListFormatter()
        if isinstance(hooks, HookPipeline):
            self.hooks = hooks
        else:
            self.hooks = HookPipeline(list(hooks or []), error_policy=self.config.hook_error_policy)
        self.options = options

        self._interrupts = InterruptController()
        self._lock = asyncio.Lock()
        self._state = LoopState.START
        self._iteration = 0
        self._usage = ChatUsage()

    @classmethod
    def create(
        cls,
        model: ChatModel,
        tools: Sequence[Any] | None = None,
        memory: Memory | None = None,
        formatter: Formatter | None = None,
        hooks: HookPipeline | list[Hook] | None = None,
        options: GenerateOptions | None = None,
        **config: Any,
    ) -> ReActAgent:
        """
        Build an agent from a model, a list of tools and config keywords.

        ``tools`` may hold ``ToolDefinition``, ``BaseTool`` instances or plain
        callables.
        """
        agent_config = AgentConfig(**config)
        toolkit = Toolkit(
            parallel=agent_config.parallel_tool_calls,
            timeout_seconds=agent_config.tool_timeout_seconds,
        )
        for tool in tools or []:
            if isinstance(tool, ToolDefinition):
                toolkit.register(tool)
            elif isinstance(tool, BaseTool):
                toolkit.register_tool(tool)
            elif callable(tool):
                toolkit.register_function(tool)
            else:
                raise TypeError(f"Unsupported tool: {tool!r}")
        return cls(
            model,
            toolkit=toolkit,
            memory=memory,
            formatter=formatter,
            hooks=hooks,
            config=agent_config,
            options=options,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def iteration(self) -> int:
        return self._iteration

    @property
    def cumulative_usage(self) -> ChatUsage:
        """Token usage summed over every reasoning step of this agent."""
        return self._usage

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def reply(self, msgs: Msg | Sequence[Msg] | None = None) -> Msg:
        """
        Run the loop for one caller turn and return the final message.

        Calls on the same instance are serialized. Interruption resolves with
        a recovery message; any other failure propagates after the log has
        been reconciled and ``on_error`` hooks have run.
        """
        async with self._lock:
            return await self._reply(msgs)

    async def stream(
        self,
        msgs: Msg | Sequence[Msg] | None = None,
        options: StreamOptions | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """
        Run one caller turn and yield its events as they happen.

        Closing the iterator early interrupts the run and waits for it to
        unwind. A run still queued behind another call is dropped instead.
        """
        queue: asyncio.Queue[Any] = asyncio.Queue()
        done = object()
        hook = StreamingHook(queue.put_nowait, options)
        closed = False
        started = False

        async def run() -> Msg | None:
            nonlocal started
            async with self._lock:
                if closed:
                    return None
                started = True
                unregister = self.hooks.register(hook)
                try:
                    return await self._reply(msgs)
                finally:
                    unregister()

        task = asyncio.ensure_future(run())
        task.add_done_callback(lambda _: queue.put_nowait(done))
        try:
            while True:
                item = await queue.get()
                if item is done:
                    break
                yield item
            await task
        finally:
            if not task.done():
                closed = True
                if started:
                    self.interrupt("stream closed", source=InterruptSource.USER)
                    await task
                else:
                    task.cancel()

    def interrupt(
        self,
        reason: str | None = None,
        source: InterruptSource = InterruptSource.USER,
    ) -> InterruptContext:
        """
        Ask the running call to stop at its next checkpoint.

        Must be called from the event loop the agent runs on.
        """
        return self._interrupts.interrupt(reason, source)

    def extract_pending_invocations(self) -> list[ToolUseBlock]:
        return extract_pending_invocations(self.memory.snapshot(), self.name)

    def is_finished(self) -> bool:
        """
        True if there is nothing left to act on.

        Finished when no invocation is pending, or when none of the pending
        invocation names resolves to a registered tool.
        """
        pending = self.extract_pending_invocations()
        if not pending:
            return True
        return all(self.toolkit.resolve(call.name) is None for call in pending)

    def final_response(self) -> Msg:
        """Most recent non-empty text message by this agent, else the last entry."""
        log = self.memory.snapshot()
        for msg in reversed(log):
            if msg.role == MsgRole.ASSISTANT and msg.name == self.name and msg.text:
                return msg
        if log:
            return log[-1]
        return Msg(name=self.name, role=MsgRole.ASSISTANT, content=(TextBlock(""),))

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _reply(self, msgs: Msg | Sequence[Msg] | None) -> Msg:
        self._interrupts.reset()
        self._iteration = 0
        self._state = LoopState.START
        inputs = _as_list(msgs)

        try:
            try:
                await self.hooks.pre_call(self, inputs)
                for msg in inputs:
                    self.memory.add(msg)
                result = await self._run_loop()
            except AgentInterruptedError as e:
                result = await self._recover(e.context)
            return await self.hooks.post_call(self, result)
        except (Exception, asyncio.CancelledError) as e:
            await self._fail(e)
            raise
        finally:
            self._state = LoopState.TERMINATED
            self._log.debug("Terminated after %d iteration(s)", self._iteration)

    async def _run_loop(self) -> Msg:
        while True:
            self._interrupts.checkpoint()
            if self._iteration >= self.config.max_iters:
                return self._max_iters_reached()

            await self._reasoning()

            self._state = LoopState.FINISH_CHECK
            if self.is_finished():
                pending = self.extract_pending_invocations()
                if pending:
                    await self._resolve_unknown_tools(pending)
                return self.final_response()

            await self._acting()
            self._iteration += 1

    async def _reasoning(self) -> None:
        self._state = LoopState.REASONING
        self._log.debug("Reasoning (iteration %d)", self._iteration)

        prompt = await self.hooks.pre_reasoning(self, self._build_prompt())
        payload = self.formatter.format(prompt)
        acc = DeltaAccumulator(self.name)

        stream = self.model.stream(payload, self.toolkit.schemas(), self.options)
        try:
            async for delta in stream:
                update = acc.add(delta)
                for chunk in update.chunks:
                    await self.hooks.on_reasoning_chunk(self, chunk)
                for msg in update.released:
                    self._interrupts.add_pending(msg.get_content_blocks(ToolUseBlock))
                if self._interrupts.is_interrupted:
                    self._log.debug("Interrupt observed mid-stream; finalizing partial step")
                    break
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        msgs = acc.finalize()
        if acc.usage is not None:
            self._usage = self._usage + acc.usage
        msgs = await self.hooks.post_reasoning(self, msgs)
        # Released invocations are committed with the rest of the step, not on release
        for msg in msgs:
            self.memory.add(msg)

        self._interrupts.checkpoint()

    async def _acting(self) -> None:
        self._state = LoopState.ACTING
        pending = self.extract_pending_invocations()
        self._log.debug("Acting on %d tool call(s)", len(pending))

        dispatched = [await self.hooks.pre_acting(self, call) for call in pending]

        async def on_chunk(tool_use: ToolUseBlock, chunk: ToolResultBlock) -> None:
            await self.hooks.on_acting_chunk(self, tool_use, chunk)

        if self._interrupts.is_interrupted:
            results: list[ToolResultBlock | None] = [None] * len(pending)
        else:
            results = await dispatch_tool_calls(
                self.toolkit,
                dispatched,
                should_stop=lambda: self._interrupts.is_interrupted,
                on_chunk=on_chunk,
                on_interrupt=lambda reason: self.interrupt(reason, source=InterruptSource.TOOL),
            )

        for call, result in zip(pending, results):
            if result is None:
                result = self._interrupted_result(call)
            await self._commit_result(call, result)

        self._interrupts.checkpoint()

    # ------------------------------------------------------------------
    # Termination paths
    # ------------------------------------------------------------------

    def _max_iters_reached(self) -> Msg:
        self._log.info("Reached max_iters=%d", self.config.max_iters)
        msg = Msg(
            name=self.name,
            role=MsgRole.ASSISTANT,
            content=(
                f"Maximum iterations ({self.config.max_iters}) reached. "
                "Please refine your request."
            ),
            metadata={"finish_reason": "max_iters"},
        )
        self.memory.add(msg)
        return msg

    async def _resolve_unknown_tools(self, pending: list[ToolUseBlock]) -> None:
        names = sorted({call.name for call in pending})
        self._log.warning(
            "Finished on unregistered tool(s) %s; the reply may be truncated",
            ", ".join(names),
        )
        for call in pending:
            await self._commit_result(
                call,
                ToolResultBlock.error(f"Tool '{call.name}' not found", id=call.id, name=call.name),
            )

    async def _recover(self, context: InterruptContext) -> Msg:
        self._log.info(
            "Interrupted (source=%s, reason=%s)",
            context.source.value,
            context.reason,
        )
        for call in find_unresolved_invocations(self.memory.snapshot(), self.name):
            await self._commit_result(call, self._interrupted_result(call, context))

        msg = Msg(
            name=self.name,
            role=MsgRole.ASSISTANT,
            content=self.config.recovery_message,
            metadata={
                "finish_reason": "interrupted",
                "interrupt_source": context.source.value,
                "interrupt_reason": context.reason,
            },
        )
        self.memory.add(msg)
        return msg

    async def _fail(self, error: BaseException) -> None:
        reason = str(error) or type(error).__name__
        for call in find_unresolved_invocations(self.memory.snapshot(), self.name):
            result = ToolResultBlock.error(
                f"Tool call aborted: {reason}", id=call.id, name=call.name
            )
            self.memory.add(tool_result_msg(result, self.name))
        self._log.debug("Failed: %s", reason)
        await self.hooks.on_error(self, error)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_prompt(self) -> list[Msg]:
        msgs: list[Msg] = []
        if self.config.sys_prompt:
            msgs.append(Msg(name="system", role=MsgRole.SYSTEM, content=self.config.sys_prompt))
        msgs.extend(self.memory.snapshot())
        return msgs

    def _interrupted_result(
        self, call: ToolUseBlock, context: InterruptContext | None = None
    ) -> ToolResultBlock:
        context = context or self._interrupts.context or InterruptContext()
        return ToolResultBlock.interrupted_result(
            call,
            self.config.interrupted_tool_message,
            metadata={"source": context.source.value, "reason": context.reason},
        )

    async def _commit_result(self, call: ToolUseBlock, result: ToolResultBlock) -> None:
        result = await self.hooks.post_acting(self, call, result)
        self.memory.add(tool_result_msg(result.with_id_and_name(call.id, call.name), self.name))


def _as_list(msgs: Msg | Sequence[Msg] | None) -> list[Msg]:
    if msgs is None:
        return []
    if isinstance(msgs, Msg):
        return [msgs]
    return list(msgs)

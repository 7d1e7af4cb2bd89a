"""Tests for the ReAct agent loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any

import pytest

from agent_react_engine.agent import LoopState, ReActAgent
from agent_react_engine.config import DEFAULT_RECOVERY_MESSAGE, AgentConfig
from agent_react_engine.hooks import Hook, HookPipeline
from agent_react_engine.interruption import ToolInterruptedError
from agent_react_engine.memory import InMemoryMemory
from agent_react_engine.message import (
    Msg,
    MsgRole,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from agent_react_engine.model import ChatDelta, GenerateOptions
from agent_react_engine.toolkit import Toolkit
from helpers import (
    WEATHER_SCHEMA,
    ScriptedModel,
    assert_paired,
    get_weather,
    streamed_tool_call,
    text_step,
    tool_step,
    usage_delta,
    user,
)


def _agent(model: ScriptedModel, toolkit: Toolkit | None = None, **config: Any) -> ReActAgent:
    return ReActAgent(model, toolkit=toolkit, config=AgentConfig(**config))


def _results(log: tuple[Msg, ...]) -> list[ToolResultBlock]:
    return [b for m in log for b in m.get_content_blocks(ToolResultBlock)]


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    @pytest.mark.asyncio
    async def test_text_only_reply(self, make_model: Any, toolkit: Toolkit) -> None:
        model = make_model(text_step("The weather in ", "Paris is sunny"))
        agent = _agent(model, toolkit)

        reply = await agent.reply(user("Weather?"))

        log = agent.memory.snapshot()
        assert len(log) == 2
        assert log[1].text == "The weather in Paris is sunny"
        assert reply is log[1]
        assert agent.iteration == 0
        assert agent.state is LoopState.TERMINATED

    @pytest.mark.asyncio
    async def test_single_tool_round_trip(self, make_model: Any, toolkit: Toolkit) -> None:
        model = make_model(
            tool_step("1", "get_weather", {"city": "Paris"}),
            text_step("It's sunny"),
        )
        agent = _agent(model, toolkit)

        reply = await agent.reply(user("Weather in Paris?"))

        log = agent.memory.snapshot()
        assert [m.role for m in log] == [
            MsgRole.USER,
            MsgRole.ASSISTANT,
            MsgRole.TOOL,
            MsgRole.ASSISTANT,
        ]
        assert log[1].first_block == ToolUseBlock(
            id="1", name="get_weather", input={"city": "Paris"}
        )
        result = log[2].first_block
        assert isinstance(result, ToolResultBlock)
        assert (result.id, result.output) == ("1", "Sunny in Paris")
        assert reply.text == "It's sunny"
        assert len(model.calls) == 2

    @pytest.mark.asyncio
    async def test_finish_check_before_acting(self, make_model: Any, toolkit: Toolkit) -> None:
        finished: list[bool] = []
        model = make_model(
            tool_step("1", "get_weather", {"city": "Paris"}),
            text_step("It's sunny"),
        )
        agent = _agent(model, toolkit)
        agent.hooks.on("pre_acting", lambda a, call: finished.append(a.is_finished()))

        await agent.reply(user("Weather in Paris?"))

        assert finished == [False]

    @pytest.mark.asyncio
    async def test_unregistered_tool_is_implicit_finish(
        self, make_model: Any, toolkit: Toolkit, caplog: pytest.LogCaptureFixture
    ) -> None:
        model = make_model([ChatDelta.text_delta("Let me check"), *tool_step("2", "nonexistent_tool", {})])
        agent = _agent(model, toolkit)

        with caplog.at_level(logging.WARNING, logger="agent_react_engine"):
            reply = await agent.reply(user("Do something"))

        assert reply.text == "Let me check"
        assert len(model.calls) == 1
        assert "nonexistent_tool" in caplog.text
        (result,) = _results(agent.memory.snapshot())
        assert result.id == "2"
        assert result.is_error
        assert_paired(agent.memory.snapshot())

    @pytest.mark.asyncio
    async def test_unregistered_tool_without_text_returns_last_entry(
        self, make_model: Any, toolkit: Toolkit
    ) -> None:
        model = make_model(tool_step("2", "nonexistent_tool", {}))
        agent = _agent(model, toolkit)

        reply = await agent.reply(user("Do something"))

        assert reply is agent.memory.snapshot()[-1]
        assert reply.role is MsgRole.TOOL

    @pytest.mark.asyncio
    async def test_max_iters_sentinel(self, make_model: Any, toolkit: Toolkit) -> None:
        model = make_model(tool_step("1", "get_weather", {"city": "Paris"}))
        agent = _agent(model, toolkit, max_iters=1)

        reply = await agent.reply(user("Weather?"))

        assert reply.text == "Maximum iterations (1) reached. Please refine your request."
        assert reply.metadata["finish_reason"] == "max_iters"
        assert len(model.calls) == 1
        assert agent.memory.snapshot()[-1] is reply
        assert_paired(agent.memory.snapshot())

    @pytest.mark.asyncio
    async def test_interrupt_with_pending_invocation(
        self, make_model: Any, toolkit: Toolkit
    ) -> None:
        model = make_model(
            [
                ChatDelta.tool_call("9", "get_weather", {"city": "Paris"}),
                lambda: agent.interrupt("user pressed stop"),
            ]
        )
        agent = _agent(model, toolkit)

        reply = await agent.reply(user("Weather?"))

        log = agent.memory.snapshot()
        result = log[-2].first_block
        assert isinstance(result, ToolResultBlock)
        assert result.id == "9"
        assert result.interrupted
        assert result.output == agent.config.interrupted_tool_message
        assert reply is log[-1]
        assert reply.text == DEFAULT_RECOVERY_MESSAGE
        assert reply.metadata["finish_reason"] == "interrupted"
        assert reply.metadata["interrupt_reason"] == "user pressed stop"
        assert_paired(log)


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class TestProperties:
    @pytest.mark.asyncio
    async def test_bounded_termination(self, make_model: Any, toolkit: Toolkit) -> None:
        model = make_model(
            *[tool_step(str(i), "get_weather", {"city": "Paris"}) for i in range(3)]
        )
        agent = _agent(model, toolkit, max_iters=3)

        reply = await agent.reply(user("loop forever"))

        assert len(model.calls) == 3
        assert reply.metadata["finish_reason"] == "max_iters"

    @pytest.mark.asyncio
    async def test_finish_check_is_idempotent(self, make_model: Any, toolkit: Toolkit) -> None:
        model = make_model(tool_step("1", "get_weather", {"city": "Paris"}))
        agent = _agent(model, toolkit, max_iters=1)
        agent.memory.add(user("hi"))
        agent.memory.add(
            Msg(
                name=agent.name,
                role=MsgRole.ASSISTANT,
                content=[ToolUseBlock(id="1", name="get_weather")],
            )
        )
        before = agent.memory.snapshot()

        assert [agent.is_finished() for _ in range(3)] == [False, False, False]
        assert agent.memory.snapshot() == before

    @pytest.mark.asyncio
    async def test_results_commit_in_invocation_order(self, make_model: Any) -> None:
        async def wait(args: dict[str, Any]) -> str:
            await asyncio.sleep(args["delay"])
            return f"waited {args['delay']}"

        toolkit = Toolkit(parallel=True)
        toolkit.register_function(wait)
        step = [
            ChatDelta.tool_call("a", "wait", {"delay": 0.03}),
            ChatDelta.tool_call("b", "wait", {"delay": 0.0}),
            ChatDelta.tool_call("c", "wait", {"delay": 0.01}),
        ]
        model = make_model(step, text_step("done"))
        agent = _agent(model, toolkit)

        await agent.reply(user("go"))

        assert [r.id for r in _results(agent.memory.snapshot())] == ["a", "b", "c"]
        assert_paired(agent.memory.snapshot())

    @pytest.mark.asyncio
    async def test_streamed_tool_calls_commit_in_announcement_order(
        self, make_model: Any, toolkit: Toolkit
    ) -> None:
        step = [
            *streamed_tool_call("1", "get_weather", '{"city": "Paris"}'),
            *streamed_tool_call("2", "get_weather", '{"city": "Rome"}'),
        ]
        model = make_model(step, text_step("done"))
        agent = _agent(model, toolkit)

        await agent.reply(user("two cities"))

        log = agent.memory.snapshot()
        uses = [b.id for m in log for b in m.get_content_blocks(ToolUseBlock)]
        assert uses == ["1", "2"]
        assert [r.output for r in _results(log)] == ["Sunny in Paris", "Sunny in Rome"]


# ---------------------------------------------------------------------------
# Loop behavior
# ---------------------------------------------------------------------------


class TestLoop:
    @pytest.mark.asyncio
    async def test_reasoning_before_tool_call_is_kept(
        self, make_model: Any, toolkit: Toolkit
    ) -> None:
        model = make_model(
            [
                ChatDelta.thinking_delta("I should check the weather"),
                ChatDelta.tool_call("1", "get_weather", {"city": "Paris"}),
            ],
            text_step("Sunny."),
        )
        agent = _agent(model, toolkit)

        await agent.reply(user("Weather?"))

        log = agent.memory.snapshot()
        assert log[1].content[0] == ThinkingBlock("I should check the weather")
        assert log[1].get_content_blocks(ToolUseBlock)[0].id == "1"
        assert log[2].first_block.output == "Sunny in Paris"
        assert_paired(log)

    @pytest.mark.asyncio
    async def test_always_reasons_once_without_input(self, make_model: Any) -> None:
        memory = InMemoryMemory([user("hi"), Msg(name="other", role=MsgRole.ASSISTANT, content="hello")])
        model = make_model(text_step("my turn"))
        agent = ReActAgent(model, memory=memory)

        reply = await agent.reply()

        assert reply.text == "my turn"
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_system_prompt_prepended(self, make_model: Any) -> None:
        model = make_model(text_step("ok"))
        agent = _agent(model, sys_prompt="Be brief.")

        await agent.reply(user("hi"))

        messages, _, _ = model.calls[0]
        assert messages[0].role is MsgRole.SYSTEM
        assert messages[0].text == "Be brief."
        assert all(m.role is not MsgRole.SYSTEM for m in agent.memory.snapshot())

    @pytest.mark.asyncio
    async def test_tool_schemas_and_options_reach_model(
        self, make_model: Any, toolkit: Toolkit
    ) -> None:
        model = make_model(text_step("ok"))
        options = GenerateOptions(temperature=0.2)
        agent = ReActAgent(model, toolkit=toolkit, options=options)

        await agent.reply(user("hi"))

        _, tools, passed = model.calls[0]
        assert tools[0]["function"]["parameters"] == WEATHER_SCHEMA
        assert passed is options

    @pytest.mark.asyncio
    async def test_accepts_list_of_messages(self, make_model: Any) -> None:
        model = make_model(text_step("ok"))
        agent = _agent(model)

        await agent.reply([user("one"), user("two")])

        assert [m.text for m in agent.memory.snapshot()] == ["one", "two", "ok"]

    @pytest.mark.asyncio
    async def test_usage_accumulates(self, make_model: Any, toolkit: Toolkit) -> None:
        model = make_model(
            [*tool_step("1", "get_weather", {"city": "Paris"}), usage_delta(10, 5)],
            [*text_step("done"), usage_delta(20, 3)],
        )
        agent = _agent(model, toolkit)

        reply = await agent.reply(user("hi"))

        assert agent.cumulative_usage.input_tokens == 30
        assert agent.cumulative_usage.output_tokens == 8
        assert reply.metadata["usage"]["input_tokens"] == 20

    @pytest.mark.asyncio
    async def test_tool_failure_is_fed_back(self, make_model: Any) -> None:
        def broken(args: dict[str, Any]) -> str:
            raise RuntimeError("disk full")

        toolkit = Toolkit()
        toolkit.register_function(broken)
        model = make_model(tool_step("1", "broken", {}), text_step("sorry"))
        agent = _agent(model, toolkit)

        reply = await agent.reply(user("save"))

        (result,) = _results(agent.memory.snapshot())
        assert result.output == "Error: Tool execution failed: disk full"
        assert reply.text == "sorry"

    @pytest.mark.asyncio
    async def test_replies_are_serialized(self, make_model: Any) -> None:
        model = make_model(text_step("first"), text_step("second"), delay=0.005)
        agent = _agent(model)

        await asyncio.gather(agent.reply(user("a")), agent.reply(user("b")))

        assert [m.text for m in agent.memory.snapshot()] == ["a", "first", "b", "second"]
        first_prompt, _, _ = model.calls[0]
        second_prompt, _, _ = model.calls[1]
        assert len(first_prompt) == 1
        assert len(second_prompt) == 3

    @pytest.mark.asyncio
    async def test_shared_memory_between_agents(self, make_model: Any, toolkit: Toolkit) -> None:
        memory = InMemoryMemory()
        alice = ReActAgent(
            make_model(tool_step("1", "get_weather", {"city": "Paris"}), text_step("Sunny.")),
            toolkit=toolkit,
            memory=memory,
            config=AgentConfig(name="alice"),
        )
        bob = ReActAgent(make_model(text_step("Thanks alice")), memory=memory, config=AgentConfig(name="bob"))

        await alice.reply(user("Weather?"))
        reply = await bob.reply()

        assert reply.name == "bob"
        assert bob.extract_pending_invocations() == []
        assert_paired(memory.snapshot())

    @pytest.mark.asyncio
    async def test_create_with_callables(self, make_model: Any) -> None:
        model = make_model(tool_step("1", "get_weather", {"city": "Oslo"}), text_step("done"))
        agent = ReActAgent.create(model, tools=[get_weather], name="helper", max_iters=4)

        await agent.reply(user("Weather in Oslo?"))

        assert agent.name == "helper"
        assert agent.config.max_iters == 4
        assert _results(agent.memory.snapshot())[0].output == "Sunny in Oslo"

    def test_create_rejects_unknown_tools(self, make_model: Any) -> None:
        with pytest.raises(TypeError):
            ReActAgent.create(make_model(), tools=[42])

    @pytest.mark.asyncio
    async def test_final_response_on_empty_log(self, make_model: Any) -> None:
        model = make_model([])
        agent = _agent(model)

        reply = await agent.reply()

        assert reply.text == ""
        assert reply.name == agent.name


# ---------------------------------------------------------------------------
# Hooks in the loop
# ---------------------------------------------------------------------------


class TestHooks:
    @pytest.mark.asyncio
    async def test_extension_points_fire_in_order(
        self, make_model: Any, toolkit: Toolkit
    ) -> None:
        seen: list[str] = []

        class Tracer(Hook):
            async def pre_call(self, agent: Any, msgs: list[Msg]) -> None:
                seen.append("pre_call")

            async def pre_reasoning(self, agent: Any, msgs: list[Msg]) -> None:
                seen.append("pre_reasoning")

            async def on_reasoning_chunk(self, agent: Any, chunk: Msg) -> None:
                seen.append(f"chunk:{chunk.text}")

            async def post_reasoning(self, agent: Any, msgs: list[Msg]) -> None:
                seen.append("post_reasoning")

            async def pre_acting(self, agent: Any, tool_use: ToolUseBlock) -> None:
                seen.append(f"pre_acting:{tool_use.id}")

            async def post_acting(self, agent: Any, tool_use: ToolUseBlock, result: Any) -> None:
                seen.append(f"post_acting:{result.id}")

            async def post_call(self, agent: Any, msg: Msg) -> None:
                seen.append("post_call")

        model = make_model(tool_step("1", "get_weather", {"city": "Paris"}), text_step("a", "b"))
        agent = ReActAgent(model, toolkit=toolkit, hooks=[Tracer()])

        await agent.reply(user("hi"))

        assert seen == [
            "pre_call",
            "pre_reasoning",
            "post_reasoning",
            "pre_acting:1",
            "post_acting:1",
            "pre_reasoning",
            "chunk:a",
            "chunk:b",
            "post_reasoning",
            "post_call",
        ]

    @pytest.mark.asyncio
    async def test_pre_reasoning_rewrites_model_input_only(self, make_model: Any) -> None:
        model = make_model(text_step("ok"))
        agent = _agent(model)
        agent.hooks.on(
            "pre_reasoning",
            lambda a, msgs: msgs + [Msg(name="system", role=MsgRole.SYSTEM, content="extra")],
        )

        await agent.reply(user("hi"))

        messages, _, _ = model.calls[0]
        assert messages[-1].text == "extra"
        assert len(agent.memory.snapshot()) == 2

    @pytest.mark.asyncio
    async def test_post_reasoning_rewrites_committed_messages(self, make_model: Any) -> None:
        model = make_model(text_step("secret plan"))
        agent = _agent(model)
        agent.hooks.on(
            "post_reasoning",
            lambda a, msgs: [m.with_content(m.text.replace("secret", "[redacted]")) for m in msgs],
        )

        reply = await agent.reply(user("hi"))

        assert reply.text == "[redacted] plan"

    @pytest.mark.asyncio
    async def test_pre_acting_rewrite_keeps_invocation_id(
        self, make_model: Any, toolkit: Toolkit
    ) -> None:
        model = make_model(tool_step("1", "get_weather", {"city": "Paris"}), text_step("ok"))
        agent = _agent(model, toolkit)
        agent.hooks.on(
            "pre_acting", lambda a, call: replace(call, id="rewritten", input={"city": "Rome"})
        )

        await agent.reply(user("hi"))

        (result,) = _results(agent.memory.snapshot())
        assert result.id == "1"
        assert result.output == "Sunny in Rome"
        assert_paired(agent.memory.snapshot())

    @pytest.mark.asyncio
    async def test_post_acting_rewrite_keeps_invocation_id(
        self, make_model: Any, toolkit: Toolkit
    ) -> None:
        model = make_model(tool_step("1", "get_weather", {"city": "Paris"}), text_step("ok"))
        agent = _agent(model, toolkit)
        agent.hooks.on(
            "post_acting",
            lambda a, call, result: ToolResultBlock.text("rewritten", id="other", name="other"),
        )

        await agent.reply(user("hi"))

        (result,) = _results(agent.memory.snapshot())
        assert (result.id, result.name, result.output) == ("1", "get_weather", "rewritten")

    @pytest.mark.asyncio
    async def test_post_call_rewrites_reply(self, make_model: Any) -> None:
        model = make_model(text_step("hello"))
        agent = _agent(model)
        agent.hooks.on("post_call", lambda a, msg: msg.with_content(msg.text.upper()))

        reply = await agent.reply(user("hi"))

        assert reply.text == "HELLO"

    @pytest.mark.asyncio
    async def test_acting_chunks_reach_hooks(self, make_model: Any) -> None:
        chunks: list[str] = []

        async def progress(args: dict[str, Any], emit: Any) -> str:
            await emit("half")
            return "done"

        toolkit = Toolkit()
        toolkit.register_function(progress, streaming=True)
        model = make_model(tool_step("1", "progress", {}), text_step("ok"))
        agent = _agent(model, toolkit)
        agent.hooks.on("on_acting_chunk", lambda a, call, chunk: chunks.append(chunk.output))

        await agent.reply(user("hi"))

        assert chunks == ["half"]

    @pytest.mark.asyncio
    async def test_failing_acting_chunk_hook_fails_reply_under_raise_policy(
        self, make_model: Any
    ) -> None:
        async def progress(args: dict[str, Any], emit: Any) -> str:
            await emit("half")
            return "done"

        def broken(agent: Any, call: ToolUseBlock, chunk: ToolResultBlock) -> None:
            raise RuntimeError("hook failed")

        toolkit = Toolkit()
        toolkit.register_function(progress, streaming=True)
        model = make_model(tool_step("1", "progress", {}), text_step("ok"))
        agent = _agent(model, toolkit, hook_error_policy="raise")
        agent.hooks.on("on_acting_chunk", broken)

        with pytest.raises(RuntimeError, match="hook failed"):
            await agent.reply(user("hi"))

        (result,) = _results(agent.memory.snapshot())
        assert result.output == "Error: Tool call aborted: hook failed"
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_failing_hook_is_logged_by_default(
        self, make_model: Any, caplog: pytest.LogCaptureFixture
    ) -> None:
        def broken(agent: Any, msgs: list[Msg]) -> None:
            raise RuntimeError("hook boom")

        model = make_model(text_step("ok"))
        agent = _agent(model)
        agent.hooks.on("pre_reasoning", broken)

        with caplog.at_level(logging.WARNING, logger="agent_react_engine"):
            reply = await agent.reply(user("hi"))

        assert reply.text == "ok"
        assert "hook boom" in caplog.text

    @pytest.mark.asyncio
    async def test_hook_pipeline_instance_is_used(self, make_model: Any) -> None:
        pipeline = HookPipeline(error_policy="raise")
        agent = ReActAgent(make_model(), hooks=pipeline)
        assert agent.hooks is pipeline


# ---------------------------------------------------------------------------
# Errors and cancellation
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.asyncio
    async def test_model_failure_commits_nothing(self, make_model: Any) -> None:
        errors: list[BaseException] = []
        model = make_model([ChatDelta.text_delta("partial"), RuntimeError("connection reset")])
        agent = _agent(model)
        agent.hooks.on("on_error", lambda a, error: errors.append(error))

        with pytest.raises(RuntimeError, match="connection reset"):
            await agent.reply(user("hi"))

        assert [m.text for m in agent.memory.snapshot()] == ["hi"]
        assert len(errors) == 1
        assert agent.state is LoopState.TERMINATED

    @pytest.mark.asyncio
    async def test_failure_reconciles_pending_invocations(
        self, make_model: Any, toolkit: Toolkit
    ) -> None:
        def broken(agent: Any, call: ToolUseBlock) -> None:
            raise RuntimeError("hook boom")

        model = make_model(tool_step("1", "get_weather", {"city": "Paris"}))
        agent = _agent(model, toolkit, hook_error_policy="raise")
        agent.hooks.on("pre_acting", broken)

        with pytest.raises(RuntimeError, match="hook boom"):
            await agent.reply(user("hi"))

        log = agent.memory.snapshot()
        (result,) = _results(log)
        assert result.id == "1"
        assert result.is_error
        assert result.output == "Error: Tool call aborted: hook boom"
        assert_paired(log)

    @pytest.mark.asyncio
    async def test_cancellation_reconciles_pending_invocations(self, make_model: Any) -> None:
        started = asyncio.Event()

        async def hang(args: dict[str, Any]) -> str:
            started.set()
            await asyncio.sleep(60)
            return "never"

        toolkit = Toolkit()
        toolkit.register_function(hang)
        model = make_model(tool_step("1", "hang", {}))
        agent = _agent(model, toolkit)
        errors: list[BaseException] = []
        agent.hooks.on("on_error", lambda a, error: errors.append(error))

        task = asyncio.ensure_future(agent.reply(user("hi")))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert_paired(agent.memory.snapshot())
        assert isinstance(errors[0], asyncio.CancelledError)


# ---------------------------------------------------------------------------
# Interruption
# ---------------------------------------------------------------------------


class TestInterruption:
    @pytest.mark.asyncio
    async def test_interrupt_during_reasoning(self, make_model: Any, toolkit: Toolkit) -> None:
        model = make_model(
            [
                ChatDelta.tool_call("1", "get_weather", {"city": "Paris"}),
                lambda: agent.interrupt("stop"),
                ChatDelta.text_delta("more"),
                ChatDelta.text_delta(" never seen"),
            ]
        )
        agent = _agent(model, toolkit)

        reply = await agent.reply(user("hi"))

        log = agent.memory.snapshot()
        assert log[1].text == "more"
        assert log[2].first_block.id == "1"
        result = log[3].first_block
        assert isinstance(result, ToolResultBlock) and result.interrupted
        assert reply is log[-1]
        assert reply.text == DEFAULT_RECOVERY_MESSAGE
        assert_paired(log)

    @pytest.mark.asyncio
    async def test_synthesized_results_pass_post_acting(
        self, make_model: Any, toolkit: Toolkit
    ) -> None:
        seen: list[bool] = []
        model = make_model(
            [ChatDelta.tool_call("1", "get_weather", {"city": "Paris"}), lambda: agent.interrupt()]
            + text_step("x")
        )
        agent = _agent(model, toolkit)
        agent.hooks.on("post_acting", lambda a, call, result: seen.append(result.interrupted))

        await agent.reply(user("hi"))

        assert seen == [True]

    @pytest.mark.asyncio
    async def test_recovery_message_passes_post_call(self, make_model: Any, toolkit: Toolkit) -> None:
        model = make_model([lambda: agent.interrupt()] + text_step("x"))
        agent = _agent(model, toolkit, recovery_message="Stopped.")
        agent.hooks.on("post_call", lambda a, msg: msg.with_content(msg.text + "!"))

        reply = await agent.reply(user("hi"))

        assert reply.text == "Stopped.!"

    @pytest.mark.asyncio
    async def test_interrupt_in_parallel_batch(self, make_model: Any) -> None:
        slow_done = asyncio.Event()

        def fast(args: dict[str, Any]) -> str:
            agent.interrupt("enough")
            return "fast"

        async def slow(args: dict[str, Any]) -> str:
            await asyncio.sleep(0.02)
            slow_done.set()
            return "slow"

        toolkit = Toolkit(parallel=True)
        toolkit.register_function(fast)
        toolkit.register_function(slow)
        model = make_model(
            [ChatDelta.tool_call("a", "slow", {}), ChatDelta.tool_call("b", "fast", {})]
        )
        agent = _agent(model, toolkit)

        reply = await agent.reply(user("hi"))

        a, b = _results(agent.memory.snapshot())
        assert (a.id, a.interrupted) == ("a", True)
        assert (b.id, b.output, b.interrupted) == ("b", "fast", False)
        assert reply.metadata["finish_reason"] == "interrupted"
        assert_paired(agent.memory.snapshot())
        await asyncio.wait_for(slow_done.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_finished_tool_result_survives_interrupt(self, make_model: Any) -> None:
        side_effects: list[str] = []

        def send_email(args: dict[str, Any]) -> str:
            side_effects.append("sent")
            agent.interrupt("user pressed stop")
            return "email sent"

        def archive(args: dict[str, Any]) -> str:
            side_effects.append("archived")
            return "archived"

        toolkit = Toolkit(parallel=False)
        toolkit.register_function(send_email)
        toolkit.register_function(archive)
        model = make_model(
            [ChatDelta.tool_call("1", "send_email", {}), ChatDelta.tool_call("2", "archive", {})]
        )
        agent = _agent(model, toolkit)

        reply = await agent.reply(user("Send it"))

        sent, archived = _results(agent.memory.snapshot())
        assert side_effects == ["sent"]
        assert (sent.id, sent.output, sent.interrupted) == ("1", "email sent", False)
        assert (archived.id, archived.interrupted) == ("2", True)
        assert reply.text == DEFAULT_RECOVERY_MESSAGE
        assert_paired(agent.memory.snapshot())

    @pytest.mark.asyncio
    async def test_tool_can_interrupt_the_agent(self, make_model: Any) -> None:
        def deploy(args: dict[str, Any]) -> str:
            raise ToolInterruptedError("Deployment needs human approval")

        toolkit = Toolkit(parallel=False)
        toolkit.register_function(deploy)
        toolkit.register_function(lambda args: "notified", name="notify")
        model = make_model(
            [ChatDelta.tool_call("1", "deploy", {}), ChatDelta.tool_call("2", "notify", {})]
        )
        agent = _agent(model, toolkit)

        reply = await agent.reply(user("Ship it"))

        deployed, notified = _results(agent.memory.snapshot())
        assert deployed.interrupted
        assert deployed.output == "Deployment needs human approval"
        assert notified.interrupted
        assert notified.metadata["source"] == "tool"
        assert reply.metadata["finish_reason"] == "interrupted"
        assert reply.metadata["interrupt_source"] == "tool"
        assert reply.metadata["interrupt_reason"] == "Deployment needs human approval"
        assert len(model.calls) == 1
        assert_paired(agent.memory.snapshot())

    @pytest.mark.asyncio
    async def test_flag_is_reset_per_reply(self, make_model: Any) -> None:
        model = make_model(text_step("ok"))
        agent = _agent(model)
        agent.interrupt("stale")

        reply = await agent.reply(user("hi"))

        assert reply.text == "ok"

    @pytest.mark.asyncio
    async def test_interrupt_context_records_pending_calls(
        self, make_model: Any, toolkit: Toolkit
    ) -> None:
        contexts: list[Any] = []
        model = make_model(
            [
                ChatDelta.tool_call("1", "get_weather", {"city": "Paris"}),
                lambda: contexts.append(agent.interrupt()),
                ChatDelta.text_delta("x"),
            ]
        )
        agent = _agent(model, toolkit)

        await agent.reply(user("hi"))

        assert [c.id for c in contexts[0].pending_tool_calls] == ["1"]


def test_default_construction(make_model: Any) -> None:
    agent = ReActAgent(make_model())
    assert agent.name == "assistant"
    assert agent.state is LoopState.START
    assert isinstance(agent.memory, InMemoryMemory)
    assert len(agent.toolkit) == 0
    assert agent.final_response().content == (TextBlock(""),)

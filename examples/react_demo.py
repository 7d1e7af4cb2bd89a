#!/usr/bin/env python3
"""
ReAct Engine Demo

Runs a small tool-using agent against any OpenAI-compatible endpoint.

Usage:
    # Reads OPENAI_BASE_URL, OPENAI_API_KEY and OPENAI_MODEL (.env is loaded)
    python examples/react_demo.py

    # Print events as they stream
    python examples/react_demo.py --stream
"""

import asyncio
import sys
from datetime import datetime, timezone

from agent_react_engine import EventType, Msg, MsgRole, ReActAgent, StreamOptions
from agent_react_engine.adapters.openai import OpenAIChatFormatter, OpenAIChatModel
from agent_react_engine.logging import setup_logging


def current_time(args: dict) -> str:
    """Current UTC time in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def add(args: dict) -> str:
    """Add two numbers."""
    return str(args["a"] + args["b"])


def build_agent() -> ReActAgent:
    agent = ReActAgent.create(
        OpenAIChatModel.from_env(),
        tools=[current_time],
        formatter=OpenAIChatFormatter(),
        sys_prompt="You are a helpful assistant. Use tools when they help.",
        max_iters=5,
    )
    agent.toolkit.register_function(
        add,
        parameters={
            "type": "object",
            "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
            "required": ["a", "b"],
        },
    )
    return agent


async def demo_reply(agent: ReActAgent) -> None:
    print("=" * 60)
    print("Reply Demo")
    print("=" * 60)

    question = "What time is it in UTC, and what is 17 + 25?"
    print(f"\nUser: {question}")
    result = await agent.reply(Msg(name="user", role=MsgRole.USER, content=question))
    print(f"\nAssistant: {result.text}")
    print(f"\nUsage: {agent.cumulative_usage.to_dict()}")


async def demo_stream(agent: ReActAgent) -> None:
    print("=" * 60)
    print("Streaming Demo")
    print("=" * 60)

    question = "Add 2.5 and 4, then tell me the result in one sentence."
    print(f"\nUser: {question}\n")
    options = StreamOptions(event_types={EventType.REASONING, EventType.TOOL_RESULT})
    msg = Msg(name="user", role=MsgRole.USER, content=question)
    async for event in agent.stream(msg, options):
        if event.type is EventType.TOOL_RESULT:
            print(f"\n[tool] {event.msg.first_block.output}")
        elif not event.is_last:
            print(event.msg.text, end="", flush=True)
    print()


async def main() -> None:
    setup_logging("WARNING")
    agent = build_agent()
    if "--stream" in sys.argv:
        await demo_stream(agent)
    else:
        await demo_reply(agent)


if __name__ == "__main__":
    asyncio.run(main())

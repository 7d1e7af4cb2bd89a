"""
Agent ReAct Engine - an execution engine for reason-then-act LLM agents.

The engine runs the reasoning/acting loop, folds streamed model output into
immutable messages, dispatches tool calls with order-preserving correlation,
threads every step through an ordered hook pipeline and supports cooperative
interruption. Model providers plug in through ``ChatModel`` and ``Formatter``.

Example:
    from agent_react_engine import Msg, MsgRole, ReActAgent
    from agent_react_engine.adapters import OpenAIChatFormatter, OpenAIChatModel

    def get_weather(args):
        return f"Sunny in {args['city']}"

    agent = ReActAgent.create(
        OpenAIChatModel.from_env(),
        tools=[get_weather],
        formatter=OpenAIChatFormatter(),
        sys_prompt="You are a helpful assistant.",
        max_iters=5,
    )

    answer = await agent.reply(Msg("user", MsgRole.USER, "Weather in Paris?"))
    print(answer.text)
"""

from agent_react_engine.accumulator import AccumulatorUpdate, DeltaAccumulator, ReasoningChunk
from agent_react_engine.agent import LoopState, ReActAgent
from agent_react_engine.config import AgentConfig, ModelConfig
from agent_react_engine.dispatch import dispatch_tool_calls, extract_pending_invocations
from agent_react_engine.events import AgentEvent, EventType, StreamingHook, StreamOptions
from agent_react_engine.formatter import Formatter, MsgListFormatter
from agent_react_engine.hooks import EXTENSION_POINTS, ChunkMode, Hook, HookPipeline
from agent_react_engine.interruption import (
    AgentInterruptedError,
    InterruptContext,
    InterruptController,
    InterruptSource,
    ToolInterruptedError,
    find_unresolved_invocations,
)
from agent_react_engine.logging import get_logger, setup_logging
from agent_react_engine.memory import InMemoryMemory, Memory
from agent_react_engine.message import (
    ContentBlock,
    Msg,
    MsgRole,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    tool_result_msg,
)
from agent_react_engine.model import ChatDelta, ChatModel, ChatUsage, GenerateOptions
from agent_react_engine.toolkit import BaseTool, Toolkit, ToolDefinition

__version__ = "0.1.0"

__all__ = [
    # Agent
    "ReActAgent",
    "LoopState",
    # Messages
    "Msg",
    "MsgRole",
    "ContentBlock",
    "TextBlock",
    "ThinkingBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    "tool_result_msg",
    # Model
    "ChatModel",
    "ChatDelta",
    "ChatUsage",
    "GenerateOptions",
    # Accumulator
    "DeltaAccumulator",
    "AccumulatorUpdate",
    "ReasoningChunk",
    # Collaborators
    "Formatter",
    "MsgListFormatter",
    "Memory",
    "InMemoryMemory",
    # Tools
    "Toolkit",
    "ToolDefinition",
    "BaseTool",
    "dispatch_tool_calls",
    "extract_pending_invocations",
    # Hooks
    "Hook",
    "HookPipeline",
    "ChunkMode",
    "EXTENSION_POINTS",
    # Interruption
    "InterruptController",
    "InterruptContext",
    "InterruptSource",
    "AgentInterruptedError",
    "ToolInterruptedError",
    "find_unresolved_invocations",
    # Streaming
    "AgentEvent",
    "EventType",
    "StreamOptions",
    "StreamingHook",
    # Config
    "AgentConfig",
    "ModelConfig",
    # Logging
    "get_logger",
    "setup_logging",
]

"""
OpenAI-compatible chat-completions adapter.

Works with any server that speaks the chat-completions streaming protocol
(OpenAI, MiniMax, vLLM, ...). ``reasoning_content`` deltas, where the server
sends them, are surfaced as thinking.

Example:
    from agent_react_engine import ReActAgent
    from agent_react_engine.adapters.openai import OpenAIChatFormatter, OpenAIChatModel

    agent = ReActAgent(
        OpenAIChatModel(model="gpt-4o-mini"),
        formatter=OpenAIChatFormatter(),
    )
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator
from typing import Any, TypedDict

import httpx
from openai import AsyncOpenAI

from agent_react_engine import model as delta_types
from agent_react_engine.config import ModelConfig
from agent_react_engine.formatter import Formatter
from agent_react_engine.logging import get_logger
from agent_react_engine.message import (
    Msg,
    MsgRole,
    ToolResultBlock,
    ToolUseBlock,
)
from agent_react_engine.model import ChatDelta, ChatModel, ChatUsage, GenerateOptions

logger = get_logger("adapters.openai")


class OpenAIMessage(TypedDict, total=False):
    """OpenAI message format."""

    role: str
    content: str | None
    tool_calls: list[dict[str, Any]]
    tool_call_id: str


class OpenAIChatFormatter(Formatter):
    """
    Convert ``Msg`` lists to chat-completions messages.

    - Tool-use messages are merged into the preceding assistant turn of the
      same author, so text and its tool calls travel as one message.
    - Thinking blocks are dropped.
    - Each tool result becomes a ``role: tool`` message.
    """

    def format(self, msgs: list[Msg]) -> list[OpenAIMessage]:
        formatted: list[OpenAIMessage] = []
        authors: list[str | None] = []

        for msg in msgs:
            if msg.role == MsgRole.TOOL or msg.is_tool_result:
                for result in msg.get_content_blocks(ToolResultBlock):
                    formatted.append(
                        {"role": "tool", "tool_call_id": result.id, "content": result.output}
                    )
                    authors.append(None)
                continue

            if msg.role == MsgRole.ASSISTANT:
                tool_calls = [_tool_call(b) for b in msg.get_content_blocks(ToolUseBlock)]
                text = msg.text
                previous = formatted[-1] if formatted else None
                if (
                    tool_calls
                    and not text
                    and previous is not None
                    and previous["role"] == "assistant"
                    and authors[-1] == msg.name
                ):
                    previous.setdefault("tool_calls", []).extend(tool_calls)
                    continue

                entry: OpenAIMessage = {"role": "assistant", "content": text or None}
                if tool_calls:
                    entry["tool_calls"] = tool_calls
                elif not text:
                    # Thinking-only message carries nothing the API accepts
                    continue
                formatted.append(entry)
                authors.append(msg.name)
                continue

            formatted.append({"role": msg.role.value, "content": msg.text})
            authors.append(msg.name)

        return formatted


def _tool_call(block: ToolUseBlock) -> dict[str, Any]:
    return {
        "id": block.id,
        "type": "function",
        "function": {
            "name": block.name,
            "arguments": json.dumps(block.input, ensure_ascii=False),
        },
    }


class OpenAIChatModel(ChatModel):
    """
    Streaming chat-completions model.

    Args:
        model: Model name sent with every request
        base_url: API base URL (``None`` = client default)
        api_key: API key (``None`` = client default, ``OPENAI_API_KEY``)
        client: Preconfigured ``AsyncOpenAI`` client; built lazily if omitted
        temperature: Default sampling temperature
        max_tokens: Default completion token limit
        timeout_seconds: Read timeout of the HTTP client
        extra_body: Extra request fields for OpenAI-compatible servers
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        api_key: str | None = None,
        client: AsyncOpenAI | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_seconds: float = 300.0,
        extra_body: dict[str, Any] | None = None,
    ) -> None:
        self.model_name = model
        self.base_url = base_url
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.extra_body = extra_body or {}
        self._client = client

    @classmethod
    def from_config(cls, config: ModelConfig, **kwargs: Any) -> OpenAIChatModel:
        return cls(
            model=config.model,
            base_url=config.base_url,
            api_key=config.api_key,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout_seconds=config.timeout_seconds,
            **kwargs,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> OpenAIChatModel:
        """Build from ``OPENAI_BASE_URL``, ``OPENAI_API_KEY`` and ``OPENAI_MODEL``."""
        return cls.from_config(ModelConfig.from_env(**overrides))

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-initialized OpenAI client."""
        if self._client is None:
            # trust_env=False keeps proxy settings from the environment out
            http_client = httpx.AsyncClient(
                trust_env=False,
                timeout=httpx.Timeout(self.timeout_seconds, connect=30.0),
            )
            self._client = AsyncOpenAI(
                base_url=self.base_url,
                api_key=self.api_key,
                http_client=http_client,
            )
        return self._client

    def _request_kwargs(
        self,
        messages: Any,
        tools: list[dict[str, Any]],
        options: GenerateOptions | None,
    ) -> dict[str, Any]:
        request_kwargs: dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        temperature = self.temperature
        max_tokens = self.max_tokens
        if options is not None:
            if options.temperature is not None:
                temperature = options.temperature
            if options.max_tokens is not None:
                max_tokens = options.max_tokens
        if temperature is not None:
            request_kwargs["temperature"] = temperature
        if max_tokens is not None:
            request_kwargs["max_tokens"] = max_tokens
        if tools:
            request_kwargs["tools"] = tools
        if self.extra_body:
            request_kwargs["extra_body"] = dict(self.extra_body)
        if options is not None and options.extra:
            request_kwargs.update(options.extra)
        return request_kwargs

    async def stream(
        self,
        messages: Any,
        tools: list[dict[str, Any]],
        options: GenerateOptions | None = None,
    ) -> AsyncIterator[ChatDelta]:
        """
        Map chat-completions chunks to ``ChatDelta`` values.

        - ``reasoning_content`` → thinking
        - ``content`` → text
        - tool call deltas → tool_call_start / tool_call_delta, then
          tool_call_end for every open call once a finish reason arrives
        - the trailing usage chunk → usage
        """
        request_kwargs = self._request_kwargs(messages, tools, options)
        logger.debug("Requesting %s (%d messages)", self.model_name, len(messages))
        stream = await self.client.chat.completions.create(**request_kwargs)

        # index -> {id, name}
        active_tool_calls: dict[int, dict[str, str]] = {}

        async for chunk in stream:
            usage = getattr(chunk, "usage", None)
            if usage is not None:
                yield ChatDelta(
                    type=delta_types.USAGE,
                    usage=ChatUsage(
                        input_tokens=usage.prompt_tokens or 0,
                        output_tokens=usage.completion_tokens or 0,
                    ),
                )

            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            delta = choice.delta

            if delta is not None:
                # --- Reasoning content ---
                reasoning_content = getattr(delta, "reasoning_content", None)
                if reasoning_content:
                    yield ChatDelta.thinking_delta(reasoning_content)

                # --- Text content ---
                if delta.content:
                    yield ChatDelta.text_delta(delta.content)

                # --- Tool calls ---
                for tc_delta in delta.tool_calls or []:
                    idx = tc_delta.index
                    fn = tc_delta.function
                    if idx not in active_tool_calls:
                        tc_id = tc_delta.id or f"call_{uuid.uuid4().hex[:12]}"
                        tc_name = fn.name if fn is not None and fn.name else ""
                        active_tool_calls[idx] = {"id": tc_id, "name": tc_name}
                        yield ChatDelta(
                            type=delta_types.TOOL_CALL_START,
                            tool_call_id=tc_id,
                            tool_name=tc_name,
                        )
                    info = active_tool_calls[idx]
                    if fn is not None and fn.name and not info["name"]:
                        info["name"] = fn.name
                    if fn is not None and fn.arguments:
                        yield ChatDelta(
                            type=delta_types.TOOL_CALL_DELTA,
                            tool_call_id=info["id"],
                            tool_name=info["name"],
                            args_delta=fn.arguments,
                        )

            # --- Finish ---
            if choice.finish_reason is not None:
                for info in active_tool_calls.values():
                    yield ChatDelta(
                        type=delta_types.TOOL_CALL_END,
                        tool_call_id=info["id"],
                        tool_name=info["name"],
                    )
                active_tool_calls.clear()
                logger.debug("Stream finished: %s", choice.finish_reason)

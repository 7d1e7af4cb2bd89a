"""
Model collaborator contract.

A ``ChatModel`` turns a formatted conversation into an ordered, asynchronous
stream of ``ChatDelta`` values. The engine performs no retries; transport
concerns belong to the model implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Literal

# Delta type constants
TEXT = "text"
THINKING = "thinking"
TOOL_CALL_START = "tool_call_start"
TOOL_CALL_DELTA = "tool_call_delta"
TOOL_CALL_END = "tool_call_end"
TOOL_CALL = "tool_call"
USAGE = "usage"

DeltaType = Literal[
    "text",
    "thinking",
    "tool_call_start",
    "tool_call_delta",
    "tool_call_end",
    "tool_call",
    "usage",
]


@dataclass
class ChatUsage:
    """Token counts reported by the model."""

    input_tokens: int = 0
    output_tokens: int = 0
    thinking_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens + self.thinking_tokens

    def __add__(self, other: ChatUsage) -> ChatUsage:
        return ChatUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            thinking_tokens=self.thinking_tokens + other.thinking_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "thinking_tokens": self.thinking_tokens,
        }


@dataclass
class ChatDelta:
    """
    One incremental fragment of model output.

    Lifecycle of a tool call inside a stream:
        tool_call_start → tool_call_delta* → tool_call_end
    or a single already-decoded ``tool_call``.
    """

    type: DeltaType
    """Delta type, one of the module-level constants."""

    text: str = ""
    """Fragment for ``text`` and ``thinking`` deltas."""

    tool_call_id: str | None = None
    """Correlation id for tool-call deltas."""

    tool_name: str | None = None
    """Tool name (``tool_call_start`` and ``tool_call``)."""

    args_delta: str | None = None
    """Raw argument fragment (``tool_call_delta``)."""

    args: dict[str, Any] | None = None
    """Fully decoded arguments (``tool_call``)."""

    usage: ChatUsage | None = None
    """Token usage (``usage``)."""

    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def text_delta(cls, text: str) -> ChatDelta:
        return cls(type=TEXT, text=text)

    @classmethod
    def thinking_delta(cls, text: str) -> ChatDelta:
        return cls(type=THINKING, text=text)

    @classmethod
    def tool_call(cls, id: str, name: str, args: dict[str, Any]) -> ChatDelta:
        return cls(type=TOOL_CALL, tool_call_id=id, tool_name=name, args=args)


@dataclass
class GenerateOptions:
    """Per-request generation options forwarded to the model."""

    temperature: float | None = None
    max_tokens: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class ChatModel(ABC):
    """
    Abstract streaming chat model.

    Example implementation:

        class EchoModel(ChatModel):
            model_name = "echo"

            async def stream(self, messages, tools, options=None):
                yield ChatDelta.text_delta(messages[-1].text)
    """

    model_name: str = "unknown"

    @abstractmethod
    def stream(
        self,
        messages: Any,
        tools: list[dict[str, Any]],
        options: GenerateOptions | None = None,
    ) -> AsyncIterator[ChatDelta]:
        """
        Stream deltas for one reasoning step.

        Args:
            messages: Provider payload produced by the formatter
            tools: Tool schema catalog
            options: Generation options

        Yields:
            ChatDelta objects in emission order
        """

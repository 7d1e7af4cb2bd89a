"""
Message model for the agent conversation log.

A ``Msg`` is an immutable conversation entry made of one or more content
blocks. Blocks form a closed union:

    TextBlock | ThinkingBlock | ToolUseBlock | ToolResultBlock

Consumers branch on the block type with ``isinstance``; blocks carry data
only.

Example:
    from agent_react_engine.message import Msg, MsgRole, ToolUseBlock

    question = Msg(name="user", role=MsgRole.USER, content="Weather in Paris?")
    call = Msg(
        name="assistant",
        role=MsgRole.ASSISTANT,
        content=[ToolUseBlock(id="1", name="get_weather", input={"city": "Paris"})],
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, TypeVar, Union


class MsgRole(str, Enum):
    """Role of a conversation entry."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextBlock:
    """Plain text content."""

    text: str


@dataclass(frozen=True)
class ThinkingBlock:
    """Model-internal reasoning, kept apart from visible text."""

    thinking: str


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    raw: str = ""  # raw argument text as streamed, if any


@dataclass(frozen=True)
class ToolResultBlock:
    """The outcome of a tool invocation, correlated by ``id``."""

    id: str
    name: str
    output: str
    is_error: bool = False
    interrupted: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def text(cls, output: str, id: str = "", name: str = "") -> ToolResultBlock:
        return cls(id=id, name=name, output=output)

    @classmethod
    def error(cls, message: str, id: str = "", name: str = "") -> ToolResultBlock:
        return cls(id=id, name=name, output=f"Error: {message}", is_error=True)

    @classmethod
    def interrupted_result(
        cls,
        tool_use: ToolUseBlock,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> ToolResultBlock:
        """Placeholder result for an invocation that never produced one."""
        return cls(
            id=tool_use.id,
            name=tool_use.name,
            output=message,
            interrupted=True,
            metadata=dict(metadata or {}),
        )

    def with_id_and_name(self, id: str, name: str) -> ToolResultBlock:
        if self.id == id and self.name == name:
            return self
        return replace(self, id=id, name=name)


ContentBlock = Union[TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock]

_CONTENT_TYPES = (TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock)

B = TypeVar("B", TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock)


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Msg
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Msg:
    """
    An immutable conversation entry.

    ``content`` accepts a string (wrapped in a ``TextBlock``), a single block,
    or a sequence of blocks; it is stored as a non-empty tuple.
    """

    name: str
    role: MsgRole
    content: tuple[ContentBlock, ...]
    id: str = field(default_factory=_new_id)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        content: Any = self.content
        if isinstance(content, str):
            content = (TextBlock(content),)
        elif isinstance(content, _CONTENT_TYPES):
            content = (content,)
        else:
            content = tuple(content)

        if not content:
            raise ValueError("Msg content must contain at least one block")
        for block in content:
            if not isinstance(block, _CONTENT_TYPES):
                raise TypeError(f"Unsupported content block: {type(block).__name__}")

        object.__setattr__(self, "content", content)
        object.__setattr__(self, "role", MsgRole(self.role))

    @property
    def first_block(self) -> ContentBlock:
        return self.content[0]

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    def get_content_blocks(self, block_type: type[B]) -> list[B]:
        return [b for b in self.content if isinstance(b, block_type)]

    def has_content_blocks(self, block_type: type[ContentBlock]) -> bool:
        return any(isinstance(b, block_type) for b in self.content)

    @property
    def is_tool_use(self) -> bool:
        """True if the message invokes tools and carries nothing but reasoning besides."""
        return self.has_content_blocks(ToolUseBlock) and all(
            isinstance(b, (ToolUseBlock, ThinkingBlock)) for b in self.content
        )

    @property
    def is_tool_result(self) -> bool:
        return all(isinstance(b, ToolResultBlock) for b in self.content)

    def with_content(self, content: Any) -> Msg:
        """Copy with new content, keeping id, author, role and metadata."""
        return replace(self, content=content)


def tool_result_msg(result: ToolResultBlock, name: str) -> Msg:
    """Wrap a tool result into a TOOL message authored by ``name``."""
    return Msg(name=name, role=MsgRole.TOOL, content=(result,))

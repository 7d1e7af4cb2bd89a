"""Conversation log collaborator."""

from __future__ import annotations

from abc import ABC, abstractmethod

from agent_react_engine.message import Msg


class Memory(ABC):
    """Append-only conversation log as seen by the agent loop."""

    @abstractmethod
    def add(self, msg: Msg) -> None: ...

    @abstractmethod
    def snapshot(self) -> tuple[Msg, ...]:
        """Read-only, ordered view of the log."""

    @abstractmethod
    def clear(self) -> None: ...

    def extend(self, msgs: list[Msg]) -> None:
        for msg in msgs:
            self.add(msg)

    def __len__(self) -> int:
        return len(self.snapshot())


class InMemoryMemory(Memory):
    """List-backed log. Agents sharing one instance see each other's entries."""

    def __init__(self, msgs: list[Msg] | None = None) -> None:
        self._messages: list[Msg] = list(msgs or [])

    def add(self, msg: Msg) -> None:
        if not isinstance(msg, Msg):
            raise TypeError(f"Expected Msg, got {type(msg).__name__}")
        self._messages.append(msg)

    def snapshot(self) -> tuple[Msg, ...]:
        return tuple(self._messages)

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)

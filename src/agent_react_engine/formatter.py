"""Formatter collaborator: turns the message list into a provider payload."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from agent_react_engine.message import Msg


class Formatter(ABC):
    """Pure conversion from ``Msg`` list to whatever the model expects."""

    @abstractmethod
    def format(self, msgs: list[Msg]) -> Any: ...


class MsgListFormatter(Formatter):
    """Hands the messages through untouched, for models that consume ``Msg``."""

    def format(self, msgs: list[Msg]) -> list[Msg]:
        return list(msgs)

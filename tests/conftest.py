"""Shared pytest fixtures for agent-react-engine tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from agent_react_engine.toolkit import Toolkit
from helpers import WEATHER_SCHEMA, ScriptedModel, get_weather


@pytest.fixture
def toolkit() -> Toolkit:
    """Toolkit with a single sync ``get_weather`` tool."""
    kit = Toolkit()
    kit.register_function(get_weather, parameters=WEATHER_SCHEMA)
    return kit


@pytest.fixture
def make_model() -> Callable[..., ScriptedModel]:
    """Factory for a ``ScriptedModel`` replaying the given steps."""

    def factory(*steps: list[Any], delay: float = 0.0) -> ScriptedModel:
        return ScriptedModel(steps, delay=delay)

    return factory

"""
Logging utilities for the ReAct engine.

All modules log under the ``agent_react_engine`` logger tree so applications
can tune or silence the engine in one place.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import MutableMapping
from typing import Any, TextIO

# Package root logger
_root_logger = logging.getLogger("agent_react_engine")

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Fallback level for setup_logging(), read from the environment
LEVEL_ENV_VAR = "REACT_LOG_LEVEL"


def _coerce_level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def setup_logging(
    level: str | int | None = None,
    format: str | None = None,
    stream: TextIO | None = None,
    file: str | None = None,
) -> None:
    """
    Configure logging for the engine.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL) or int;
            defaults to ``$REACT_LOG_LEVEL``, then INFO
        format: Custom log format string
        stream: Output stream (defaults to stderr)
        file: Optional file path to write logs

    Example:
        from agent_react_engine.logging import setup_logging

        # Trace every loop transition
        setup_logging("DEBUG")

        # Also keep a file
        setup_logging("INFO", file="agent.log")
    """
    if level is None:
        level = os.environ.get(LEVEL_ENV_VAR, "INFO")
    level = _coerce_level(level)
    _root_logger.setLevel(level)
    _root_logger.handlers.clear()

    formatter = logging.Formatter(format or DEFAULT_FORMAT)

    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(level)
    _root_logger.addHandler(stream_handler)

    if file:
        file_handler = logging.FileHandler(file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        _root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger for a submodule.

    Args:
        name: Submodule name (e.g., "agent", "toolkit")

    Returns:
        Logger instance
    """
    if name.startswith("agent_react_engine."):
        return logging.getLogger(name)
    return logging.getLogger(f"agent_react_engine.{name}")


def set_level(level: str | int) -> None:
    """Set the log level for the engine."""
    _root_logger.setLevel(_coerce_level(level))


def disable() -> None:
    """Disable all logging for the engine."""
    _root_logger.disabled = True


def enable() -> None:
    """Re-enable logging for the engine."""
    _root_logger.disabled = False


class AgentLoggerAdapter(logging.LoggerAdapter):
    """
    Tags records with the agent that emitted them.

    Agents sharing one conversation log interleave their output; the
    ``[name]`` prefix and the ``agent`` record attribute keep them apart.
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        agent = self.extra["agent"]
        kwargs["extra"] = {"agent": agent, **(kwargs.get("extra") or {})}
        return f"[{agent}] {msg}", kwargs


def get_agent_logger(agent_name: str) -> AgentLoggerAdapter:
    """Logger for the loop of one agent instance."""
    return AgentLoggerAdapter(get_logger("agent"), {"agent": agent_name})

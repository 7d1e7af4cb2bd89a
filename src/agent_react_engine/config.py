"""
Configuration models for the agent engine.

Configs can be loaded from YAML files, dictionaries or environment variables
(``.env`` files are picked up through python-dotenv), or constructed directly.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

DEFAULT_RECOVERY_MESSAGE = "I noticed that you have interrupted me. What can I do for you?"
DEFAULT_INTERRUPTED_TOOL_MESSAGE = "The tool call has been interrupted by the user."

_TRUE = ("1", "true", "yes", "on")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE


@dataclass
class AgentConfig:
    """
    Behavior of a ``ReActAgent``.

    Example YAML:
        name: assistant
        sys_prompt: You are a helpful assistant.
        max_iters: 8
        parallel_tool_calls: true
        tool_timeout_seconds: 30
        hook_error_policy: log
    """

    name: str = "assistant"
    sys_prompt: str = ""
    max_iters: int = 10  # Reasoning steps per reply()
    parallel_tool_calls: bool = True
    tool_timeout_seconds: float | None = None  # None = no timeout
    hook_error_policy: str = "log"  # "log" or "raise"
    recovery_message: str = DEFAULT_RECOVERY_MESSAGE
    interrupted_tool_message: str = DEFAULT_INTERRUPTED_TOOL_MESSAGE

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not self.name:
            raise ValueError("name must not be empty")
        if isinstance(self.max_iters, bool) or not isinstance(self.max_iters, int):
            raise ValueError(f"max_iters must be an integer, got {self.max_iters!r}")
        if self.max_iters < 1:
            raise ValueError(f"max_iters must be >= 1, got {self.max_iters}")
        if self.tool_timeout_seconds is not None and self.tool_timeout_seconds <= 0:
            raise ValueError(
                f"tool_timeout_seconds must be positive, got {self.tool_timeout_seconds}"
            )
        if self.hook_error_policy not in ("log", "raise"):
            raise ValueError(
                f"hook_error_policy must be 'log' or 'raise', got {self.hook_error_policy!r}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentConfig:
        """Create config from a dictionary. Unknown keys are rejected."""
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown AgentConfig keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Path | str) -> AgentConfig:
        """Load config from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_yaml_string(cls, content: str) -> AgentConfig:
        """Load config from a YAML string."""
        data = yaml.safe_load(content)
        return cls.from_dict(data or {})

    @classmethod
    def from_env(cls, **overrides: Any) -> AgentConfig:
        """
        Create config from ``REACT_*`` environment variables.

        Recognized: REACT_AGENT_NAME, REACT_SYS_PROMPT, REACT_MAX_ITERS,
        REACT_PARALLEL_TOOL_CALLS, REACT_TOOL_TIMEOUT, REACT_HOOK_ERROR_POLICY.
        """
        load_dotenv()
        values: dict[str, Any] = {}
        env = os.environ
        if env.get("REACT_AGENT_NAME"):
            values["name"] = env["REACT_AGENT_NAME"]
        if env.get("REACT_SYS_PROMPT"):
            values["sys_prompt"] = env["REACT_SYS_PROMPT"]
        if env.get("REACT_MAX_ITERS"):
            try:
                values["max_iters"] = int(env["REACT_MAX_ITERS"])
            except ValueError:
                raise ValueError(
                    f"REACT_MAX_ITERS must be an integer, got {env['REACT_MAX_ITERS']!r}"
                ) from None
        if env.get("REACT_PARALLEL_TOOL_CALLS"):
            values["parallel_tool_calls"] = _env_bool(env["REACT_PARALLEL_TOOL_CALLS"])
        if env.get("REACT_TOOL_TIMEOUT"):
            values["tool_timeout_seconds"] = float(env["REACT_TOOL_TIMEOUT"])
        if env.get("REACT_HOOK_ERROR_POLICY"):
            values["hook_error_policy"] = env["REACT_HOOK_ERROR_POLICY"]
        values.update(overrides)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ModelConfig:
    """Settings for the OpenAI-compatible chat model adapter."""

    model: str = "gpt-4o-mini"
    base_url: str | None = None  # Defaults to OPENAI_BASE_URL
    api_key: str | None = None  # Defaults to OPENAI_API_KEY
    temperature: float | None = None
    max_tokens: int | None = None
    timeout_seconds: float = 300.0

    def __post_init__(self) -> None:
        if not self.model:
            raise ValueError("model must not be empty")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")

    @classmethod
    def from_env(cls, **overrides: Any) -> ModelConfig:
        """Create config from environment variables."""
        load_dotenv()
        values: dict[str, Any] = {
            "base_url": os.environ.get("OPENAI_BASE_URL"),
            "api_key": os.environ.get("OPENAI_API_KEY"),
        }
        if os.environ.get("OPENAI_MODEL"):
            values["model"] = os.environ["OPENAI_MODEL"]
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelConfig:
        return cls(
            model=data.get("model", "gpt-4o-mini"),
            base_url=data.get("base_url"),
            api_key=data.get("api_key"),
            temperature=data.get("temperature"),
            max_tokens=data.get("max_tokens"),
            timeout_seconds=data.get("timeout_seconds", 300.0),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

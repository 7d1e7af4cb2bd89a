"""
Model provider adapters.

Concrete ``ChatModel`` and ``Formatter`` implementations for specific LLM
APIs.
"""

from agent_react_engine.adapters.openai import OpenAIChatFormatter, OpenAIChatModel

__all__ = ["OpenAIChatFormatter", "OpenAIChatModel"]

"""Parsing of streamed tool-call argument text."""
from __future__ import annotations

import json
from typing import Any

from partial_json_parser import loads as partial_loads

from agent_react_engine.logging import get_logger

logger = get_logger("json_parse")


def parse_tool_arguments(raw: str) -> tuple[dict[str, Any], bool]:
    """Parse tool-call arguments that may still be incomplete.

    Returns ``(args, complete)``. Three-tier fallback:
    1. ``json.loads()`` for complete JSON (``complete=True``)
    2. ``partial_json_parser`` for a truncated object
    3. ``{}``

    Non-object JSON is treated as no arguments.
    """
    if not raw or not raw.strip():
        return {}, True
    try:
        result = json.loads(raw)
        return (result if isinstance(result, dict) else {}), True
    except json.JSONDecodeError:
        pass
    try:
        result = partial_loads(raw)
    except Exception as e:
        logger.debug("Could not recover partial tool arguments %r: %s", raw[:80], e)
        return {}, False
    return (result if isinstance(result, dict) else {}), False

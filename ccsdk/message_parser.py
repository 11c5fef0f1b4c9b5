"""Turn JSON objects printed by the Claude Code CLI into typed messages."""

from __future__ import annotations

import json
import logging
from typing import Any

from .errors import ParseError
from .types import (
    AssistantMessage,
    ContentBlock,
    Message,
    ResultMessage,
    SystemMessage,
    TextContent,
    ThinkingContent,
    ToolResultContent,
    ToolUseContent,
    UserMessage,
    message_from_dict,
)

__all__ = ["parse_message", "parse_content_block"]

logger = logging.getLogger(__name__)


def _raw(data: Any) -> str:
    return json.dumps(data, default=str)


def _get(data: Any, key: str) -> Any:
    return data.get(key) if isinstance(data, dict) else None


def _str(data: Any, key: str) -> str | None:
    value = _get(data, key)
    return value if isinstance(value, str) else None


def _int(data: Any, key: str) -> int | None:
    value = _get(data, key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _number(data: Any, key: str) -> float | None:
    value = _get(data, key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def _bool(data: Any, key: str) -> bool | None:
    value = _get(data, key)
    return value if isinstance(value, bool) else None


def _required_str(data: Any, key: str, what: str) -> str:
    value = _str(data, key)
    if value is None:
        raise ParseError(f"Missing '{key}' field in {what} block", _raw(data))
    return value


def parse_message(data: Any) -> Message | None:
    """Parse one JSON object; returns None for message types that are ignored."""
    kind = _str(data, "type")
    if kind is None:
        raise ParseError("Missing 'type' field", _raw(data))
    if kind == "user":
        return _parse_user(data)
    if kind == "assistant":
        return _parse_assistant(data)
    if kind == "system":
        return _parse_system(data)
    if kind == "result":
        return _parse_result(data)
    logger.debug("Ignoring message type: %s", kind)
    return None


def _message_field(data: Any) -> Any:
    if not isinstance(data, dict) or "message" not in data:
        raise ParseError("Missing 'message' field", _raw(data))
    return data["message"]


def _parse_user(data: Any) -> Message | None:
    message = _message_field(data)
    content = _get(message, "content")
    if isinstance(content, str):
        return UserMessage(content=content)
    if isinstance(content, list):
        logger.debug("Skipping user message with array content (likely tool result)")
        return None
    raise ParseError("Missing or invalid 'content' field", _raw(data))


def _parse_assistant(data: Any) -> Message:
    message = _message_field(data)
    content = _get(message, "content")
    if not isinstance(content, list):
        raise ParseError("Missing or invalid 'content' array", _raw(data))
    blocks = [block for item in content if (block := parse_content_block(item)) is not None]
    return AssistantMessage(content=blocks)


def parse_content_block(data: Any) -> ContentBlock | None:
    """Parse one content block; returns None for blocks that are skipped."""
    kind = _str(data, "type")
    if kind is None:
        text = _str(data, "text")
        if text is not None:
            return TextContent(text=text)
        logger.debug("Skipping non-text content block without type")
        return None

    if kind == "text":
        return TextContent(text=_required_str(data, "text", "text"))
    if kind == "thinking":
        return ThinkingContent(
            thinking=_required_str(data, "thinking", "thinking"),
            signature=_required_str(data, "signature", "thinking"),
        )
    if kind == "tool_use":
        block_id = _required_str(data, "id", "tool_use")
        name = _required_str(data, "name", "tool_use")
        tool_input = data["input"] if "input" in data else {}
        return ToolUseContent(id=block_id, name=name, input=tool_input)
    if kind == "tool_result":
        tool_use_id = _required_str(data, "tool_use_id", "tool_result")
        raw_content = data.get("content")
        content: str | list[Any] | None
        if isinstance(raw_content, str):
            content = raw_content
        elif isinstance(raw_content, list):
            content = list(raw_content)
        else:
            content = None
        return ToolResultContent(
            tool_use_id=tool_use_id, content=content, is_error=_bool(data, "is_error")
        )
    logger.debug("Unknown content block type: %s", kind)
    return None


def _parse_system(data: Any) -> Message:
    subtype = _str(data, "subtype") or "unknown"
    payload = data["data"] if "data" in data else {}
    return SystemMessage(subtype=subtype, data=payload)


def _parse_result(data: Any) -> Message:
    try:
        return message_from_dict(data)
    except ParseError:
        pass
    return ResultMessage(
        subtype=_str(data, "subtype") or "unknown",
        duration_ms=_int(data, "duration_ms") or 0,
        duration_api_ms=_int(data, "duration_api_ms") or 0,
        is_error=_bool(data, "is_error") or False,
        num_turns=_int(data, "num_turns") or 0,
        session_id=_str(data, "session_id") or "unknown",
        total_cost_usd=_number(data, "total_cost_usd"),
        usage=data.get("usage"),
        result=_str(data, "result"),
    )
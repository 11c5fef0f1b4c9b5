"""Options, messages and content blocks exchanged with the Claude Code CLI."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Union

from .errors import ParseError

__all__ = [
    "PermissionMode",
    "McpStdioServer",
    "McpSseServer",
    "McpHttpServer",
    "McpServerConfig",
    "ClaudeCodeOptions",
    "TextContent",
    "ThinkingContent",
    "ToolUseContent",
    "ToolResultContent",
    "ContentBlock",
    "UserMessage",
    "AssistantMessage",
    "SystemMessage",
    "ResultMessage",
    "Message",
    "InterruptRequest",
    "InterruptAck",
    "content_block_from_dict",
    "message_from_dict",
]


class PermissionMode(str, Enum):
    """How the CLI asks for permission before running tools."""

    DEFAULT = "default"
    ACCEPT_EDITS = "acceptEdits"
    PLAN = "plan"
    BYPASS_PERMISSIONS = "bypassPermissions"


@dataclass
class McpStdioServer:
    """An MCP server driven over standard input and output."""

    command: str
    args: list[str] | None = None
    env: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "stdio", "command": self.command}
        if self.args is not None:
            data["args"] = list(self.args)
        if self.env is not None:
            data["env"] = dict(self.env)
        return data


@dataclass
class McpSseServer:
    """An MCP server reached through server-sent events."""

    url: str
    headers: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "sse", "url": self.url}
        if self.headers is not None:
            data["headers"] = dict(self.headers)
        return data


@dataclass
class McpHttpServer:
    """An MCP server reached over HTTP."""

    url: str
    headers: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "http", "url": self.url}
        if self.headers is not None:
            data["headers"] = dict(self.headers)
        return data


McpServerConfig = Union[McpStdioServer, McpSseServer, McpHttpServer]


@dataclass
class ClaudeCodeOptions:
    """Configuration for a Claude Code CLI session."""

    system_prompt: str | None = None
    append_system_prompt: str | None = None
    allowed_tools: list[str] = field(default_factory=list)
    disallowed_tools: list[str] = field(default_factory=list)
    permission_mode: PermissionMode = PermissionMode.DEFAULT
    mcp_servers: dict[str, McpServerConfig] = field(default_factory=dict)
    mcp_tools: list[str] = field(default_factory=list)
    max_turns: int | None = None
    max_thinking_tokens: int = 0
    model: str | None = None
    cwd: Path | None = None
    continue_conversation: bool = False
    resume: str | None = None
    permission_prompt_tool_name: str | None = None
    settings: str | None = None
    add_dirs: list[Path] = field(default_factory=list)
    extra_args: dict[str, str | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.permission_mode = PermissionMode(self.permission_mode)
        if self.cwd is not None:
            self.cwd = Path(self.cwd)
        self.add_dirs = [Path(d) for d in self.add_dirs]

    def mcp_config_json(self) -> str | None:
        """The ``--mcp-config`` JSON payload, or None when no servers are set."""
        if not self.mcp_servers:
            return None
        payload = {
            "mcpServers": {name: cfg.to_dict() for name, cfg in self.mcp_servers.items()}
        }
        return json.dumps(payload, separators=(",", ":"))

    def extra_cli_args(self) -> list[str]:
        """The extra arguments as command-line flags, dashes added where missing."""
        args: list[str] = []
        for key, value in self.extra_args.items():
            args.append(key if key.startswith("-") else f"--{key}")
            if value is not None:
                args.append(value)
        return args


@dataclass
class TextContent:
    """A plain text block."""

    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass
class ThinkingContent:
    """A block of the model's reasoning, with its signature."""

    thinking: str
    signature: str

    def to_dict(self) -> dict[str, Any]:
        return {"thinking": self.thinking, "signature": self.signature}


@dataclass
class ToolUseContent:
    """A request from the model to run a tool."""

    id: str
    name: str
    input: Any

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "input": self.input}


@dataclass
class ToolResultContent:
    """The outcome of a tool run."""

    tool_use_id: str
    content: str | list[Any] | None = None
    is_error: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"tool_use_id": self.tool_use_id}
        if self.content is not None:
            data["content"] = self.content
        if self.is_error is not None:
            data["is_error"] = self.is_error
        return data


ContentBlock = Union[TextContent, ThinkingContent, ToolUseContent, ToolResultContent]


@dataclass
class UserMessage:
    """A message written by the user."""

    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "user", "message": {"content": self.content}}


@dataclass
class AssistantMessage:
    """A reply from the assistant, made of content blocks."""

    content: list[ContentBlock] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "assistant",
            "message": {"content": [block.to_dict() for block in self.content]},
        }


@dataclass
class SystemMessage:
    """A system notice from the CLI."""

    subtype: str
    data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"type": "system", "subtype": self.subtype, "data": self.data}


@dataclass
class ResultMessage:
    """The message that ends a turn."""

    subtype: str
    duration_ms: int
    duration_api_ms: int
    is_error: bool
    num_turns: int
    session_id: str
    total_cost_usd: float | None = None
    usage: Any = None
    result: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "result",
            "subtype": self.subtype,
            "duration_ms": self.duration_ms,
            "duration_api_ms": self.duration_api_ms,
            "is_error": self.is_error,
            "num_turns": self.num_turns,
            "session_id": self.session_id,
        }
        if self.total_cost_usd is not None:
            data["total_cost_usd"] = self.total_cost_usd
        if self.usage is not None:
            data["usage"] = self.usage
        if self.result is not None:
            data["result"] = self.result
        return data


Message = Union[UserMessage, AssistantMessage, SystemMessage, ResultMessage]


@dataclass
class InterruptRequest:
    """A control request asking the CLI to stop the current operation."""

    request_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "interrupt", "request_id": self.request_id}


@dataclass
class InterruptAck:
    """The CLI's acknowledgement of an interrupt."""

    request_id: str
    success: bool

    @classmethod
    def from_dict(cls, data: Any) -> InterruptAck:
        """Read an acknowledgement tagged with type ``interruptack``."""
        if not isinstance(data, dict) or data.get("type") != "interruptack":
            raise ParseError("not an interrupt acknowledgement", _raw(data))
        return cls(
            request_id=_require(data, "request_id", _is_str, "a string"),
            success=_require(data, "success", _is_bool, "a boolean"),
        )


def _raw(data: Any) -> str:
    return json.dumps(data, default=str)


def _is_str(value: Any) -> bool:
    return isinstance(value, str)


def _is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require(data: dict[str, Any], key: str, check: Any, what: str) -> Any:
    if key not in data:
        raise ParseError(f"missing field `{key}`", _raw(data))
    value = data[key]
    if not check(value):
        raise ParseError(f"field `{key}` must be {what}", _raw(data))
    return value


def _optional(data: dict[str, Any], key: str, check: Any, what: str) -> Any:
    value = data.get(key)
    if value is None:
        return None
    if not check(value):
        raise ParseError(f"field `{key}` must be {what}", _raw(data))
    return value


def _text_block(data: dict[str, Any]) -> ContentBlock:
    return TextContent(text=_require(data, "text", _is_str, "a string"))


def _thinking_block(data: dict[str, Any]) -> ContentBlock:
    return ThinkingContent(
        thinking=_require(data, "thinking", _is_str, "a string"),
        signature=_require(data, "signature", _is_str, "a string"),
    )


def _tool_use_block(data: dict[str, Any]) -> ContentBlock:
    if "input" not in data:
        raise ParseError("missing field `input`", _raw(data))
    return ToolUseContent(
        id=_require(data, "id", _is_str, "a string"),
        name=_require(data, "name", _is_str, "a string"),
        input=data["input"],
    )


def _tool_result_block(data: dict[str, Any]) -> ContentBlock:
    content = _optional(
        data, "content", lambda v: isinstance(v, (str, list)), "a string or a list"
    )
    return ToolResultContent(
        tool_use_id=_require(data, "tool_use_id", _is_str, "a string"),
        content=list(content) if isinstance(content, list) else content,
        is_error=_optional(data, "is_error", _is_bool, "a boolean"),
    )


_BLOCK_READERS = (_text_block, _thinking_block, _tool_use_block, _tool_result_block)


def content_block_from_dict(data: Any) -> ContentBlock:
    """Read an untagged content block: the first shape that fits wins."""
    if not isinstance(data, dict):
        raise ParseError("content block must be an object", _raw(data))
    for reader in _BLOCK_READERS:
        try:
            return reader(data)
        except ParseError:
            continue
    raise ParseError("data did not match any content block variant", _raw(data))


def _inner_message(data: dict[str, Any]) -> dict[str, Any]:
    return _require(data, "message", lambda v: isinstance(v, dict), "an object")


def message_from_dict(data: Any) -> Message:
    """Read a message tagged by its ``type`` field, strictly."""
    if not isinstance(data, dict):
        raise ParseError("message must be an object", _raw(data))
    kind = _require(data, "type", _is_str, "a string")
    if kind == "user":
        inner = _inner_message(data)
        return UserMessage(content=_require(inner, "content", _is_str, "a string"))
    if kind == "assistant":
        inner = _inner_message(data)
        blocks = _require(inner, "content", lambda v: isinstance(v, list), "a list")
        return AssistantMessage(content=[content_block_from_dict(b) for b in blocks])
    if kind == "system":
        if "data" not in data:
            raise ParseError("missing field `data`", _raw(data))
        return SystemMessage(
            subtype=_require(data, "subtype", _is_str, "a string"), data=data["data"]
        )
    if kind == "result":
        cost = _optional(data, "total_cost_usd", _is_number, "a number")
        return ResultMessage(
            subtype=_require(data, "subtype", _is_str, "a string"),
            duration_ms=_require(data, "duration_ms", _is_int, "an integer"),
            duration_api_ms=_require(data, "duration_api_ms", _is_int, "an integer"),
            is_error=_require(data, "is_error", _is_bool, "a boolean"),
            num_turns=_require(data, "num_turns", _is_int, "an integer"),
            session_id=_require(data, "session_id", _is_str, "a string"),
            total_cost_usd=float(cost) if cost is not None else None,
            usage=data.get("usage"),
            result=_optional(data, "result", _is_str, "a string"),
        )
    raise ParseError(f"unknown message type `{kind}`", _raw(data))
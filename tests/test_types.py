import json
from pathlib import Path

import pytest

from ccsdk.errors import ParseError
from ccsdk.types import (
    AssistantMessage,
    ClaudeCodeOptions,
    InterruptAck,
    InterruptRequest,
    McpHttpServer,
    McpSseServer,
    McpStdioServer,
    PermissionMode,
    ResultMessage,
    SystemMessage,
    TextContent,
    ThinkingContent,
    ToolResultContent,
    ToolUseContent,
    UserMessage,
    content_block_from_dict,
    message_from_dict,
)


def compact(data):
    return json.dumps(data, separators=(",", ":"))


def test_permission_mode_serialization():
    mode = PermissionMode.ACCEPT_EDITS
    text = json.dumps(mode.value)
    assert text == '"acceptEdits"'
    assert PermissionMode(json.loads(text)) == mode

    plan_text = json.dumps(PermissionMode.PLAN.value)
    assert plan_text == '"plan"'
    assert PermissionMode(json.loads(plan_text)) == PermissionMode.PLAN


def test_permission_mode_default_and_bypass_values():
    assert ClaudeCodeOptions().permission_mode == PermissionMode.DEFAULT
    assert PermissionMode.BYPASS_PERMISSIONS.value == "bypassPermissions"


def test_message_serialization():
    msg = UserMessage(content="Hello")
    text = compact(msg.to_dict())
    assert '"type":"user"' in text
    assert '"content":"Hello"' in text
    assert message_from_dict(json.loads(text)) == msg


def test_options_constructed_like_builder():
    options = ClaudeCodeOptions(
        system_prompt="Test prompt",
        model="claude-3-opus",
        permission_mode=PermissionMode.ACCEPT_EDITS,
        allowed_tools=["read", "write"],
        max_turns=10,
    )
    assert options.system_prompt == "Test prompt"
    assert options.model == "claude-3-opus"
    assert options.permission_mode == PermissionMode.ACCEPT_EDITS
    assert options.allowed_tools == ["read", "write"]
    assert options.max_turns == 10


def test_permission_mode_accepts_string():
    options = ClaudeCodeOptions(permission_mode="plan")
    assert options.permission_mode is PermissionMode.PLAN


def test_invalid_permission_mode_rejected():
    with pytest.raises(ValueError):
        ClaudeCodeOptions(permission_mode="sometimes")


def test_extra_args():
    extra_args = {"custom-flag": "value", "boolean-flag": None}
    options = ClaudeCodeOptions(extra_args=dict(extra_args))
    options.extra_args["another-flag"] = "another-value"
    assert len(options.extra_args) == 3
    assert options.extra_args["custom-flag"] == "value"
    assert options.extra_args["boolean-flag"] is None
    assert options.extra_args["another-flag"] == "another-value"


def test_extra_cli_args_formatting():
    options = ClaudeCodeOptions(
        extra_args={"custom-flag": "value", "--already-dashed": None, "-s": "short"}
    )
    assert options.extra_cli_args() == [
        "--custom-flag",
        "value",
        "--already-dashed",
        "-s",
        "short",
    ]


def test_new_options_settings_and_add_dirs():
    options = ClaudeCodeOptions(
        system_prompt="You are a helpful assistant",
        model="claude-3-opus-20240229",
        settings="/path/to/settings.json",
        add_dirs=["/path/to/project1", "/path/to/project2"],
    )
    assert options.settings == "/path/to/settings.json"
    assert options.add_dirs == [Path("/path/to/project1"), Path("/path/to/project2")]

    options2 = ClaudeCodeOptions(
        add_dirs=[Path("/path/to/dir1"), Path("/path/to/dir2"), Path("/path/to/dir3")],
        settings="global-settings.json",
    )
    assert options2.settings == "global-settings.json"
    assert len(options2.add_dirs) == 3
    assert options2.add_dirs[2] == Path("/path/to/dir3")


def test_cwd_becomes_path():
    options = ClaudeCodeOptions(cwd="/tmp/work")
    assert options.cwd == Path("/tmp/work")


def test_defaults():
    options = ClaudeCodeOptions()
    assert options.allowed_tools == []
    assert options.max_thinking_tokens == 0
    assert options.continue_conversation is False
    assert options.mcp_config_json() is None
    assert options.extra_cli_args() == []


def test_mcp_config_json():
    options = ClaudeCodeOptions(
        mcp_servers={
            "local": McpStdioServer(command="server", args=["--x"]),
            "events": McpSseServer(url="http://localhost:9000/sse"),
        }
    )
    payload = json.loads(options.mcp_config_json())
    assert payload == {
        "mcpServers": {
            "local": {"type": "stdio", "command": "server", "args": ["--x"]},
            "events": {"type": "sse", "url": "http://localhost:9000/sse"},
        }
    }


def test_mcp_http_server_headers():
    server = McpHttpServer(url="http://localhost:8080", headers={"X-Mode": "test"})
    assert server.to_dict() == {
        "type": "http",
        "url": "http://localhost:8080",
        "headers": {"X-Mode": "test"},
    }


def test_mcp_stdio_skips_missing_fields():
    assert McpStdioServer(command="run").to_dict() == {"type": "stdio", "command": "run"}


def test_thinking_content_serialization():
    thinking = ThinkingContent(thinking="Let me think about this...", signature="sig123")
    text = compact(thinking.to_dict())
    assert '"thinking":"Let me think about this..."' in text
    assert '"signature":"sig123"' in text
    back = content_block_from_dict(json.loads(text))
    assert back == thinking


@pytest.mark.parametrize(
    "block",
    [
        TextContent(text="hi"),
        ThinkingContent(thinking="hmm", signature="s"),
        ToolUseContent(id="tool_1", name="read_file", input={"path": "/tmp/a"}),
        ToolResultContent(tool_use_id="tool_1", content="done", is_error=False),
        ToolResultContent(tool_use_id="tool_2", content=[{"type": "text"}]),
    ],
)
def test_content_block_round_trip(block):
    assert content_block_from_dict(block.to_dict()) == block


def test_tool_result_skips_none_fields():
    assert ToolResultContent(tool_use_id="t").to_dict() == {"tool_use_id": "t"}


def test_content_block_unmatched_raises():
    with pytest.raises(ParseError):
        content_block_from_dict({"unrelated": 1})


def test_content_block_text_wins_over_others():
    block = content_block_from_dict({"text": "a", "thinking": "b", "signature": "c"})
    assert block == TextContent(text="a")


def test_assistant_message_round_trip():
    msg = AssistantMessage(
        content=[TextContent(text="Hello"), ToolUseContent(id="1", name="n", input={})]
    )
    assert message_from_dict(msg.to_dict()) == msg


def test_system_message_round_trip():
    msg = SystemMessage(subtype="status", data={"status": "ready"})
    assert message_from_dict(msg.to_dict()) == msg


def test_result_message_round_trip_and_skips_none():
    msg = ResultMessage(
        subtype="conversation_turn",
        duration_ms=1234,
        duration_api_ms=1000,
        is_error=False,
        num_turns=1,
        session_id="test_session",
        total_cost_usd=0.001,
    )
    data = msg.to_dict()
    assert "usage" not in data
    assert "result" not in data
    assert message_from_dict(data) == msg


def test_result_message_missing_field_raises():
    with pytest.raises(ParseError):
        message_from_dict({"type": "result", "subtype": "x", "duration_ms": 1})


def test_result_message_rejects_float_duration():
    with pytest.raises(ParseError):
        message_from_dict(
            {
                "type": "result",
                "subtype": "x",
                "duration_ms": 1.5,
                "duration_api_ms": 1,
                "is_error": False,
                "num_turns": 1,
                "session_id": "s",
            }
        )


def test_unknown_message_type_raises():
    with pytest.raises(ParseError):
        message_from_dict({"type": "unknown_type"})


def test_missing_type_raises():
    with pytest.raises(ParseError):
        message_from_dict({"message": {}})


def test_interrupt_request_to_dict():
    assert InterruptRequest(request_id="req-1").to_dict() == {
        "type": "interrupt",
        "request_id": "req-1",
    }


def test_interrupt_ack_from_dict():
    ack = InterruptAck.from_dict(
        {"type": "interruptack", "request_id": "req-1", "success": True}
    )
    assert ack == InterruptAck(request_id="req-1", success=True)


def test_interrupt_ack_wrong_type_raises():
    with pytest.raises(ParseError):
        InterruptAck.from_dict({"type": "control_response", "request_id": "r"})
"""One-shot queries that run the Claude Code CLI in print mode."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from .cli_transport import find_claude_cli, max_output_tokens_override
from .errors import NotSupportedError, ProcessError, ProcessExitedError
from .message_parser import parse_message
from .types import ClaudeCodeOptions, Message

__all__ = ["build_print_command", "query"]

logger = logging.getLogger(__name__)

_LINE_LIMIT = 16 * 1024 * 1024
_STDERR_GRACE_SECONDS = 1.0


def build_print_command(
    cli_path: str | os.PathLike[str], prompt: str, options: ClaudeCodeOptions
) -> list[str]:
    """The argument list that runs the CLI once on ``prompt`` in print mode."""
    cmd = [str(Path(cli_path)), "--output-format", "stream-json", "--verbose"]
    if options.system_prompt is not None:
        cmd += ["--system-prompt", options.system_prompt]
    if options.append_system_prompt is not None:
        cmd += ["--append-system-prompt", options.append_system_prompt]
    if options.allowed_tools:
        cmd += ["--allowedTools", ",".join(options.allowed_tools)]
    if options.max_turns is not None:
        cmd += ["--max-turns", str(options.max_turns)]
    if options.disallowed_tools:
        cmd += ["--disallowedTools", ",".join(options.disallowed_tools)]
    if options.model is not None:
        cmd += ["--model", options.model]
    if options.permission_prompt_tool_name is not None:
        cmd += ["--permission-prompt-tool", options.permission_prompt_tool_name]
    cmd += ["--permission-mode", options.permission_mode.value]
    if options.continue_conversation:
        cmd.append("--continue")
    if options.resume is not None:
        cmd += ["--resume", options.resume]
    mcp_config = options.mcp_config_json()
    if mcp_config is not None:
        cmd += ["--mcp-config", mcp_config]
    cmd += options.extra_cli_args()
    cmd += ["--print", prompt]
    return cmd


def _child_env() -> dict[str, str]:
    env = dict(os.environ)
    current = env.get("CLAUDE_CODE_MAX_OUTPUT_TOKENS")
    override = max_output_tokens_override(current)
    if override is not None:
        logger.warning(
            "CLAUDE_CODE_MAX_OUTPUT_TOKENS=%s is not usable, overriding to %s",
            current,
            override,
        )
        env["CLAUDE_CODE_MAX_OUTPUT_TOKENS"] = override
    return env


async def query(
    prompt: Any, options: ClaudeCodeOptions | None = None
) -> AsyncIterator[Message]:
    """Run one query and return an async iterator over the messages it produces.

    Only text prompts are supported. The iterator raises ``ParseError`` for a
    message it cannot read and ``ProcessExitedError`` if the CLI fails; closing
    it early kills the CLI process.
    """
    options = options if options is not None else ClaudeCodeOptions()
    os.environ["CLAUDE_CODE_ENTRYPOINT"] = "sdk-rust"

    if not isinstance(prompt, str):
        raise NotSupportedError("Streaming input mode not yet implemented")

    cli_path = find_claude_cli()
    cmd = build_print_command(cli_path, prompt, options)
    logger.info("Starting Claude CLI with --print mode")
    logger.debug("Command: %s", cmd)

    try:
        child = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=_child_env(),
            limit=_LINE_LIMIT,
        )
    except OSError as exc:
        raise ProcessError(exc) from exc

    return _stream_messages(child)


async def _drain_stderr(stderr: asyncio.StreamReader) -> None:
    with contextlib.suppress(ValueError, OSError):
        async for raw in stderr:
            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                logger.debug("Claude stderr: %s", line)


async def _reap(child: asyncio.subprocess.Process) -> None:
    if child.returncode is not None:
        logger.debug("Claude CLI process already exited")
        return
    logger.info("Killing Claude CLI process on stream close")
    try:
        child.kill()
    except ProcessLookupError:
        pass
    except OSError as exc:
        logger.warning("Failed to kill Claude CLI process: %s", exc)
        return
    await child.wait()
    logger.debug("Claude CLI process killed and cleaned up")


async def _stream_messages(child: asyncio.subprocess.Process) -> AsyncIterator[Message]:
    assert child.stdout is not None and child.stderr is not None
    stderr_task = asyncio.create_task(_drain_stderr(child.stderr))
    try:
        async for raw in child.stdout:
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            logger.debug("Claude output: %s", line)
            try:
                data = json.loads(line)
            except json.JSONDecodeError as exc:
                logger.debug("Failed to parse JSON: %s - Line: %s", exc, line)
                continue
            message = parse_message(data)
            if message is not None:
                yield message

        try:
            returncode = await child.wait()
        except OSError as exc:
            raise ProcessError(exc) from exc
        if returncode != 0:
            raise ProcessExitedError(returncode if returncode > 0 else None)
    finally:
        await _reap(child)
        if not stderr_task.done():
            await asyncio.wait({stderr_task}, timeout=_STDERR_GRACE_SECONDS)
        if not stderr_task.done():
            stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stderr_task
"""Transport that runs the Claude Code CLI as a child process."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import re
import shutil
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from .errors import (
    CliNotFoundError,
    InvalidStateError,
    ParseError,
    ProcessError,
    SdkConnectionError,
    TransportError,
)
from .message_parser import parse_message
from .transport import InputMessage, Transport, TransportState
from .types import ClaudeCodeOptions, InterruptAck, InterruptRequest, Message, SystemMessage

__all__ = [
    "SubprocessTransport",
    "find_claude_cli",
    "max_output_tokens_override",
    "classify_stderr_line",
]

logger = logging.getLogger(__name__)

CHANNEL_BUFFER_SIZE = 100
MAX_SAFE_OUTPUT_TOKENS = 32000
DEFAULT_OUTPUT_TOKENS = 8192
_U32_MAX = 2**32 - 1
_U32_PATTERN = re.compile(r"\+?[0-9]+")
_LINE_LIMIT = 16 * 1024 * 1024
_READER_GRACE_SECONDS = 1.0
_CLOSED = object()


def max_output_tokens_override(value: str | None) -> str | None:
    """The value CLAUDE_CODE_MAX_OUTPUT_TOKENS must be replaced with, if any.

    Values above 32000 are capped at 32000, values that are not an unsigned
    32-bit integer become 8192, and anything else is left alone (None).
    """
    if value is None:
        return None
    tokens: int | None = None
    if _U32_PATTERN.fullmatch(value):
        tokens = int(value)
        if tokens > _U32_MAX:
            tokens = None
    if tokens is None:
        return str(DEFAULT_OUTPUT_TOKENS)
    if tokens > MAX_SAFE_OUTPUT_TOKENS:
        return str(MAX_SAFE_OUTPUT_TOKENS)
    return None


def classify_stderr_line(line: str) -> str | None:
    """Describe a known kind of CLI error in a stderr line, or None."""
    if "command not found" in line or "No such file" in line:
        return "Claude CLI binary not found or not executable"
    if "ENOENT" in line or "spawn" in line:
        return "Failed to spawn Claude CLI process - binary may not be installed"
    if "authentication" in line or "API key" in line or "Unauthorized" in line:
        return "Claude CLI authentication error - please run 'claude-code api login'"
    if "model" in line and ("not available" in line or "not found" in line):
        return "Model not available for your account"
    if "Error:" in line or "error:" in line:
        return "Claude CLI error detected"
    return None


def find_claude_cli() -> Path:
    """Locate the Claude Code CLI on PATH or in common install locations."""
    for name in ("claude", "claude-code"):
        found = shutil.which(name)
        if found:
            logger.debug("Found Claude CLI at: %s", found)
            return Path(found)

    try:
        home = Path.home()
    except (RuntimeError, KeyError) as exc:
        raise CliNotFoundError("Unable to determine home directory") from exc

    locations = [
        home / ".npm-global/bin/claude",
        home / ".npm-global/bin/claude-code",
        Path("/usr/local/bin/claude"),
        Path("/usr/local/bin/claude-code"),
        home / ".local/bin/claude",
        home / ".local/bin/claude-code",
        home / "node_modules/.bin/claude",
        home / "node_modules/.bin/claude-code",
        home / ".yarn/bin/claude",
        home / ".yarn/bin/claude-code",
        Path("/opt/homebrew/bin/claude"),
        Path("/opt/homebrew/bin/claude-code"),
    ]

    searched: list[str] = []
    for path in locations:
        searched.append(str(path))
        if path.is_file():
            logger.debug("Found Claude CLI at: %s", path)
            return path

    logger.warning("Claude CLI not found in any standard location")
    logger.warning("Searched paths: %s", searched)
    listing = "\n".join(searched)

    if shutil.which("node") is None and shutil.which("npm") is None:
        logger.error("Node.js/npm not found - Claude CLI requires Node.js")
        raise CliNotFoundError(
            f"Node.js is not installed. Install Node.js first.\n\nSearched in:\n{listing}"
        )
    raise CliNotFoundError(
        "Claude CLI not found. Install with:\n"
        "  npm install -g @anthropic-ai/claude-code\n\n"
        f"Searched in:\n{listing}"
    )


async def _no_messages() -> AsyncIterator[Message]:
    return
    yield  # pragma: no cover


class SubprocessTransport(Transport):
    """Talks to the CLI over its standard streams in stream-json format."""

    def __init__(
        self, options: ClaudeCodeOptions, cli_path: str | os.PathLike[str] | None = None
    ) -> None:
        self.options = options
        self.cli_path = Path(cli_path) if cli_path is not None else find_claude_cli()
        self._child: asyncio.subprocess.Process | None = None
        self._stdin_queue: asyncio.Queue[str] | None = None
        self._subscribers: set[asyncio.Queue[Any]] | None = None
        self._control_queue: asyncio.Queue[InterruptAck | None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._reader_tasks: list[asyncio.Task[None]] = []
        self._state = TransportState.DISCONNECTED
        self.request_counter = 0

    @property
    def state(self) -> TransportState:
        return self._state

    def build_command(self) -> list[str]:
        """The full argument list used to start the CLI."""
        opts = self.options
        cmd = [
            str(self.cli_path),
            "--output-format",
            "stream-json",
            "--verbose",
            "--input-format",
            "stream-json",
        ]
        if opts.system_prompt is not None:
            cmd += ["--system-prompt", opts.system_prompt]
        if opts.append_system_prompt is not None:
            cmd += ["--append-system-prompt", opts.append_system_prompt]
        if opts.allowed_tools:
            cmd += ["--allowedTools", ",".join(opts.allowed_tools)]
        if opts.disallowed_tools:
            cmd += ["--disallowedTools", ",".join(opts.disallowed_tools)]
        cmd += ["--permission-mode", opts.permission_mode.value]
        if opts.model is not None:
            cmd += ["--model", opts.model]
        if opts.permission_prompt_tool_name is not None:
            cmd += ["--permission-prompt-tool", opts.permission_prompt_tool_name]
        if opts.max_turns is not None:
            cmd += ["--max-turns", str(opts.max_turns)]
        mcp_config = opts.mcp_config_json()
        if mcp_config is not None:
            cmd += ["--mcp-config", mcp_config]
        if opts.continue_conversation:
            cmd.append("--continue")
        if opts.resume is not None:
            cmd += ["--resume", opts.resume]
        if opts.settings is not None:
            cmd += ["--settings", opts.settings]
        for directory in opts.add_dirs:
            cmd += ["--add-dir", str(directory)]
        cmd += opts.extra_cli_args()
        return cmd

    def build_env(self) -> dict[str, str]:
        """The environment the CLI is started with."""
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
        env["CLAUDE_CODE_ENTRYPOINT"] = "sdk-rust"
        return env

    async def connect(self) -> None:
        if self._state is TransportState.CONNECTED:
            return
        self._state = TransportState.CONNECTING
        cmd = self.build_command()
        logger.info("Starting Claude CLI with command: %s", cmd)
        try:
            child = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.options.cwd,
                env=self.build_env(),
                limit=_LINE_LIMIT,
            )
        except OSError as exc:
            logger.error("Failed to spawn Claude CLI: %s", exc)
            self._state = TransportState.DISCONNECTED
            raise ProcessError(exc) from exc

        for stream, name in ((child.stdin, "stdin"), (child.stdout, "stdout"), (child.stderr, "stderr")):
            if stream is None:
                child.kill()
                self._state = TransportState.DISCONNECTED
                raise SdkConnectionError(f"Failed to get {name}")

        self._child = child
        self._stdin_queue = asyncio.Queue(maxsize=CHANNEL_BUFFER_SIZE)
        self._subscribers = set()
        self._control_queue = asyncio.Queue()
        self._writer_task = asyncio.create_task(self._write_stdin(child.stdin, self._stdin_queue))
        self._reader_tasks = [
            asyncio.create_task(self._read_stdout(child.stdout, self._control_queue)),
            asyncio.create_task(self._read_stderr(child.stderr)),
        ]
        self._state = TransportState.CONNECTED
        logger.info("Connected to Claude CLI")

    async def _write_stdin(
        self, stdin: asyncio.StreamWriter, queue: asyncio.Queue[str]
    ) -> None:
        try:
            while True:
                line = await queue.get()
                try:
                    stdin.write(line.encode() + b"\n")
                    await stdin.drain()
                except (OSError, ConnectionError) as exc:
                    logger.error("Failed to write to stdin: %s", exc)
                    break
                logger.debug("Sent to Claude process: %s", line)
        finally:
            with contextlib.suppress(Exception):
                stdin.close()

    async def _read_stdout(
        self,
        stdout: asyncio.StreamReader,
        control: asyncio.Queue[InterruptAck | None],
    ) -> None:
        try:
            async for raw in stdout:
                line = raw.decode("utf-8", errors="replace")
                if line.strip():
                    self._handle_stdout_line(line, control)
        except (ValueError, OSError) as exc:
            logger.warning("Stopped reading CLI output: %s", exc)
        finally:
            control.put_nowait(None)
            logger.info("Stdout reader ended")

    def _handle_stdout_line(
        self, line: str, control: asyncio.Queue[InterruptAck | None]
    ) -> None:
        logger.debug("Claude output: %s", line.rstrip())
        try:
            data = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.warning("Failed to parse JSON: %s - Line: %s", exc, line.rstrip())
            return
        if isinstance(data, dict) and data.get("type") == "control_response":
            try:
                control.put_nowait(InterruptAck.from_dict(data))
                return
            except ParseError:
                pass
        try:
            message = parse_message(data)
        except ParseError as exc:
            logger.warning("Failed to parse message: %s", exc)
            return
        if message is not None:
            self._publish(message)

    async def _read_stderr(self, stderr: asyncio.StreamReader) -> None:
        collected: list[str] = []
        try:
            async for raw in stderr:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if not line.strip():
                    continue
                logger.error("Claude CLI stderr: %s", line)
                collected.append(line)
                kind = classify_stderr_line(line)
                if kind is not None:
                    logger.error("%s: %s", kind, line)
        except (ValueError, OSError) as exc:
            logger.warning("Stopped reading CLI stderr: %s", exc)
        if collected:
            details = "\n".join(collected)
            logger.error("Claude CLI stderr output collected:\n%s", details)
            self._publish(
                SystemMessage(
                    subtype="error",
                    data={
                        "source": "stderr",
                        "error": "Claude CLI error output",
                        "details": details,
                    },
                )
            )

    def _publish(self, item: Any) -> None:
        subscribers = self._subscribers
        if not subscribers:
            return
        for queue in list(subscribers):
            if queue.full():
                queue.get_nowait()
                logger.warning("Receiver lagged by 1 messages")
            queue.put_nowait(item)

    async def send_message(self, message: InputMessage) -> None:
        if self._state is not TransportState.CONNECTED:
            raise InvalidStateError("Not connected")
        line = message.to_json()
        logger.debug("Serialized message: %s", line)
        await self._enqueue(line)

    async def _enqueue(self, line: str) -> None:
        if self._stdin_queue is None:
            raise InvalidStateError("Stdin channel not available")
        if self._writer_task is not None and self._writer_task.done():
            raise TransportError("stdin writer has stopped")
        await self._stdin_queue.put(line)

    def receive_messages(self) -> AsyncIterator[Message]:
        """Subscribe now to every message the CLI prints from here on."""
        subscribers = self._subscribers
        if subscribers is None:
            return _no_messages()
        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=CHANNEL_BUFFER_SIZE)
        subscribers.add(queue)
        return self._drain(queue, subscribers)

    @staticmethod
    async def _drain(
        queue: asyncio.Queue[Any], subscribers: set[asyncio.Queue[Any]]
    ) -> AsyncIterator[Message]:
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            subscribers.discard(queue)

    async def send_control_request(self, request: InterruptRequest) -> None:
        if self._state is not TransportState.CONNECTED:
            raise InvalidStateError("Not connected")
        self.request_counter += 1
        payload = {"type": "control_request", "request": request.to_dict()}
        await self._enqueue(json.dumps(payload, separators=(",", ":")))

    async def receive_control_response(self) -> InterruptAck | None:
        if self._control_queue is None:
            return None
        item = await self._control_queue.get()
        if item is None:
            # Keep reporting the end to later callers too.
            self._control_queue.put_nowait(None)
        return item

    def is_connected(self) -> bool:
        return self._state is TransportState.CONNECTED

    async def disconnect(self) -> None:
        if self._state is not TransportState.CONNECTED:
            return
        self._state = TransportState.DISCONNECTING

        self._stdin_queue = None
        if self._writer_task is not None and not self._writer_task.done():
            self._writer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer_task
        self._writer_task = None

        child = self._child
        self._child = None
        if child is not None:
            try:
                if child.returncode is None:
                    child.kill()
                await child.wait()
                logger.info("Claude CLI process terminated")
            except (ProcessLookupError, OSError) as exc:
                logger.warning("Failed to kill Claude CLI process: %s", exc)

        if self._reader_tasks:
            _, pending = await asyncio.wait(self._reader_tasks, timeout=_READER_GRACE_SECONDS)
            for task in pending:
                task.cancel()
            self._reader_tasks = []

        subscribers = self._subscribers
        self._subscribers = None
        for queue in subscribers or ():
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(_CLOSED)

        self._state = TransportState.DISCONNECTED

    def __del__(self) -> None:
        child = getattr(self, "_child", None)
        if child is not None and child.returncode is None:
            with contextlib.suppress(ProcessLookupError, RuntimeError, OSError):
                child.kill()
"""Stateful, interactive conversations with the Claude Code CLI."""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from collections.abc import AsyncIterator
from typing import Any

from .errors import InvalidStateError
from .transport import InputMessage, Transport
from .types import ClaudeCodeOptions, InterruptRequest, Message, ResultMessage

__all__ = ["InteractiveClient"]

logger = logging.getLogger(__name__)

_SESSION_ID = "default"
_IDLE_POLL_SECONDS = 0.01


async def _close(stream: AsyncIterator[Any]) -> None:
    closer = getattr(stream, "aclose", None)
    if closer is not None:
        await closer()


class InteractiveClient:
    """Client for a conversation that keeps its state between prompts."""

    def __init__(
        self,
        options: ClaudeCodeOptions | None = None,
        transport: Transport | None = None,
    ) -> None:
        os.environ["CLAUDE_CODE_ENTRYPOINT"] = "sdk-rust"
        if transport is None:
            from .cli_transport import SubprocessTransport

            transport = SubprocessTransport(options or ClaudeCodeOptions())
        self._transport = transport
        self._lock = asyncio.Lock()
        self.connected = False

    def _require_connected(self) -> None:
        if not self.connected:
            raise InvalidStateError("Not connected")

    async def connect(self) -> None:
        """Start the conversation; does nothing when already connected."""
        if self.connected:
            return
        async with self._lock:
            await self._transport.connect()
        self.connected = True
        logger.info("Connected to Claude CLI")

    async def _collect_until_result(
        self, stream: AsyncIterator[Message] | None = None
    ) -> list[Message]:
        messages: list[Message] = []
        while True:
            if stream is None:
                async with self._lock:
                    stream = self._transport.receive_messages()
            try:
                async for message in stream:
                    logger.debug("Received: %r", message)
                    messages.append(message)
                    if isinstance(message, ResultMessage):
                        return messages
            finally:
                await _close(stream)
            stream = None
            await asyncio.sleep(_IDLE_POLL_SECONDS)

    async def send_and_receive(self, prompt: str) -> list[Message]:
        """Send a prompt and return every message up to and including the result."""
        self._require_connected()
        async with self._lock:
            stream = self._transport.receive_messages()
            try:
                await self._transport.send_message(InputMessage.user(prompt, _SESSION_ID))
            except BaseException:
                await _close(stream)
                raise
        logger.debug("Message sent, waiting for response")
        return await self._collect_until_result(stream)

    async def send_message(self, prompt: str) -> None:
        """Send a prompt without waiting for the reply."""
        self._require_connected()
        async with self._lock:
            await self._transport.send_message(InputMessage.user(prompt, _SESSION_ID))
        logger.debug("Message sent")

    async def receive_response(self) -> list[Message]:
        """Collect messages until a result message arrives."""
        self._require_connected()
        return await self._collect_until_result()

    async def receive_messages_stream(self) -> AsyncIterator[Message]:
        """Yield every message the CLI sends from now on."""
        stream = self._transport.receive_messages()
        try:
            async for message in stream:
                yield message
        finally:
            await _close(stream)

    async def receive_response_stream(self) -> AsyncIterator[Message]:
        """Yield messages up to and including the next result message."""
        stream = self.receive_messages_stream()
        try:
            async for message in stream:
                yield message
                if isinstance(message, ResultMessage):
                    return
        finally:
            await stream.aclose()

    async def interrupt(self) -> None:
        """Ask the CLI to cancel the current operation."""
        self._require_connected()
        request = InterruptRequest(request_id=str(uuid.uuid4()))
        async with self._lock:
            await self._transport.send_control_request(request)
        logger.info("Interrupt sent")

    async def disconnect(self) -> None:
        """End the conversation; does nothing when not connected."""
        if not self.connected:
            return
        async with self._lock:
            await self._transport.disconnect()
        self.connected = False
        logger.info("Disconnected from Claude CLI")

    async def __aenter__(self) -> InteractiveClient:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()
"""Client with connection pooling, retries and batch processing."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import uuid
from collections import deque
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any, Union

from .errors import InvalidStateError, SdkError, SdkTimeoutError, TransportError
from .transport import InputMessage, Transport
from .types import ClaudeCodeOptions, InterruptRequest, Message, ResultMessage

__all__ = ["ClientMode", "ConnectionPool", "OptimizedClient"]

logger = logging.getLogger(__name__)

TransportFactory = Callable[[ClaudeCodeOptions], Transport]
BatchResult = Union[list[Message], SdkError]

_SESSION_ID = "default"
_QUERY_TIMEOUT_SECONDS = 120
_CHANNEL_CAPACITY = 100
_END = object()

_ONE_SHOT = "one_shot"
_INTERACTIVE = "interactive"
_BATCH = "batch"


def _default_factory(options: ClaudeCodeOptions) -> Transport:
    from .cli_transport import SubprocessTransport

    return SubprocessTransport(options)


async def _close(stream: AsyncIterator[Any]) -> None:
    closer = getattr(stream, "aclose", None)
    if closer is not None:
        await closer()


@dataclass(frozen=True)
class ClientMode:
    """How an OptimizedClient is going to be used."""

    kind: str
    max_concurrent: int | None = None

    @classmethod
    def one_shot(cls) -> ClientMode:
        """Stateless single queries."""
        return cls(_ONE_SHOT)

    @classmethod
    def interactive(cls) -> ClientMode:
        """A stateful conversation."""
        return cls(_INTERACTIVE)

    @classmethod
    def batch(cls, max_concurrent: int) -> ClientMode:
        """Many queries run concurrently, at most ``max_concurrent`` at once."""
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        return cls(_BATCH, max_concurrent)

    @property
    def is_interactive(self) -> bool:
        return self.kind == _INTERACTIVE

    @property
    def is_batch(self) -> bool:
        return self.kind == _BATCH


class ConnectionPool:
    """Keeps connected transports around for reuse."""

    def __init__(
        self,
        base_options: ClaudeCodeOptions,
        max_connections: int,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.base_options = base_options
        self.max_connections = max_connections
        self.transport_factory = transport_factory or _default_factory
        self._idle: deque[Transport] = deque()
        self._semaphore = asyncio.Semaphore(max_connections)

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    async def acquire(self) -> Transport:
        """An idle connected transport, or a newly connected one."""
        if self._idle:
            transport = self._idle.popleft()
            if transport.is_connected():
                logger.debug("Reusing existing connection from pool")
                return transport
            await self._discard(transport)

        async with self._semaphore:
            transport = self.transport_factory(self.base_options)
            await transport.connect()
        logger.debug("Created new connection")
        return transport

    async def release(self, transport: Transport) -> None:
        """Return a transport; it is closed when broken or the pool is full."""
        if transport.is_connected() and len(self._idle) < self.max_connections:
            self._idle.append(transport)
            logger.debug("Returned connection to pool")
        else:
            logger.debug("Dropping connection")
            await self._discard(transport)

    @staticmethod
    async def _discard(transport: Transport) -> None:
        try:
            await transport.disconnect()
        except SdkError as exc:
            logger.warning("Failed to close connection: %s", exc)


class OptimizedClient:
    """Client that pools connections and retries failed queries."""

    def __init__(
        self,
        options: ClaudeCodeOptions | None = None,
        mode: ClientMode | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        os.environ["CLAUDE_CODE_ENTRYPOINT"] = "sdk-rust"
        self.mode = mode if mode is not None else ClientMode.one_shot()
        max_connections = self.mode.max_concurrent if self.mode.is_batch else 1
        self.pool = ConnectionPool(
            options if options is not None else ClaudeCodeOptions(),
            max_connections or 1,
            transport_factory,
        )
        self._transport: Transport | None = None
        self._messages: asyncio.Queue[Any] | None = None
        self._processor: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    async def query(self, prompt: str) -> list[Message]:
        """Run one query, retrying up to three times."""
        return await self.query_with_retry(prompt, 3, 0.1)

    async def query_with_retry(
        self, prompt: str, max_retries: int, initial_delay: float
    ) -> list[Message]:
        """Run one query with exponential backoff; delays are in seconds."""
        retries = 0
        delay = initial_delay
        while True:
            try:
                return await self._execute_query(prompt)
            except SdkError as exc:
                if retries >= max_retries:
                    raise
                logger.warning("Query failed, retrying in %.3fs: %s", delay, exc)
                await asyncio.sleep(delay)
                retries += 1
                delay *= 2

    async def _execute_query(self, prompt: str) -> list[Message]:
        transport = await self.pool.acquire()
        stream = transport.receive_messages()
        try:
            await transport.send_message(InputMessage.user(prompt, _SESSION_ID))
            try:
                messages = await asyncio.wait_for(
                    self._collect(stream), _QUERY_TIMEOUT_SECONDS
                )
            except asyncio.TimeoutError as exc:
                raise SdkTimeoutError(_QUERY_TIMEOUT_SECONDS) from exc
        except BaseException:
            await _close(stream)
            await ConnectionPool._discard(transport)
            raise
        await _close(stream)
        await self.pool.release(transport)
        return messages

    @staticmethod
    async def _collect(stream: AsyncIterator[Message]) -> list[Message]:
        messages: list[Message] = []
        async for message in stream:
            logger.debug("Received: %r", message)
            messages.append(message)
            if isinstance(message, ResultMessage):
                break
        return messages

    async def start_interactive_session(self) -> None:
        """Acquire a connection and start forwarding its messages."""
        if not self.mode.is_interactive:
            raise InvalidStateError("Client not in interactive mode")
        transport = await self.pool.acquire()
        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=_CHANNEL_CAPACITY)
        stream = transport.receive_messages()
        self._transport = transport
        self._messages = queue
        self._processor = asyncio.create_task(self._forward(stream, queue))
        logger.info("Interactive session started")

    @staticmethod
    async def _forward(stream: AsyncIterator[Message], queue: asyncio.Queue[Any]) -> None:
        try:
            async for message in stream:
                await queue.put(message)
        except SdkError as exc:
            logger.error("Error receiving message: %s", exc)
        finally:
            await _close(stream)
            with contextlib.suppress(asyncio.QueueFull):
                queue.put_nowait(_END)

    async def send_interactive(self, prompt: str) -> None:
        """Send a prompt in the active interactive session."""
        transport = self._transport
        if transport is None:
            raise InvalidStateError("No active interactive session")
        async with self._lock:
            await transport.send_message(InputMessage.user(prompt, _SESSION_ID))

    async def receive_interactive(self) -> list[Message]:
        """Collect session messages up to and including the next result."""
        queue = self._messages
        if queue is None:
            raise InvalidStateError("No active interactive session")
        messages: list[Message] = []
        while True:
            item = await queue.get()
            if item is _END:
                queue.put_nowait(_END)
                return messages
            messages.append(item)
            if isinstance(item, ResultMessage):
                return messages

    async def process_batch(self, prompts: list[str]) -> list[BatchResult]:
        """Run queries concurrently; each result is a message list or an error."""
        if not self.mode.is_batch:
            raise InvalidStateError("Client not in batch mode")
        semaphore = asyncio.Semaphore(self.mode.max_concurrent or 1)
        tasks: list[asyncio.Task[list[Message]]] = []
        for prompt in prompts:
            await semaphore.acquire()
            tasks.append(
                asyncio.create_task(self._batch_item(self.clone(), prompt, semaphore))
            )

        results: list[BatchResult] = []
        for task in tasks:
            try:
                results.append(await task)
            except SdkError as exc:
                results.append(exc)
            except Exception as exc:  # a task that failed outside the SDK
                results.append(TransportError(f"Task failed: {exc}"))
        return results

    @staticmethod
    async def _batch_item(
        client: OptimizedClient, prompt: str, semaphore: asyncio.Semaphore
    ) -> list[Message]:
        try:
            return await client.query(prompt)
        finally:
            semaphore.release()

    async def interrupt(self) -> None:
        """Ask the CLI to cancel the current operation of the session."""
        transport = self._transport
        if transport is None:
            raise InvalidStateError("No active session")
        request = InterruptRequest(request_id=str(uuid.uuid4()))
        async with self._lock:
            await transport.send_control_request(request)
        logger.info("Interrupt sent")

    async def end_interactive_session(self) -> None:
        """Stop the session and return its connection to the pool."""
        processor, self._processor = self._processor, None
        if processor is not None and not processor.done():
            processor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await processor
        transport, self._transport = self._transport, None
        if transport is not None:
            await self.pool.release(transport)
        self._messages = None
        logger.info("Interactive session ended")

    def clone(self) -> OptimizedClient:
        """A client with the same mode and pool but no session of its own."""
        twin = OptimizedClient(
            self.pool.base_options, self.mode, self.pool.transport_factory
        )
        twin.pool = self.pool
        return twin
"""Retry, batching and metrics helpers."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from .errors import SdkError
from .types import Message

__all__ = ["RetryConfig", "MessageBatcher", "PerformanceMetrics"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_INPUT_CAPACITY = 100
_OUTPUT_CAPACITY = 10
_END = object()


@dataclass
class RetryConfig:
    """Exponential backoff with jitter; delays are in seconds."""

    max_retries: int = 3
    initial_delay: float = 0.1
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1

    async def retry(self, func: Callable[[], Awaitable[T]]) -> T:
        """Await ``func()`` until it succeeds or the retries run out."""
        retries = 0
        delay = self.initial_delay
        while True:
            try:
                return await func()
            except SdkError as exc:
                if retries >= self.max_retries:
                    raise
                retries += 1
                jitter = 0.0
                if self.jitter_factor > 0.0:
                    spread = delay * self.jitter_factor
                    jitter = abs(random.random() * spread - spread / 2.0)
                actual = delay + jitter
                logger.warning(
                    "Attempt %d failed, retrying in %.3fs: %s", retries, actual, exc
                )
                await asyncio.sleep(actual)
                delay = min(delay * self.backoff_multiplier, self.max_delay)


class MessageBatcher:
    """Groups incoming messages into batches by size or by waiting time."""

    def __init__(self, max_batch_size: int, max_wait_time: float) -> None:
        self.max_batch_size = max_batch_size
        self.max_wait_time = max_wait_time
        self._buffer: list[Message] = []
        self._input: asyncio.Queue[Any] = asyncio.Queue(maxsize=_INPUT_CAPACITY)
        self._output: asyncio.Queue[Any] = asyncio.Queue(maxsize=_OUTPUT_CAPACITY)

    async def send(self, message: Message) -> None:
        """Hand a message to the batcher."""
        await self._input.put(message)

    async def close(self) -> None:
        """Signal that no more messages will come."""
        await self._input.put(_END)

    async def run(self) -> None:
        """Batch messages until closed, flushing whatever is left at the end."""
        getter: asyncio.Future[Any] | None = None
        try:
            while True:
                if getter is None:
                    getter = asyncio.ensure_future(self._input.get())
                done, _ = await asyncio.wait({getter}, timeout=self.max_wait_time)
                if not done:
                    await self._emit()
                    continue
                item = getter.result()
                getter = None
                if item is _END:
                    await self._emit()
                    break
                self._buffer.append(item)
                if len(self._buffer) >= self.max_batch_size:
                    await self._emit()
        finally:
            if getter is not None and not getter.done():
                getter.cancel()
            await self._output.put(_END)

    async def _emit(self) -> None:
        if not self._buffer:
            return
        batch, self._buffer = self._buffer, []
        logger.debug("Emitting batch of %d messages", len(batch))
        await self._output.put(batch)

    async def batches(self) -> AsyncIterator[list[Message]]:
        """Yield batches as they are emitted, ending when the batcher stops."""
        while True:
            batch = await self._output.get()
            if batch is _END:
                await self._output.put(_END)
                return
            yield batch


@dataclass
class PerformanceMetrics:
    """Counts requests and tracks their latency."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    max_latency_ms: int = 0
    min_latency_ms: int = 0

    def record_success(self, latency_ms: int) -> None:
        self.total_requests += 1
        self.successful_requests += 1
        self.total_latency_ms += latency_ms
        self.max_latency_ms = max(self.max_latency_ms, latency_ms)
        if self.min_latency_ms == 0:
            self.min_latency_ms = latency_ms
        else:
            self.min_latency_ms = min(self.min_latency_ms, latency_ms)

    def record_failure(self) -> None:
        self.total_requests += 1
        self.failed_requests += 1

    def average_latency_ms(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_latency_ms / self.successful_requests

    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests
import asyncio

import pytest

from ccsdk.errors import InvalidStateError, SdkConnectionError, SdkError, TransportError
from ccsdk.optimized_client import ClientMode, ConnectionPool, OptimizedClient
from ccsdk.transport import Transport
from ccsdk.types import (
    AssistantMessage,
    ClaudeCodeOptions,
    ResultMessage,
    TextContent,
)

_END = object()


def _reply(prompt):
    return [
        AssistantMessage(content=[TextContent(text=f"echo: {prompt}")]),
        ResultMessage(
            subtype="success",
            duration_ms=5,
            duration_api_ms=4,
            is_error=False,
            num_turns=1,
            session_id="sess",
        ),
    ]


class FakeTransport(Transport):
    def __init__(self, options, connect_error=False):
        self.options = options
        self.connect_error = connect_error
        self.connected = False
        self.sent = []
        self.controls = []
        self.subscribers = []

    async def connect(self):
        if self.connect_error:
            raise SdkConnectionError("cannot connect")
        self.connected = True

    async def send_message(self, message):
        prompt = message.message["content"]
        self.sent.append(prompt)
        if prompt == "bad":
            raise TransportError("broken pipe")
        for queue in self.subscribers:
            for msg in _reply(prompt):
                queue.put_nowait(msg)

    def receive_messages(self):
        queue = asyncio.Queue()
        self.subscribers.append(queue)
        return self._drain(queue)

    async def _drain(self, queue):
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    return
                yield item
        finally:
            self.subscribers.remove(queue)

    async def send_control_request(self, request):
        self.controls.append(request)

    async def receive_control_response(self):
        return None

    def is_connected(self):
        return self.connected

    async def disconnect(self):
        self.connected = False


class Factory:
    def __init__(self, failures=0):
        self.failures = failures
        self.created = []

    def __call__(self, options):
        fail = len(self.created) < self.failures
        transport = FakeTransport(options, connect_error=fail)
        self.created.append(transport)
        return transport


def test_client_mode_creation():
    options = ClaudeCodeOptions()
    one_shot = OptimizedClient(options, ClientMode.one_shot(), Factory())
    interactive = OptimizedClient(options, ClientMode.interactive(), Factory())
    batch = OptimizedClient(options, ClientMode.batch(5), Factory())
    assert one_shot.mode == ClientMode.one_shot()
    assert interactive.mode.is_interactive
    assert batch.mode.is_batch and batch.mode.max_concurrent == 5
    assert one_shot.pool.max_connections == 1
    assert batch.pool.max_connections == 5


def test_batch_mode_rejects_zero():
    with pytest.raises(ValueError):
        ClientMode.batch(0)


def test_connection_pool_creation():
    pool = ConnectionPool(ClaudeCodeOptions(), 10, Factory())
    assert pool.max_connections == 10
    assert pool.idle_count == 0


def test_client_cloning():
    client = OptimizedClient(ClaudeCodeOptions(), ClientMode.one_shot(), Factory())
    cloned = client.clone()
    assert cloned.mode == ClientMode.one_shot()
    assert cloned.pool is client.pool


@pytest.mark.asyncio
async def test_query_returns_messages_until_result():
    factory = Factory()
    client = OptimizedClient(ClaudeCodeOptions(), ClientMode.one_shot(), factory)
    messages = await client.query("hello")
    assert len(messages) == 2
    assert messages[0].content[0].text == "echo: hello"
    assert isinstance(messages[-1], ResultMessage)
    assert factory.created[0].sent == ["hello"]


@pytest.mark.asyncio
async def test_pool_reuses_connection():
    factory = Factory()
    client = OptimizedClient(ClaudeCodeOptions(), ClientMode.one_shot(), factory)
    await client.query("one")
    await client.query("two")
    assert len(factory.created) == 1
    assert factory.created[0].sent == ["one", "two"]
    assert client.pool.idle_count == 1


@pytest.mark.asyncio
async def test_query_with_retry_recovers():
    factory = Factory(failures=2)
    client = OptimizedClient(ClaudeCodeOptions(), ClientMode.one_shot(), factory)
    messages = await client.query_with_retry("again", 3, 0.001)
    assert len(factory.created) == 3
    assert isinstance(messages[-1], ResultMessage)


@pytest.mark.asyncio
async def test_query_with_retry_gives_up():
    factory = Factory(failures=10)
    client = OptimizedClient(ClaudeCodeOptions(), ClientMode.one_shot(), factory)
    with pytest.raises(SdkConnectionError):
        await client.query_with_retry("never", 2, 0.001)
    assert len(factory.created) == 3


@pytest.mark.asyncio
async def test_interactive_requires_interactive_mode():
    client = OptimizedClient(ClaudeCodeOptions(), ClientMode.one_shot(), Factory())
    with pytest.raises(InvalidStateError, match="Client not in interactive mode"):
        await client.start_interactive_session()


@pytest.mark.asyncio
async def test_operations_without_session_fail():
    client = OptimizedClient(ClaudeCodeOptions(), ClientMode.interactive(), Factory())
    with pytest.raises(InvalidStateError, match="No active interactive session"):
        await client.send_interactive("hi")
    with pytest.raises(InvalidStateError, match="No active interactive session"):
        await client.receive_interactive()
    with pytest.raises(InvalidStateError, match="No active session"):
        await client.interrupt()


@pytest.mark.asyncio
async def test_interactive_session_flow():
    factory = Factory()
    client = OptimizedClient(ClaudeCodeOptions(), ClientMode.interactive(), factory)
    await client.start_interactive_session()
    await client.send_interactive("first")
    first = await client.receive_interactive()
    await client.send_interactive("second")
    second = await client.receive_interactive()
    assert first[0].content[0].text == "echo: first"
    assert second[0].content[0].text == "echo: second"
    assert isinstance(second[-1], ResultMessage)

    await client.interrupt()
    assert len(factory.created[0].controls) == 1

    await client.end_interactive_session()
    assert client.pool.idle_count == 1
    with pytest.raises(InvalidStateError):
        await client.send_interactive("after")


@pytest.mark.asyncio
async def test_process_batch_requires_batch_mode():
    client = OptimizedClient(ClaudeCodeOptions(), ClientMode.one_shot(), Factory())
    with pytest.raises(InvalidStateError, match="Client not in batch mode"):
        await client.process_batch(["a"])


@pytest.mark.asyncio
async def test_process_batch_keeps_order():
    client = OptimizedClient(ClaudeCodeOptions(), ClientMode.batch(2), Factory())
    results = await client.process_batch(["a", "b", "c"])
    texts = [result[0].content[0].text for result in results]
    assert texts == ["echo: a", "echo: b", "echo: c"]


@pytest.mark.asyncio
async def test_process_batch_reports_errors_per_prompt():
    client = OptimizedClient(ClaudeCodeOptions(), ClientMode.batch(2), Factory())
    results = await client.process_batch(["good", "bad"])
    assert results[0][0].content[0].text == "echo: good"
    assert isinstance(results[1], SdkError)
    assert "broken pipe" in str(results[1])
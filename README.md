# ccsdk

An asyncio library for talking to the Claude Code command-line tool. It starts
the CLI as a child process, speaks its `stream-json` protocol, and turns every
line the CLI prints into a typed Python object.

The package has no third-party dependencies. The `claude` (or `claude-code`)
executable must be installed. `ccsdk.cli_transport.find_claude_cli` looks for
it on `PATH` and then in the usual npm, yarn, local and Homebrew install
locations. If it cannot be found, `CliNotFoundError` is raised with the list of
places that were searched.

## One-shot queries

`ccsdk.query.query` runs the CLI once in print mode. It is a coroutine: await
it to start the process, then iterate over the async iterator it returns:

```python
import asyncio

from ccsdk.query import query
from ccsdk.types import AssistantMessage, ClaudeCodeOptions, ResultMessage, TextContent


async def main():
    options = ClaudeCodeOptions(model="sonnet", max_turns=1)
    messages = await query("What is 2 + 2?", options)
    async for message in messages:
        if isinstance(message, AssistantMessage):
            for block in message.content:
                if isinstance(block, TextContent):
                    print(block.text)
        elif isinstance(message, ResultMessage):
            print(f"done in {message.duration_ms} ms, cost {message.total_cost_usd}")


asyncio.run(main())
```

Only string prompts are accepted. Any other prompt raises `NotSupportedError`.
While iterating, a line that cannot be read as a message raises `ParseError`,
and a CLI that exits unsuccessfully raises `ProcessExitedError`. If you close
the iterator early, the CLI process is killed.

`build_print_command(cli_path, prompt, options)` returns the argument list
that `query` uses to start the process. Print mode does not pass `cwd`,
`settings` or `add_dirs` to the CLI. Use the interactive client when you need
them.

## Interactive sessions

`ccsdk.interactive.InteractiveClient` keeps one CLI process alive across
several turns. Use it as an async context manager: it connects on entry and
disconnects on exit.

```python
import asyncio

from ccsdk.interactive import InteractiveClient
from ccsdk.types import ClaudeCodeOptions, PermissionMode


async def main():
    options = ClaudeCodeOptions(
        system_prompt="You are a planning assistant",
        permission_mode=PermissionMode.PLAN,
        max_turns=5,
    )
    async with InteractiveClient(options) as client:
        first = await client.send_and_receive("Plan a REST API for a todo app")
        follow_up = await client.send_and_receive("Now plan the authentication")
        print(len(first), len(follow_up))


asyncio.run(main())
```

The client has these methods:

- `send_and_receive` sends a prompt and returns every message up to and
  including the turn's `ResultMessage`.
- `send_message` sends a prompt without waiting for the reply.
- `receive_response` collects messages up to and including the next
  `ResultMessage`.
- `receive_messages_stream` yields messages one by one as they arrive.
- `receive_response_stream` yields messages one by one and stops after the
  next `ResultMessage`.
- `interrupt` sends a control request that asks the CLI to stop the current
  operation.

`send_and_receive`, `send_message`, `receive_response` and `interrupt` raise
`InvalidStateError` when the client is not connected.

You can pass any `ccsdk.transport.Transport` implementation as `transport=`.
Without one, the client uses `ccsdk.cli_transport.SubprocessTransport`.

## The subprocess transport

`SubprocessTransport(options, cli_path=None)` starts the CLI with
`--input-format stream-json` and `--output-format stream-json`. It writes
`InputMessage` lines to the CLI's stdin and hands the parsed output to every
subscriber of `receive_messages()`. `build_command()` and `build_env()` show
exactly what will be run. Interrupt acknowledgements come back through
`receive_control_response()` as `InterruptAck` objects.

Every non-empty line the CLI writes to stderr is logged. When the process
ends, the collected stderr lines are published as a `SystemMessage` with
subtype `"error"`. `classify_stderr_line` recognises a few common failures:
missing binary, spawn failure, authentication, unavailable model, and
generic errors.

## Options

`ClaudeCodeOptions` holds everything that becomes a CLI flag:

- system prompt and appended system prompt
- allowed and disallowed tools
- permission mode (`PermissionMode`: `default`, `acceptEdits`, `plan`,
  `bypassPermissions`)
- model
- turn limit
- permission prompt tool
- working directory
- extra directories
- settings file
- MCP servers (`McpStdioServer`, `McpSseServer`, `McpHttpServer`), passed
  as `--mcp-config` JSON
- conversation continue and resume
- arbitrary `extra_args`

An `extra_args` key without a leading dash gets `--` put in front of it. A
value of `None` makes the key a bare flag.

If `CLAUDE_CODE_MAX_OUTPUT_TOKENS` is set above 32000, the child process gets
32000 instead. If it is set to something that is not an unsigned 32-bit
integer, the child gets 8192. `max_output_tokens_override` implements this
rule.

## Messages

`ccsdk.message_parser.parse_message` turns one decoded JSON line into a
`UserMessage`, `AssistantMessage`, `SystemMessage` or `ResultMessage`:

- It returns `None` for message types it does not know and for user messages
  whose content is a list.
- It raises `ParseError` when a required field is missing.
- A result message with missing or malformed fields is still returned, with
  defaults filled in.

Assistant content is made of `TextContent`, `ThinkingContent`,
`ToolUseContent` and `ToolResultContent` blocks. `parse_content_block` reads
one block on its own.

`ccsdk.types` also provides strict readers: `message_from_dict` and
`content_block_from_dict`. Every message and block has a `to_dict()` method.

## Pooling, batching and retries

`ccsdk.optimized_client.OptimizedClient` reuses connected transports through
a `ConnectionPool`. The mode decides what the client can do:

- `ClientMode.one_shot()`: `query` runs one prompt and retries up to three
  times with doubling delays. `query_with_retry` lets you choose the retry
  count and the first delay.
- `ClientMode.interactive()`: `start_interactive_session`, `send_interactive`,
  `receive_interactive`, `interrupt` and `end_interactive_session`.
- `ClientMode.batch(max_concurrent)`: `process_batch` runs many prompts, at
  most `max_concurrent` at once. It returns, for each prompt, either its list
  of messages or the `SdkError` it failed with.

A query that gets no result within 120 seconds raises `SdkTimeoutError`. A
`transport_factory` can be given to build transports other than
`SubprocessTransport`.

`ccsdk.perf_utils` provides the following helpers:

- `RetryConfig.retry` retries an async callable with jittered exponential
  backoff. Delays are in seconds.
- `MessageBatcher` groups messages by size or by waiting time. Feed it with
  `send`, run it with `run`, read results from `batches`, and finish with
  `close`.
- `PerformanceMetrics` records request counts and latency. It reports
  `average_latency_ms()` and `success_rate()`.

## Errors

Every failure raises a subclass of `ccsdk.errors.SdkError`:

- `InvalidStateError`
- `ParseError`
- `CliNotFoundError`
- `ProcessError`
- `ProcessExitedError`
- `SdkConnectionError`
- `NotSupportedError`
- `SdkTimeoutError`
- `TransportError`

The one exception is `ClientMode.batch`, which raises `ValueError` for a
concurrency below 1.

## What it does not do

- The package is a library only. It installs no command of its own.
- `query` does not accept a stream of input messages as its prompt.
- No component installs or authenticates the CLI itself.
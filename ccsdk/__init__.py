"""Async client library for the Claude Code command-line tool: one-shot queries,
interactive sessions, a subprocess transport, message parsing, pooling and retries."""

__version__ = "0.1.10"

__all__ = [
    "errors",
    "types",
    "message_parser",
    "transport",
    "cli_transport",
    "interactive",
    "perf_utils",
    "query",
    "optimized_client",
]
"""Exception hierarchy raised by the SDK."""

from __future__ import annotations

__all__ = [
    "SdkError",
    "InvalidStateError",
    "ParseError",
    "CliNotFoundError",
    "ProcessError",
    "ProcessExitedError",
    "SdkConnectionError",
    "NotSupportedError",
    "SdkTimeoutError",
    "TransportError",
]


class SdkError(Exception):
    """Base class of every error raised by the SDK."""


class InvalidStateError(SdkError):
    """An operation was attempted in a state that does not allow it."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid state: {message}")


class ParseError(SdkError):
    """A message coming from the CLI could not be understood."""

    def __init__(self, message: str, raw: str) -> None:
        self.message = message
        self.raw = raw
        super().__init__(f"Failed to parse message: {message}")


class CliNotFoundError(SdkError):
    """The Claude Code CLI binary could not be located."""

    def __init__(self, searched_paths: str) -> None:
        self.searched_paths = searched_paths
        super().__init__(
            "Claude Code CLI not found. "
            "Install with: npm install -g @anthropic-ai/claude-code\n\n"
            f"Searched in:\n{searched_paths}"
        )


class ProcessError(SdkError):
    """Starting or waiting on the CLI process failed."""

    def __init__(self, cause: BaseException | str) -> None:
        self.cause = cause
        super().__init__(f"Process error: {cause}")


class ProcessExitedError(SdkError):
    """The CLI process ended unsuccessfully."""

    def __init__(self, code: int | None) -> None:
        self.code = code
        if code is None:
            text = "Process terminated by a signal"
        else:
            text = f"Process exited with code {code}"
        super().__init__(text)


class SdkConnectionError(SdkError):
    """Communication with the CLI process could not be set up."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Connection error: {message}")


class NotSupportedError(SdkError):
    """A requested feature is not supported."""

    def __init__(self, feature: str) -> None:
        self.feature = feature
        super().__init__(f"Not supported: {feature}")


class SdkTimeoutError(SdkError):
    """An operation did not finish within its time limit."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        super().__init__(f"Operation timed out after {seconds} seconds")


class TransportError(SdkError):
    """The transport layer failed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Transport error: {message}")
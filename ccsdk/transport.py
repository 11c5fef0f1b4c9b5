"""Messages sent to the CLI and the interface every transport provides."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .types import InterruptAck, InterruptRequest, Message

__all__ = ["InputMessage", "TransportState", "Transport"]


@dataclass
class InputMessage:
    """A line of input for the CLI in stream-json format."""

    type: str
    message: Any
    parent_tool_use_id: str | None
    session_id: str

    @classmethod
    def user(cls, content: str, session_id: str) -> InputMessage:
        """A plain user prompt."""
        return cls(
            type="user",
            message={"role": "user", "content": content},
            parent_tool_use_id=None,
            session_id=session_id,
        )

    @classmethod
    def tool_result(
        cls, tool_use_id: str, content: str, session_id: str, is_error: bool
    ) -> InputMessage:
        """A user message carrying the result of a tool run."""
        return cls(
            type="user",
            message={
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": tool_use_id,
                        "content": content,
                        "is_error": is_error,
                    }
                ],
            },
            parent_tool_use_id=tool_use_id,
            session_id=session_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "parent_tool_use_id": self.parent_tool_use_id,
            "session_id": self.session_id,
        }

    def to_json(self) -> str:
        """Compact JSON, one line, as the CLI reads it."""
        return json.dumps(self.to_dict(), separators=(",", ":"))


class TransportState(Enum):
    """Lifecycle of a transport."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    ERROR = "error"


class Transport(ABC):
    """A channel to the Claude Code CLI."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the channel."""

    @abstractmethod
    async def send_message(self, message: InputMessage) -> None:
        """Send one input message."""

    @abstractmethod
    def receive_messages(self) -> AsyncIterator[Message]:
        """Iterate over messages coming from the CLI."""

    @abstractmethod
    async def send_control_request(self, request: InterruptRequest) -> None:
        """Send a control request such as an interrupt."""

    @abstractmethod
    async def receive_control_response(self) -> InterruptAck | None:
        """Wait for the next control response, or None when there are no more."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the channel is open."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the channel."""
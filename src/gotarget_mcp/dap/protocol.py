"""Wire format for talking to Delve's DAP server.

Delve speaks the Debug Adapter Protocol over TCP: each message is a JSON
object preceded by a ``Content-Length`` header and a blank line. Only the
requests and events needed to launch a prebuilt binary and later terminate
it are named here.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

# Upper bound for one message body read from dlv
MAX_CONTENT_LENGTH = 10_000_000


def encode_message(payload: dict[str, Any]) -> bytes:
    """Frame a JSON payload with its Content-Length header."""
    body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return b"Content-Length: %d\r\n\r\n" % len(body) + body


def parse_content_length(header: str) -> int | None:
    """Content length from a header line, or None for other headers.

    Raises:
        ValueError: If the length is malformed or out of bounds
    """
    name, sep, value = header.partition(":")
    if not sep or name.strip().lower() != "content-length":
        return None
    length = int(value.strip())
    if not 0 <= length <= MAX_CONTENT_LENGTH:
        raise ValueError(f"Invalid Content-Length: {length}")
    return length


@dataclass
class DAPRequest:
    """Request sent to dlv; ``seq`` is assigned by the client."""

    seq: int
    command: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {"seq": self.seq, "type": "request", "command": self.command}
        if self.arguments:
            message["arguments"] = self.arguments
        return message

    def to_bytes(self) -> bytes:
        return encode_message(self.to_dict())


@dataclass
class DAPResponse:
    """Reply to a request, matched by ``request_seq``."""

    seq: int
    request_seq: int
    success: bool
    command: str
    message: str | None = None
    body: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DAPResponse:
        # dlv sends "body": null on some replies
        return cls(
            seq=data["seq"],
            request_seq=data["request_seq"],
            success=data["success"],
            command=data["command"],
            message=data.get("message"),
            body=data.get("body") or {},
        )


@dataclass
class DAPEvent:
    """Notification pushed by dlv, e.g. ``initialized`` or ``exited``."""

    seq: int
    event: str
    body: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DAPEvent:
        return cls(seq=data["seq"], event=data["event"], body=data.get("body") or {})


_INBOUND = {
    "response": DAPResponse.from_dict,
    "event": DAPEvent.from_dict,
}


def parse_message(data: dict[str, Any]) -> DAPResponse | DAPEvent:
    """Decode an inbound message.

    Raises:
        ValueError: For anything other than a response or an event
    """
    parser = _INBOUND.get(data.get("type"))
    if parser is None:
        raise ValueError(f"Unknown message type: {data.get('type')}")
    return parser(data)


class Commands:
    INITIALIZE = "initialize"
    LAUNCH = "launch"
    CONFIGURATION_DONE = "configurationDone"
    DISCONNECT = "disconnect"
    TERMINATE = "terminate"


class Events:
    INITIALIZED = "initialized"
    OUTPUT = "output"
    EXITED = "exited"
    TERMINATED = "terminated"

"""
Mesh message payloads and their stored forms.

A [MeshMessage][clawmesh.models.message.MeshMessage] is the JSON object
carried inside a rumor (direct messages) or in the clear inside a channel
message. It is the only structure whose fields come from remote peers, so
[MeshMessage.from_dict()][clawmesh.models.message.MeshMessage.from_dict]
validates every field it relies on and raises on anything unexpected.

Wire form:

```json
{"v": 1, "type": "direct", "from_agent": "alice", "to_agent": "bob",
 "payload": {"text": "hi"}, "nonce": "3f0c...", "ts": 1718000000000}
```

``ts`` is a logical send time in milliseconds chosen by the sender. It is
used for ordering only; the jittered ``created_at`` values of the envelope
layers are never used for ordering.
"""

from __future__ import annotations

import json
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ._validation import (
    validate_instance,
    validate_mapping,
    validate_number,
    validate_str_no_null,
    validate_str_not_empty,
)
from .constants import PROTOCOL_VERSION, MessageType


def new_nonce() -> str:
    """Return a fresh random message nonce (UUID4 string)."""
    return str(uuid.uuid4())


def now_ms() -> int:
    """Return the current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class MeshMessage:
    """Structured message exchanged between agents.

    Attributes:
        type: One of [MessageType][clawmesh.models.constants.MessageType]
            (unknown strings from newer peers are kept as-is).
        from_agent: Sender's agent id.
        payload: Free-form payload; ``payload["text"]`` holds the body.
        nonce: Random identifier used for deduplication and acknowledgments.
        ts: Logical send time in milliseconds.
        to_agent: Recipient's agent id (absent for channel messages).
        v: Protocol version, always ``PROTOCOL_VERSION`` for valid messages.
    """

    type: str
    from_agent: str
    payload: Mapping[str, Any]
    nonce: str
    ts: int | float
    to_agent: str | None = None
    v: int = PROTOCOL_VERSION

    def __post_init__(self) -> None:
        if self.v != PROTOCOL_VERSION or isinstance(self.v, bool):
            raise ValueError(f"Unsupported protocol version: {self.v!r}")
        validate_str_not_empty(self.type, "type")
        validate_str_no_null(self.from_agent, "from_agent")
        if self.to_agent is not None:
            validate_str_no_null(self.to_agent, "to_agent")
        validate_mapping(self.payload, "payload")
        validate_str_not_empty(self.nonce, "nonce")
        validate_number(self.ts, "ts")
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    @classmethod
    def direct(cls, from_agent: str, to_agent: str, text: str) -> MeshMessage:
        """Build a new direct message with a fresh nonce and timestamp."""
        return cls(
            type=MessageType.DIRECT,
            from_agent=from_agent,
            to_agent=to_agent,
            payload={"text": text},
            nonce=new_nonce(),
            ts=now_ms(),
        )

    @classmethod
    def group(cls, from_agent: str, text: str) -> MeshMessage:
        """Build a new channel message (no recipient) with a fresh nonce."""
        return cls(
            type=MessageType.GROUP,
            from_agent=from_agent,
            payload={"text": text},
            nonce=new_nonce(),
            ts=now_ms(),
        )

    @classmethod
    def from_dict(cls, data: Any) -> MeshMessage:
        """Validate and build a message from a decoded JSON object.

        Raises:
            TypeError: If a field has the wrong type.
            ValueError: If the version is unsupported or a required field is
                missing or empty.
        """
        validate_mapping(data, "message")
        missing = [k for k in ("v", "type", "nonce", "ts") if k not in data]
        if missing:
            raise ValueError(f"Message is missing fields: {', '.join(missing)}")
        return cls(
            v=data["v"],
            type=data["type"],
            from_agent=data.get("from_agent", ""),
            to_agent=data.get("to_agent"),
            payload=data.get("payload") or {},
            nonce=data["nonce"],
            ts=data["ts"],
        )

    @classmethod
    def from_json(cls, raw: str) -> MeshMessage:
        """Parse and validate a message from JSON text.

        Raises:
            ValueError: On invalid JSON or any validation failure.
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise ValueError(f"Invalid message JSON: {e}") from e
        try:
            return cls.from_dict(data)
        except TypeError as e:
            raise ValueError(str(e)) from e

    @property
    def text(self) -> str:
        """The message body, or an empty string if the payload has none."""
        text = self.payload.get("text")
        return text if isinstance(text, str) else ""

    def to_dict(self) -> dict[str, Any]:
        """Return the wire JSON object (``to_agent`` omitted when unset)."""
        data: dict[str, Any] = {
            "v": self.v,
            "type": str(self.type),
            "from_agent": self.from_agent,
        }
        if self.to_agent is not None:
            data["to_agent"] = self.to_agent
        data["payload"] = dict(self.payload)
        data["nonce"] = self.nonce
        data["ts"] = self.ts
        return data

    def to_json(self) -> str:
        """Return the wire JSON text."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class InboxMessage:
    """A received direct message as kept in the local inbox.

    Attributes:
        id: Message id (the sender's nonce). Unique within the inbox.
        from_pubkey: Hex public key of the real sender (seal author).
        from_agent_id: Sender's claimed agent id, if any.
        content: Message text.
        timestamp: Logical send time in milliseconds.
        read: Whether the message has been marked as read.
        received_at: Local receipt time in milliseconds.
    """

    id: str
    from_pubkey: str
    from_agent_id: str | None
    content: str
    timestamp: int | float
    read: bool = False
    received_at: int = field(default_factory=now_ms)

    def __post_init__(self) -> None:
        validate_str_not_empty(self.id, "id")
        validate_str_not_empty(self.from_pubkey, "from_pubkey")
        validate_str_no_null(self.content, "content")
        validate_number(self.timestamp, "timestamp")
        validate_instance(self.read, bool, "read")

    @classmethod
    def from_mesh(cls, message: MeshMessage, sender_pubkey: str) -> InboxMessage:
        """Build the inbox entry for a validated direct message."""
        return cls(
            id=message.nonce,
            from_pubkey=sender_pubkey,
            from_agent_id=message.from_agent or None,
            content=message.text,
            timestamp=message.ts,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InboxMessage:
        """Rebuild an inbox entry from its stored dictionary form."""
        return cls(
            id=data["id"],
            from_pubkey=data["from_pubkey"],
            from_agent_id=data.get("from_agent_id"),
            content=data.get("content", ""),
            timestamp=data["timestamp"],
            read=bool(data.get("read", False)),
            received_at=int(data.get("received_at", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the stored dictionary form."""
        return {
            "id": self.id,
            "from_pubkey": self.from_pubkey,
            "from_agent_id": self.from_agent_id,
            "content": self.content,
            "timestamp": self.timestamp,
            "read": self.read,
            "received_at": self.received_at,
        }


@dataclass(frozen=True, slots=True)
class GroupMessage:
    """A message read from a public channel.

    Attributes:
        id: Event id of the channel message.
        group_id: Channel identifier.
        pubkey: Author public key (hex).
        agent_id: Author's claimed agent id when the content was structured.
        content: Message text, or the raw event content for plain-text posts.
        timestamp: Logical time in milliseconds (embedded ``ts`` when
            present, otherwise ``created_at * 1000``).
    """

    id: str
    group_id: str
    pubkey: str
    agent_id: str | None
    content: str
    timestamp: int | float

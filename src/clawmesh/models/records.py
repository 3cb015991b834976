"""
Directory entries and local cache records.

[DiscoveredAgent][clawmesh.models.records.DiscoveredAgent] is the parsed form
of a mapping record (kind 30078) read from relays.
[PeerRecord][clawmesh.models.records.PeerRecord] and
[ChannelRecord][clawmesh.models.records.ChannelRecord] are the rows kept by
the local [Store][clawmesh.core.store.Store]; both are keyed by a natural
identifier and upserted on every observation.
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ._validation import (
    validate_instance,
    validate_str_list,
    validate_str_no_null,
    validate_str_not_empty,
    validate_timestamp,
)
from .constants import PROTOCOL_VERSION, EventKind


if TYPE_CHECKING:
    from .event import Event


@dataclass(frozen=True, slots=True)
class DiscoveredAgent:
    """An agent announcement parsed from a mapping record.

    Attributes:
        agent_id: Announced agent identifier.
        pubkey: Hex public key that signed the announcement.
        capabilities: Declared capabilities.
        relays: Relay URLs the agent was connected to when it registered.
        registered_at: ``created_at`` of the announcement (seconds).
    """

    agent_id: str
    pubkey: str
    capabilities: tuple[str, ...] = ()
    relays: tuple[str, ...] = ()
    registered_at: int = 0

    def __post_init__(self) -> None:
        validate_str_not_empty(self.agent_id, "agent_id")
        validate_str_not_empty(self.pubkey, "pubkey")
        validate_str_list(self.capabilities, "capabilities")
        validate_str_list(self.relays, "relays")
        validate_timestamp(self.registered_at, "registered_at")
        object.__setattr__(self, "capabilities", tuple(self.capabilities))
        object.__setattr__(self, "relays", tuple(self.relays))

    @classmethod
    def from_event(cls, event: Event) -> DiscoveredAgent:
        """Parse a mapping record.

        Content must be a JSON object with a non-empty string ``agent_id``;
        ``capabilities`` defaults to an empty list and non-string entries are
        dropped.

        Raises:
            ValueError: If the event is not a mapping record or its content
                cannot be parsed.
        """
        if event.kind != EventKind.AGENT_MAPPING:
            raise ValueError(f"Not a mapping record: kind {event.kind}")
        try:
            content = json.loads(event.content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid mapping content: {e}") from e
        if not isinstance(content, Mapping):
            raise ValueError("Mapping content must be a JSON object")

        version = content.get("v", PROTOCOL_VERSION)
        if version != PROTOCOL_VERSION or isinstance(version, bool):
            raise ValueError(f"Unsupported mapping version: {version!r}")

        agent_id = content.get("agent_id")
        if not isinstance(agent_id, str) or not agent_id:
            raise ValueError("Mapping content has no agent_id")

        capabilities = content.get("capabilities") or []
        if not isinstance(capabilities, list):
            capabilities = []

        return cls(
            agent_id=agent_id,
            pubkey=event.pubkey,
            capabilities=tuple(c for c in capabilities if isinstance(c, str)),
            relays=tuple(event.tag_values("relay")),
            registered_at=event.created_at,
        )


@dataclass(frozen=True, slots=True)
class PeerRecord:
    """Local cache entry for a known peer, keyed by ``pubkey``.

    Attributes:
        pubkey: Hex public key (unique key).
        agent_id: Agent id last seen for this key, if any.
        last_seen: Unix seconds of the last observation.
        capabilities: Capabilities from the last observation.
        relays: Relays from the last observation.
    """

    pubkey: str
    agent_id: str | None = None
    last_seen: int = field(default_factory=lambda: int(time.time()))
    capabilities: tuple[str, ...] = ()
    relays: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        validate_str_not_empty(self.pubkey, "pubkey")
        if self.agent_id is not None:
            validate_str_no_null(self.agent_id, "agent_id")
        validate_timestamp(self.last_seen, "last_seen")
        validate_str_list(self.capabilities, "capabilities")
        validate_str_list(self.relays, "relays")
        object.__setattr__(self, "capabilities", tuple(self.capabilities))
        object.__setattr__(self, "relays", tuple(self.relays))

    @classmethod
    def from_agent(cls, agent: DiscoveredAgent, last_seen: int | None = None) -> PeerRecord:
        """Build the peer entry for a discovered agent, stamped now by default."""
        return cls(
            pubkey=agent.pubkey,
            agent_id=agent.agent_id,
            last_seen=int(time.time()) if last_seen is None else last_seen,
            capabilities=agent.capabilities,
            relays=agent.relays,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PeerRecord:
        return cls(
            pubkey=data["pubkey"],
            agent_id=data.get("agent_id"),
            last_seen=int(data.get("last_seen") or 0),
            capabilities=tuple(data.get("capabilities") or ()),
            relays=tuple(data.get("relays") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pubkey": self.pubkey,
            "agent_id": self.agent_id,
            "last_seen": self.last_seen,
            "capabilities": list(self.capabilities),
            "relays": list(self.relays),
        }


@dataclass(frozen=True, slots=True)
class ChannelRecord:
    """Local subscription marker for a channel, keyed by ``group_id``.

    Attributes:
        group_id: Channel identifier (unique key).
        private: Whether the channel is private.
        subscribed_at: Unix milliseconds of the first subscription.
    """

    group_id: str
    private: bool = False
    subscribed_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def __post_init__(self) -> None:
        validate_str_not_empty(self.group_id, "group_id")
        validate_instance(self.private, bool, "private")
        validate_timestamp(self.subscribed_at, "subscribed_at")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChannelRecord:
        return cls(
            group_id=data["group_id"],
            private=bool(data.get("private", False)),
            subscribed_at=int(data.get("subscribed_at") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "private": self.private,
            "subscribed_at": self.subscribed_at,
        }

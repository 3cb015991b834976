"""Frozen dataclasses for events, identities, messages, and cache records.

The models layer is the foundation of the diamond DAG. It performs no I/O
and depends only on the standard library, ``nostr_sdk`` value types and
``rfc3986``. Every model uses ``@dataclass(frozen=True, slots=True)`` and validates in
``__post_init__``, so invalid instances never escape the constructor.

Attributes:
    Event: Signature-verified wrapper around ``nostr_sdk.Event``.
    Identity: Signing keys bound to a validated agent id.
    MeshMessage: Validated message payload carried in rumors and channels.
    InboxMessage: A received direct message as stored locally.
    GroupMessage: A message read from a public channel.
    DiscoveredAgent: Parsed mapping record.
    PeerRecord: Local peer cache entry keyed by public key.
    ChannelRecord: Local channel subscription keyed by group id.
    EventKind: Nostr kinds used by the mesh protocols.
    MessageType: Values of a mesh message's ``type`` field.
    ErrorKind: Error categories returned by service results.
    normalize_relay_url: Canonical form of a ws:// or wss:// relay URL.
"""

from .constants import JITTER_WINDOW, PROTOCOL_VERSION, ErrorKind, EventKind, MessageType
from .event import Event
from .identity import AGENT_ID_PATTERN, Identity, is_valid_agent_id
from .message import GroupMessage, InboxMessage, MeshMessage, new_nonce, now_ms
from .records import ChannelRecord, DiscoveredAgent, PeerRecord
from .relay import normalize_relay_url


__all__ = [
    "AGENT_ID_PATTERN",
    "JITTER_WINDOW",
    "PROTOCOL_VERSION",
    "ChannelRecord",
    "DiscoveredAgent",
    "ErrorKind",
    "Event",
    "EventKind",
    "GroupMessage",
    "Identity",
    "InboxMessage",
    "MeshMessage",
    "MessageType",
    "PeerRecord",
    "is_valid_agent_id",
    "new_nonce",
    "normalize_relay_url",
    "now_ms",
]

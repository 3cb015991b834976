"""Shared constants for the models layer.

Defines enumerations and protocol constants that are used across multiple
model modules and by the protocol services. Placing them here avoids
circular dependencies between the models, nips, and services layers.

See Also:
    [clawmesh.models.message][]: Uses [MessageType][clawmesh.models.constants.MessageType]
        and ``PROTOCOL_VERSION`` to validate decrypted message payloads.
    [clawmesh.nips.nip59][]: Uses the envelope kinds and ``JITTER_WINDOW``.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Final


PROTOCOL_VERSION: Final[int] = 1
"""Version tag (``v``) carried by every mapping record and mesh message."""

JITTER_WINDOW: Final[int] = 2 * 24 * 60 * 60
"""Width in seconds of the random past window used for seal/wrap timestamps."""


class EventKind(IntEnum):
    """Well-known Nostr event kinds used by the mesh protocols.

    Attributes:
        CHANNEL_CREATE: Kind 40 -- public channel root (NIP-28).
        CHANNEL_MESSAGE: Kind 42 -- public channel message (NIP-28).
        SEAL: Kind 13 -- rumor encrypted and signed by the real sender (NIP-59).
        RUMOR: Kind 14 -- unsigned private direct message (NIP-17).
        GIFT_WRAP: Kind 1059 -- seal encrypted under a throwaway key (NIP-59).
        AGENT_MAPPING: Kind 30078 -- parameterized replaceable agent
            announcement keyed by agent id (NIP-78 application data).

    See Also:
        [Event][clawmesh.models.event.Event]: The event wrapper that carries
            these kinds.
    """

    SEAL = 13
    RUMOR = 14
    CHANNEL_CREATE = 40
    CHANNEL_MESSAGE = 42
    GIFT_WRAP = 1059
    AGENT_MAPPING = 30_078


class MessageType(StrEnum):
    """Values of the ``type`` field inside a mesh message payload."""

    DIRECT = "direct"
    ACK = "ack"
    GROUP = "group"
    INVITE = "invite"


class ErrorKind(StrEnum):
    """Error categories reported by service-level result objects.

    Services never raise for expected failures. Instead they return a
    result whose ``error`` field carries one of these values.

    Attributes:
        NO_CONNECTION: Zero usable relay endpoints.
        NOT_FOUND: Discovery found no valid record for an agent or channel.
        MALFORMED_REMOTE_DATA: An event failed verification, JSON parsing,
            or schema validation.
        DECRYPTION_FAILURE: Wrong key or corrupted ciphertext.
        TIMEOUT: A query hit its bound before every relay finished.
        INVALID_PARAMS: Caller misuse (bad agent id, missing identity, ...).
        PUBLISH_FAILED: No relay accepted a published event.
    """

    NO_CONNECTION = "no_connection"
    NOT_FOUND = "not_found"
    MALFORMED_REMOTE_DATA = "malformed_remote_data"
    DECRYPTION_FAILURE = "decryption_failure"
    TIMEOUT = "timeout"
    INVALID_PARAMS = "invalid_params"
    PUBLISH_FAILED = "publish_failed"

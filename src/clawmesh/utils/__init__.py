"""Utility layer: relay transport and identity storage.

Depends only on [clawmesh.models][]. Errors are raised as builtins
(``ConnectionError``, ``TimeoutError``, ``ValueError``) and mapped to the
clawmesh hierarchy by the layers above.

Attributes:
    RelayConnection: Protocol for one relay connection.
    NostrRelayConnection: Single-relay nostr-sdk client implementation.
    TransportConfig: Connect and publish timeouts.
    connect_relay: Default connector used by the relay pool.
    generate_identity, save_identity, load_identity: Identity file helpers.
    load_keys_from_env: Keys from an environment variable.
"""

from .keys import (
    ENV_PRIVATE_KEY,
    generate_identity,
    load_identity,
    load_keys_from_env,
    save_identity,
)
from .transport import (
    NostrRelayConnection,
    RelayConnection,
    RelayConnector,
    TransportConfig,
    connect_relay,
)


__all__ = [
    "ENV_PRIVATE_KEY",
    "NostrRelayConnection",
    "RelayConnection",
    "RelayConnector",
    "TransportConfig",
    "connect_relay",
    "generate_identity",
    "load_identity",
    "load_keys_from_env",
    "save_identity",
]

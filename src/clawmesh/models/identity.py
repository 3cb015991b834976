"""
Agent identity: a Nostr key pair bound to a human-readable agent id.

The identity is supplied by the caller. Key generation and on-disk storage
live in [clawmesh.utils.keys][]; this module only holds the in-memory value
and the agent id syntax rules.

See Also:
    [clawmesh.utils.keys][]: ``generate_identity``, ``save_identity`` and
        ``load_identity``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Final

from nostr_sdk import Keys, PublicKey

from ._validation import validate_instance, validate_str_not_empty


AGENT_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]{0,62}$")


def is_valid_agent_id(agent_id: str) -> bool:
    """Return True if *agent_id* is 1-63 chars of ``[a-zA-Z0-9._-]`` starting alphanumeric."""
    return isinstance(agent_id, str) and AGENT_ID_PATTERN.fullmatch(agent_id) is not None


@dataclass(frozen=True, slots=True)
class Identity:
    """A signing key pair and the agent id it announces.

    Attributes:
        keys: ``nostr_sdk.Keys`` holding the private key.
        agent_id: Validated agent identifier (see ``AGENT_ID_PATTERN``).
        public_key: Hex-encoded x-only public key (derived).
        npub: Bech32 ``npub1...`` form of the public key (derived).

    Raises:
        ValueError: If ``agent_id`` does not match ``AGENT_ID_PATTERN``.

    Warning:
        ``keys`` contains a live private key. Never log or serialize this
        object outside of [save_identity()][clawmesh.utils.keys.save_identity].
    """

    keys: Keys = field(repr=False)
    agent_id: str
    public_key: str = field(default=None, init=False)  # type: ignore[assignment]
    npub: str = field(default=None, init=False, repr=False)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        validate_instance(self.keys, Keys, "keys")
        validate_str_not_empty(self.agent_id, "agent_id")
        if not is_valid_agent_id(self.agent_id):
            raise ValueError(f"Invalid agent id: {self.agent_id!r}")
        public_key = self.keys.public_key()
        object.__setattr__(self, "public_key", public_key.to_hex())
        object.__setattr__(self, "npub", public_key.to_bech32())

    @property
    def nostr_public_key(self) -> PublicKey:
        """The public key as a ``nostr_sdk.PublicKey``."""
        return self.keys.public_key()

"""Agent identity generation and on-disk storage.

An identity is a Nostr key pair plus an agent id, stored as JSON at
``~/.clawmesh/identity.json``:

```json
{"privateKey": "<64 hex>", "publicKey": "<64 hex>", "npub": "npub1...",
 "agentId": "alice", "createdAt": 1718000000000}
```

The file is written with mode ``0600`` inside a ``0700`` directory.
[load_keys_from_env()][clawmesh.utils.keys.load_keys_from_env] lets
headless deployments supply the private key through an environment
variable instead of a file.

Warning:
    Private keys must never be logged. Nothing in this module logs key
    material.
"""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Final

from nostr_sdk import Keys

from clawmesh.models.identity import Identity, is_valid_agent_id


ENV_PRIVATE_KEY: Final[str] = "CLAWMESH_PRIVATE_KEY"  # pragma: allowlist secret


def generate_identity(agent_id: str) -> Identity:
    """Create a new identity with fresh keys.

    Raises:
        ValueError: If *agent_id* is not a valid agent id.
    """
    if not is_valid_agent_id(agent_id):
        raise ValueError(f"Invalid agent id: {agent_id!r}")
    return Identity(keys=Keys.generate(), agent_id=agent_id)


def save_identity(identity: Identity, path: str | Path) -> Path:
    """Write *identity* to *path* with owner-only permissions. Returns the path."""
    target = Path(path).expanduser()
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    data = {
        "privateKey": identity.keys.secret_key().to_hex(),
        "publicKey": identity.public_key,
        "npub": identity.npub,
        "agentId": identity.agent_id,
        "createdAt": int(time.time() * 1000),
    }
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    os.chmod(target, 0o600)
    return target


def load_identity(path: str | Path) -> Identity | None:
    """Read an identity file.

    Returns:
        The identity, or ``None`` if the file does not exist.

    Raises:
        ValueError: If the file is unreadable, lacks ``privateKey`` or
            ``agentId``, holds an invalid key, or its ``publicKey`` does not
            match the private key.
    """
    source = Path(path).expanduser()
    if not source.exists():
        return None
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Unreadable identity file {source}: {e}") from e
    if not isinstance(data, dict) or not data.get("privateKey") or not data.get("agentId"):
        raise ValueError(f"Identity file {source} is missing privateKey or agentId")

    try:
        keys = Keys.parse(data["privateKey"])
    except Exception as e:  # nostr-sdk FFI raises its own error types
        raise ValueError(f"Invalid private key in {source}") from e

    identity = Identity(keys=keys, agent_id=data["agentId"])
    stored_pubkey = data.get("publicKey")
    if stored_pubkey and stored_pubkey != identity.public_key:
        raise ValueError(f"Identity file {source} public key does not match its private key")
    return identity


def load_keys_from_env(env_var: str = ENV_PRIVATE_KEY) -> Keys:
    """Load keys from an environment variable (nsec1 bech32 or 64-char hex).

    Raises:
        ValueError: If the variable is unset, empty, or not a valid key.
    """
    value = os.getenv(env_var)
    if not value:
        raise ValueError(f"{env_var} environment variable is not set")
    try:
        return Keys.parse(value)
    except Exception as e:  # nostr-sdk FFI raises its own error types
        raise ValueError(f"{env_var} does not hold a valid private key") from e

"""clawmesh exception hierarchy.

Provides typed exceptions for every error category so that callers can
distinguish "no relay is reachable" from "a peer sent garbage" without
string matching, and so that ``CancelledError`` is never swallowed by a
broad ``except Exception``.

Exception hierarchy:

```text
ClawmeshError (base -- never raised directly)
├── ConfigurationError          -- bad YAML, invalid config values
├── IdentityError               -- missing identity, invalid agent id
├── ConnectivityError           -- relay/network failures
│   ├── NoConnectionError       -- zero usable relay endpoints
│   ├── RelayTimeoutError       -- connect or acknowledgment timed out
│   └── PoolClosedError         -- operation on a closed relay pool
└── ProtocolError               -- remote data failed validation
    ├── MalformedRemoteDataError -- bad signature, JSON, or schema
    └── DecryptionError         -- wrong key or corrupted ciphertext
```

Per-relay and per-event failures are absorbed inside the pool and the
protocol services; only the conditions a caller must act on (no relay,
misuse) surface from service functions, and then as result values.

See Also:
    [RelayPool][clawmesh.core.pool.RelayPool]: Raises
        [NoConnectionError][clawmesh.core.exceptions.NoConnectionError] from
        ``require_connected()`` and
        [PoolClosedError][clawmesh.core.exceptions.PoolClosedError] after
        ``close()``.
    [clawmesh.nips.nip59][]: Raises
        [DecryptionError][clawmesh.core.exceptions.DecryptionError] and
        [MalformedRemoteDataError][clawmesh.core.exceptions.MalformedRemoteDataError]
        while opening gift wraps.
"""

from __future__ import annotations


class ClawmeshError(Exception):
    """Base exception for all clawmesh errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(ClawmeshError):
    """Invalid or missing configuration (YAML, env vars, CLI flags)."""


class IdentityError(ClawmeshError):
    """Missing identity file, unparseable key, or invalid agent id."""


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(ClawmeshError):
    """Base for all relay/network connectivity errors."""


class NoConnectionError(ConnectivityError):
    """Zero relay endpoints are usable.

    The only pool-level condition escalated to callers.
    """


class RelayTimeoutError(ConnectivityError):
    """Connection or acknowledgment timed out."""


class PoolClosedError(ConnectivityError):
    """An operation was attempted on a relay pool after ``close()``."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(ClawmeshError):
    """Remote data failed protocol validation."""


class MalformedRemoteDataError(ProtocolError):
    """An event failed verification, JSON parsing, or schema validation."""


class DecryptionError(ProtocolError):
    """Ciphertext could not be decrypted with the derived conversation key."""

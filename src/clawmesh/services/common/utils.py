"""Helpers shared by the protocol services."""

from __future__ import annotations

from typing import TYPE_CHECKING

from clawmesh.core.exceptions import ConnectivityError, PoolClosedError
from clawmesh.models.constants import ErrorKind
from clawmesh.models.event import Event


if TYPE_CHECKING:
    from nostr_sdk import EventBuilder

    from clawmesh.core.pool import QueryResult, RelayPool
    from clawmesh.models.identity import Identity


def pool_error(pool: RelayPool) -> tuple[ErrorKind, str] | None:
    """Return ``(error, message)`` if *pool* cannot be used, else ``None``.

    A closed pool is caller misuse and maps to ``INVALID_PARAMS``; a pool
    without connected relays maps to ``NO_CONNECTION``.
    """
    try:
        pool.require_connected()
    except PoolClosedError as e:
        return ErrorKind.INVALID_PARAMS, str(e)
    except ConnectivityError as e:
        return ErrorKind.NO_CONNECTION, str(e)
    return None


def all_timed_out(result: QueryResult) -> bool:
    """True if the query returned nothing and no relay reached EOSE."""
    return not result.events and not result.completed and bool(result.timed_out)


def sign(builder: EventBuilder, identity: Identity) -> Event:
    """Sign *builder* with the identity's keys."""
    return Event(builder.sign_with_keys(identity.keys))

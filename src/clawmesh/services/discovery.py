"""
Agent discovery over mapping records (kind 30078).

Each agent announces itself with a parameterized replaceable event keyed
by its agent id (``["d", agent_id]``), listing its capabilities and the
relays it was connected to when it registered. Relays may hold different
versions of the same announcement; readers reconcile them by freshness:
the record with the greatest ``created_at`` wins, whichever relay it came
from.

Records are parsed leniently. A record with unparseable content, no
``agent_id``, or (for targeted lookups) an ``agent_id`` different from the
one requested is dropped and logged at DEBUG; it never fails the lookup.

See Also:
    [build_mapping_record()][clawmesh.nips.event_builders.build_mapping_record]:
        Builds the announcement.
    [DiscoveredAgent.from_event()][clawmesh.models.records.DiscoveredAgent.from_event]:
        Parses it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from clawmesh.core.logger import Logger
from clawmesh.models.constants import ErrorKind
from clawmesh.models.identity import is_valid_agent_id
from clawmesh.models.records import DiscoveredAgent, PeerRecord
from clawmesh.nips.event_builders import build_mapping_record
from clawmesh.nips.filters import mapping_filter

from .common.types import DirectoryResult, LookupResult, RegisterResult
from .common.utils import all_timed_out, pool_error, sign


if TYPE_CHECKING:
    from collections.abc import Iterable

    from clawmesh.core.pool import RelayPool
    from clawmesh.core.store import Store
    from clawmesh.models.event import Event
    from clawmesh.models.identity import Identity


LOOKUP_TIMEOUT: Final[float] = 5.0
SCAN_TIMEOUT: Final[float] = 10.0

_logger = Logger("clawmesh.discovery")


def _parse(event: Event) -> DiscoveredAgent | None:
    try:
        return DiscoveredAgent.from_event(event)
    except (ValueError, TypeError) as e:
        _logger.debug("mapping_record_dropped", event=event.id, error=str(e))
        return None


def _freshness_key(pair: tuple[Event, DiscoveredAgent]) -> tuple[int, str]:
    # Greatest created_at first; equal timestamps fall back to the smaller id.
    event, agent = pair
    return (-agent.registered_at, event.id)


def merge_records(events: Iterable[Event]) -> list[DiscoveredAgent]:
    """Reconcile mapping records into one entry per agent id.

    Invalid records are dropped. For each agent id the record with the
    greatest ``created_at`` is kept. The result is ordered freshest first,
    then by agent id.
    """
    best: dict[str, tuple[Event, DiscoveredAgent]] = {}
    for event in events:
        agent = _parse(event)
        if agent is None:
            continue
        current = best.get(agent.agent_id)
        if current is None or _freshness_key((event, agent)) < _freshness_key(current):
            best[agent.agent_id] = (event, agent)
    merged = [agent for _, agent in best.values()]
    merged.sort(key=lambda a: (-a.registered_at, a.agent_id))
    return merged


async def register(
    pool: RelayPool,
    identity: Identity,
    capabilities: Iterable[str] = (),
) -> RegisterResult:
    """Publish the identity's mapping record, tagged with every connected relay."""
    error = pool_error(pool)
    if error is not None:
        return RegisterResult(success=False, error=error[0], message=error[1])

    caps = [c for c in (s.strip() for s in capabilities) if c]
    event = sign(build_mapping_record(identity.agent_id, caps, pool.connected), identity)
    result = await pool.publish(event)

    _logger.info(
        "agent_registered" if result.ok else "agent_register_failed",
        agent_id=identity.agent_id,
        accepted=len(result.success),
        failed=len(result.failed),
    )
    if not result.ok:
        return RegisterResult(
            success=False,
            event_id=event.id,
            failed=result.failed,
            error=ErrorKind.PUBLISH_FAILED,
            message="No relay accepted the mapping record",
        )
    return RegisterResult(
        success=True, event_id=event.id, relays=result.success, failed=result.failed
    )


async def lookup_one(
    pool: RelayPool,
    agent_id: str,
    *,
    timeout: float = LOOKUP_TIMEOUT,  # noqa: ASYNC109
) -> LookupResult:
    """Resolve *agent_id* to its freshest valid mapping record."""
    if not is_valid_agent_id(agent_id):
        return LookupResult(
            success=False, error=ErrorKind.INVALID_PARAMS, message=f"Invalid agent id: {agent_id!r}"
        )
    error = pool_error(pool)
    if error is not None:
        return LookupResult(success=False, error=error[0], message=error[1])

    result = await pool.query(mapping_filter(agent_id), timeout=timeout)
    matching = []
    for event in result.events:
        agent = _parse(event)
        if agent is None:
            continue
        if agent.agent_id != agent_id:
            _logger.debug("mapping_record_mismatch", event=event.id, agent_id=agent.agent_id)
            continue
        matching.append((event, agent))

    if not matching:
        if all_timed_out(result):
            return LookupResult(
                success=False,
                error=ErrorKind.TIMEOUT,
                message=f"No relay answered within {timeout}s",
            )
        return LookupResult(
            success=False, error=ErrorKind.NOT_FOUND, message=f"Agent not found: {agent_id}"
        )

    _, agent = min(matching, key=_freshness_key)
    _logger.debug("agent_resolved", agent_id=agent_id, pubkey=agent.pubkey, records=len(matching))
    return LookupResult(success=True, agent=agent)


async def lookup_all(
    pool: RelayPool,
    store: Store | None = None,
    *,
    prefix: str | None = None,
    limit: int | None = None,
    timeout: float = SCAN_TIMEOUT,  # noqa: ASYNC109
) -> DirectoryResult:
    """Scan every mapping record and return the reconciled directory.

    ``total`` counts distinct valid agents before *prefix* and *limit*
    are applied. ``limit <= 0`` or ``None`` means no limit. Every returned
    agent is upserted into the store's peers, stamped with the current time.
    """
    error = pool_error(pool)
    if error is not None:
        return DirectoryResult(success=False, error=error[0], message=error[1])

    result = await pool.query(mapping_filter(), timeout=timeout)
    agents = merge_records(result.events)
    total = len(agents)

    if prefix:
        agents = [a for a in agents if a.agent_id.startswith(prefix)]
    if limit is not None and limit > 0:
        agents = agents[:limit]

    if store is not None:
        for agent in agents:
            store.upsert_peer(PeerRecord.from_agent(agent))

    _logger.info(
        "directory_scanned",
        events=len(result.events),
        total=total,
        returned=len(agents),
        timed_out=len(result.timed_out),
    )
    return DirectoryResult(success=True, agents=tuple(agents), total=total, partial=result.partial)

"""
Public group channels (NIP-28 kinds 40 and 42).

A channel is a root event (kind 40) keyed by ``["d", group_id]`` with
unencrypted metadata, plus messages (kind 42) that reference the root with
``["e", root_id, "", "root"]``. Message content is a plaintext
[MeshMessage][clawmesh.models.message.MeshMessage] of type ``group``.

Two agents posting to a new channel at the same time may each create a
root. Readers and writers resolve the duplicates the same way: the root
with the smallest ``created_at`` wins, ties going to the lexicographically
smallest event id. Messages posted under a losing root are not shown.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Final

from clawmesh.core.logger import Logger
from clawmesh.models.constants import ErrorKind, EventKind
from clawmesh.models.identity import is_valid_agent_id
from clawmesh.models.message import GroupMessage, MeshMessage
from clawmesh.models.records import ChannelRecord
from clawmesh.nips.event_builders import build_channel_create, build_channel_message
from clawmesh.nips.filters import channel_messages_filter, channel_root_filter

from .common.types import ChannelMessagesResult, ChannelResult
from .common.utils import all_timed_out, pool_error, sign
from .discovery import LOOKUP_TIMEOUT, SCAN_TIMEOUT


if TYPE_CHECKING:
    from collections.abc import Iterable

    from clawmesh.core.pool import RelayPool
    from clawmesh.core.store import Store
    from clawmesh.models.event import Event
    from clawmesh.models.identity import Identity


DEFAULT_HISTORY_LIMIT: Final[int] = 50

_logger = Logger("clawmesh.channels")


def is_valid_group_id(group_id: str) -> bool:
    """Group ids follow the agent id syntax."""
    return is_valid_agent_id(group_id)


def select_root(events: Iterable[Event], group_id: str) -> Event | None:
    """Pick the canonical root among candidate kind 40 events for *group_id*."""
    candidates = [
        e
        for e in events
        if e.kind == EventKind.CHANNEL_CREATE and group_id in e.tag_values("d")
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda e: (e.created_at, e.id))


async def resolve_root(
    pool: RelayPool,
    group_id: str,
    *,
    timeout: float = LOOKUP_TIMEOUT,  # noqa: ASYNC109
) -> Event | None:
    """Query relays for the canonical root of *group_id*."""
    result = await pool.query(channel_root_filter(group_id), timeout=timeout)
    root = select_root(result.events, group_id)
    if root is not None and len(result.events) > 1:
        _logger.debug("channel_roots_reconciled", group_id=group_id, roots=len(result.events), root=root.id)
    return root


def parse_group_message(event: Event, group_id: str) -> GroupMessage:
    """Convert a kind 42 event into a [GroupMessage][clawmesh.models.message.GroupMessage].

    Structured content supplies the author's agent id, the text and the
    logical timestamp. Anything else is treated as a plain-text post
    timestamped from ``created_at``.
    """
    agent_id: str | None = None
    text = event.content
    timestamp: int | float = event.created_at * 1000

    try:
        data: Any = json.loads(event.content)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        if isinstance(data.get("from_agent"), str) and data["from_agent"]:
            agent_id = data["from_agent"]
        payload = data.get("payload")
        if isinstance(payload, dict) and isinstance(payload.get("text"), str) and payload["text"]:
            text = payload["text"]
        ts = data.get("ts")
        if isinstance(ts, int | float) and not isinstance(ts, bool) and ts >= 0:
            timestamp = ts

    return GroupMessage(
        id=event.id,
        group_id=group_id,
        pubkey=event.pubkey,
        agent_id=agent_id,
        content=text,
        timestamp=timestamp,
    )


async def create_channel(
    pool: RelayPool,
    identity: Identity,
    store: Store | None,
    group_id: str,
    name: str | None = None,
    about: str | None = None,
) -> ChannelResult:
    """Publish a channel root and, on success, subscribe to it locally."""
    if not is_valid_group_id(group_id):
        return ChannelResult(
            success=False,
            group_id=group_id,
            error=ErrorKind.INVALID_PARAMS,
            message=f"Invalid group id: {group_id!r}",
        )
    error = pool_error(pool)
    if error is not None:
        return ChannelResult(success=False, group_id=group_id, error=error[0], message=error[1])

    event = sign(build_channel_create(group_id, name=name, about=about), identity)
    result = await pool.publish(event)
    if not result.ok:
        _logger.warning("channel_create_failed", group_id=group_id, failed=len(result.failed))
        return ChannelResult(
            success=False,
            group_id=group_id,
            event_id=event.id,
            error=ErrorKind.PUBLISH_FAILED,
            message="No relay accepted the channel root",
        )

    if store is not None:
        store.upsert_channel(ChannelRecord(group_id=group_id))
    _logger.info("channel_created", group_id=group_id, root=event.id, accepted=len(result.success))
    return ChannelResult(
        success=True,
        group_id=group_id,
        event_id=event.id,
        root_id=event.id,
        relays=result.success,
    )


async def post_to_channel(
    pool: RelayPool,
    identity: Identity,
    store: Store | None,
    group_id: str,
    text: str,
    *,
    timeout: float = LOOKUP_TIMEOUT,  # noqa: ASYNC109
) -> ChannelResult:
    """Post *text* to *group_id*, creating the channel root if none exists."""
    if not is_valid_group_id(group_id):
        return ChannelResult(
            success=False,
            group_id=group_id,
            error=ErrorKind.INVALID_PARAMS,
            message=f"Invalid group id: {group_id!r}",
        )
    error = pool_error(pool)
    if error is not None:
        return ChannelResult(success=False, group_id=group_id, error=error[0], message=error[1])

    root = await resolve_root(pool, group_id, timeout=timeout)
    if root is not None:
        root_id = root.id
    else:
        created = await create_channel(pool, identity, store, group_id)
        if not created.success or created.root_id is None:
            return created
        root_id = created.root_id

    message = MeshMessage.group(identity.agent_id, text)
    event = sign(build_channel_message(root_id, message), identity)
    result = await pool.publish(event)
    if not result.ok:
        _logger.warning("channel_post_failed", group_id=group_id, failed=len(result.failed))
        return ChannelResult(
            success=False,
            group_id=group_id,
            event_id=event.id,
            root_id=root_id,
            error=ErrorKind.PUBLISH_FAILED,
            message="No relay accepted the channel message",
        )

    _logger.info("channel_posted", group_id=group_id, event=event.id, accepted=len(result.success))
    return ChannelResult(
        success=True,
        group_id=group_id,
        event_id=event.id,
        root_id=root_id,
        relays=result.success,
    )


async def fetch_channel_messages(
    pool: RelayPool,
    group_id: str,
    *,
    limit: int = DEFAULT_HISTORY_LIMIT,
    timeout: float = SCAN_TIMEOUT,  # noqa: ASYNC109
) -> ChannelMessagesResult:
    """Read the most recent *limit* messages of *group_id*, oldest first."""
    error = pool_error(pool)
    if error is not None:
        return ChannelMessagesResult(
            success=False, group_id=group_id, error=error[0], message=error[1]
        )

    root = await resolve_root(pool, group_id, timeout=min(timeout, LOOKUP_TIMEOUT))
    if root is None:
        return ChannelMessagesResult(
            success=False,
            group_id=group_id,
            error=ErrorKind.NOT_FOUND,
            message=f"Channel not found: {group_id}",
        )

    result = await pool.query(channel_messages_filter(root.id, limit), timeout=timeout)
    messages = [
        parse_group_message(event, group_id)
        for event in result.events
        if event.kind == EventKind.CHANNEL_MESSAGE and root.id in event.tag_values("e")
    ]
    messages.sort(key=lambda m: (m.timestamp, m.id))
    if limit > 0:
        messages = messages[-limit:]

    if not messages and all_timed_out(result):
        return ChannelMessagesResult(
            success=False,
            group_id=group_id,
            root_id=root.id,
            error=ErrorKind.TIMEOUT,
            message=f"No relay answered within {timeout}s",
        )
    return ChannelMessagesResult(
        success=True, group_id=group_id, root_id=root.id, messages=tuple(messages)
    )


def subscribe_channel(store: Store, group_id: str, private: bool = False) -> bool:
    """Record a local subscription. Returns False if already subscribed.

    Raises:
        ValueError: If *group_id* is not a valid group id.
    """
    if not is_valid_group_id(group_id):
        raise ValueError(f"Invalid group id: {group_id!r}")
    return store.upsert_channel(ChannelRecord(group_id=group_id, private=private))


def list_channels(store: Store) -> list[ChannelRecord]:
    return store.list_channels()

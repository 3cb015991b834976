"""Nostr event builders for the mesh protocol kinds.

Standalone functions returning ``nostr_sdk.EventBuilder`` objects; callers
sign them with ``sign_with_keys()`` and wrap the result in
[Event][clawmesh.models.event.Event]. Used by the discovery service
(kind 30078) and the channel service (kinds 40 and 42). Private-message
envelopes are built in [clawmesh.nips.nip59][].

See Also:
    [clawmesh.nips.filters][]: The matching query filters.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from nostr_sdk import EventBuilder, Kind, Tag

from clawmesh.models.constants import PROTOCOL_VERSION, EventKind


if TYPE_CHECKING:
    from collections.abc import Iterable

    from clawmesh.models.message import MeshMessage


# =============================================================================
# Kind 30078 (agent mapping)
# =============================================================================


def build_mapping_record(
    agent_id: str,
    capabilities: Iterable[str] = (),
    relays: Iterable[str] = (),
) -> EventBuilder:
    """Build a parameterized replaceable agent announcement.

    The ``d`` tag makes relays keep one record per (author, agent id). One
    ``relay`` tag is added per relay URL.
    """
    content = {
        "v": PROTOCOL_VERSION,
        "agent_id": agent_id,
        "capabilities": list(capabilities),
    }
    tags = [Tag.parse(["d", agent_id])]
    tags.extend(Tag.parse(["relay", url]) for url in relays)
    return EventBuilder(Kind(EventKind.AGENT_MAPPING), json.dumps(content)).tags(tags)


# =============================================================================
# Kinds 40 / 42 (NIP-28 channels)
# =============================================================================


def build_channel_create(
    group_id: str,
    *,
    name: str | None = None,
    about: str | None = None,
    picture: str = "",
) -> EventBuilder:
    """Build a channel root keyed by *group_id* with NIP-28 metadata content."""
    metadata = {
        "name": name or group_id,
        "about": about if about is not None else f"ClawMesh group: {group_id}",
        "picture": picture,
    }
    return EventBuilder(Kind(EventKind.CHANNEL_CREATE), json.dumps(metadata)).tags(
        [Tag.parse(["d", group_id])]
    )


def build_channel_message(root_id: str, message: MeshMessage) -> EventBuilder:
    """Build a channel message replying to the channel root *root_id*."""
    return EventBuilder(Kind(EventKind.CHANNEL_MESSAGE), message.to_json()).tags(
        [Tag.parse(["e", root_id, "", "root"])]
    )

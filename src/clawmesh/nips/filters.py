"""Query filters for the mesh protocol kinds.

Every filter is a ``nostr_sdk.Filter``, passed unchanged to the relay
clients' subscriptions.
"""

from __future__ import annotations

from nostr_sdk import Alphabet, Filter, Kind, SingleLetterTag, Timestamp

from clawmesh.models.constants import EventKind


def _tag(letter: Alphabet) -> SingleLetterTag:
    return SingleLetterTag.lowercase(letter)


def mapping_filter(agent_id: str | None = None) -> Filter:
    """Mapping records, optionally only those keyed by *agent_id*."""
    f = Filter().kind(Kind(EventKind.AGENT_MAPPING))
    if agent_id is not None:
        f = f.custom_tag(_tag(Alphabet.D), agent_id)
    return f


def gift_wrap_filter(recipient: str, since: int | None = None) -> Filter:
    """Gift wraps addressed to the hex public key *recipient*."""
    f = Filter().kind(Kind(EventKind.GIFT_WRAP)).custom_tag(_tag(Alphabet.P), recipient)
    if since is not None:
        f = f.since(Timestamp.from_secs(since))
    return f


def channel_root_filter(group_id: str) -> Filter:
    """Channel roots keyed by *group_id*."""
    return Filter().kind(Kind(EventKind.CHANNEL_CREATE)).custom_tag(_tag(Alphabet.D), group_id)


def channel_messages_filter(root_id: str, limit: int | None = None) -> Filter:
    """Messages replying to the channel root *root_id*."""
    f = Filter().kind(Kind(EventKind.CHANNEL_MESSAGE)).custom_tag(_tag(Alphabet.E), root_id)
    if limit is not None and limit > 0:
        f = f.limit(limit)
    return f

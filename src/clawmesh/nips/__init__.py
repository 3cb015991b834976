"""Nostr Implementation Possibilities -- protocol-specific build and parse logic.

The NIPs layer sits in the middle of the diamond DAG, depending on
[clawmesh.models][] and the leaf
[clawmesh.core.exceptions][] module. It performs no network I/O.

Attributes:
    nip44: NIP-44 v2 encryption wrappers raising
        [DecryptionError][clawmesh.core.exceptions.DecryptionError].
    nip59: Rumor/seal/gift-wrap construction and unwrapping with
        timestamp jitter and throwaway wrap keys.
    event_builders: Builders for mapping records (kind 30078) and NIP-28
        channel events (kinds 40 and 42).
    filters: ``nostr_sdk.Filter`` factories for each protocol query.
"""

from . import nip44, nip59
from .event_builders import build_channel_create, build_channel_message, build_mapping_record
from .filters import channel_messages_filter, channel_root_filter, gift_wrap_filter, mapping_filter
from .nip59 import UnwrappedRumor, gift_wrap, random_past_timestamp, seal, unwrap, wrap_message


__all__ = [
    "UnwrappedRumor",
    "build_channel_create",
    "build_channel_message",
    "build_mapping_record",
    "channel_messages_filter",
    "channel_root_filter",
    "gift_wrap",
    "gift_wrap_filter",
    "mapping_filter",
    "nip44",
    "nip59",
    "random_past_timestamp",
    "seal",
    "unwrap",
    "wrap_message",
]

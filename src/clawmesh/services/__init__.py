"""Protocol services plus the background listener.

Services are the top layer of the diamond DAG, depending on
[clawmesh.core][], [clawmesh.nips][], [clawmesh.utils][] and
[clawmesh.models][]. The three protocol modules depend only on the relay
pool's publish/query/subscribe contract and the store contract, never on
each other (messaging uses discovery only in the ``send_to_agent``
convenience).

Attributes:
    discovery: ``register``, ``lookup_one``, ``lookup_all``.
    messaging: ``send``, ``send_to_agent``, ``receive``, ``watch_inbox``.
    channels: ``create_channel``, ``post_to_channel``,
        ``fetch_channel_messages``, ``subscribe_channel``, ``list_channels``.
    Listener: [BaseService][clawmesh.core.base_service.BaseService] that
        polls the inbox on an interval.

Note:
    Every protocol operation returns a result dataclass from
    [clawmesh.services.common.types][] and never raises for expected
    failures.
"""

from . import channels, discovery, messaging
from .channels import (
    create_channel,
    fetch_channel_messages,
    list_channels,
    post_to_channel,
    subscribe_channel,
)
from .common.types import (
    ChannelMessagesResult,
    ChannelResult,
    DirectoryResult,
    LookupResult,
    ReceiveResult,
    RegisterResult,
    SendResult,
)
from .discovery import lookup_all, lookup_one, register
from .listener import Listener, ListenerConfig
from .messaging import receive, send, send_to_agent, watch_inbox


__all__ = [
    "ChannelMessagesResult",
    "ChannelResult",
    "DirectoryResult",
    "Listener",
    "ListenerConfig",
    "LookupResult",
    "ReceiveResult",
    "RegisterResult",
    "SendResult",
    "channels",
    "create_channel",
    "discovery",
    "fetch_channel_messages",
    "list_channels",
    "lookup_all",
    "lookup_one",
    "messaging",
    "post_to_channel",
    "receive",
    "register",
    "send",
    "send_to_agent",
    "subscribe_channel",
    "watch_inbox",
]

"""Result types returned by the protocol services.

Service functions never raise for expected failures (no relay, nothing
found, malformed remote data). They return one of these frozen
dataclasses with ``success`` set and, on failure, an
[ErrorKind][clawmesh.models.constants.ErrorKind] in ``error`` and a
human-readable ``message``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from clawmesh.models.constants import ErrorKind
    from clawmesh.models.message import GroupMessage, InboxMessage
    from clawmesh.models.records import DiscoveredAgent


@dataclass(frozen=True, slots=True)
class RegisterResult:
    """Outcome of publishing a mapping record.

    Attributes:
        success: At least one relay accepted the record.
        event_id: Id of the published record (set even when no relay accepted it).
        relays: Relays that accepted the record.
        failed: Relays that rejected it or errored.
    """

    success: bool
    event_id: str | None = None
    relays: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    error: ErrorKind | None = None
    message: str = ""


@dataclass(frozen=True, slots=True)
class LookupResult:
    """Outcome of resolving one agent id."""

    success: bool
    agent: DiscoveredAgent | None = None
    error: ErrorKind | None = None
    message: str = ""


@dataclass(frozen=True, slots=True)
class DirectoryResult:
    """Outcome of a full directory scan.

    Attributes:
        agents: Agents after prefix filter and limit, in discovery order.
        total: Distinct valid agents on the network before filtering.
        partial: Some relays timed out or failed during the scan.
    """

    success: bool
    agents: tuple[DiscoveredAgent, ...] = ()
    total: int = 0
    partial: bool = False
    error: ErrorKind | None = None
    message: str = ""


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of sending a direct message.

    Attributes:
        message_id: The message nonce, shared with the recipient's inbox entry.
        relays: Relays that accepted the gift wrap.
        failed: Relays that rejected it or errored.
    """

    success: bool
    message_id: str | None = None
    relays: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    error: ErrorKind | None = None
    message: str = ""


@dataclass(frozen=True, slots=True)
class ReceiveResult:
    """Outcome of fetching the inbox from relays.

    Attributes:
        messages: Newly stored messages, oldest logical timestamp first.
        dropped: Gift wraps that failed decryption or validation.
        duplicates: Valid messages already present in the store.
        partial: Some relays timed out or failed during the query.
    """

    success: bool
    messages: tuple[InboxMessage, ...] = ()
    dropped: int = 0
    duplicates: int = 0
    partial: bool = False
    error: ErrorKind | None = None
    message: str = ""


@dataclass(frozen=True, slots=True)
class ChannelResult:
    """Outcome of creating a channel or posting to one.

    Attributes:
        group_id: Channel identifier.
        event_id: Id of the published kind 40 or kind 42 event.
        root_id: Id of the channel root the operation resolved.
        relays: Relays that accepted the event.
    """

    success: bool
    group_id: str
    event_id: str | None = None
    root_id: str | None = None
    relays: tuple[str, ...] = ()
    error: ErrorKind | None = None
    message: str = ""


@dataclass(frozen=True, slots=True)
class ChannelMessagesResult:
    """Outcome of reading a channel's history.

    Attributes:
        messages: At most ``limit`` most recent messages, oldest first.
    """

    success: bool
    group_id: str
    root_id: str | None = None
    messages: tuple[GroupMessage, ...] = ()
    error: ErrorKind | None = None
    message: str = ""

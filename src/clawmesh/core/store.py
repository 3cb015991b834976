"""
Local persistence for peers, inbox messages, channels, and cursors.

The protocol services only see the [Store][clawmesh.core.store.Store]
protocol. Every mutation is idempotent on its natural key:

- peers are upserted by ``pubkey`` (last write wins on every field);
- inbox messages are appended only if their ``id`` (the sender's nonce) is
  not already present;
- channels are inserted once per ``group_id``; re-subscribing is a no-op.

Two implementations are provided.
[MemoryStore][clawmesh.core.store.MemoryStore] keeps everything in
dictionaries and is what the tests use.
[JsonStore][clawmesh.core.store.JsonStore] persists the same data to a
single JSON file (``~/.clawmesh/store.json`` by default) after every
mutation, written with mode ``0600`` through an atomic rename.

The store is process-local and single-threaded: each read-modify-write
happens within one synchronous call, so no locking is needed on the event
loop.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from clawmesh.models.message import InboxMessage
from clawmesh.models.records import ChannelRecord, PeerRecord

from .logger import Logger


if TYPE_CHECKING:
    from collections.abc import Mapping


@runtime_checkable
class Store(Protocol):
    """Operations the protocol services need from local persistence."""

    def upsert_peer(self, peer: PeerRecord) -> None: ...

    def append_inbox_if_absent(self, message: InboxMessage) -> bool:
        """Store *message* unless its id is known. Returns True if stored."""
        ...

    def upsert_channel(self, channel: ChannelRecord) -> bool:
        """Record a channel subscription. Returns False if it already existed."""
        ...

    def list_peers(self) -> list[PeerRecord]: ...

    def get_peer_by_agent_id(self, agent_id: str) -> PeerRecord | None: ...

    def list_inbox_messages(
        self,
        *,
        unread_only: bool = False,
        limit: int | None = None,
        from_agent: str | None = None,
    ) -> list[InboxMessage]: ...

    def mark_read(self, message_id: str) -> bool: ...

    def unread_count(self) -> int: ...

    def list_channels(self) -> list[ChannelRecord]: ...

    def get_state(self, key: str) -> Any: ...

    def set_state(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """In-memory [Store][clawmesh.core.store.Store]."""

    def __init__(self) -> None:
        self._peers: dict[str, PeerRecord] = {}
        self._inbox: dict[str, InboxMessage] = {}
        self._channels: dict[str, ChannelRecord] = {}
        self._state: dict[str, Any] = {}

    def _commit(self) -> None:
        """Persist after a mutation. No-op in memory."""

    # -------------------------------------------------------------------------
    # Peers
    # -------------------------------------------------------------------------

    def upsert_peer(self, peer: PeerRecord) -> None:
        self._peers[peer.pubkey] = peer
        self._commit()

    def list_peers(self) -> list[PeerRecord]:
        """All peers, most recently seen first."""
        return sorted(self._peers.values(), key=lambda p: p.last_seen, reverse=True)

    def get_peer_by_agent_id(self, agent_id: str) -> PeerRecord | None:
        matches = [p for p in self._peers.values() if p.agent_id == agent_id]
        if not matches:
            return None
        return max(matches, key=lambda p: p.last_seen)

    # -------------------------------------------------------------------------
    # Inbox
    # -------------------------------------------------------------------------

    def append_inbox_if_absent(self, message: InboxMessage) -> bool:
        if message.id in self._inbox:
            return False
        self._inbox[message.id] = message
        self._commit()
        return True

    def list_inbox_messages(
        self,
        *,
        unread_only: bool = False,
        limit: int | None = None,
        from_agent: str | None = None,
    ) -> list[InboxMessage]:
        """Inbox messages, newest logical timestamp first."""
        messages = list(self._inbox.values())
        if unread_only:
            messages = [m for m in messages if not m.read]
        if from_agent:
            messages = [m for m in messages if m.from_agent_id == from_agent]
        messages.sort(key=lambda m: m.timestamp, reverse=True)
        if limit:
            messages = messages[:limit]
        return messages

    def mark_read(self, message_id: str) -> bool:
        """Mark one message as read. Returns False if the id is unknown."""
        message = self._inbox.get(message_id)
        if message is None:
            return False
        if not message.read:
            self._inbox[message_id] = InboxMessage(
                id=message.id,
                from_pubkey=message.from_pubkey,
                from_agent_id=message.from_agent_id,
                content=message.content,
                timestamp=message.timestamp,
                read=True,
                received_at=message.received_at,
            )
            self._commit()
        return True

    def unread_count(self) -> int:
        return sum(1 for m in self._inbox.values() if not m.read)

    # -------------------------------------------------------------------------
    # Channels
    # -------------------------------------------------------------------------

    def upsert_channel(self, channel: ChannelRecord) -> bool:
        if channel.group_id in self._channels:
            return False
        self._channels[channel.group_id] = channel
        self._commit()
        return True

    def list_channels(self) -> list[ChannelRecord]:
        """Channels in subscription order."""
        return list(self._channels.values())

    # -------------------------------------------------------------------------
    # Service state
    # -------------------------------------------------------------------------

    def get_state(self, key: str) -> Any:
        return self._state.get(key)

    def set_state(self, key: str, value: Any) -> None:
        self._state[key] = value
        self._commit()

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "inbox": [m.to_dict() for m in self._inbox.values()],
            "peers": [p.to_dict() for p in self._peers.values()],
            "groups": [c.to_dict() for c in self._channels.values()],
            "state": dict(self._state),
        }

    def _load_dict(self, data: Mapping[str, Any]) -> None:
        self._inbox = {}
        for row in data.get("inbox") or []:
            message = InboxMessage.from_dict(row)
            self._inbox[message.id] = message
        self._peers = {}
        for row in data.get("peers") or []:
            peer = PeerRecord.from_dict(row)
            self._peers[peer.pubkey] = peer
        self._channels = {}
        for row in data.get("groups") or []:
            channel = ChannelRecord.from_dict(row)
            self._channels[channel.group_id] = channel
        self._state = dict(data.get("state") or {})


class JsonStore(MemoryStore):
    """[Store][clawmesh.core.store.Store] persisted to one JSON file.

    The file is read once at construction and rewritten after every
    mutation. A missing file starts an empty store; an unreadable one is
    logged and replaced on the next write.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path).expanduser()
        self._logger = Logger("clawmesh.store")
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            with self._path.open(encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top level must be an object")
            self._load_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            self._logger.warning("store_load_failed", path=self._path, error=str(e))
            self._load_dict({})

    def _commit(self) -> None:
        self._path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".store-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

"""
Immutable, signature-verified Nostr event wrapper.

Wraps ``nostr_sdk.Event`` in a frozen dataclass that verifies the event id
and Schnorr signature at construction time and exposes the NIP-01 fields as
plain Python values. An event that fails verification never becomes an
[Event][clawmesh.models.event.Event] instance, so nothing downstream can
mistake forged relay data for real data.

Attribute access for anything not defined here is delegated to the
underlying SDK object (``as_json()``, ``author()``, ...).

See Also:
    [clawmesh.utils.transport][]: Wraps every event received from a relay
        before delivering it.
    [clawmesh.core.pool][]: Deduplicates events by
        [Event.id][clawmesh.models.event.Event].
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from nostr_sdk import Event as NostrEvent

from ._validation import validate_instance


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable Nostr event with eager verification.

    Args:
        _nostr_event: The underlying ``nostr_sdk.Event`` instance.

    Raises:
        ValueError: If the event id or signature does not verify.

    Examples:
        ```python
        event = Event.parse('{"id": "ab...", "pubkey": "...", ...}')
        event.kind         # 30078
        event.tag_values("d")
        event.to_dict()    # NIP-01 JSON object
        ```

    Note:
        ``tags`` is a tuple of tuples so that the instance stays hashable
        and immutable. Equality and hashing use only the wrapped event id,
        which is content-derived: the same event observed from two relays
        compares equal.
    """

    _nostr_event: NostrEvent = field(repr=False, compare=False)
    id: str = field(default=None, init=False, compare=True)  # type: ignore[assignment]
    pubkey: str = field(default=None, init=False, compare=False)  # type: ignore[assignment]
    created_at: int = field(default=None, init=False, compare=False)  # type: ignore[assignment]
    kind: int = field(default=None, init=False, compare=False)  # type: ignore[assignment]
    tags: tuple[tuple[str, ...], ...] = field(default=None, init=False, compare=False, repr=False)  # type: ignore[assignment]
    content: str = field(default=None, init=False, compare=False, repr=False)  # type: ignore[assignment]
    sig: str = field(default=None, init=False, compare=False, repr=False)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        """Verify the event and cache its NIP-01 fields."""
        validate_instance(self._nostr_event, NostrEvent, "_nostr_event")
        inner = self._nostr_event
        event_id = inner.id().to_hex()

        if not inner.verify():
            raise ValueError(f"Event {event_id[:16]}... failed id/signature verification")

        object.__setattr__(self, "id", event_id)
        object.__setattr__(self, "pubkey", inner.author().to_hex())
        object.__setattr__(self, "created_at", inner.created_at().as_secs())
        object.__setattr__(self, "kind", inner.kind().as_u16())
        object.__setattr__(
            self, "tags", tuple(tuple(tag.as_vec()) for tag in inner.tags().to_vec())
        )
        object.__setattr__(self, "content", inner.content())
        object.__setattr__(self, "sig", inner.signature())

    def __getattr__(self, name: str) -> Any:
        """Delegate attribute access to the wrapped NostrEvent."""
        try:
            return getattr(self._nostr_event, name)
        except AttributeError:
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            ) from None

    @classmethod
    def parse(cls, data: str | Mapping[str, Any]) -> Event:
        """Parse and verify an event from NIP-01 JSON text or a decoded object.

        Raises:
            ValueError: If the data is not a well-formed event or fails
                verification.
        """
        raw = data if isinstance(data, str) else json.dumps(dict(data))
        try:
            inner = NostrEvent.from_json(raw)
        except Exception as e:  # nostr-sdk FFI raises its own error types
            raise ValueError(f"Invalid event JSON: {e}") from e
        return cls(inner)

    @property
    def inner(self) -> NostrEvent:
        """The wrapped ``nostr_sdk.Event``."""
        return self._nostr_event

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag whose name is *name*."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def first_tag(self, name: str) -> str | None:
        """Return the first value of the first tag named *name*, or ``None``."""
        values = self.tag_values(name)
        return values[0] if values else None

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON object for this event."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        """Return the NIP-01 JSON text for this event."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

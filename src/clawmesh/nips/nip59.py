"""NIP-59 gift wrap: rumor, seal, and wrap layers for private messages.

A private message travels as three nested events::

    gift wrap  kind 1059  signed by a throwaway key, ["p", recipient]
      └─ seal  kind 13    signed by the real sender, no tags
           └─ rumor kind 14  unsigned, ["p", recipient], content = message

Each outer layer's content is the NIP-44 v2 encryption of the inner layer's
JSON. The seal and the wrap each get an independent ``created_at`` drawn
uniformly from the past ``JITTER_WINDOW`` seconds, so a relay cannot infer
the send time from either layer.

[gift_wrap()][clawmesh.nips.nip59.gift_wrap] generates a fresh key pair on
every call; no wrap key is ever reused or persisted.

[unwrap()][clawmesh.nips.nip59.unwrap] reverses the process and enforces
that the seal's signature verifies and that the rumor claims the same
author as the seal, so a sender cannot impersonate someone else inside a
correctly sealed envelope.
"""

from __future__ import annotations

import json
import secrets
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from nostr_sdk import EventBuilder, Keys, Kind, PublicKey, Tag, Timestamp

from clawmesh.core.exceptions import MalformedRemoteDataError
from clawmesh.models.constants import JITTER_WINDOW, EventKind
from clawmesh.models.event import Event

from . import nip44


if TYPE_CHECKING:
    from nostr_sdk import UnsignedEvent


def random_past_timestamp(now: int | None = None, window: int = JITTER_WINDOW) -> int:
    """Return a uniformly random Unix time in ``[now - window, now]``."""
    now = int(time.time()) if now is None else now
    return now - secrets.randbelow(window + 1)


@dataclass(frozen=True, slots=True)
class UnwrappedRumor:
    """Result of opening a gift wrap.

    Attributes:
        sender: Hex public key of the seal author (the real sender).
        rumor: The decoded rumor JSON object.
        wrap_id: Id of the gift wrap the rumor was taken from.
    """

    sender: str
    rumor: dict[str, Any]
    wrap_id: str

    @property
    def content(self) -> str:
        content = self.rumor.get("content")
        return content if isinstance(content, str) else ""


def build_rumor(author: PublicKey, recipient: PublicKey, content: str) -> UnsignedEvent:
    """Build the unsigned kind 14 rumor addressed to *recipient*."""
    return (
        EventBuilder(Kind(EventKind.RUMOR), content)
        .tags([Tag.parse(["p", recipient.to_hex()])])
        .build(author)
    )


def seal(sender_keys: Keys, recipient: PublicKey, rumor: UnsignedEvent) -> Event:
    """Encrypt *rumor* to *recipient* and sign the kind 13 seal as the sender."""
    ciphertext = nip44.encrypt(sender_keys.secret_key(), recipient, rumor.as_json())
    signed = (
        EventBuilder(Kind(EventKind.SEAL), ciphertext)
        .custom_created_at(Timestamp.from_secs(random_past_timestamp()))
        .sign_with_keys(sender_keys)
    )
    return Event(signed)


def gift_wrap(recipient: PublicKey, sealed: Event) -> Event:
    """Encrypt *sealed* under a fresh throwaway key and sign the kind 1059 wrap."""
    throwaway = Keys.generate()
    ciphertext = nip44.encrypt(throwaway.secret_key(), recipient, sealed.to_json())
    signed = (
        EventBuilder(Kind(EventKind.GIFT_WRAP), ciphertext)
        .tags([Tag.parse(["p", recipient.to_hex()])])
        .custom_created_at(Timestamp.from_secs(random_past_timestamp()))
        .sign_with_keys(throwaway)
    )
    return Event(signed)


def wrap_message(sender_keys: Keys, recipient: PublicKey, content: str) -> Event:
    """Build rumor, seal, and gift wrap for *content*. Returns the publishable wrap."""
    rumor = build_rumor(sender_keys.public_key(), recipient, content)
    return gift_wrap(recipient, seal(sender_keys, recipient, rumor))


def unwrap(wrap: Event, keys: Keys) -> UnwrappedRumor:
    """Open a gift wrap addressed to *keys*.

    Raises:
        DecryptionError: If either layer fails to decrypt.
        MalformedRemoteDataError: If a layer has the wrong kind, the seal
            fails verification, or the rumor is not a JSON object authored
            by the seal signer.
    """
    if wrap.kind != EventKind.GIFT_WRAP:
        raise MalformedRemoteDataError(f"Not a gift wrap: kind {wrap.kind}")

    secret_key = keys.secret_key()
    seal_json = nip44.decrypt(secret_key, PublicKey.parse(wrap.pubkey), wrap.content)
    try:
        sealed = Event.parse(seal_json)
    except ValueError as e:
        raise MalformedRemoteDataError(f"Invalid seal: {e}") from e
    if sealed.kind != EventKind.SEAL:
        raise MalformedRemoteDataError(f"Not a seal: kind {sealed.kind}")

    rumor_json = nip44.decrypt(secret_key, PublicKey.parse(sealed.pubkey), sealed.content)
    try:
        rumor = json.loads(rumor_json)
    except json.JSONDecodeError as e:
        raise MalformedRemoteDataError(f"Invalid rumor JSON: {e}") from e
    if not isinstance(rumor, dict):
        raise MalformedRemoteDataError("Rumor must be a JSON object")
    if rumor.get("kind") != EventKind.RUMOR:
        raise MalformedRemoteDataError(f"Not a rumor: kind {rumor.get('kind')!r}")
    if rumor.get("pubkey") != sealed.pubkey:
        raise MalformedRemoteDataError("Rumor author does not match seal author")

    return UnwrappedRumor(sender=sealed.pubkey, rumor=rumor, wrap_id=wrap.id)

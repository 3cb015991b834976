"""
Unit tests for nips.nip59 module.

Tests:
- random_past_timestamp() bounds
- wrap_message() envelope shape and metadata privacy
- unwrap() for the intended recipient
- unwrap() rejection of foreign keys, wrong kinds, and impersonation
"""

from __future__ import annotations

import json
import time

import pytest
from nostr_sdk import Keys

from clawmesh.core.exceptions import DecryptionError, MalformedRemoteDataError
from clawmesh.models.constants import JITTER_WINDOW
from clawmesh.nips import nip44, nip59
from tests.conftest import sign_event


@pytest.fixture
def sender() -> Keys:
    return Keys.generate()


@pytest.fixture
def recipient() -> Keys:
    return Keys.generate()


# ============================================================================
# Timestamps
# ============================================================================


class TestRandomPastTimestamp:
    def test_bounds(self) -> None:
        values = {nip59.random_past_timestamp(now=1_000, window=10) for _ in range(200)}
        assert min(values) >= 990
        assert max(values) <= 1_000
        assert len(values) > 1

    def test_defaults_to_now(self) -> None:
        now = int(time.time())
        value = nip59.random_past_timestamp()
        assert now - JITTER_WINDOW - 1 <= value <= now + 1


# ============================================================================
# Wrapping
# ============================================================================


class TestWrapMessage:
    """Envelope shape and privacy."""

    def test_envelope_shape(self, sender: Keys, recipient: Keys) -> None:
        wrap = nip59.wrap_message(sender, recipient.public_key(), "hi")
        assert wrap.kind == 1059
        assert wrap.tag_values("p") == [recipient.public_key().to_hex()]

    def test_sender_hidden(self, sender: Keys, recipient: Keys) -> None:
        """The wrap is signed by a throwaway key and does not mention the sender."""
        wrap = nip59.wrap_message(sender, recipient.public_key(), "secret text")
        assert wrap.pubkey != sender.public_key().to_hex()
        assert sender.public_key().to_hex() not in wrap.to_json()
        assert "secret text" not in wrap.content

    def test_fresh_key_per_wrap(self, sender: Keys, recipient: Keys) -> None:
        wraps = [nip59.wrap_message(sender, recipient.public_key(), "same") for _ in range(3)]
        assert len({w.pubkey for w in wraps}) == 3

    def test_jittered_timestamp(self, sender: Keys, recipient: Keys) -> None:
        now = int(time.time())
        wrap = nip59.wrap_message(sender, recipient.public_key(), "hi")
        assert now - JITTER_WINDOW - 1 <= wrap.created_at <= now + 1


# ============================================================================
# Unwrapping
# ============================================================================


class TestUnwrap:
    """unwrap()."""

    def test_round_trip(self, sender: Keys, recipient: Keys) -> None:
        wrap = nip59.wrap_message(sender, recipient.public_key(), '{"hello": "bob"}')
        opened = nip59.unwrap(wrap, recipient)
        assert opened.sender == sender.public_key().to_hex()
        assert opened.content == '{"hello": "bob"}'
        assert opened.wrap_id == wrap.id
        assert opened.rumor["kind"] == 14
        assert ["p", recipient.public_key().to_hex()] in opened.rumor["tags"]

    def test_rumor_is_unsigned(self, sender: Keys, recipient: Keys) -> None:
        opened = nip59.unwrap(nip59.wrap_message(sender, recipient.public_key(), "x"), recipient)
        assert not opened.rumor.get("sig")

    def test_foreign_key_fails(self, sender: Keys, recipient: Keys) -> None:
        wrap = nip59.wrap_message(sender, recipient.public_key(), "hi")
        with pytest.raises(DecryptionError):
            nip59.unwrap(wrap, Keys.generate())

    def test_not_a_wrap(self, sender: Keys, recipient: Keys) -> None:
        with pytest.raises(MalformedRemoteDataError, match="Not a gift wrap"):
            nip59.unwrap(sign_event(sender, 1, "hi"), recipient)

    def test_inner_event_not_a_seal(self, sender: Keys, recipient: Keys) -> None:
        wrap = nip59.gift_wrap(recipient.public_key(), sign_event(sender, 1, "plain note"))
        with pytest.raises(MalformedRemoteDataError, match="Not a seal"):
            nip59.unwrap(wrap, recipient)

    def test_inner_garbage(self, recipient: Keys) -> None:
        throwaway = Keys.generate()
        content = nip44.encrypt(throwaway.secret_key(), recipient.public_key(), "not an event")
        wrap = sign_event(throwaway, 1059, content, [["p", recipient.public_key().to_hex()]])
        with pytest.raises(MalformedRemoteDataError, match="Invalid seal"):
            nip59.unwrap(wrap, recipient)

    def test_rumor_not_json(self, sender: Keys, recipient: Keys) -> None:
        content = nip44.encrypt(sender.secret_key(), recipient.public_key(), "not json")
        sealed = sign_event(sender, 13, content)
        wrap = nip59.gift_wrap(recipient.public_key(), sealed)
        with pytest.raises(MalformedRemoteDataError, match="Invalid rumor"):
            nip59.unwrap(wrap, recipient)

    def test_rumor_wrong_kind(self, sender: Keys, recipient: Keys) -> None:
        rumor = {"kind": 1, "pubkey": sender.public_key().to_hex(), "content": "x", "tags": []}
        content = nip44.encrypt(sender.secret_key(), recipient.public_key(), json.dumps(rumor))
        wrap = nip59.gift_wrap(recipient.public_key(), sign_event(sender, 13, content))
        with pytest.raises(MalformedRemoteDataError, match="Not a rumor"):
            nip59.unwrap(wrap, recipient)

    def test_impersonation_rejected(self, recipient: Keys) -> None:
        """A rumor claiming another author inside a valid seal is refused."""
        victim, mallory = Keys.generate(), Keys.generate()
        rumor = nip59.build_rumor(victim.public_key(), recipient.public_key(), "I am the victim")
        sealed = nip59.seal(mallory, recipient.public_key(), rumor)
        wrap = nip59.gift_wrap(recipient.public_key(), sealed)
        with pytest.raises(MalformedRemoteDataError, match="does not match"):
            nip59.unwrap(wrap, recipient)

    def test_seal_has_no_tags(self, sender: Keys, recipient: Keys) -> None:
        rumor = nip59.build_rumor(sender.public_key(), recipient.public_key(), "x")
        sealed = nip59.seal(sender, recipient.public_key(), rumor)
        assert sealed.kind == 13
        assert sealed.tags == ()
        assert sealed.pubkey == sender.public_key().to_hex()

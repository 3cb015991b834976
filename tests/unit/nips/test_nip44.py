"""Unit tests for nips.nip44 module."""

from __future__ import annotations

import pytest
from nostr_sdk import Keys

from clawmesh.core.exceptions import DecryptionError
from clawmesh.nips import nip44


class TestNip44:
    """encrypt()/decrypt() pinned to version 2."""

    def test_shared_conversation_key(self) -> None:
        """Sender and recipient derive the same key from opposite halves."""
        alice, bob = Keys.generate(), Keys.generate()
        payload = nip44.encrypt(alice.secret_key(), bob.public_key(), "hello bob")
        assert payload != "hello bob"
        assert nip44.decrypt(bob.secret_key(), alice.public_key(), payload) == "hello bob"

    def test_fresh_nonce_per_encryption(self) -> None:
        alice, bob = Keys.generate(), Keys.generate()
        a = nip44.encrypt(alice.secret_key(), bob.public_key(), "same")
        b = nip44.encrypt(alice.secret_key(), bob.public_key(), "same")
        assert a != b

    def test_wrong_key(self) -> None:
        alice, bob, eve = Keys.generate(), Keys.generate(), Keys.generate()
        payload = nip44.encrypt(alice.secret_key(), bob.public_key(), "secret")
        with pytest.raises(DecryptionError):
            nip44.decrypt(eve.secret_key(), alice.public_key(), payload)

    @pytest.mark.parametrize("payload", ["", "not base64!", "AAAA"])
    def test_garbage_payload(self, payload: str) -> None:
        alice, bob = Keys.generate(), Keys.generate()
        with pytest.raises(DecryptionError):
            nip44.decrypt(bob.secret_key(), alice.public_key(), payload)

    def test_tampered_payload(self) -> None:
        alice, bob = Keys.generate(), Keys.generate()
        payload = nip44.encrypt(alice.secret_key(), bob.public_key(), "secret message")
        flipped = payload[:-6] + ("A" if payload[-6] != "A" else "B") + payload[-5:]
        with pytest.raises(DecryptionError):
            nip44.decrypt(bob.secret_key(), alice.public_key(), flipped)

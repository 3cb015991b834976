"""NIP-44 v2 payload encryption.

Thin wrappers over ``nostr_sdk.nip44_encrypt`` / ``nip44_decrypt`` pinned to
version 2. The conversation key is derived from one party's secret key and
the other party's public key, so both sides of a conversation derive the
same key independently.

Decryption failures (wrong key, truncated or tampered payload, unknown
version byte) are raised as
[DecryptionError][clawmesh.core.exceptions.DecryptionError] rather than as
the SDK's FFI error type.
"""

from __future__ import annotations

from nostr_sdk import Nip44Version, PublicKey, SecretKey, nip44_decrypt, nip44_encrypt

from clawmesh.core.exceptions import DecryptionError


def encrypt(secret_key: SecretKey, public_key: PublicKey, plaintext: str) -> str:
    """Encrypt *plaintext* for the holder of *public_key*. Returns base64 payload."""
    return nip44_encrypt(secret_key, public_key, plaintext, Nip44Version.V2)


def decrypt(secret_key: SecretKey, public_key: PublicKey, payload: str) -> str:
    """Decrypt a payload produced by the holder of *public_key*.

    Raises:
        DecryptionError: If the payload does not authenticate under the
            derived conversation key.
    """
    try:
        return nip44_decrypt(secret_key, public_key, payload)
    except Exception as e:  # nostr-sdk FFI raises its own error types
        raise DecryptionError(f"NIP-44 decryption failed: {e}") from e

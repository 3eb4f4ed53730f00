"""
Key vault for signing keys at rest.

Signing keys are sealed with AES-256-GCM under a key derived from the
deployment's long-term secret with scrypt. A sealed blob is a single string
``nonce:tag:ciphertext`` (hex), so the wallet store only ever persists one
opaque value per wallet.
"""

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from agentpay.core.constants import (
    DERIVED_KEY_LENGTH,
    NONCE_SIZE,
    SCRYPT_N,
    SCRYPT_P,
    SCRYPT_R,
    TAG_SIZE,
)
from agentpay.core.errors import KeyIntegrityError

logger = logging.getLogger(__name__)


def _to_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def derive_key(secret: str | bytes, salt: str | bytes) -> bytes:
    """
    Derive the symmetric vault key from a long-term secret.

    The salt is fixed per deployment, so the same secret always yields the
    same key and every stored blob stays readable across restarts.

    Args:
        secret: Long-term encryption secret
        salt: Deployment salt

    Returns:
        32-byte key for AES-256-GCM
    """
    kdf = Scrypt(
        salt=_to_bytes(salt),
        length=DERIVED_KEY_LENGTH,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
    )
    return kdf.derive(_to_bytes(secret))


def seal(plaintext: bytes, key: bytes) -> str:
    """
    Encrypt and authenticate plaintext under a fresh random nonce.

    Args:
        plaintext: Secret bytes to seal
        key: Vault key from ``derive_key``

    Returns:
        Opaque ``nonce:tag:ciphertext`` hex string
    """
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(key).encrypt(nonce, bytes(plaintext), None)
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return f"{nonce.hex()}:{tag.hex()}:{ciphertext.hex()}"


def unseal(blob: str, key: bytes) -> bytes:
    """
    Open a blob produced by ``seal``.

    Args:
        blob: Sealed ``nonce:tag:ciphertext`` string
        key: Vault key from ``derive_key``

    Returns:
        The original plaintext

    Raises:
        KeyIntegrityError: If the blob is malformed, was tampered with,
            or was sealed under a different key
    """
    try:
        nonce_hex, tag_hex, ciphertext_hex = blob.split(":")
        nonce = bytes.fromhex(nonce_hex)
        tag = bytes.fromhex(tag_hex)
        ciphertext = bytes.fromhex(ciphertext_hex)
        if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
            raise ValueError("invalid nonce or tag length")
        return AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as e:
        raise KeyIntegrityError("Sealed key failed authentication: wrong key or tampered data") from e
    except (AttributeError, TypeError, ValueError) as e:
        raise KeyIntegrityError(f"Sealed key is malformed: {e}") from e


def scrub(buffer: bytearray) -> None:
    """Overwrite a mutable buffer with zeros in place."""
    for i in range(len(buffer)):
        buffer[i] = 0


class KeyVault:
    """Seals and opens per-user signing keys with one deployment key."""

    def __init__(self, key: bytes):
        """
        Initialize the vault.

        Args:
            key: 32-byte vault key, usually from ``derive_key``
        """
        if len(key) != DERIVED_KEY_LENGTH:
            raise ValueError(f"Vault key must be {DERIVED_KEY_LENGTH} bytes")
        self._key = key

    @classmethod
    def from_secret(cls, secret: str | bytes, salt: str | bytes) -> "KeyVault":
        """Build a vault whose key is derived from a long-term secret."""
        return cls(derive_key(secret, salt))

    def seal(self, plaintext: bytes) -> str:
        return seal(plaintext, self._key)

    def open(self, blob: str) -> bytes:
        return unseal(blob, self._key)

    @contextmanager
    def unsealed(self, blob: str) -> Iterator[bytearray]:
        """
        Open a blob for the duration of a ``with`` block.

        The plaintext is handed out as a ``bytearray`` and zeroed when the
        block exits, whether it exits normally or by an exception.
        """
        buffer = bytearray(self.open(blob))
        try:
            yield buffer
        finally:
            scrub(buffer)

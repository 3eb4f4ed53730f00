"""
Tests for the key vault.

Sealed keys must round-trip, refuse the wrong key and detect tampering,
and plaintext handed out by ``unsealed`` must be zeroed afterwards.
"""

import os

import pytest

from agentpay.core.errors import KeyIntegrityError
from agentpay.core.vault import KeyVault, derive_key, scrub, seal, unseal


@pytest.fixture
def key() -> bytes:
    return os.urandom(32)


class TestDeriveKey:
    """Test scrypt key derivation."""

    def test_same_secret_and_salt_give_same_key(self):
        secret = "a" * 32
        assert derive_key(secret, "salt") == derive_key(secret, "salt")

    def test_different_salt_gives_different_key(self):
        secret = "a" * 32
        assert derive_key(secret, "salt-1") != derive_key(secret, "salt-2")

    def test_key_length(self):
        assert len(derive_key("b" * 32, "salt")) == 32

    def test_vault_from_secret_opens_its_own_blobs_after_restart(self):
        """Two vaults built from the same secret read each other's blobs."""
        first = KeyVault.from_secret("c" * 32, "agentpay-wallet-salt")
        blob = first.seal(b"signing-key")

        second = KeyVault.from_secret("c" * 32, "agentpay-wallet-salt")
        assert second.open(blob) == b"signing-key"


class TestSealing:
    """Test authenticated encryption of key material."""

    def test_round_trip(self, key):
        plaintext = os.urandom(32)
        assert unseal(seal(plaintext, key), key) == plaintext

    def test_blob_format(self, key):
        nonce, tag, ciphertext = seal(b"\x01" * 32, key).split(":")

        assert len(bytes.fromhex(nonce)) == 12
        assert len(bytes.fromhex(tag)) == 16
        assert len(bytes.fromhex(ciphertext)) == 32

    def test_fresh_nonce_per_seal(self, key):
        plaintext = b"\x02" * 32
        assert seal(plaintext, key) != seal(plaintext, key)

    def test_wrong_key_fails(self, key):
        blob = seal(b"secret", key)

        with pytest.raises(KeyIntegrityError):
            unseal(blob, os.urandom(32))

    def test_flipped_ciphertext_bit_fails(self, key):
        nonce, tag, ciphertext = seal(b"\x03" * 32, key).split(":")
        raw = bytearray(bytes.fromhex(ciphertext))
        raw[0] ^= 0x01
        tampered = f"{nonce}:{tag}:{raw.hex()}"

        with pytest.raises(KeyIntegrityError):
            unseal(tampered, key)

    def test_flipped_tag_bit_fails(self, key):
        nonce, tag, ciphertext = seal(b"\x04" * 32, key).split(":")
        raw = bytearray(bytes.fromhex(tag))
        raw[-1] ^= 0x80
        tampered = f"{nonce}:{raw.hex()}:{ciphertext}"

        with pytest.raises(KeyIntegrityError):
            unseal(tampered, key)

    @pytest.mark.parametrize("blob", [
        "",
        "not-a-blob",
        "aa:bb",
        "zz:zz:zz",
        "00:" + "00" * 16 + ":00",
    ])
    def test_malformed_blob_fails(self, key, blob):
        with pytest.raises(KeyIntegrityError):
            unseal(blob, key)


class TestKeyVault:
    """Test the vault wrapper."""

    def test_rejects_short_key(self):
        with pytest.raises(ValueError):
            KeyVault(b"short")

    def test_unsealed_yields_plaintext(self, key):
        vault = KeyVault(key)
        blob = vault.seal(b"\x05" * 32)

        with vault.unsealed(blob) as plaintext:
            assert bytes(plaintext) == b"\x05" * 32

    def test_unsealed_scrubs_after_block(self, key):
        vault = KeyVault(key)
        blob = vault.seal(b"\x06" * 32)

        with vault.unsealed(blob) as plaintext:
            buffer = plaintext

        assert buffer == bytearray(32)

    def test_unsealed_scrubs_on_exception(self, key):
        vault = KeyVault(key)
        blob = vault.seal(b"\x07" * 32)

        with pytest.raises(RuntimeError):
            with vault.unsealed(blob) as plaintext:
                buffer = plaintext
                raise RuntimeError("submission failed")

        assert buffer == bytearray(32)

    def test_scrub(self):
        buffer = bytearray(b"secret")
        scrub(buffer)
        assert buffer == bytearray(6)

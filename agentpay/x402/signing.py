"""
Signing key primitives for custodial wallets.

Keys are secp256k1 private keys generated by eth-account; the address is
derived from the key, so the same key always maps to the same address.
"""

import logging

from eth_account import Account

logger = logging.getLogger(__name__)


def generate_keypair() -> tuple[bytes, str]:
    """
    Generate a fresh signing key.

    Returns:
        Tuple of (32-byte private key, checksummed address)
    """
    account = Account.create()
    return bytes(account.key), account.address


def address_from_key(private_key: bytes | bytearray) -> str:
    """
    Derive the address controlled by a private key.

    Args:
        private_key: 32-byte private key

    Returns:
        Checksummed address
    """
    return Account.from_key(bytes(private_key)).address

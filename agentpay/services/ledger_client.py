"""
Ledger Service client.

``LedgerClient`` is the capability set the wallet manager needs from the
external system of record: balance lookup, transfer submission and
transaction status. ``Web3LedgerClient`` implements it against an EVM
JSON-RPC node, paying in the chain's native asset with amounts in wei.
"""

import asyncio
import logging
from enum import Enum
from typing import Protocol, runtime_checkable

import aiohttp
from eth_account import Account
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound, Web3RPCError

from agentpay.core.errors import LedgerRejectedError, LedgerTransportError

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)
REJECTION_ERRORS = (Web3RPCError, ValueError)


class TransactionStatus(str, Enum):
    """Settlement state of a submitted transfer."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@runtime_checkable
class LedgerClient(Protocol):
    """Capabilities required from the Ledger Service."""

    async def get_balance(self, address: str) -> int:
        """Balance of ``address`` in minor units."""
        ...

    async def submit_transfer(self, private_key: bytes, recipient: str, amount: int) -> str:
        """Sign and submit a transfer; returns the settlement id."""
        ...

    async def get_transaction_status(self, tx_id: str) -> TransactionStatus:
        """Settlement state of a previously submitted transfer."""
        ...


class Web3LedgerClient:
    """Ledger client backed by an EVM JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        request_timeout: float = 15.0,
        gas_limit: int = 21000,
        w3: AsyncWeb3 | None = None,
    ):
        """
        Initialize the ledger client.

        Args:
            rpc_url: JSON-RPC endpoint
            chain_id: Chain id transfers are signed for
            request_timeout: Per-request timeout in seconds
            gas_limit: Gas limit of a plain value transfer
            w3: Preconfigured AsyncWeb3 instance (tests)
        """
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.gas_limit = gas_limit
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            rpc_url,
            request_kwargs={"timeout": request_timeout},
        ))

    async def get_balance(self, address: str) -> int:
        """
        Get the native balance of an address.

        Args:
            address: Account address

        Returns:
            Balance in wei

        Raises:
            LedgerTransportError: If the node could not be reached
            LedgerRejectedError: If the node refused the query
        """
        try:
            checksum = AsyncWeb3.to_checksum_address(address)
            balance = await self.w3.eth.get_balance(checksum)
            return int(balance)
        except TRANSPORT_ERRORS as e:
            raise LedgerTransportError(
                f"Ledger unreachable while fetching balance for {address}: {e}",
                details={"address": address, "rpc_url": self.rpc_url},
            ) from e
        except REJECTION_ERRORS as e:
            raise LedgerRejectedError(
                f"Ledger refused balance query for {address}: {e}",
                details={"address": address},
            ) from e

    async def submit_transfer(self, private_key: bytes, recipient: str, amount: int) -> str:
        """
        Sign a native value transfer locally and broadcast it.

        Args:
            private_key: Sender's signing key
            recipient: Recipient address
            amount: Amount in wei

        Returns:
            Transaction hash (0x-prefixed hex)

        Raises:
            LedgerTransportError: If the node could not be reached
            LedgerRejectedError: If the node refused the transaction
        """
        try:
            account = Account.from_key(bytes(private_key))
            to_address = AsyncWeb3.to_checksum_address(recipient)
            nonce = await self.w3.eth.get_transaction_count(account.address, "pending")
            gas_price = await self.w3.eth.gas_price

            signed_tx = account.sign_transaction({
                "to": to_address,
                "value": amount,
                "gas": self.gas_limit,
                "gasPrice": gas_price,
                "nonce": nonce,
                "chainId": self.chain_id,
            })
            tx_hash = await self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except TRANSPORT_ERRORS as e:
            raise LedgerTransportError(
                f"Ledger unreachable while submitting transfer to {recipient}: {e}",
                details={"recipient": recipient, "rpc_url": self.rpc_url},
            ) from e
        except REJECTION_ERRORS as e:
            raise LedgerRejectedError(
                f"Transaction broadcast failed: {e}",
                details={"recipient": recipient, "amount": str(amount)},
            ) from e

        return AsyncWeb3.to_hex(tx_hash)

    async def get_transaction_status(self, tx_id: str) -> TransactionStatus:
        """
        Look up the receipt of a transaction.

        Args:
            tx_id: Transaction hash

        Returns:
            PENDING while no receipt exists, otherwise SUCCESS or FAILED
        """
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_id)
        except TransactionNotFound:
            return TransactionStatus.PENDING
        except TRANSPORT_ERRORS as e:
            raise LedgerTransportError(
                f"Ledger unreachable while fetching status of {tx_id}: {e}",
                details={"tx_id": tx_id, "rpc_url": self.rpc_url},
            ) from e
        except REJECTION_ERRORS as e:
            raise LedgerRejectedError(
                f"Ledger refused status query for {tx_id}: {e}",
                details={"tx_id": tx_id},
            ) from e

        return TransactionStatus.SUCCESS if receipt["status"] == 1 else TransactionStatus.FAILED

    async def close(self) -> None:
        """Release the provider's HTTP session, if one was opened."""
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

"""
Wallet store.

Persistent mapping of user id to sealed signing key and address, plus the
append-only payment log. Every write is committed before the call returns;
uniqueness is enforced by the database, never by a read-then-write check.
"""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentpay.core.errors import DuplicateTxError, DuplicateUserError
from agentpay.models.wallets import Network, PaymentLogEntry, WalletRecord, utcnow

logger = logging.getLogger(__name__)


class WalletStore:
    """Durable storage for wallet records and payment log entries."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        """
        Initialize the wallet store.

        Args:
            session_maker: Factory for database sessions
        """
        self.session_maker = session_maker

    async def get_by_user(self, user_id: str) -> WalletRecord | None:
        """
        Look up the wallet of a user.

        Args:
            user_id: Opaque user identifier

        Returns:
            The wallet record, or None if the user has none yet
        """
        async with self.session_maker() as session:
            result = await session.execute(
                select(WalletRecord).where(WalletRecord.user_id == user_id)
            )
            return result.scalar_one_or_none()

    async def create(
        self,
        user_id: str,
        address: str,
        encrypted_key: str,
        network: Network | str,
    ) -> WalletRecord:
        """
        Insert a wallet record for a user who has none.

        Args:
            user_id: Opaque user identifier
            address: Ledger address derived from the key
            encrypted_key: Key sealed by the key vault
            network: Network the wallet belongs to

        Returns:
            The persisted wallet record

        Raises:
            DuplicateUserError: If the user already has a wallet
        """
        record = WalletRecord(
            user_id=user_id,
            address=address,
            encrypted_key=encrypted_key,
            network=Network(network).value,
            created_at=utcnow(),
        )
        async with self.session_maker() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                existing = await session.execute(
                    select(WalletRecord.user_id).where(WalletRecord.user_id == user_id)
                )
                if existing.scalar_one_or_none() is not None:
                    raise DuplicateUserError(user_id) from None
                raise

        logger.info(f"Stored wallet for user {user_id}: {address}")
        return record

    async def touch_last_used(self, user_id: str) -> None:
        """Record that a user's wallet was just used."""
        async with self.session_maker() as session:
            await session.execute(
                update(WalletRecord)
                .where(WalletRecord.user_id == user_id)
                .values(last_used_at=utcnow())
            )
            await session.commit()

    async def append_payment_log(
        self,
        user_id: str,
        tx_id: str,
        recipient: str,
        amount: int,
        service: str | None = None,
    ) -> PaymentLogEntry:
        """
        Append a submitted transfer to the audit log.

        Args:
            user_id: Paying user
            tx_id: Ledger transaction id
            recipient: Recipient address
            amount: Amount in minor units
            service: Optional label of the service paid for

        Returns:
            The persisted log entry

        Raises:
            DuplicateTxError: If the transaction id is already logged
        """
        entry = PaymentLogEntry(
            user_id=user_id,
            tx_id=tx_id,
            recipient=recipient,
            amount=amount,
            service=service,
            timestamp=utcnow(),
        )
        async with self.session_maker() as session:
            session.add(entry)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise DuplicateTxError(tx_id) from None
        return entry

    async def get_payment(self, tx_id: str) -> PaymentLogEntry | None:
        """Look up a log entry by transaction id."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(PaymentLogEntry).where(PaymentLogEntry.tx_id == tx_id)
            )
            return result.scalar_one_or_none()

    async def list_payment_log(
        self,
        user_id: str,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[PaymentLogEntry], int]:
        """
        Page through a user's payments, newest first.

        Args:
            user_id: Paying user
            offset: Pagination offset
            limit: Max entries to return

        Returns:
            Tuple of (entries, total count)
        """
        async with self.session_maker() as session:
            count_result = await session.execute(
                select(func.count())
                .select_from(PaymentLogEntry)
                .where(PaymentLogEntry.user_id == user_id)
            )
            total = count_result.scalar() or 0

            result = await session.execute(
                select(PaymentLogEntry)
                .where(PaymentLogEntry.user_id == user_id)
                .order_by(PaymentLogEntry.timestamp.desc(), PaymentLogEntry.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all()), total

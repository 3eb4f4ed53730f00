"""
Wallet models.

This module defines the SQLAlchemy models for custodial wallets and the
append-only payment audit log.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from agentpay.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Network(str, Enum):
    """Ledger network a wallet lives on."""

    MAINNET = "mainnet"
    TESTNET = "testnet"


class MinorUnits(TypeDecorator):
    """Arbitrary-precision integer amount stored as decimal text."""

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Amounts must be integers in minor units, got {type(value).__name__}")
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class WalletRecord(Base):
    """A user's custodial signing key, sealed by the key vault."""

    __tablename__ = "wallets"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    address: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    encrypted_key: Mapped[str] = mapped_column(Text, nullable=False)
    network: Mapped[str] = mapped_column(String(16), nullable=False, default=Network.TESTNET.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<WalletRecord(user_id='{self.user_id}', address='{self.address}', network='{self.network}')>"


class PaymentLogEntry(Base):
    """One submitted transfer. Entries are never updated or deleted."""

    __tablename__ = "payment_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("wallets.user_id"), nullable=False, index=True)
    tx_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    recipient: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(MinorUnits, nullable=False)
    service: Mapped[str | None] = mapped_column(String(255))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentLogEntry(tx_id='{self.tx_id}', amount={self.amount}, recipient='{self.recipient}')>"

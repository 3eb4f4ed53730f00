"""
Database models package.

This package contains the SQLAlchemy ORM models for the wallet store.
"""

from agentpay.core.database import Base
from agentpay.models.wallets import MinorUnits, Network, PaymentLogEntry, WalletRecord

__all__ = [
    "Base",
    "MinorUnits",
    "Network",
    "PaymentLogEntry",
    "WalletRecord",
]

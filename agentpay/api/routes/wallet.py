"""
Wallet API routes.

This module provides endpoints for looking up a user's custodial wallet
and paging through the payments made from it.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from agentpay.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from agentpay.core.context import PaymentContext, get_context

router = APIRouter()
logger = logging.getLogger(__name__)


class WalletResponse(BaseModel):
    """A user's wallet and its current balance."""

    user_id: str
    address: str
    network: str
    balance: str | None = Field(None, description="Balance in minor units, null when the ledger is unreachable")
    balance_known: bool
    faucet_url: str | None = Field(None, description="Where to fund the wallet on test networks")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "agent-42",
                    "address": "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb0",
                    "network": "testnet",
                    "balance": "5000000000000000000",
                    "balance_known": True,
                    "faucet_url": "https://cronos.org/faucet",
                }
            ]
        }
    }


class PaymentLogInfo(BaseModel):
    """One logged payment."""

    tx_id: str
    recipient: str
    amount: str = Field(..., description="Amount in minor units")
    service: str | None = None
    timestamp: datetime


class PaymentLogResponse(BaseModel):
    """Response for listing a user's payments."""

    payments: list[PaymentLogInfo]
    total: int
    offset: int
    limit: int


@router.get(
    "/{user_id}",
    response_model=WalletResponse,
    summary="Get wallet",
    description="Get a user's wallet address and balance, creating the wallet on first use.",
)
async def get_wallet(
    user_id: str,
    context: PaymentContext = Depends(get_context),
) -> WalletResponse:
    """Describe a user's wallet. The balance is null when the ledger cannot be reached."""
    info = await context.wallet_manager.describe_wallet(user_id)
    balance = info["balance"]
    return WalletResponse(
        user_id=info["user_id"],
        address=info["address"],
        network=info["network"],
        balance=str(balance) if balance is not None else None,
        balance_known=balance is not None,
        faucet_url=info["faucet_url"],
    )


@router.get(
    "/{user_id}/payments",
    response_model=PaymentLogResponse,
    summary="Get payment history",
    description="Get the audit log of payments made from a user's wallet.",
)
async def get_payment_history(
    user_id: str,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    context: PaymentContext = Depends(get_context),
) -> PaymentLogResponse:
    """Get a user's payments with pagination, newest first."""
    entries, total = await context.store.list_payment_log(user_id, offset=offset, limit=limit)
    return PaymentLogResponse(
        payments=[
            PaymentLogInfo(
                tx_id=entry.tx_id,
                recipient=entry.recipient,
                amount=str(entry.amount),
                service=entry.service,
                timestamp=entry.timestamp,
            )
            for entry in entries
        ],
        total=total,
        offset=offset,
        limit=limit,
    )

"""
Payment API routes.

This module provides endpoints for fetching x402-gated resources on a
user's behalf and checking the settlement of submitted payments.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from agentpay.core.context import PaymentContext, get_context

router = APIRouter()
logger = logging.getLogger(__name__)


class PaidFetchRequest(BaseModel):
    """Request body for fetching a possibly payment-gated resource."""

    user_id: str = Field(..., min_length=1, description="User whose wallet pays")
    url: str = Field(..., description="Resource URL")
    method: str = Field(default="GET", description="HTTP method")
    headers: dict[str, str] | None = Field(None, description="Extra request headers")
    body: Any | None = Field(None, description="JSON request body")
    wait_for_confirmation: bool | None = Field(
        None, description="Wait the longer settlement grace period before the first retry"
    )
    service: str | None = Field(None, description="Label recorded in the payment log")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "agent-42",
                    "url": "https://api.example.com/premium/quote",
                    "method": "GET",
                }
            ]
        }
    }


class PaidFetchResponse(BaseModel):
    """Final response of the gated service and the payment made for it."""

    status_code: int
    body: Any | None = None
    paid: bool
    settlement_id: str | None = None
    retries: int = 0


class TransactionStatusResponse(BaseModel):
    """Settlement state of a payment."""

    tx_id: str
    status: str = Field(..., description="pending, success, or failed")
    user_id: str | None = Field(None, description="Paying user when the payment is in the audit log")
    amount: str | None = None
    recipient: str | None = None


@router.post(
    "/fetch",
    response_model=PaidFetchResponse,
    summary="Fetch a paid resource",
    description="Request a resource and pay any HTTP 402 challenge from the user's wallet.",
)
async def fetch_paid_resource(
    request: PaidFetchRequest,
    context: PaymentContext = Depends(get_context),
) -> PaidFetchResponse:
    """
    Fetch a resource through the x402 payment client.

    Protocol failures (malformed challenge, unsupported asset, insufficient
    funds, exhausted retries) surface through the global error handler.
    """
    request_kwargs: dict[str, Any] = {}
    if request.headers:
        request_kwargs["headers"] = request.headers
    if request.body is not None:
        request_kwargs["json"] = request.body

    outcome = await context.payment_client.fetch(
        request.method.upper(),
        request.url,
        user_id=request.user_id,
        wait_for_confirmation=request.wait_for_confirmation,
        service=request.service,
        **request_kwargs,
    )

    response = outcome.response
    try:
        body = response.json()
    except ValueError:
        body = response.text

    return PaidFetchResponse(
        status_code=response.status_code,
        body=body,
        paid=outcome.paid,
        settlement_id=outcome.settlement_id,
        retries=outcome.retries,
    )


@router.get(
    "/{tx_id}/status",
    response_model=TransactionStatusResponse,
    summary="Get payment status",
    description="Ask the ledger whether a submitted payment has settled.",
)
async def get_payment_status(
    tx_id: str,
    context: PaymentContext = Depends(get_context),
) -> TransactionStatusResponse:
    """Get the ledger status of a payment, with its audit log entry when known."""
    status = await context.wallet_manager.get_transaction_status(tx_id)
    entry = await context.store.get_payment(tx_id)

    return TransactionStatusResponse(
        tx_id=tx_id,
        status=status.value,
        user_id=entry.user_id if entry else None,
        amount=str(entry.amount) if entry else None,
        recipient=entry.recipient if entry else None,
    )

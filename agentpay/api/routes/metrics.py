"""
Prometheus metrics API routes.

This module provides a Prometheus-compatible metrics endpoint
for monitoring the payment client.
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import PlainTextResponse

from agentpay.core.context import PaymentContext, get_context

router = APIRouter()


@router.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Prometheus metrics endpoint",
    description="Exposes payment metrics in Prometheus text format for monitoring.",
)
async def get_metrics(context: PaymentContext = Depends(get_context)) -> Response:
    """
    Get Prometheus-formatted metrics.

    Metrics include:
    - Paid-fetch invocations and 402 challenges
    - Payments submitted, failed and their total value
    - Retries, verification failures and timeouts
    """
    return PlainTextResponse(context.metrics.get_prometheus_metrics())

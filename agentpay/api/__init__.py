"""
API module containing FastAPI routes and endpoints.

This module provides the main API router that includes all sub-routers
for the wallet, payment and monitoring endpoints.
"""

from fastapi import APIRouter

from agentpay.api.routes import metrics, payments, wallet

router = APIRouter()

router.include_router(wallet.router, prefix="/wallets", tags=["Wallets"])
router.include_router(payments.router, prefix="/payments", tags=["Payments"])
router.include_router(metrics.router, prefix="", tags=["Monitoring"])

__all__ = ["router"]

"""
Payment context.

Everything a paid request needs (store, vault, ledger, wallet manager,
HTTP client, metrics) is built once at process start and passed around
explicitly, so tests can construct isolated instances side by side.
"""

import logging
from dataclasses import dataclass

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from agentpay.core.config import Settings
from agentpay.core.database import close_db, create_engine, create_session_maker, init_db
from agentpay.core.vault import KeyVault
from agentpay.services.ledger_client import LedgerClient, Web3LedgerClient
from agentpay.services.metrics_service import MetricsCollector
from agentpay.services.wallet_manager import WalletManager
from agentpay.services.wallet_store import WalletStore
from agentpay.x402.client import PaymentChallengeClient

logger = logging.getLogger(__name__)


@dataclass
class PaymentContext:
    """Handles shared by every paid request of one process."""

    settings: Settings
    engine: AsyncEngine
    store: WalletStore
    ledger: LedgerClient
    wallet_manager: WalletManager
    http_client: httpx.AsyncClient
    payment_client: PaymentChallengeClient
    metrics: MetricsCollector

    async def aclose(self) -> None:
        """Close the HTTP client, the ledger connection and the database."""
        await self.http_client.aclose()
        close_ledger = getattr(self.ledger, "close", None)
        if close_ledger is not None:
            await close_ledger()
        await close_db(self.engine)


async def build_context(
    settings: Settings,
    ledger: LedgerClient | None = None,
    http_client: httpx.AsyncClient | None = None,
    vault: KeyVault | None = None,
) -> PaymentContext:
    """
    Build and initialize a payment context.

    Args:
        settings: Application settings
        ledger: Ledger client; defaults to a Web3 client for ``settings.network``
        http_client: Client for gated services; defaults to one with the configured timeout
        vault: Key vault; defaults to one derived from the configured secret

    Returns:
        A ready PaymentContext

    Raises:
        ConfigurationError: If no wallet encryption secret is configured
    """
    if vault is None:
        secret = settings.require_encryption_secret()
        vault = KeyVault.from_secret(secret, settings.wallet_encryption_salt)

    engine = create_engine(settings.async_database_url, echo=settings.debug)
    await init_db(engine)
    store = WalletStore(create_session_maker(engine))

    if ledger is None:
        ledger = Web3LedgerClient(
            rpc_url=settings.rpc_url,
            chain_id=settings.chain_id,
            request_timeout=settings.ledger_request_timeout_seconds,
            gas_limit=settings.transfer_gas_limit,
        )

    wallet_manager = WalletManager(
        store=store,
        vault=vault,
        ledger=ledger,
        network=settings.network,
        faucet_url=settings.faucet_url,
    )

    if http_client is None:
        http_client = httpx.AsyncClient(
            timeout=settings.x402_request_timeout_seconds,
            headers={"User-Agent": f"{settings.app_name}/{settings.app_version}"},
        )

    metrics = MetricsCollector()
    payment_client = PaymentChallengeClient.from_settings(settings, wallet_manager, http_client, metrics)

    logger.info(f"Payment context ready on {settings.network} ({settings.rpc_url})")
    return PaymentContext(
        settings=settings,
        engine=engine,
        store=store,
        ledger=ledger,
        wallet_manager=wallet_manager,
        http_client=http_client,
        payment_client=payment_client,
        metrics=metrics,
    )


def get_context(request: Request) -> PaymentContext:
    """FastAPI dependency returning the context built at startup."""
    return request.app.state.context

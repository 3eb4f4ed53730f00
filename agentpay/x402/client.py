"""
HTTP 402 payment-challenge client.

Issues a request; when the service answers 402 Payment Required, pays the
demanded amount from the user's custodial wallet and resubmits the original
request with the settlement id attached until the service stops asking for
payment or the retry budget runs out.

States: SENT -> CHALLENGE_RECEIVED -> PAYING -> AWAITING_SETTLEMENT ->
RETRYING -> SUCCEEDED | FAILED. Transitions are driven by the HTTP status of
the gated service alone; the service, not the ledger, decides when a
payment is good enough.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from agentpay.core.config import Settings
from agentpay.core.constants import (
    NATIVE_ASSET,
    PAYMENT_REQUIRED_STATUS,
    X402_CONFIRMATION_WAIT_MS,
    X402_MAX_RETRIES,
    X402_PAYMENT_HEADER,
    X402_RETRY_DELAY_MS,
    X402_SETTLEMENT_WAIT_MS,
)
from agentpay.core.errors import AgentPayError, PaymentTimeoutError, PaymentVerificationFailed
from agentpay.services.metrics_service import MetricsCollector
from agentpay.services.wallet_manager import WalletManager
from agentpay.x402.backoff import BackoffPolicy, FixedBackoff
from agentpay.x402.challenge import PaymentChallenge, ensure_supported_asset, parse_challenge_response

logger = logging.getLogger(__name__)


class PaymentState(str, Enum):
    """States of one paid-fetch invocation."""

    SENT = "sent"
    CHALLENGE_RECEIVED = "challenge_received"
    PAYING = "paying"
    AWAITING_SETTLEMENT = "awaiting_settlement"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PaymentOutcome:
    """Progress and result of one paid-fetch invocation."""

    url: str
    state: PaymentState = PaymentState.SENT
    response: httpx.Response | None = None
    challenge: PaymentChallenge | None = None
    settlement_id: str | None = None
    retries: int = 0
    history: list[PaymentState] = field(default_factory=lambda: [PaymentState.SENT])

    @property
    def paid(self) -> bool:
        return self.settlement_id is not None

    def advance(self, state: PaymentState) -> None:
        logger.debug(f"[x402] {self.url}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


class PaymentChallengeClient:
    """Pays HTTP 402 challenges from custodial wallets and retries with proof."""

    def __init__(
        self,
        wallet_manager: WalletManager,
        http_client: httpx.AsyncClient,
        *,
        supported_asset: str = NATIVE_ASSET,
        payment_header: str = X402_PAYMENT_HEADER,
        max_retries: int = X402_MAX_RETRIES,
        backoff: BackoffPolicy | None = None,
        confirmation_backoff: BackoffPolicy | None = None,
        wait_for_confirmation: bool = False,
        deadline_seconds: float | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the payment client.

        Args:
            wallet_manager: Pays from per-user custodial wallets
            http_client: Client used for the gated service
            supported_asset: The only asset this client pays with
            payment_header: Header carrying the settlement id on retries
            max_retries: Retries after payment before giving up
            backoff: Delay schedule when not waiting for full settlement
            confirmation_backoff: Delay schedule when waiting for full settlement
            wait_for_confirmation: Default for invocations that do not say
            deadline_seconds: Overall limit for one invocation, None for none
            metrics: Optional metrics collector
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.wallet_manager = wallet_manager
        self.http_client = http_client
        self.supported_asset = supported_asset
        self.payment_header = payment_header
        self.max_retries = max_retries
        self.backoff = backoff or FixedBackoff(
            X402_SETTLEMENT_WAIT_MS / 1000, X402_RETRY_DELAY_MS / 1000
        )
        if confirmation_backoff is not None:
            self.confirmation_backoff = confirmation_backoff
        elif backoff is not None:
            self.confirmation_backoff = backoff
        else:
            self.confirmation_backoff = FixedBackoff(
                X402_CONFIRMATION_WAIT_MS / 1000, X402_RETRY_DELAY_MS / 1000
            )
        self.wait_for_confirmation = wait_for_confirmation
        self.deadline_seconds = deadline_seconds
        self.metrics = metrics

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        wallet_manager: WalletManager,
        http_client: httpx.AsyncClient,
        metrics: MetricsCollector | None = None,
    ) -> "PaymentChallengeClient":
        """Build a client from application settings."""
        retry_delay = settings.x402_retry_delay_ms / 1000
        return cls(
            wallet_manager,
            http_client,
            supported_asset=settings.x402_supported_asset,
            payment_header=settings.x402_payment_header,
            max_retries=settings.x402_max_retries,
            backoff=FixedBackoff(settings.x402_settlement_wait_ms / 1000, retry_delay),
            confirmation_backoff=FixedBackoff(settings.x402_confirmation_wait_ms / 1000, retry_delay),
            wait_for_confirmation=settings.x402_wait_for_confirmation,
            deadline_seconds=settings.x402_deadline_seconds,
            metrics=metrics,
        )

    async def request(self, method: str, url: str, *, user_id: str, **kwargs: Any) -> httpx.Response:
        """Like ``fetch`` but returns only the final response."""
        outcome = await self.fetch(method, url, user_id=user_id, **kwargs)
        return outcome.response

    async def fetch(
        self,
        method: str,
        url: str,
        *,
        user_id: str,
        wait_for_confirmation: bool | None = None,
        service: str | None = None,
        **request_kwargs: Any,
    ) -> PaymentOutcome:
        """
        Issue a request, paying any 402 challenge from ``user_id``'s wallet.

        Args:
            method: HTTP method
            url: Request URL
            user_id: User whose wallet pays
            wait_for_confirmation: Use the longer settlement grace period
            service: Label recorded in the payment log
            **request_kwargs: Passed to ``httpx.AsyncClient.request`` on the
                first request and on every retry; bodies must be replayable

        Returns:
            PaymentOutcome whose ``response`` is the first non-402 response

        Raises:
            MalformedChallengeError: If the 402 body carries no usable terms
            UnsupportedAssetError: If the 402 asks for another asset
            InsufficientFundsError: If the wallet cannot cover the amount
            BalanceUnavailableError: If the balance could not be read
            SubmissionError: If the transfer could not be submitted
            PaymentVerificationFailed: If every retry was still answered with 402
            PaymentTimeoutError: If the network failed or the deadline passed
        """
        outcome = PaymentOutcome(url=str(url))
        if wait_for_confirmation is None:
            wait_for_confirmation = self.wait_for_confirmation
        if self.metrics:
            self.metrics.record_request()

        run = self._run(outcome, method, url, user_id, wait_for_confirmation, service, request_kwargs)
        try:
            if self.deadline_seconds is None:
                await run
            else:
                await asyncio.wait_for(run, timeout=self.deadline_seconds)
        except AgentPayError:
            if outcome.state != PaymentState.FAILED:
                outcome.advance(PaymentState.FAILED)
            raise
        except (asyncio.TimeoutError, httpx.TransportError) as e:
            outcome.advance(PaymentState.FAILED)
            if self.metrics:
                self.metrics.record_timeout()
            message = f"Request to {url} did not complete: {type(e).__name__}"
            if outcome.settlement_id:
                message += f". Payment {outcome.settlement_id} was already submitted"
            logger.warning(f"[x402] {message}")
            raise PaymentTimeoutError(message, url=str(url), settlement_id=outcome.settlement_id) from e

        return outcome

    async def _run(
        self,
        outcome: PaymentOutcome,
        method: str,
        url: str,
        user_id: str,
        wait_for_confirmation: bool,
        service: str | None,
        request_kwargs: dict[str, Any],
    ) -> None:
        response = await self.http_client.request(method, url, **request_kwargs)
        outcome.response = response

        if response.status_code != PAYMENT_REQUIRED_STATUS:
            outcome.advance(PaymentState.SUCCEEDED)
            return

        logger.info(f"[x402] Received 402 Payment Required from {url}")
        outcome.advance(PaymentState.CHALLENGE_RECEIVED)
        if self.metrics:
            self.metrics.record_challenge()

        challenge = parse_challenge_response(response, self.supported_asset)
        ensure_supported_asset(challenge, self.supported_asset)
        outcome.challenge = challenge

        outcome.advance(PaymentState.PAYING)
        wallet = await self.wallet_manager.get_or_create_wallet(user_id)
        await self.wallet_manager.require_balance(wallet.address, challenge.amount)

        logger.info(f"[x402] Paying {challenge.amount} {challenge.asset_type} to {challenge.recipient}...")

        def record_settlement(tx_id: str) -> None:
            outcome.settlement_id = tx_id

        try:
            tx_id = await self.wallet_manager.send_payment(
                user_id,
                challenge.recipient,
                challenge.amount,
                service=service,
                on_submitted=record_settlement,
            )
        except AgentPayError:
            if self.metrics:
                self.metrics.record_payment(challenge.amount, success=outcome.paid)
            raise
        if self.metrics:
            self.metrics.record_payment(challenge.amount, success=True)
        outcome.settlement_id = tx_id
        logger.info(f"[x402] Payment broadcast successful. TxID: {tx_id}")

        outcome.advance(PaymentState.AWAITING_SETTLEMENT)
        backoff = self.confirmation_backoff if wait_for_confirmation else self.backoff
        retry_kwargs = self._with_payment_evidence(request_kwargs, tx_id)

        for attempt in range(1, self.max_retries + 1):
            await asyncio.sleep(backoff.next_delay(attempt - 1))

            outcome.advance(PaymentState.RETRYING)
            outcome.retries = attempt
            if self.metrics:
                self.metrics.record_retry()
            logger.info(
                f"[x402] Retrying request with payment evidence (attempt {attempt}/{self.max_retries})..."
            )
            retry_response = await self.http_client.request(method, url, **retry_kwargs)
            outcome.response = retry_response

            if retry_response.status_code != PAYMENT_REQUIRED_STATUS:
                logger.info("[x402] Payment verified! Request successful.")
                outcome.advance(PaymentState.SUCCEEDED)
                return

            if attempt < self.max_retries:
                logger.info("[x402] Payment not yet verified, waiting before retry...")

        outcome.advance(PaymentState.FAILED)
        if self.metrics:
            self.metrics.record_verification_failure()
        logger.error(f"[x402] Payment verification failed after {self.max_retries} retries. TxID: {tx_id}")
        raise PaymentVerificationFailed(settlement_id=tx_id, attempts=self.max_retries, url=str(url))

    def _with_payment_evidence(self, request_kwargs: dict[str, Any], tx_id: str) -> dict[str, Any]:
        retry_kwargs = dict(request_kwargs)
        headers = httpx.Headers(request_kwargs.get("headers"))
        headers[self.payment_header] = tx_id
        retry_kwargs["headers"] = headers
        return retry_kwargs

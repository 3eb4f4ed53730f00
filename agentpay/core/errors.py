"""
Error taxonomy and centralized error handling.

Every failure the payment client or wallet subsystem can surface is an
``AgentPayError`` subclass carrying a message, a machine-readable error code
and enough context (addresses, amounts, identifiers) for the caller to act
on it. The FastAPI handlers at the bottom turn these into JSON responses
without leaking secrets or stack traces.
"""

import logging
import traceback
from typing import Any

from fastapi.requests import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from agentpay.core.security import sanitize

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str
    detail: str | None = None
    context: dict[str, Any] | None = None


class AgentPayError(Exception):
    """Base exception for AgentPay errors."""

    error_code = "agentpay_error"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """
        Initialize the error.

        Args:
            message: Human-readable error message
            details: Optional structured context for the caller
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for API responses and logs."""
        return {
            "error": self.error_code,
            "detail": self.message,
            "context": self.details,
        }


class ConfigurationError(AgentPayError):
    """Raised at startup when required configuration is missing or invalid."""

    error_code = "configuration_error"


# =============================================================================
# Challenge errors
# =============================================================================

class MalformedChallengeError(AgentPayError):
    """The 402 response did not carry usable payment terms."""

    error_code = "malformed_challenge"
    status_code = 502


class UnsupportedAssetError(AgentPayError):
    """The 402 response asks for an asset this client cannot pay with."""

    error_code = "unsupported_asset"
    status_code = 422

    def __init__(self, asset: str, supported: str):
        self.asset = asset
        self.supported = supported
        super().__init__(
            f"Unsupported asset type: {asset}. Only {supported} is supported.",
            details={"asset": asset, "supported": supported},
        )


# =============================================================================
# Wallet and ledger errors
# =============================================================================

class InsufficientFundsError(AgentPayError):
    """The payer's wallet cannot cover the requested amount."""

    error_code = "insufficient_funds"
    status_code = 409

    def __init__(
        self,
        address: str,
        balance: int,
        required: int,
        faucet_url: str | None = None,
    ):
        """
        Initialize the error.

        Args:
            address: Wallet address that needs funding
            balance: Current balance in minor units
            required: Amount required in minor units
            faucet_url: Where to fund the wallet, if the network has a faucet
        """
        self.address = address
        self.balance = balance
        self.required = required
        self.shortfall = required - balance
        self.faucet_url = faucet_url
        message = (
            f"Insufficient balance. Wallet {address} has {balance} but needs {required} "
            f"(short by {self.shortfall})."
        )
        if faucet_url:
            message += f" Fund the wallet at: {faucet_url}"
        super().__init__(
            message,
            details={
                "address": address,
                "balance": str(balance),
                "required": str(required),
                "shortfall": str(self.shortfall),
                "faucet_url": faucet_url,
            },
        )


class BalanceUnavailableError(AgentPayError):
    """The ledger could not be asked for a balance; it is unknown, not zero."""

    error_code = "balance_unavailable"
    status_code = 503

    def __init__(self, address: str):
        self.address = address
        super().__init__(
            f"Balance of wallet {address} is unknown: the ledger could not be reached.",
            details={"address": address},
        )


class LedgerError(AgentPayError):
    """Base exception for Ledger Service failures."""

    error_code = "ledger_error"
    status_code = 502


class LedgerTransportError(LedgerError):
    """The Ledger Service could not be reached or did not answer in time."""

    error_code = "ledger_unreachable"
    status_code = 503


class LedgerRejectedError(LedgerError):
    """The Ledger Service answered and refused the request."""

    error_code = "ledger_rejected"


class SubmissionError(AgentPayError):
    """A transfer could not be submitted to the ledger."""

    error_code = "submission_failed"
    status_code = 502

    def __init__(self, message: str, recipient: str, amount: int, retryable: bool = False):
        self.recipient = recipient
        self.amount = amount
        self.retryable = retryable
        super().__init__(
            message,
            details={"recipient": recipient, "amount": str(amount), "retryable": retryable},
        )


class KeyIntegrityError(AgentPayError):
    """Sealed key material was tampered with or opened with the wrong key."""

    error_code = "key_integrity_error"


class DuplicateUserError(AgentPayError):
    """A wallet already exists for this user."""

    error_code = "duplicate_user"
    status_code = 409

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Wallet already exists for user {user_id}", details={"user_id": user_id})


class DuplicateTxError(AgentPayError):
    """A payment log entry already exists for this transaction id."""

    error_code = "duplicate_tx"
    status_code = 409

    def __init__(self, tx_id: str):
        self.tx_id = tx_id
        super().__init__(f"Payment {tx_id} is already logged", details={"tx_id": tx_id})


class PaymentLogError(AgentPayError):
    """A transfer reached the ledger but its audit log entry could not be written."""

    error_code = "payment_log_failed"
    status_code = 500

    def __init__(self, tx_id: str, reason: str):
        self.tx_id = tx_id
        super().__init__(
            f"Payment {tx_id} was submitted but could not be logged: {reason}. "
            "Record it manually before paying again.",
            details={"tx_id": tx_id},
        )


class WalletNotFoundError(AgentPayError):
    """No wallet exists for the requested user."""

    error_code = "wallet_not_found"
    status_code = 404


# =============================================================================
# Protocol errors
# =============================================================================

class PaymentTimeoutError(AgentPayError, TimeoutError):
    """A network call or wait ran past its deadline; retrying later may succeed."""

    error_code = "timeout"
    status_code = 504

    def __init__(self, message: str, url: str | None = None, settlement_id: str | None = None):
        self.url = url
        self.settlement_id = settlement_id
        super().__init__(message, details={"url": url, "settlement_id": settlement_id})


class PaymentVerificationFailed(AgentPayError):
    """The service still demanded payment after every retry."""

    error_code = "payment_verification_failed"
    status_code = 502

    def __init__(self, settlement_id: str, attempts: int, url: str):
        self.settlement_id = settlement_id
        self.attempts = attempts
        self.url = url
        super().__init__(
            f"Payment verification failed after {attempts} retries. TxID: {settlement_id}. "
            "Verify the transfer on the ledger before paying again.",
            details={"settlement_id": settlement_id, "attempts": attempts, "url": url},
        )


# =============================================================================
# FastAPI handlers
# =============================================================================

def create_error_response(
    status_code: int,
    message: str,
    detail: str | None = None,
    context: dict[str, Any] | None = None,
) -> JSONResponse:
    """
    Create a standardized JSON error response.

    Args:
        status_code: HTTP status code
        message: Main error message
        detail: Optional additional detail
        context: Optional structured context, redacted before sending

    Returns:
        JSONResponse with error information
    """
    error_response = ErrorResponse(
        error=message,
        detail=detail,
        context=sanitize(context) if context else None,
    )

    logger.error(f"Error {status_code}: {message} - {detail}")

    return JSONResponse(
        status_code=status_code, content=error_response.model_dump()
    )


async def agentpay_exception_handler(
    request: Request, exc: AgentPayError
) -> JSONResponse:
    """
    Handle AgentPayError globally.

    Args:
        request: The request that caused the exception
        exc: The AgentPayError that was raised

    Returns:
        JSONResponse carrying the error code, message and context
    """
    return create_error_response(
        status_code=exc.status_code,
        message=exc.error_code,
        detail=exc.message,
        context=exc.details,
    )


async def general_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Handle all other exceptions globally.

    Args:
        request: The request that caused the exception
        exc: The exception that was raised

    Returns:
        JSONResponse with sanitized error information
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    settings = getattr(request.app.state, "settings", None)
    if settings is not None and settings.debug:
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    else:
        detail = None

    return create_error_response(
        status_code=500,
        message="Internal server error",
        detail=detail,
    )

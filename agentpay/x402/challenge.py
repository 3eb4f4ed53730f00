"""
Payment challenge parsing.

A 402 response body carries payment terms in one of two shapes:

    {"accepts": [{"payTo", "amount", "asset", "network", "scheme", "facilitatorUrl"?}, ...]}
    {"paymentRequirements": {"payTo", "amount", "tokenType", "network", "scheme", "facilitatorUrl"}}

Both are normalized into a single ``PaymentChallenge``. Amounts are decimal
strings in minor units and are only ever parsed as integers.
"""

import json
import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agentpay.core.errors import MalformedChallengeError, UnsupportedAssetError

logger = logging.getLogger(__name__)


def parse_minor_units(value: Any) -> int:
    """
    Parse an unsigned integer amount.

    Accepts a string of ASCII digits or a non-negative int. Floats, signs,
    decimal points and exponents are rejected.
    """
    if isinstance(value, bool):
        raise ValueError("amount must be an unsigned integer, not a boolean")
    if isinstance(value, int):
        if value < 0:
            raise ValueError("amount must not be negative")
        return value
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    raise ValueError(f"amount must be an unsigned integer string, got {value!r}")


class _Terms(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    pay_to: str = Field(..., alias="payTo", min_length=1, description="Recipient address")
    amount: int = Field(..., description="Amount in minor units")
    network: str = Field(..., description="Network the payment is expected on")
    scheme: str = Field(..., description="Payment scheme")
    facilitator_url: str | None = Field(None, alias="facilitatorUrl", description="Optional facilitator endpoint")

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v: Any) -> int:
        amount = parse_minor_units(v)
        if amount == 0:
            raise ValueError("amount must be greater than zero")
        return amount


class AcceptedTerms(_Terms):
    """One entry of an ``accepts`` array."""

    asset: str | None = Field(None, description="Asset symbol")


class PaymentRequirements(_Terms):
    """The ``paymentRequirements`` object."""

    token_type: str = Field(..., alias="tokenType", description="Asset symbol")


class PaymentChallenge(BaseModel):
    """Normalized payment terms of one 402 response."""

    model_config = ConfigDict(frozen=True)

    recipient: str
    amount: int
    asset_type: str
    network: str
    scheme: str
    facilitator_url: str | None = None


def parse_challenge(body: Any, default_asset: str) -> PaymentChallenge:
    """
    Extract payment terms from a decoded 402 body.

    Args:
        body: Decoded JSON body
        default_asset: Asset assumed when an ``accepts`` entry names none

    Returns:
        PaymentChallenge

    Raises:
        MalformedChallengeError: If neither shape is present or the terms are invalid
    """
    if not isinstance(body, dict):
        raise MalformedChallengeError(
            "402 response body is not a JSON object",
            details={"body_type": type(body).__name__},
        )

    try:
        accepts = body.get("accepts")
        if isinstance(accepts, list) and accepts:
            terms = AcceptedTerms.model_validate(accepts[0])
            return PaymentChallenge(
                recipient=terms.pay_to,
                amount=terms.amount,
                asset_type=terms.asset or default_asset,
                network=terms.network,
                scheme=terms.scheme,
                facilitator_url=terms.facilitator_url or None,
            )

        requirements = body.get("paymentRequirements")
        if requirements is not None:
            terms = PaymentRequirements.model_validate(requirements)
            return PaymentChallenge(
                recipient=terms.pay_to,
                amount=terms.amount,
                asset_type=terms.token_type,
                network=terms.network,
                scheme=terms.scheme,
                facilitator_url=terms.facilitator_url or None,
            )
    except ValidationError as e:
        raise MalformedChallengeError(
            f"402 response carries invalid payment terms: {e.error_count()} error(s)",
            details={"errors": [err["msg"] for err in e.errors()]},
        ) from e

    raise MalformedChallengeError(
        "402 response missing payment requirements (neither accepts nor paymentRequirements field found)"
    )


def parse_challenge_response(response: httpx.Response, default_asset: str) -> PaymentChallenge:
    """
    Decode a 402 response and extract its payment terms.

    Raises:
        MalformedChallengeError: If the body is not JSON or carries no usable terms
    """
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.debug(f"402 body (first 200 chars): {response.text[:200]!r}")
        raise MalformedChallengeError(f"Failed to parse 402 response body: {e}") from e
    return parse_challenge(body, default_asset)


def ensure_supported_asset(challenge: PaymentChallenge, supported_asset: str) -> None:
    """
    Refuse challenges for assets other than the one this client pays with.

    Raises:
        UnsupportedAssetError: If the challenge asks for a different asset
    """
    if challenge.asset_type.upper() != supported_asset.upper():
        raise UnsupportedAssetError(challenge.asset_type, supported_asset)

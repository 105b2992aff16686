"""Payment gateways: Stripe when configured, otherwise a local simulator."""

import logging
import secrets
import time
from abc import ABC, abstractmethod
from decimal import Decimal

import stripe
from fastapi import Request
from stripe import StripeClient

from rentals.config import settings
from rentals.errors import PaymentGatewayError, ValidationError

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal amount to the smallest currency unit (cents)."""
    return int((amount * 100).quantize(Decimal("1")))


class PaymentGateway(ABC):
    """Charges and refunds money, returning the processor's transaction id."""

    @abstractmethod
    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method: str,
        reference: str,
        payment_token: str | None = None,
    ) -> str: ...

    @abstractmethod
    async def refund(self, transaction_id: str, amount: Decimal) -> None: ...


class SimulatedGateway(PaymentGateway):
    """Accepts every charge. Used when no processor credentials are configured."""

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method: str,
        reference: str,
        payment_token: str | None = None,
    ) -> str:
        transaction_id = f"TX{int(time.time() * 1000)}{secrets.token_hex(4).upper()}"
        logger.info("Simulated %s charge of %s %s for %s: %s", payment_method, amount, currency, reference, transaction_id)
        return transaction_id

    async def refund(self, transaction_id: str, amount: Decimal) -> None:
        logger.info("Simulated refund of %s for %s", amount, transaction_id)


class StripeGateway(PaymentGateway):
    """Card payments through Stripe PaymentIntents (async HTTPX client)."""

    def __init__(self, secret_key: str) -> None:
        self.client = StripeClient(secret_key, http_client=stripe.HTTPXClient())

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method: str,
        reference: str,
        payment_token: str | None = None,
    ) -> str:
        if not payment_token:
            raise ValidationError("A payment token is required", errors=["payment_token: missing"])

        logger.info("Creating Stripe PaymentIntent for %s (%s %s)", reference, amount, currency)
        try:
            intent = await self.client.v1.payment_intents.create_async(
                params={
                    "amount": to_minor_units(amount),
                    "currency": currency.lower(),
                    "payment_method": payment_token,
                    "confirm": True,
                    "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
                    "metadata": {"booking_id": reference, "payment_method": payment_method},
                }
            )
        except stripe.StripeError as e:
            logger.error("Stripe charge error for %s: %s", reference, e)
            raise PaymentGatewayError("Payment was declined by the processor") from e

        if intent.status != "succeeded":
            raise PaymentGatewayError(f"Payment not completed (status: {intent.status})")
        return intent.id

    async def refund(self, transaction_id: str, amount: Decimal) -> None:
        logger.info("Refunding Stripe PaymentIntent %s", transaction_id)
        try:
            await self.client.v1.refunds.create_async(
                params={"payment_intent": transaction_id, "amount": to_minor_units(amount)}
            )
        except stripe.StripeError as e:
            logger.error("Stripe refund error for %s: %s", transaction_id, e)
            raise PaymentGatewayError("Refund was rejected by the processor") from e


def build_gateway() -> PaymentGateway:
    if settings.stripe_secret_key:
        return StripeGateway(settings.stripe_secret_key)
    logger.warning("STRIPE_SECRET_KEY not set; payments are simulated")
    return SimulatedGateway()


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway

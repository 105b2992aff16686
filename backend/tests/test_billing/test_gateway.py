"""Tests for the payment gateways with mocked Stripe calls."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import stripe

from rentals.billing.gateway import SimulatedGateway, StripeGateway, build_gateway, to_minor_units
from rentals.config import settings
from rentals.errors import PaymentGatewayError, ValidationError


def _stripe_gateway() -> StripeGateway:
    gateway = StripeGateway("sk_test_dummy")
    gateway.client = MagicMock()
    return gateway


class TestMinorUnits:
    def test_whole_amount(self):
        assert to_minor_units(Decimal("750")) == 75000

    def test_cents(self):
        assert to_minor_units(Decimal("19.99")) == 1999


class TestSimulatedGateway:
    async def test_charge_returns_unique_transaction_ids(self):
        gateway = SimulatedGateway()
        first = await gateway.charge(Decimal("10.00"), "USD", "credit_card", "booking-1")
        second = await gateway.charge(Decimal("10.00"), "USD", "credit_card", "booking-2")
        assert first.startswith("TX")
        assert first != second

    async def test_refund_accepts_anything(self):
        assert await SimulatedGateway().refund("TX123", Decimal("10.00")) is None


class TestStripeGateway:
    async def test_charge_creates_confirmed_intent(self):
        gateway = _stripe_gateway()
        create = AsyncMock(return_value=MagicMock(id="pi_123", status="succeeded"))
        gateway.client.v1.payment_intents.create_async = create

        transaction_id = await gateway.charge(Decimal("120.50"), "USD", "credit_card", "booking-1", "pm_card_visa")

        assert transaction_id == "pi_123"
        params = create.call_args.kwargs["params"]
        assert params["amount"] == 12050
        assert params["currency"] == "usd"
        assert params["payment_method"] == "pm_card_visa"
        assert params["confirm"] is True
        assert params["metadata"]["booking_id"] == "booking-1"

    async def test_charge_requires_token(self):
        with pytest.raises(ValidationError):
            await _stripe_gateway().charge(Decimal("10"), "USD", "credit_card", "booking-1")

    async def test_charge_not_succeeded(self):
        gateway = _stripe_gateway()
        gateway.client.v1.payment_intents.create_async = AsyncMock(
            return_value=MagicMock(id="pi_123", status="requires_action")
        )
        with pytest.raises(PaymentGatewayError, match="requires_action"):
            await gateway.charge(Decimal("10"), "USD", "credit_card", "booking-1", "pm_card_visa")

    async def test_stripe_error_becomes_gateway_error(self):
        gateway = _stripe_gateway()
        gateway.client.v1.payment_intents.create_async = AsyncMock(side_effect=stripe.StripeError("card declined"))
        with pytest.raises(PaymentGatewayError) as exc_info:
            await gateway.charge(Decimal("10"), "USD", "credit_card", "booking-1", "pm_card_visa")
        assert exc_info.value.status_code == 502

    async def test_refund_uses_minor_units(self):
        gateway = _stripe_gateway()
        create = AsyncMock()
        gateway.client.v1.refunds.create_async = create

        await gateway.refund("pi_123", Decimal("99.99"))

        create.assert_awaited_once_with(params={"payment_intent": "pi_123", "amount": 9999})

    async def test_refund_error(self):
        gateway = _stripe_gateway()
        gateway.client.v1.refunds.create_async = AsyncMock(side_effect=stripe.StripeError("nope"))
        with pytest.raises(PaymentGatewayError):
            await gateway.refund("pi_123", Decimal("1.00"))


class TestBuildGateway:
    def test_simulated_without_key(self, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", "")
        assert isinstance(build_gateway(), SimulatedGateway)

    def test_stripe_with_key(self, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_dummy")
        assert isinstance(build_gateway(), StripeGateway)

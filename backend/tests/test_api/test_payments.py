"""Tests for payment checkout, history and refunds."""

import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient

from rentals.billing.gateway import SimulatedGateway
from rentals.database import Database
from rentals.errors import PaymentGatewayError
from rentals.main import app
from rentals.models.payment import Payment
from rentals.services.payment_service import is_booking_paid

pytestmark = pytest.mark.asyncio


class DecliningGateway(SimulatedGateway):
    async def charge(self, amount, currency, payment_method, reference, payment_token=None) -> str:
        raise PaymentGatewayError("Payment was declined by the processor")


def _payment(booking_id: str, amount: float = 750, method: str = "credit_card", **extra) -> dict:
    return {"booking_id": booking_id, "amount": amount, "payment_method": method, **extra}


@pytest.fixture
def pay(client: AsyncClient):
    """Pay a booking through the API and return the response data."""

    async def _pay(booking_id: str, headers: dict | None = None, **extra) -> dict:
        response = await client.post("/api/payments", json=_payment(booking_id, **extra), headers=headers or {})
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _pay


# ---------------------------------------------------------------------------
# POST /api/payments
# ---------------------------------------------------------------------------


class TestCreatePayment:
    async def test_pay_existing_booking(self, client: AsyncClient, make_booking, host_headers: dict) -> None:
        booking = await make_booking()

        response = await client.post("/api/payments", json=_payment(booking["id"]))
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "completed"
        assert data["currency"] == "USD"
        assert data["transaction_id"].startswith("TX")
        assert data["booking_status"] == "confirmed"
        assert data["booking_payment_status"] == "completed"

        detail = await client.get(f"/api/bookings/{booking['id']}", headers=host_headers)
        assert detail.json()["data"]["status"] == "confirmed"
        assert detail.json()["data"]["payment_method"] == "credit_card"

    async def test_confirmed_booking_stays_confirmed(
        self, client: AsyncClient, make_booking, host_headers: dict, pay
    ) -> None:
        booking = await make_booking()
        await client.put(f"/api/bookings/{booking['id']}/status", json={"status": "confirmed"}, headers=host_headers)

        data = await pay(booking["id"])
        assert data["booking_status"] == "confirmed"

    async def test_second_payment_conflicts(self, client: AsyncClient, make_booking, pay) -> None:
        booking = await make_booking()
        await pay(booking["id"])

        response = await client.post("/api/payments", json=_payment(booking["id"]))
        assert response.status_code == 409
        assert response.json()["message"] == "This booking has already been paid"

    async def test_amount_must_match_total(self, client: AsyncClient, make_booking) -> None:
        booking = await make_booking()
        response = await client.post("/api/payments", json=_payment(booking["id"], amount=10))
        assert response.status_code == 400
        assert response.json()["errors"] == ["amount: expected 750.00"]

    async def test_cancelled_booking_cannot_be_paid(self, client: AsyncClient, make_booking) -> None:
        booking = await make_booking()
        await client.patch(f"/api/bookings/{booking['id']}/cancel")
        response = await client.post("/api/payments", json=_payment(booking["id"]))
        assert response.status_code == 400

    async def test_stranger_cannot_pay_owned_booking(
        self, client: AsyncClient, make_booking, auth_headers: dict, other_host_headers: dict
    ) -> None:
        booking = await make_booking(headers=auth_headers)
        response = await client.post("/api/payments", json=_payment(booking["id"]), headers=other_host_headers)
        assert response.status_code == 403

    async def test_unknown_booking(self, client: AsyncClient) -> None:
        response = await client.post("/api/payments", json=_payment(str(uuid.uuid4())))
        assert response.status_code == 404

    async def test_invalid_booking_reference(self, client: AsyncClient) -> None:
        response = await client.post("/api/payments", json=_payment("booking-42"))
        assert response.status_code == 400

    async def test_declined_charge_leaves_booking_pending(
        self, client: AsyncClient, make_booking, host_headers: dict
    ) -> None:
        booking = await make_booking()
        app.state.gateway = DecliningGateway()

        response = await client.post("/api/payments", json=_payment(booking["id"]))
        assert response.status_code == 502
        assert response.json() == {"success": False, "message": "Payment was declined by the processor"}

        detail = await client.get(f"/api/bookings/{booking['id']}", headers=host_headers)
        assert detail.json()["data"]["status"] == "pending"
        assert detail.json()["data"]["payment_status"] == "pending"


class TestTemporaryCheckout:
    """Paying a ``temp-`` id creates the booking together with the payment."""

    async def test_materializes_booking(
        self, client: AsyncClient, test_property: dict, booking_data, auth_headers: dict, test_user
    ) -> None:
        response = await client.post(
            "/api/payments",
            json=_payment("temp-1700000000", method="paypal", booking=booking_data(test_property["id"])),
            headers=auth_headers,
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["booking_status"] == "confirmed"

        booking = await client.get(f"/api/bookings/{data['booking_id']}", headers=auth_headers)
        assert booking.status_code == 200
        assert booking.json()["data"]["user_id"] == str(test_user.id)
        assert booking.json()["data"]["payment_method"] == "paypal"

    async def test_booking_details_required(self, client: AsyncClient) -> None:
        response = await client.post("/api/payments", json=_payment("temp-1700000000"))
        assert response.status_code == 400

    async def test_overlap_creates_nothing(
        self, client: AsyncClient, make_booking, test_property: dict, booking_data, host_headers: dict
    ) -> None:
        await make_booking()

        response = await client.post(
            "/api/payments",
            json=_payment("temp-1700000000", booking=booking_data(test_property["id"])),
        )
        assert response.status_code == 409

        listing = await client.get("/api/bookings", headers=host_headers)
        assert listing.json()["data"]["total"] == 1

    async def test_amount_mismatch_rolls_back_booking(
        self, client: AsyncClient, test_property: dict, booking_data, host_headers: dict
    ) -> None:
        response = await client.post(
            "/api/payments",
            json=_payment("temp-1700000000", amount=999, booking=booking_data(test_property["id"])),
        )
        assert response.status_code == 400

        listing = await client.get("/api/bookings", headers=host_headers)
        assert listing.json()["data"]["total"] == 0


# ---------------------------------------------------------------------------
# POST /api/payments/{id}/refund
# ---------------------------------------------------------------------------


class TestRefund:
    async def test_owner_refund_cancels_booking(
        self, client: AsyncClient, make_booking, auth_headers: dict, pay
    ) -> None:
        booking = await make_booking(headers=auth_headers)
        payment = await pay(booking["id"], headers=auth_headers)

        response = await client.post(f"/api/payments/{payment['id']}/refund", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "refunded"
        assert data["booking_status"] == "cancelled"
        assert data["booking_payment_status"] == "refunded"

        detail = await client.get(f"/api/bookings/{booking['id']}", headers=auth_headers)
        assert detail.json()["data"]["status"] == "cancelled"
        assert detail.json()["data"]["cancellation_reason"] == "Payment refunded"

    async def test_refund_twice_not_found(self, client: AsyncClient, make_booking, auth_headers: dict, pay) -> None:
        booking = await make_booking(headers=auth_headers)
        payment = await pay(booking["id"], headers=auth_headers)
        await client.post(f"/api/payments/{payment['id']}/refund", headers=auth_headers)

        response = await client.post(f"/api/payments/{payment['id']}/refund", headers=auth_headers)
        assert response.status_code == 404

    async def test_stranger_cannot_refund(
        self, client: AsyncClient, make_booking, auth_headers: dict, other_host_headers: dict, pay
    ) -> None:
        booking = await make_booking(headers=auth_headers)
        payment = await pay(booking["id"], headers=auth_headers)

        response = await client.post(f"/api/payments/{payment['id']}/refund", headers=other_host_headers)
        assert response.status_code == 403

        detail = await client.get(f"/api/bookings/{booking['id']}", headers=auth_headers)
        assert detail.json()["data"]["status"] == "confirmed"

    async def test_admin_can_refund_anonymous_booking(
        self, client: AsyncClient, make_booking, admin_headers: dict, pay
    ) -> None:
        booking = await make_booking()
        payment = await pay(booking["id"])

        response = await client.post(f"/api/payments/{payment['id']}/refund", headers=admin_headers)
        assert response.status_code == 200

    async def test_pending_payment_not_refundable(
        self, client: AsyncClient, make_booking, auth_headers: dict, database: Database
    ) -> None:
        booking = await make_booking(headers=auth_headers)
        async with database.session() as session:
            pending = Payment(
                booking_id=uuid.UUID(booking["id"]),
                amount=Decimal("750.00"),
                currency="USD",
                payment_method="bank_transfer",
                status="pending",
            )
            session.add(pending)
            await session.commit()

        response = await client.post(f"/api/payments/{pending.id}/refund", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Completed payment not found"

        detail = await client.get(f"/api/bookings/{booking['id']}", headers=auth_headers)
        assert detail.json()["data"]["status"] == "pending"

    async def test_completed_stay_refund_cancels_booking(
        self, client: AsyncClient, make_booking, auth_headers: dict, host_headers: dict, pay
    ) -> None:
        booking = await make_booking(headers=auth_headers)
        payment = await pay(booking["id"], headers=auth_headers)
        await client.put(f"/api/bookings/{booking['id']}/status", json={"status": "completed"}, headers=host_headers)

        response = await client.post(f"/api/payments/{payment['id']}/refund", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "refunded"
        assert data["booking_status"] == "cancelled"
        assert data["booking_payment_status"] == "refunded"


# ---------------------------------------------------------------------------
# GET /api/payments
# ---------------------------------------------------------------------------


class TestPaymentHistory:
    async def test_list_scoped_to_caller(
        self,
        client: AsyncClient,
        make_booking,
        auth_headers: dict,
        host_headers: dict,
        other_host_headers: dict,
        pay,
    ) -> None:
        booking = await make_booking(headers=auth_headers)
        payment = await pay(booking["id"], headers=auth_headers)

        guest = await client.get("/api/payments", headers=auth_headers)
        host = await client.get("/api/payments", headers=host_headers)
        stranger = await client.get("/api/payments", headers=other_host_headers)

        assert [p["id"] for p in guest.json()["data"]["items"]] == [payment["id"]]
        assert host.json()["data"]["total"] == 1
        assert stranger.json()["data"]["total"] == 0

    async def test_status_filter(self, client: AsyncClient, make_booking, admin_headers: dict, pay) -> None:
        first = await make_booking(offset_start=30)
        second = await make_booking(offset_start=60)
        refunded = await pay(first["id"])
        await pay(second["id"])
        await client.post(f"/api/payments/{refunded['id']}/refund", headers=admin_headers)

        response = await client.get("/api/payments", params={"status": "refunded"}, headers=admin_headers)
        assert [p["id"] for p in response.json()["data"]["items"]] == [refunded["id"]]

    async def test_get_payment_visibility(
        self, client: AsyncClient, make_booking, auth_headers: dict, other_host_headers: dict, pay
    ) -> None:
        booking = await make_booking(headers=auth_headers)
        payment = await pay(booking["id"], headers=auth_headers)

        own = await client.get(f"/api/payments/{payment['id']}", headers=auth_headers)
        stranger = await client.get(f"/api/payments/{payment['id']}", headers=other_host_headers)
        assert own.status_code == 200
        assert float(own.json()["data"]["amount"]) == 750.0
        assert stranger.status_code == 404


class TestIsBookingPaid:
    async def test_tracks_completed_payments(
        self, client: AsyncClient, make_booking, pay, database: Database, admin_headers: dict
    ) -> None:
        booking = await make_booking()
        booking_id = uuid.UUID(booking["id"])

        async with database.session() as session:
            assert await is_booking_paid(session, booking_id) is False

        payment = await pay(booking["id"])
        async with database.session() as session:
            assert await is_booking_paid(session, booking_id) is True

        await client.post(f"/api/payments/{payment['id']}/refund", headers=admin_headers)
        async with database.session() as session:
            assert await is_booking_paid(session, booking_id) is False

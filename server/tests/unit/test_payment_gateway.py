"""Tests for the mock payment gateway."""

import pytest

from bus_booking.schemas.payment import PaymentStatus
from bus_booking.services.payment_gateway import (
    DECLINED_METHOD,
    PENDING_METHOD,
    SUCCEEDING_METHOD,
    MockPaymentGateway,
)


@pytest.mark.asyncio
async def test_intent_is_pending_until_confirmed():
    gateway = MockPaymentGateway()

    intent = await gateway.create_payment_intent(5000, "usd", metadata={"hold_id": "h-1"})

    assert intent.reference.startswith("pi_mock_")
    assert intent.client_secret.startswith(f"{intent.reference}_secret_")
    assert intent.currency == "USD"
    assert intent.status == PaymentStatus.PENDING
    assert intent.metadata == {"hold_id": "h-1"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("method", "expected"),
    [
        (SUCCEEDING_METHOD, PaymentStatus.SUCCEEDED),
        (DECLINED_METHOD, PaymentStatus.FAILED),
        (PENDING_METHOD, PaymentStatus.PENDING),
        ("pm_unknown", PaymentStatus.FAILED),
    ],
)
async def test_confirmation_depends_on_method(method, expected):
    gateway = MockPaymentGateway()
    intent = await gateway.create_payment_intent(5000, "USD")

    confirmation = await gateway.confirm_payment(intent.reference, method)

    assert confirmation.reference == intent.reference
    assert confirmation.status == expected
    assert confirmation.succeeded is (expected == PaymentStatus.SUCCEEDED)


@pytest.mark.asyncio
async def test_unknown_reference_fails():
    gateway = MockPaymentGateway()

    confirmation = await gateway.confirm_payment("pi_forged", SUCCEEDING_METHOD)

    assert confirmation.status == PaymentStatus.FAILED
    assert not confirmation.succeeded


@pytest.mark.asyncio
async def test_succeeded_payment_stays_succeeded():
    gateway = MockPaymentGateway()
    intent = await gateway.create_payment_intent(5000, "USD")
    await gateway.confirm_payment(intent.reference, SUCCEEDING_METHOD)

    again = await gateway.confirm_payment(intent.reference, DECLINED_METHOD)

    assert again.succeeded


@pytest.mark.asyncio
async def test_declined_payment_can_be_retried():
    gateway = MockPaymentGateway()
    intent = await gateway.create_payment_intent(5000, "USD")
    await gateway.confirm_payment(intent.reference, DECLINED_METHOD)

    retried = await gateway.confirm_payment(intent.reference, SUCCEEDING_METHOD)

    assert retried.succeeded

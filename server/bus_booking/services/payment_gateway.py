"""Payment gateway adapters."""

import logging
import secrets
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from ..schemas.payment import PaymentStatus

logger = logging.getLogger(__name__)

# Test payment methods with deterministic outcomes
SUCCEEDING_METHOD = "pm_card_visa"
DECLINED_METHOD = "pm_card_declined"
PENDING_METHOD = "pm_card_pending"


@dataclass
class GatewayIntent:
    reference: str
    amount: int
    currency: str
    client_secret: str
    status: PaymentStatus = PaymentStatus.PENDING
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentConfirmation:
    """Outcome of a payment as reported by the gateway."""

    reference: str
    status: PaymentStatus

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCEEDED


class PaymentGateway:
    """Black-box card processor used by the booking flow."""

    provider_name: str = "base"

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, Any] | None = None
    ) -> GatewayIntent:
        raise NotImplementedError()

    async def confirm_payment(self, reference: str, payment_method: str) -> PaymentConfirmation:
        raise NotImplementedError()


class MockPaymentGateway(PaymentGateway):
    """
    In-memory gateway for development and tests.

    Outcomes depend only on the payment method: ``pm_card_visa`` succeeds,
    ``pm_card_declined`` fails and ``pm_card_pending`` stays pending. Any
    other method, or a reference the gateway never issued, fails.
    """

    provider_name = "mock"

    def __init__(self):
        self.intents: dict[str, GatewayIntent] = {}

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, Any] | None = None
    ) -> GatewayIntent:
        reference = f"pi_mock_{uuid4().hex}"
        intent = GatewayIntent(
            reference=reference,
            amount=amount,
            currency=currency.upper(),
            client_secret=f"{reference}_secret_{secrets.token_hex(8)}",
            metadata=dict(metadata or {})
        )
        self.intents[reference] = intent

        logger.info(
            "Payment intent created",
            extra={
                "provider": self.provider_name,
                "payment_reference": reference,
                "amount": amount,
                "currency": intent.currency
            }
        )
        return intent

    async def confirm_payment(self, reference: str, payment_method: str) -> PaymentConfirmation:
        intent = self.intents.get(reference)
        if intent is None:
            logger.warning(
                "Confirmation for unknown payment reference",
                extra={"provider": self.provider_name, "payment_reference": reference}
            )
            return PaymentConfirmation(reference=reference, status=PaymentStatus.FAILED)

        # A settled intent keeps its outcome
        if intent.status == PaymentStatus.SUCCEEDED:
            return PaymentConfirmation(reference=reference, status=intent.status)

        if payment_method == SUCCEEDING_METHOD:
            intent.status = PaymentStatus.SUCCEEDED
        elif payment_method == PENDING_METHOD:
            intent.status = PaymentStatus.PENDING
        else:
            intent.status = PaymentStatus.FAILED

        logger.info(
            "Payment confirmation processed",
            extra={
                "provider": self.provider_name,
                "payment_reference": reference,
                "payment_method": payment_method,
                "status": intent.status.value
            }
        )
        return PaymentConfirmation(reference=reference, status=intent.status)


# Process-wide gateway used by the API
payment_gateway: PaymentGateway = MockPaymentGateway()

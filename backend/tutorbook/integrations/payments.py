# backend/tutorbook/integrations/payments.py
"""
Payment gateway port and adapters.

The core only needs ``charge`` and ``refund``. Anything that is not a clear
success is a failure; the checkout service turns that into
PaymentFailedException and leaves the hold in place for a retry.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Dict, Iterable, Optional

import stripe
import ulid

from ..core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of a charge or refund."""

    success: bool
    reference: Optional[str] = None
    failure_reason: Optional[str] = None


class PaymentGateway(ABC):
    """Port for the external payment processor."""

    @abstractmethod
    def charge(
        self, amount: Decimal, method: str, metadata: Optional[Dict[str, str]] = None
    ) -> PaymentResult:
        """Charge ``amount`` to ``method``. Must not raise for declines."""

    @abstractmethod
    def refund(self, reference: str) -> PaymentResult:
        """Return a previously captured charge in full."""


def to_minor_units(amount: Decimal) -> int:
    """Decimal major-unit amount to integer cents."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripePaymentGateway(PaymentGateway):
    """Charges through Stripe PaymentIntents, confirmed immediately."""

    def __init__(self, api_key: Optional[str] = None, currency: Optional[str] = None):
        self.currency = currency or settings.payment_currency
        key = api_key or settings.stripe_secret_key.get_secret_value()
        if key:
            stripe.api_key = key
        else:
            logger.warning("Stripe secret key not configured; charges will fail")

    def charge(
        self, amount: Decimal, method: str, metadata: Optional[Dict[str, str]] = None
    ) -> PaymentResult:
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=self.currency,
                payment_method=method,
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata={"platform": "tutorbook", **(metadata or {})},
            )
        except stripe.CardError as e:
            logger.info(f"Card declined: {getattr(e, 'code', None)}")
            return PaymentResult(success=False, failure_reason=getattr(e, "code", None) or str(e))
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent: {str(e)}")
            return PaymentResult(success=False, failure_reason="gateway_error")

        status = getattr(intent, "status", None)
        if status != "succeeded":
            logger.info(f"Payment intent {intent.id} not captured, status={status}")
            return PaymentResult(success=False, reference=intent.id, failure_reason=status)
        return PaymentResult(success=True, reference=intent.id)

    def refund(self, reference: str) -> PaymentResult:
        try:
            refund = stripe.Refund.create(payment_intent=reference)
        except stripe.StripeError as e:
            logger.error(f"Stripe error refunding {reference}: {str(e)}")
            return PaymentResult(success=False, reference=reference, failure_reason=str(e))
        return PaymentResult(success=True, reference=refund.id)


class MockPaymentGateway(PaymentGateway):
    """
    In-process gateway for development and tests.

    Declines any method token listed in ``decline_methods``; everything else
    succeeds with a fresh reference.
    """

    def __init__(self, decline_methods: Optional[Iterable[str]] = None):
        methods = settings.mock_payment_decline_methods if decline_methods is None else decline_methods
        self.decline_methods = {m.lower() for m in methods}
        self.charges: list[Dict[str, Any]] = []
        self.refunds: list[str] = []

    def charge(
        self, amount: Decimal, method: str, metadata: Optional[Dict[str, str]] = None
    ) -> PaymentResult:
        if (method or "").lower() in self.decline_methods:
            return PaymentResult(success=False, failure_reason="card_declined")
        reference = f"mock_{ulid.ULID()}"
        self.charges.append({"reference": reference, "amount": Decimal(amount), "method": method})
        return PaymentResult(success=True, reference=reference)

    def refund(self, reference: str) -> PaymentResult:
        self.refunds.append(reference)
        return PaymentResult(success=True, reference=reference)


def build_payment_gateway(provider: Optional[str] = None) -> PaymentGateway:
    provider = provider or settings.payment_provider
    if provider == "stripe":
        return StripePaymentGateway()
    return MockPaymentGateway()

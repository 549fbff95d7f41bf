from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from tutorbook.integrations.payments import (
    MockPaymentGateway,
    StripePaymentGateway,
    build_payment_gateway,
    to_minor_units,
)


@pytest.fixture
def gateway():
    return StripePaymentGateway(api_key="sk_test_123", currency="usd")


class TestStripePaymentGateway:
    def test_successful_charge(self, gateway):
        intent = SimpleNamespace(id="pi_123", status="succeeded")
        with patch("stripe.PaymentIntent.create", return_value=intent) as create:
            result = gateway.charge(Decimal("45.50"), "pm_card_visa", {"slot_id": "s1"})

        assert result.success is True
        assert result.reference == "pi_123"
        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 4550
        assert kwargs["currency"] == "usd"
        assert kwargs["payment_method"] == "pm_card_visa"
        assert kwargs["confirm"] is True
        assert kwargs["metadata"]["slot_id"] == "s1"

    def test_card_error_is_decline(self, gateway):
        error = stripe.CardError("Your card was declined.", param=None, code="card_declined")
        with patch("stripe.PaymentIntent.create", side_effect=error):
            result = gateway.charge(Decimal("10"), "pm_card_chargeDeclined")

        assert result.success is False
        assert result.failure_reason == "card_declined"

    def test_api_error_is_gateway_error(self, gateway):
        with patch("stripe.PaymentIntent.create", side_effect=stripe.APIConnectionError("timeout")):
            result = gateway.charge(Decimal("10"), "pm_card_visa")

        assert result.success is False
        assert result.failure_reason == "gateway_error"

    def test_unfinished_intent_is_failure(self, gateway):
        intent = SimpleNamespace(id="pi_456", status="requires_action")
        with patch("stripe.PaymentIntent.create", return_value=intent):
            result = gateway.charge(Decimal("10"), "pm_card_threeDSecure2Required")

        assert result.success is False
        assert result.reference == "pi_456"
        assert result.failure_reason == "requires_action"

    def test_refund(self, gateway):
        with patch("stripe.Refund.create", return_value=SimpleNamespace(id="re_1")) as create:
            result = gateway.refund("pi_123")

        assert result.success is True
        create.assert_called_once_with(payment_intent="pi_123")

    def test_refund_error(self, gateway):
        with patch("stripe.Refund.create", side_effect=stripe.InvalidRequestError("gone", param=None)):
            result = gateway.refund("pi_123")

        assert result.success is False
        assert result.reference == "pi_123"


class TestMockPaymentGateway:
    def test_declines_configured_methods(self):
        gateway = MockPaymentGateway(decline_methods=["decline"])

        assert gateway.charge(Decimal("10"), "DECLINE").success is False
        ok = gateway.charge(Decimal("10"), "card")
        assert ok.success is True
        assert ok.reference.startswith("mock_")
        assert gateway.charges[0]["amount"] == Decimal("10")

    def test_refund_is_recorded(self):
        gateway = MockPaymentGateway(decline_methods=[])
        assert gateway.refund("mock_1").success is True
        assert gateway.refunds == ["mock_1"]


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("10.005")) == 1001
    assert to_minor_units(Decimal("40")) == 4000


def test_build_payment_gateway():
    assert isinstance(build_payment_gateway("mock"), MockPaymentGateway)
    assert isinstance(build_payment_gateway("stripe"), StripePaymentGateway)

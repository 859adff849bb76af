import pytest
from types import SimpleNamespace
from typing import Dict, List

import stripe

from orca.core.config import settings
from orca.core.exceptions import ConfigurationError, ExternalServiceError
from orca.infrastructure.payments import ManualGateway, StripeGateway, get_payment_gateway


def _intent(status: str = "succeeded", last4: str = "4242", brand: str = "visa") -> SimpleNamespace:
    card = SimpleNamespace(last4=last4, brand=brand)
    charge = SimpleNamespace(payment_method_details=SimpleNamespace(card=card))
    return SimpleNamespace(id="pi_123", status=status, latest_charge=charge)


@pytest.fixture
def stripe_calls(monkeypatch) -> dict:
    """Replaces the Stripe SDK create calls and records their arguments"""
    calls: Dict[str, List] = {"intents": [], "refunds": []}
    outcomes = {"intent": _intent(), "refund": SimpleNamespace(id="re_123", status="succeeded")}

    def create_intent(**kwargs):
        calls["intents"].append(kwargs)
        outcome = outcomes["intent"]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def create_refund(**kwargs):
        calls["refunds"].append(kwargs)
        outcome = outcomes["refund"]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(stripe.PaymentIntent, "create", create_intent)
    monkeypatch.setattr(stripe.Refund, "create", create_refund)
    calls["outcomes"] = outcomes
    return calls


@pytest.mark.billing
@pytest.mark.unit
class TestStripeGateway:
    async def test_charge_in_cents(self, stripe_calls: dict) -> None:
        gateway = StripeGateway(api_key="sk_test_123", currency="usd")

        result = await gateway.charge(125.5, "pm_card_visa", description="Payment PAY000001",
                                      metadata={"payment_id": "p1"})

        assert result.success is True
        assert result.transaction_id == "pi_123"
        assert result.card_last4 == "4242"
        assert result.card_brand == "visa"

        sent = stripe_calls["intents"][0]
        assert sent["amount"] == 12550
        assert sent["currency"] == "usd"
        assert sent["payment_method"] == "pm_card_visa"
        assert sent["confirm"] is True
        assert sent["api_key"] == "sk_test_123"
        assert sent["metadata"] == {"payment_id": "p1"}

    async def test_card_decline_is_a_failed_result(self, stripe_calls: dict) -> None:
        stripe_calls["outcomes"]["intent"] = stripe.CardError("Your card was declined.", None, "card_declined")

        result = await StripeGateway(api_key="sk_test_123").charge(40, "pm_card_chargeDeclined")

        assert result.success is False
        assert result.error == "Your card was declined."

    async def test_intent_needing_action_is_not_a_success(self, stripe_calls: dict) -> None:
        stripe_calls["outcomes"]["intent"] = _intent(status="requires_action")

        result = await StripeGateway(api_key="sk_test_123").charge(40, "pm_card_threeDSecure2Required")

        assert result.success is False
        assert result.error == "Payment requires action"

    async def test_missing_payment_method(self, stripe_calls: dict) -> None:
        result = await StripeGateway(api_key="sk_test_123").charge(40, None)

        assert result.success is False
        assert stripe_calls["intents"] == []

    async def test_connection_failure_is_unavailable(self, stripe_calls: dict) -> None:
        stripe_calls["outcomes"]["intent"] = stripe.APIConnectionError("Network error")

        with pytest.raises(ExternalServiceError) as exc_info:
            await StripeGateway(api_key="sk_test_123").charge(40, "pm_card_visa")

        assert exc_info.value.status_code == 503
        assert exc_info.value.error_code == "GATEWAY_ERROR"

    async def test_refund(self, stripe_calls: dict) -> None:
        result = await StripeGateway(api_key="sk_test_123").refund("pi_123", 19.99, "Treatment discontinued")

        assert result.success is True
        assert result.transaction_id == "re_123"
        sent = stripe_calls["refunds"][0]
        assert sent["payment_intent"] == "pi_123"
        assert sent["amount"] == 1999
        assert sent["metadata"] == {"reason": "Treatment discontinued"}

    async def test_rejected_refund_is_a_failed_result(self, stripe_calls: dict) -> None:
        stripe_calls["outcomes"]["refund"] = stripe.InvalidRequestError(
            "Charge ch_123 has already been refunded.", "charge"
        )

        result = await StripeGateway(api_key="sk_test_123").refund("pi_123", 10)

        assert result.success is False
        assert result.error == "Charge ch_123 has already been refunded."

    async def test_failed_refund_status(self, stripe_calls: dict) -> None:
        stripe_calls["outcomes"]["refund"] = SimpleNamespace(id="re_456", status="failed")

        result = await StripeGateway(api_key="sk_test_123").refund("pi_123", 10)

        assert result.success is False
        assert result.transaction_id == "re_456"

    def test_requires_secret_key(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)

        with pytest.raises(ConfigurationError) as exc_info:
            StripeGateway()

        assert exc_info.value.error_code == "GATEWAY_NOT_CONFIGURED"


@pytest.mark.billing
@pytest.mark.unit
class TestGatewaySelection:
    def test_manual_by_default(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "PAYMENT_GATEWAY", "manual")

        assert isinstance(get_payment_gateway(), ManualGateway)

    def test_stripe_when_configured(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "PAYMENT_GATEWAY", "stripe")
        monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
        monkeypatch.setattr(settings, "STRIPE_CURRENCY", "cad")

        gateway = get_payment_gateway()

        assert isinstance(gateway, StripeGateway)
        assert gateway.currency == "cad"

    def test_unknown_gateway(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "PAYMENT_GATEWAY", "square")

        with pytest.raises(ConfigurationError):
            get_payment_gateway()

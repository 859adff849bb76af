from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
import asyncio
import logging
import uuid

import stripe

from orca.core.config import settings
from orca.core.exceptions import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass
class GatewayResult:
    """Outcome of a charge or refund call"""
    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    card_last4: Optional[str] = None
    card_brand: Optional[str] = None


class PaymentGateway(ABC):
    """Card processor seam used by payments, refunds and the billing engine"""

    name: str = "gateway"

    @abstractmethod
    async def charge(
        self,
        amount: float,
        payment_method_token: Optional[str],
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GatewayResult:
        ...

    @abstractmethod
    async def refund(self, transaction_id: str, amount: float, reason: Optional[str] = None) -> GatewayResult:
        ...


class ManualGateway(PaymentGateway):
    """Records terminal-side charges; the card was already run at the desk"""

    name = "manual"

    async def charge(self, amount, payment_method_token, description=None, metadata=None) -> GatewayResult:
        transaction_id = f"man_{uuid.uuid4().hex[:20]}"
        logger.info(f"Manual charge of {amount:.2f} recorded as {transaction_id}")
        return GatewayResult(success=True, transaction_id=transaction_id)

    async def refund(self, transaction_id, amount, reason=None) -> GatewayResult:
        refund_id = f"manre_{uuid.uuid4().hex[:18]}"
        logger.info(f"Manual refund of {amount:.2f} against {transaction_id} recorded as {refund_id}")
        return GatewayResult(success=True, transaction_id=refund_id)


class StripeGateway(PaymentGateway):
    """Charges saved payment methods with Stripe PaymentIntents.

    Declines come back as unsuccessful results. Any other Stripe failure
    means the gateway could not be reached and surfaces as
    ``ExternalServiceError``.
    """

    name = "stripe"

    def __init__(self, api_key: Optional[str] = None, currency: Optional[str] = None):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        if not self.api_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not set", error_code="GATEWAY_NOT_CONFIGURED")
        self.currency = currency or settings.STRIPE_CURRENCY

    @staticmethod
    def to_cents(amount: float) -> int:
        return int(round(amount * 100))

    def _unavailable(self, error: Exception) -> ExternalServiceError:
        logger.error(f"Stripe request failed: {error}")
        return ExternalServiceError(
            "Payment gateway is unavailable",
            details={"gateway": self.name},
            error_code="GATEWAY_ERROR",
        )

    async def charge(self, amount, payment_method_token, description=None, metadata=None) -> GatewayResult:
        if not payment_method_token:
            return GatewayResult(success=False, error="No payment method provided")
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self.api_key,
                amount=self.to_cents(amount),
                currency=self.currency,
                payment_method=payment_method_token,
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                description=description,
                metadata=metadata or {},
                expand=["latest_charge"],
            )
        except stripe.CardError as e:
            logger.info(f"Stripe declined charge of {amount:.2f}: {e.user_message}")
            return GatewayResult(success=False, error=e.user_message or str(e))
        except stripe.StripeError as e:
            raise self._unavailable(e) from e

        if intent.status != "succeeded":
            return GatewayResult(
                success=False,
                transaction_id=intent.id,
                error=f"Payment {intent.status.replace('_', ' ')}",
            )
        card_last4, card_brand = _card_details(intent)
        return GatewayResult(success=True, transaction_id=intent.id, card_last4=card_last4, card_brand=card_brand)

    async def refund(self, transaction_id, amount, reason=None) -> GatewayResult:
        try:
            refund = await asyncio.to_thread(
                stripe.Refund.create,
                api_key=self.api_key,
                payment_intent=transaction_id,
                amount=self.to_cents(amount),
                reason="requested_by_customer",
                metadata={"reason": reason[:500]} if reason else {},
            )
        except stripe.InvalidRequestError as e:
            return GatewayResult(success=False, error=e.user_message or str(e))
        except stripe.StripeError as e:
            raise self._unavailable(e) from e

        if refund.status in ("failed", "canceled"):
            return GatewayResult(success=False, transaction_id=refund.id, error=f"Refund {refund.status}")
        return GatewayResult(success=True, transaction_id=refund.id)


def _card_details(intent) -> Tuple[Optional[str], Optional[str]]:
    """Card last4 and brand from an intent whose latest charge was expanded"""
    details = getattr(getattr(intent, "latest_charge", None), "payment_method_details", None)
    card = getattr(details, "card", None)
    return getattr(card, "last4", None), getattr(card, "brand", None)


GATEWAYS = {
    ManualGateway.name: ManualGateway,
    StripeGateway.name: StripeGateway,
}


def get_payment_gateway() -> PaymentGateway:
    """Gateway configured by PAYMENT_GATEWAY; also a FastAPI dependency"""
    gateway_cls = GATEWAYS.get(settings.PAYMENT_GATEWAY)
    if gateway_cls is None:
        raise ConfigurationError(
            f"Unknown payment gateway '{settings.PAYMENT_GATEWAY}'",
            details={"available": sorted(GATEWAYS)},
        )
    return gateway_cls()

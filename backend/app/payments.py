"""Payment collaborator.

The order and booking engines only need two calls from a payment processor:
create a payment intent for an amount and later read back its status. Only
``"succeeded"`` counts as paid. ``FakeGateway`` serves development and tests;
``StripeGateway`` wraps the Stripe SDK.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional
from uuid import uuid4

import stripe
import structlog

logger = structlog.get_logger(__name__)

SUCCEEDED = "succeeded"


class PaymentError(Exception):
    """The payment processor rejected a call or could not be reached."""


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str
    status: str

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentGateway(ABC):
    @abstractmethod
    def create_payment_intent(self, amount: Decimal, currency: str, metadata: Mapping[str, str]) -> PaymentIntent:
        """Create an intent to collect `amount` (major units)."""
        ...

    @abstractmethod
    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        """Fetch the current state of an intent."""
        ...


class FakeGateway(PaymentGateway):
    """Configurable in-process gateway. Intents start as ``requires_payment_method``."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.calls: list[dict] = []
        self._intents: dict[str, PaymentIntent] = {}
        self._lock = threading.Lock()

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_payment_intent(self, amount: Decimal, currency: str, metadata: Mapping[str, str]) -> PaymentIntent:
        with self._lock:
            self.calls.append(
                {
                    "method": "create_payment_intent",
                    "amount": to_minor_units(amount),
                    "currency": currency,
                    "metadata": dict(metadata),
                }
            )
            if not self.should_succeed:
                raise PaymentError(self.failure_reason)
            intent_id = f"pi_fake_{uuid4().hex[:16]}"
            intent = PaymentIntent(id=intent_id, client_secret=f"{intent_id}_secret", status="requires_payment_method")
            self._intents[intent_id] = intent
            return intent

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        with self._lock:
            self.calls.append({"method": "retrieve_payment_intent", "id": intent_id})
            intent = self._intents.get(intent_id)
        if intent is None:
            raise PaymentError(f"No such payment_intent: {intent_id}")
        return intent

    def set_status(self, intent_id: str, status: str) -> None:
        with self._lock:
            intent = self._intents[intent_id]
            self._intents[intent_id] = PaymentIntent(id=intent.id, client_secret=intent.client_secret, status=status)

    def mark_succeeded(self, intent_id: str) -> None:
        self.set_status(intent_id, SUCCEEDED)


class StripeGateway(PaymentGateway):
    """Stripe PaymentIntents through the stripe-python SDK. Amounts are sent in the currency's minor unit."""

    def __init__(
        self, secret_key: str, *, max_network_retries: int = 2, client: Optional[stripe.StripeClient] = None
    ) -> None:
        if not secret_key and client is None:
            raise ValueError("STRIPE_SECRET_KEY is required for the stripe gateway")
        self._client = client or stripe.StripeClient(secret_key, max_network_retries=max_network_retries)

    @staticmethod
    def _intent(obj) -> PaymentIntent:
        return PaymentIntent(id=obj.id, client_secret=obj.client_secret or "", status=obj.status or "")

    def create_payment_intent(self, amount: Decimal, currency: str, metadata: Mapping[str, str]) -> PaymentIntent:
        params = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
            "metadata": {k: str(v) for k, v in metadata.items()},
        }
        try:
            intent = self._intent(self._client.payment_intents.create(params=params))
        except stripe.StripeError as e:
            raise PaymentError(e.user_message or str(e)) from e
        logger.info("payment_intent_created", intent_id=intent.id, amount=str(amount), currency=currency)
        return intent

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        try:
            return self._intent(self._client.payment_intents.retrieve(intent_id))
        except stripe.StripeError as e:
            raise PaymentError(e.user_message or str(e)) from e

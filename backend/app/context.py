from __future__ import annotations

from dataclasses import dataclass, field

from .identifiers import OrderNumberGenerator
from .notifications import Notifier, RecipientPolicy
from .payments import PaymentGateway


@dataclass
class Collaborators:
    """External services handed to the engines by the composition root."""

    gateway: PaymentGateway
    notifier: Notifier
    order_numbers: OrderNumberGenerator = field(default_factory=OrderNumberGenerator)
    currency: str = "usd"
    recipient_policy: RecipientPolicy = RecipientPolicy.admins

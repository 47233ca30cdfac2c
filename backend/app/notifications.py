"""Notification collaborator.

Notifications are best effort: `dispatch` logs and drops any failure so a
committed order or booking is never undone by a mail problem.
"""

from __future__ import annotations

import html
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Optional, Sequence

import structlog
from sqlmodel import Session, select

from .models import StaffRole, StaffUser

logger = structlog.get_logger(__name__)


class Notifier(ABC):
    @abstractmethod
    def notify_low_stock(
        self,
        item_name: str,
        batch_or_variant: str,
        current_quantity: int,
        recipients: Sequence[str],
    ) -> None: ...

    @abstractmethod
    def notify_booking_confirmed(
        self,
        recipient_email: str,
        rendered_message: str,
        attachments: Optional[Sequence[dict]] = None,
    ) -> None: ...


class LogNotifier(Notifier):
    """Writes every notification to the structured log instead of sending it."""

    def notify_low_stock(self, item_name, batch_or_variant, current_quantity, recipients) -> None:
        logger.warning(
            "low_stock_alert",
            item=item_name,
            batch=batch_or_variant,
            quantity=current_quantity,
            recipients=list(recipients),
        )

    def notify_booking_confirmed(self, recipient_email, rendered_message, attachments=None) -> None:
        logger.info(
            "booking_confirmation",
            to=recipient_email,
            message=rendered_message,
            attachments=len(attachments or []),
        )


class RecipientPolicy(str, Enum):
    admins = "admins"
    all = "all"

    @classmethod
    def parse(cls, value: str) -> "RecipientPolicy":
        try:
            return cls(value)
        except ValueError:
            logger.warning("unknown_recipient_policy", value=value, fallback=cls.admins.value)
            return cls.admins


def low_stock_recipients(session: Session, policy: RecipientPolicy) -> list[str]:
    q = select(StaffUser.email)
    if policy is RecipientPolicy.admins:
        q = q.where(StaffUser.role == StaffRole.admin)
    return sorted(session.exec(q).all())


def dispatch(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
    try:
        fn(*args, **kwargs)
    except Exception:
        logger.exception("notification_failed", notification=getattr(fn, "__name__", repr(fn)))
        return False
    return True


def render_booking_message(event_name: str, seat_ids: Sequence[str], total: str, reference: str) -> str:
    seats = html.escape(", ".join(seat_ids))
    return (
        f"<h1>Booking confirmed</h1>"
        f"<p>Event: {html.escape(event_name)}</p>"
        f"<p>Seats: {seats}</p>"
        f"<p>Total paid: {total}</p>"
        f"<p>Reference: {reference}</p>"
    )

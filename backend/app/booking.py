"""Seat booking.

Same shape as order placement: validate, check every requested seat is free,
price from the event's ticket types, create the payment intent, then flip all
seats in one conditional update and insert the booking in the same commit.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import update
from sqlmodel import Session, select

from seatmap.chart import SeatMapError, parse_seat_id
from seatmap.layout import UNKNOWN_CATEGORY, build_row_distribution

from .context import Collaborators
from .models import Booking, BookingStatus, Event, EventSeat, Venue
from .notifications import dispatch, render_booking_message
from .payments import PaymentError
from .results import (
    Ok,
    Result,
    conflict,
    invalid_state,
    not_found,
    payment_error,
    service_boundary,
    validation_error,
)
from .schemas import BookingCreate

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


def booking_view(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "event_id": booking.event_id,
        "seat_ids": booking.seat_ids(),
        "holder": {"name": booking.holder_name, "email": booking.holder_email, "phone": booking.holder_phone},
        "total_amount": str(booking.total_amount),
        "currency": booking.currency,
        "payment_reference": booking.payment_reference,
        "status": booking.status,
        "created_at": booking.created_at,
        "confirmed_at": booking.confirmed_at,
    }


def _row_categories(session: Session, event: Event) -> tuple[list[str], frozenset[str]]:
    if event.venue_id is None:
        return [], frozenset()
    venue = session.get(Venue, event.venue_id)
    if venue is None:
        return [], frozenset()
    seat_map = venue.seat_map()
    return build_row_distribution(seat_map.rows, seat_map.categories), seat_map.unavailable_seats


@service_boundary
def book_seats(session: Session, ctx: Collaborators, payload: BookingCreate) -> Result[dict]:
    seat_ids = [s.strip() for s in payload.seat_ids]
    if not seat_ids:
        return validation_error("at least one seat is required", field="seat_ids")
    if len(set(seat_ids)) != len(seat_ids):
        return validation_error("duplicate seat ids in request", field="seat_ids")
    for sid in seat_ids:
        try:
            parse_seat_id(sid)
        except SeatMapError as e:
            return validation_error(str(e), field="seat_ids")
    holder = payload.holder
    if not holder.name.strip():
        return validation_error("holder name is required", field="holder.name")
    if not holder.email.strip():
        return validation_error("holder email is required", field="holder.email")

    event = session.get(Event, payload.event_id)
    if not event:
        return not_found("event", event_id=payload.event_id)

    seats = session.exec(select(EventSeat).where(EventSeat.event_id == event.id)).all()
    if not seats:
        return validation_error("event has no seat map", field="event_id", event_id=event.id)
    by_id = {s.seat_id: s for s in seats}

    missing = [sid for sid in seat_ids if sid not in by_id]
    if missing:
        return validation_error(f"unknown seats: {', '.join(missing)}", field="seat_ids", seats=missing)

    distribution, blocked = _row_categories(session, event)
    taken = [sid for sid in seat_ids if by_id[sid].is_booked or sid in blocked]
    if taken:
        return conflict(f"seats not available: {', '.join(taken)}", seats=taken)

    prices = event.ticket_prices()
    total = Decimal("0")
    for sid in seat_ids:
        row = by_id[sid].row_index
        category = distribution[row] if row < len(distribution) else UNKNOWN_CATEGORY
        if category not in prices:
            return validation_error(
                f"no ticket price for category {category!r} (seat {sid})",
                field="ticket_types",
                seat=sid,
                category=category,
            )
        total += prices[category]
    total = total.quantize(CENTS)

    # Release the write lock for the processor call; the conditional flip
    # below re-checks every seat.
    session.commit()
    try:
        intent = ctx.gateway.create_payment_intent(
            total, ctx.currency, {"event_id": str(event.id), "seats": ",".join(seat_ids)}
        )
    except PaymentError as e:
        logger.warning("booking_payment_failed", event_id=event.id, error=str(e))
        return payment_error(str(e), event_id=event.id)

    flipped = session.exec(
        update(EventSeat)
        .where(EventSeat.event_id == event.id, EventSeat.seat_id.in_(seat_ids), EventSeat.is_booked == False)  # noqa: E712
        .values(is_booked=True)
        .execution_options(synchronize_session=False)
    ).rowcount
    if flipped != len(seat_ids):
        session.rollback()
        # the intent was never confirmed; nothing is charged
        logger.warning("booking_lost_race", event_id=event.id, seats=seat_ids, payment_reference=intent.id)
        return conflict(f"seats not available: {', '.join(seat_ids)}", seats=seat_ids)

    booking = Booking(
        event_id=event.id,
        seat_ids_json=json.dumps(seat_ids),
        holder_name=holder.name.strip(),
        holder_email=holder.email.strip(),
        holder_phone=holder.phone.strip(),
        total_amount=total,
        currency=ctx.currency,
        payment_reference=intent.id,
    )
    session.add(booking)
    session.commit()
    session.refresh(booking)
    logger.info("booking_created", booking_id=booking.id, event_id=event.id, seats=len(seat_ids), total=str(total))

    view = booking_view(booking)
    view["client_secret"] = intent.client_secret
    return Ok(view)


@service_boundary
def confirm_booking_payment(session: Session, ctx: Collaborators, payment_reference: str) -> Result[Booking]:
    booking = session.exec(select(Booking).where(Booking.payment_reference == payment_reference)).first()
    if not booking:
        return not_found("booking", payment_reference=payment_reference)
    if booking.status != BookingStatus.pending:
        return invalid_state(f"booking is already {booking.status.value}", status=booking.status.value)

    session.commit()
    try:
        intent = ctx.gateway.retrieve_payment_intent(payment_reference)
    except PaymentError as e:
        return payment_error(str(e), payment_reference=payment_reference)
    if not intent.succeeded:
        return payment_error(f"payment not completed (status {intent.status})", status=intent.status)

    changed = session.exec(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == BookingStatus.pending)
        .values(status=BookingStatus.confirmed, confirmed_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    ).rowcount
    if changed != 1:
        session.rollback()
        session.refresh(booking)
        return invalid_state(f"booking is already {booking.status.value}", status=booking.status.value)
    session.commit()
    session.refresh(booking)
    logger.info("booking_confirmed", booking_id=booking.id)

    event = session.get(Event, booking.event_id)
    message = render_booking_message(
        event.name if event else "", booking.seat_ids(), str(booking.total_amount), booking.payment_reference
    )
    dispatch(ctx.notifier.notify_booking_confirmed, booking.holder_email, message)
    return Ok(booking)


@service_boundary
def get_booking(session: Session, booking_id: int) -> Result[Booking]:
    booking = session.get(Booking, booking_id)
    if not booking:
        return not_found("booking", booking_id=booking_id)
    return Ok(booking)


@service_boundary
def list_bookings(session: Session, event_id: int | None = None) -> Result[list[Booking]]:
    q = select(Booking)
    if event_id is not None:
        q = q.where(Booking.event_id == event_id)
    return Ok(list(session.exec(q.order_by(Booking.created_at.desc())).all()))


@service_boundary
def cancel_booking(session: Session, booking_id: int) -> Result[Booking]:
    """Mark a booking cancelled. Its seats stay booked; releasing them is a manual correction."""
    booking = session.get(Booking, booking_id)
    if not booking:
        return not_found("booking", booking_id=booking_id)
    if booking.status == BookingStatus.cancelled:
        return invalid_state("booking is already cancelled", status=booking.status.value)
    booking.status = BookingStatus.cancelled
    session.add(booking)
    session.commit()
    session.refresh(booking)
    return Ok(booking)

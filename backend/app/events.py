from __future__ import annotations

import json

import structlog
from sqlalchemy import delete
from sqlmodel import Session, select

from seatmap.chart import SeatMapError, parse_seat_id
from seatmap.layout import generate_seat_list

from .models import Booking, Event, EventSeat, Venue
from .results import Ok, Result, conflict, not_found, service_boundary, validation_error
from .schemas import EventCreate

logger = structlog.get_logger(__name__)


def event_view(event: Event, seats: list[EventSeat] | None = None) -> dict:
    out = {
        "id": event.id,
        "name": event.name,
        "description": event.description,
        "starts_at": event.starts_at,
        "venue_id": event.venue_id,
        "status": event.status,
        "ticket_types": {k: str(v) for k, v in event.ticket_prices().items()},
        "created_at": event.created_at,
    }
    if seats is not None:
        out["seats"] = [{"id": s.seat_id, "isBooked": s.is_booked} for s in seats]
    return out


@service_boundary
def create_event(session: Session, payload: EventCreate) -> Result[Event]:
    """
    Create an event and snapshot its seat list.

    Seats come from `payload.seats` when given, otherwise from the venue's
    rows x cols. A venue without a usable seat map yields an event with no
    seats; seat booking is then refused for that event.
    """
    if not payload.name.strip():
        return validation_error("name is required", field="name")
    for category, price in payload.ticket_types.items():
        if price < 0:
            return validation_error(f"ticket price for {category!r} must be non-negative", field="ticket_types")

    venue = None
    if payload.venue_id is not None:
        venue = session.get(Venue, payload.venue_id)
        if not venue:
            return not_found("venue", venue_id=payload.venue_id)

    if payload.seats is not None:
        seat_ids = [s.strip() for s in payload.seats]
        if len(set(seat_ids)) != len(seat_ids):
            return validation_error("duplicate seat ids", field="seats")
    elif venue is not None:
        seat_ids = [s["id"] for s in generate_seat_list({"rows": venue.rows, "cols": venue.cols})]
    else:
        seat_ids = []

    positions = []
    for sid in seat_ids:
        try:
            positions.append(parse_seat_id(sid))
        except SeatMapError as e:
            return validation_error(str(e), field="seats")

    event = Event(
        name=payload.name.strip(),
        description=payload.description,
        starts_at=payload.starts_at,
        venue_id=payload.venue_id,
        status=payload.status,
        ticket_types_json=json.dumps({k: str(v) for k, v in payload.ticket_types.items()}),
    )
    session.add(event)
    session.flush()
    for sid, (r, c) in zip(seat_ids, positions):
        session.add(EventSeat(event_id=event.id, seat_id=sid, row_index=r, col_index=c))
    session.commit()
    session.refresh(event)
    if not seat_ids:
        logger.warning("event_without_seats", event_id=event.id, venue_id=payload.venue_id)
    return Ok(event)


@service_boundary
def get_event(session: Session, event_id: int) -> Result[Event]:
    event = session.get(Event, event_id)
    if not event:
        return not_found("event", event_id=event_id)
    return Ok(event)


@service_boundary
def list_events(session: Session) -> Result[list[Event]]:
    return Ok(list(session.exec(select(Event).order_by(Event.created_at.desc())).all()))


@service_boundary
def list_event_seats(session: Session, event_id: int) -> Result[list[EventSeat]]:
    if not session.get(Event, event_id):
        return not_found("event", event_id=event_id)
    seats = session.exec(
        select(EventSeat).where(EventSeat.event_id == event_id).order_by(EventSeat.row_index, EventSeat.col_index)
    ).all()
    return Ok(list(seats))


@service_boundary
def delete_event(session: Session, event_id: int) -> Result[Event]:
    event = session.get(Event, event_id)
    if not event:
        return not_found("event", event_id=event_id)
    has_bookings = session.exec(select(Booking.id).where(Booking.event_id == event_id).limit(1)).first()
    if has_bookings is not None:
        return conflict("event has bookings", event_id=event_id)
    session.exec(delete(EventSeat).where(EventSeat.event_id == event_id))
    session.delete(event)
    session.commit()
    return Ok(event)

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog
from sqlmodel import Session, select

from seatmap.chart import Category, SeatMap, SeatMapError, parse_seat_id
from seatmap.layout import total_category_rows
from seatmap.render import Diagram, render_diagram

from .models import Event, EventSeat, Venue
from .results import Err, Ok, Result, conflict, not_found, service_boundary, validation_error
from .schemas import CategoryIn, DiagramPreview, VenueCreate, VenueUpdate

logger = structlog.get_logger(__name__)


def build_seat_map(
    rows: Optional[int],
    cols: Optional[int],
    aisle_after_col: Optional[int],
    categories: Sequence[CategoryIn],
    unavailable_seats: Sequence[str],
) -> Result[SeatMap]:
    """Validate venue layout input field by field, then build the SeatMap."""
    if not rows or rows <= 0:
        return validation_error("rows must be a positive integer", field="rows")
    if not cols or cols <= 0:
        return validation_error("cols must be a positive integer", field="cols")
    if aisle_after_col == 0:
        aisle_after_col = None
    if aisle_after_col is not None and aisle_after_col < 1:
        return validation_error("aisleAfterCol must be a positive column number", field="aisle_after_col")
    try:
        cats = tuple(Category(name=c.name.strip(), color=c.color, row_count=c.row_count) for c in categories)
    except SeatMapError as e:
        return validation_error(str(e), field="categories")
    if total_category_rows(cats) > rows:
        return validation_error(
            "Total category rows exceed venue rows",
            field="categories",
            category_rows=total_category_rows(cats),
            rows=rows,
        )
    blocked = set()
    for raw in unavailable_seats:
        try:
            r, c = parse_seat_id(raw)
        except SeatMapError as e:
            return validation_error(str(e), field="unavailable_seats")
        if r >= rows or c >= cols:
            return validation_error(
                f"unavailable seat {raw} is outside the {rows}x{cols} layout", field="unavailable_seats", seat=raw
            )
        blocked.add(raw)
    try:
        return Ok(
            SeatMap(rows=rows, cols=cols, aisle_after_col=aisle_after_col, categories=cats, unavailable_seats=blocked)
        )
    except SeatMapError as e:
        return validation_error(str(e), field="categories")


def _fits(seat: str, rows: int, cols: int) -> bool:
    r, c = parse_seat_id(seat)
    return r < rows and c < cols


def _apply_seat_map(venue: Venue, seat_map: SeatMap) -> None:
    data = seat_map.to_dict()
    venue.rows = seat_map.rows
    venue.cols = seat_map.cols
    venue.aisle_after_col = seat_map.aisle_after_col
    venue.categories_json = json.dumps(data["categories"])
    venue.unavailable_seats_json = json.dumps(data["unavailable_seats"])
    venue.total_seats = seat_map.total_seats
    venue.svg_template = render_diagram(seat_map).svg


def venue_view(venue: Venue) -> dict:
    return {
        "id": venue.id,
        "name": venue.name,
        "description": venue.description,
        "layout_type": venue.layout_type.value if hasattr(venue.layout_type, "value") else venue.layout_type,
        "total_seats": venue.total_seats,
        "seat_map": venue.seat_map().to_dict(),
        "svg_template": venue.svg_template,
        "created_at": venue.created_at,
        "updated_at": venue.updated_at,
    }


@service_boundary
def create_venue(session: Session, payload: VenueCreate) -> Result[Venue]:
    if not payload.name.strip():
        return validation_error("name is required", field="name")
    built = build_seat_map(payload.rows, payload.cols, payload.aisle_after_col, payload.categories, payload.unavailable_seats)
    if isinstance(built, Err):
        return built

    venue = Venue(
        name=payload.name.strip(),
        description=payload.description,
        layout_type=payload.layout_type,
        rows=built.value.rows,
        cols=built.value.cols,
    )
    _apply_seat_map(venue, built.value)
    session.add(venue)
    session.commit()
    session.refresh(venue)
    logger.info("venue_created", venue_id=venue.id, seats=venue.total_seats)
    return Ok(venue)


@service_boundary
def update_venue(session: Session, venue_id: int, payload: VenueUpdate) -> Result[Venue]:
    venue = session.get(Venue, venue_id)
    if not venue:
        return not_found("venue", venue_id=venue_id)

    if payload.name is not None:
        if not payload.name.strip():
            return validation_error("name must not be empty", field="name")
        venue.name = payload.name.strip()
    if payload.description is not None:
        venue.description = payload.description
    if payload.layout_type is not None:
        venue.layout_type = payload.layout_type

    current = venue.seat_map()
    layout_fields = ("rows", "cols", "aisle_after_col", "categories", "unavailable_seats")
    if any(getattr(payload, f) is not None for f in layout_fields):
        categories = payload.categories
        if categories is None:
            categories = [CategoryIn(name=c.name, color=c.color, row_count=c.row_count) for c in current.categories]
        rows = payload.rows if payload.rows is not None else current.rows
        cols = payload.cols if payload.cols is not None else current.cols
        unavailable = payload.unavailable_seats
        if unavailable is None:
            # blocked seats cut off by a smaller grid are dropped
            unavailable = sorted(s for s in current.unavailable_seats if _fits(s, rows, cols))
        # aisle_after_col=0 clears the aisle
        built = build_seat_map(
            rows,
            cols,
            payload.aisle_after_col if payload.aisle_after_col is not None else current.aisle_after_col,
            categories,
            unavailable,
        )
        if isinstance(built, Err):
            return built
        _apply_seat_map(venue, built.value)

    venue.updated_at = datetime.now(timezone.utc)
    session.add(venue)
    session.commit()
    session.refresh(venue)
    return Ok(venue)


@service_boundary
def get_venue(session: Session, venue_id: int) -> Result[Venue]:
    venue = session.get(Venue, venue_id)
    if not venue:
        return not_found("venue", venue_id=venue_id)
    return Ok(venue)


@service_boundary
def list_venues(session: Session) -> Result[list[Venue]]:
    return Ok(list(session.exec(select(Venue).order_by(Venue.created_at.desc())).all()))


@service_boundary
def delete_venue(session: Session, venue_id: int) -> Result[Venue]:
    venue = session.get(Venue, venue_id)
    if not venue:
        return not_found("venue", venue_id=venue_id)
    in_use = session.exec(select(Event.id).where(Event.venue_id == venue_id).limit(1)).first()
    if in_use is not None:
        return conflict("venue is used by an event", venue_id=venue_id, event_id=in_use)
    session.delete(venue)
    session.commit()
    return Ok(venue)


def preview_diagram(payload: DiagramPreview) -> Result[Diagram]:
    built = build_seat_map(payload.rows, payload.cols, payload.aisle_after_col, payload.categories, payload.unavailable_seats)
    if isinstance(built, Err):
        return built
    return Ok(render_diagram(built.value, payload.booked))


@service_boundary
def event_diagram(session: Session, venue_id: int, event_id: int) -> Result[dict]:
    """Venue diagram with the event's prices and current bookings applied."""
    venue = session.get(Venue, venue_id)
    if not venue:
        return not_found("venue", venue_id=venue_id)
    event = session.get(Event, event_id)
    if not event or event.venue_id != venue_id:
        return not_found("event", event_id=event_id, venue_id=venue_id)

    booked = session.exec(
        select(EventSeat.seat_id).where(EventSeat.event_id == event_id, EventSeat.is_booked == True)  # noqa: E712
    ).all()
    prices = {k: float(v) for k, v in event.ticket_prices().items()}
    diagram = render_diagram(venue.seat_map(), booked, prices=prices)
    view = venue_view(venue)
    view["svg_template"] = diagram.svg
    view["diagram"] = diagram.to_dict()
    view["event_id"] = event_id
    return Ok(view)

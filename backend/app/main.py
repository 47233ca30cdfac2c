from __future__ import annotations

import csv
import io
from contextlib import asynccontextmanager
from typing import Iterator, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlmodel import Session

from . import booking, events, inventory, ordering, venues
from .context import Collaborators
from .db import create_db_engine, init_db, open_session
from .identifiers import OrderNumberGenerator
from .log_config import configure_logging
from .models import OrderStatus
from .notifications import LogNotifier, Notifier, RecipientPolicy
from .payments import FakeGateway, PaymentGateway, StripeGateway
from .results import Err, ErrorKind, Result
from .schemas import (
    BookingCreate,
    DiagramPreview,
    EventCreate,
    OrderCreate,
    OrderStatusUpdate,
    PaymentConfirm,
    ProductCreate,
    Restock,
    StaffUserCreate,
    StockCreate,
    StockUpdate,
    VenueCreate,
    VenueUpdate,
)
from .settings import Settings

logger = structlog.get_logger(__name__)

STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.GONE: 410,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.PAYMENT: 402,
    ErrorKind.INTERNAL: 500,
}

router = APIRouter()


def _session(request: Request) -> Iterator[Session]:
    with open_session(request.app.state.engine) as session:
        yield session


def _ctx(request: Request) -> Collaborators:
    return request.app.state.collaborators


def _unwrap(result: Result):
    if isinstance(result, Err):
        detail = {"kind": result.kind.value, "message": result.message, "field": result.field, **result.details}
        raise HTTPException(status_code=STATUS_CODES[result.kind], detail=detail)
    return result.value


@router.get("/health")
def health() -> dict:
    return {"ok": True}


# --- venues ---


@router.post("/venues")
def create_venue(payload: VenueCreate, session: Session = Depends(_session)) -> dict:
    return venues.venue_view(_unwrap(venues.create_venue(session, payload)))


@router.get("/venues")
def list_venues(session: Session = Depends(_session)) -> list[dict]:
    return [
        {"id": v.id, "name": v.name, "layout_type": v.layout_type, "total_seats": v.total_seats}
        for v in _unwrap(venues.list_venues(session))
    ]


@router.post("/venues/preview")
def preview_venue(payload: DiagramPreview) -> dict:
    return _unwrap(venues.preview_diagram(payload)).to_dict()


@router.get("/venues/{venue_id}")
def get_venue(venue_id: int, session: Session = Depends(_session)) -> dict:
    return venues.venue_view(_unwrap(venues.get_venue(session, venue_id)))


@router.patch("/venues/{venue_id}")
def update_venue(venue_id: int, payload: VenueUpdate, session: Session = Depends(_session)) -> dict:
    return venues.venue_view(_unwrap(venues.update_venue(session, venue_id, payload)))


@router.delete("/venues/{venue_id}")
def delete_venue(venue_id: int, session: Session = Depends(_session)) -> dict:
    _unwrap(venues.delete_venue(session, venue_id))
    return {"deleted": True, "id": venue_id}


@router.get("/venues/{venue_id}/diagram.svg")
def venue_svg(venue_id: int, session: Session = Depends(_session)) -> Response:
    venue = _unwrap(venues.get_venue(session, venue_id))
    return Response(content=venue.svg_template, media_type="image/svg+xml")


@router.get("/venues/{venue_id}/events/{event_id}/diagram")
def event_diagram(venue_id: int, event_id: int, session: Session = Depends(_session)) -> dict:
    return _unwrap(venues.event_diagram(session, venue_id, event_id))


# --- events ---


@router.post("/events")
def create_event(payload: EventCreate, session: Session = Depends(_session)) -> dict:
    event = _unwrap(events.create_event(session, payload))
    seats = _unwrap(events.list_event_seats(session, event.id))
    return events.event_view(event, seats)


@router.get("/events")
def list_events(session: Session = Depends(_session)) -> list[dict]:
    return [events.event_view(e) for e in _unwrap(events.list_events(session))]


@router.get("/events/{event_id}")
def get_event(event_id: int, session: Session = Depends(_session)) -> dict:
    event = _unwrap(events.get_event(session, event_id))
    return events.event_view(event, _unwrap(events.list_event_seats(session, event_id)))


@router.get("/events/{event_id}/seats")
def list_event_seats(event_id: int, session: Session = Depends(_session)) -> list[dict]:
    return [{"id": s.seat_id, "isBooked": s.is_booked} for s in _unwrap(events.list_event_seats(session, event_id))]


@router.get("/events/{event_id}/seats.csv")
def export_event_seats_csv(event_id: int, session: Session = Depends(_session)) -> Response:
    seats = _unwrap(events.list_event_seats(session, event_id))
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["event_id", "seat_id", "row_index", "col_index", "is_booked"])
    for s in seats:
        w.writerow([event_id, s.seat_id, s.row_index, s.col_index, int(s.is_booked)])
    return Response(
        content=out.getvalue(),
        media_type="text/csv",
        headers={"content-disposition": f'attachment; filename="event_{event_id}_seats.csv"'},
    )


@router.delete("/events/{event_id}")
def delete_event(event_id: int, session: Session = Depends(_session)) -> dict:
    _unwrap(events.delete_event(session, event_id))
    return {"deleted": True, "id": event_id}


# --- bookings ---


@router.post("/bookings")
def book_seats(
    payload: BookingCreate, session: Session = Depends(_session), ctx: Collaborators = Depends(_ctx)
) -> dict:
    return _unwrap(booking.book_seats(session, ctx, payload))


@router.post("/bookings/confirm")
def confirm_booking(
    payload: PaymentConfirm, session: Session = Depends(_session), ctx: Collaborators = Depends(_ctx)
) -> dict:
    return booking.booking_view(_unwrap(booking.confirm_booking_payment(session, ctx, payload.payment_reference)))


@router.get("/bookings")
def list_bookings(event_id: Optional[int] = None, session: Session = Depends(_session)) -> list[dict]:
    return [booking.booking_view(b) for b in _unwrap(booking.list_bookings(session, event_id))]


@router.get("/bookings/{booking_id}")
def get_booking(booking_id: int, session: Session = Depends(_session)) -> dict:
    return booking.booking_view(_unwrap(booking.get_booking(session, booking_id)))


@router.post("/bookings/{booking_id}/cancel")
def cancel_booking(booking_id: int, session: Session = Depends(_session)) -> dict:
    return booking.booking_view(_unwrap(booking.cancel_booking(session, booking_id)))


# --- products and stock ---


@router.post("/products")
def create_product(payload: ProductCreate, session: Session = Depends(_session)) -> dict:
    return inventory.product_view(_unwrap(inventory.create_product(session, payload)))


@router.get("/products")
def list_products(include_deleted: bool = False, session: Session = Depends(_session)) -> list[dict]:
    return [inventory.product_view(p) for p in _unwrap(inventory.list_products(session, include_deleted))]


@router.get("/products/{product_id}")
def get_product(product_id: int, session: Session = Depends(_session)) -> dict:
    return inventory.product_view(_unwrap(inventory.get_product(session, product_id)))


@router.delete("/products/{product_id}")
def delete_product(product_id: int, session: Session = Depends(_session)) -> dict:
    return inventory.product_view(_unwrap(inventory.soft_delete_product(session, product_id)))


@router.post("/stock")
def add_stock(payload: StockCreate, session: Session = Depends(_session)) -> dict:
    return inventory.stock_view(_unwrap(inventory.add_stock(session, payload)))


@router.get("/stock")
def list_stock(
    product_id: Optional[int] = None, include_deleted: bool = False, session: Session = Depends(_session)
) -> list[dict]:
    return [inventory.stock_view(s) for s in _unwrap(inventory.list_stock(session, product_id, include_deleted))]


@router.get("/stock/low")
def list_low_stock(session: Session = Depends(_session)) -> list[dict]:
    return [inventory.stock_view(s) for s in _unwrap(inventory.list_low_stock(session))]


@router.post("/stock/low/alerts")
def send_low_stock_alerts(session: Session = Depends(_session), ctx: Collaborators = Depends(_ctx)) -> dict:
    return _unwrap(inventory.send_low_stock_alerts(session, ctx))


@router.get("/stock/{stock_id}")
def get_stock(stock_id: int, session: Session = Depends(_session)) -> dict:
    return inventory.stock_view(_unwrap(inventory.get_stock(session, stock_id)))


@router.patch("/stock/{stock_id}")
def update_stock(
    stock_id: int, payload: StockUpdate, session: Session = Depends(_session), ctx: Collaborators = Depends(_ctx)
) -> dict:
    return inventory.stock_view(_unwrap(inventory.update_stock(session, ctx, stock_id, payload)))


@router.post("/stock/{stock_id}/restock")
def restock(stock_id: int, payload: Restock, session: Session = Depends(_session)) -> dict:
    return inventory.stock_view(_unwrap(inventory.restock(session, stock_id, payload.quantity)))


@router.delete("/stock/{stock_id}")
def delete_stock(stock_id: int, session: Session = Depends(_session)) -> dict:
    return inventory.stock_view(_unwrap(inventory.soft_delete_stock(session, stock_id)))


@router.post("/stock/{stock_id}/restore")
def restore_stock(stock_id: int, session: Session = Depends(_session)) -> dict:
    return inventory.stock_view(_unwrap(inventory.restore_stock(session, stock_id)))


# --- orders ---


@router.post("/orders")
def place_order(payload: OrderCreate, session: Session = Depends(_session), ctx: Collaborators = Depends(_ctx)) -> dict:
    return _unwrap(ordering.place_order(session, ctx, payload))


@router.post("/orders/confirm")
def confirm_order(
    payload: PaymentConfirm, session: Session = Depends(_session), ctx: Collaborators = Depends(_ctx)
) -> dict:
    return ordering.order_view(_unwrap(ordering.confirm_order_payment(session, ctx, payload.payment_reference)))


@router.get("/orders")
def list_orders(include_deleted: bool = False, session: Session = Depends(_session)) -> list[dict]:
    return [ordering.order_view(o) for o in _unwrap(ordering.list_orders(session, include_deleted))]


@router.get("/orders/summary")
def order_summary(session: Session = Depends(_session)) -> dict:
    return _unwrap(ordering.order_summary(session))


@router.get("/orders/export.csv")
def export_orders_csv(include_deleted: bool = False, session: Session = Depends(_session)) -> Response:
    orders = _unwrap(ordering.list_orders(session, include_deleted))
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(
        ["order_number", "customer_name", "customer_email", "status", "payment_status", "subtotal", "shipping", "tax", "total", "created_at"]
    )
    for o in orders:
        w.writerow(
            [
                o.order_number,
                o.customer_name,
                o.customer_email,
                getattr(o.status, "value", str(o.status)),
                getattr(o.payment_status, "value", str(o.payment_status)),
                o.subtotal,
                o.shipping,
                o.tax,
                o.total,
                o.created_at.isoformat(),
            ]
        )
    return Response(
        content=out.getvalue(),
        media_type="text/csv",
        headers={"content-disposition": 'attachment; filename="orders.csv"'},
    )


@router.get("/orders/{order_id}")
def get_order(order_id: int, session: Session = Depends(_session)) -> dict:
    return _unwrap(ordering.get_order(session, order_id))


@router.put("/orders/{order_id}/status")
def update_order_status(order_id: int, payload: OrderStatusUpdate, session: Session = Depends(_session)) -> dict:
    return ordering.order_view(_unwrap(ordering.update_order_status(session, order_id, OrderStatus(payload.status))))


@router.delete("/orders/{order_id}")
def delete_order(order_id: int, session: Session = Depends(_session)) -> dict:
    return ordering.order_view(_unwrap(ordering.soft_delete_order(session, order_id)))


@router.post("/orders/{order_id}/restore")
def restore_order(order_id: int, session: Session = Depends(_session)) -> dict:
    return ordering.order_view(_unwrap(ordering.restore_order(session, order_id)))


# --- staff ---


@router.post("/staff")
def create_staff_user(payload: StaffUserCreate, session: Session = Depends(_session)) -> dict:
    return _unwrap(inventory.create_staff_user(session, payload)).model_dump()


@router.get("/staff")
def list_staff_users(session: Session = Depends(_session)) -> list[dict]:
    return [u.model_dump() for u in _unwrap(inventory.list_staff_users(session))]


def _build_gateway(settings: Settings) -> PaymentGateway:
    if settings.payment_gateway == "stripe":
        return StripeGateway(settings.stripe_secret_key)
    if settings.payment_gateway != "fake":
        logger.warning("unknown_payment_gateway", value=settings.payment_gateway, fallback="fake")
    return FakeGateway()


def create_app(
    settings: Optional[Settings] = None,
    *,
    gateway: Optional[PaymentGateway] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """
    Composition root. Everything with a lifecycle (database engine, payment
    gateway, notifier, order-number sequence) is built here and hung off
    `app.state`; nothing is cached at module level.
    """
    configure_logging()
    settings = settings or Settings.from_env()
    engine = create_db_engine(settings.db_url)
    ctx = Collaborators(
        gateway=gateway or _build_gateway(settings),
        notifier=notifier or LogNotifier(),
        order_numbers=OrderNumberGenerator(),
        currency=settings.currency,
        recipient_policy=RecipientPolicy.parse(settings.low_stock_recipients),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        with open_session(engine) as session:
            ctx.order_numbers.reseed(ordering.count_orders(session))
        logger.info("app_started", db=engine.url.render_as_string(hide_password=True), gateway=type(ctx.gateway).__name__)
        yield
        engine.dispose()

    app = FastAPI(title="Venue Seating & Orders API", version="0.2.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.collaborators = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app

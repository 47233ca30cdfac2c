from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from seatmap.chart import SeatMap

from .softdelete import Deletion, deletion_state


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LayoutType(str, Enum):
    auditorium = "auditorium"
    theater = "theater"
    stadium = "stadium"
    conference = "conference"
    custom = "custom"


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"


class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class PaymentStatus(str, Enum):
    pending = "pending"
    succeeded = "succeeded"
    failed = "failed"
    cancelled = "cancelled"


class StockSize(str, Enum):
    XS = "XS"
    S = "S"
    M = "M"
    L = "L"
    XL = "XL"
    XXL = "XXL"


class StaffRole(str, Enum):
    admin = "admin"
    staff = "staff"


class Venue(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: str = ""
    layout_type: LayoutType = LayoutType.auditorium

    rows: int
    cols: int
    aisle_after_col: Optional[int] = None
    # JSON list: [{"name", "color", "row_count"}, ...] in declared order
    categories_json: str = "[]"
    # JSON list of seat ids: ["A1", ...]
    unavailable_seats_json: str = "[]"

    total_seats: int = 0
    svg_template: str = ""

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def seat_map(self) -> SeatMap:
        return SeatMap.from_dict(
            {
                "rows": self.rows,
                "cols": self.cols,
                "aisle_after_col": self.aisle_after_col,
                "categories": json.loads(self.categories_json or "[]"),
                "unavailable_seats": json.loads(self.unavailable_seats_json or "[]"),
            }
        )


class Event(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: str = ""
    starts_at: Optional[datetime] = None
    venue_id: Optional[int] = Field(default=None, index=True, foreign_key="venue.id")
    status: str = "upcoming"

    # JSON object: {"<category name>": "<price>"}
    ticket_types_json: str = "{}"

    created_at: datetime = Field(default_factory=_utc_now)

    def ticket_prices(self) -> dict[str, Decimal]:
        return {k: Decimal(str(v)) for k, v in json.loads(self.ticket_types_json or "{}").items()}


class EventSeat(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("event_id", "seat_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(index=True, foreign_key="event.id")
    seat_id: str
    row_index: int
    col_index: int
    is_booked: bool = False


class Booking(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(index=True, foreign_key="event.id")
    seat_ids_json: str = "[]"

    holder_name: str
    holder_email: str = Field(index=True)
    holder_phone: str

    total_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    currency: str = "usd"
    payment_reference: str = Field(unique=True, index=True)
    status: BookingStatus = BookingStatus.pending

    created_at: datetime = Field(default_factory=_utc_now)
    confirmed_at: Optional[datetime] = None

    def seat_ids(self) -> list[str]:
        return json.loads(self.seat_ids_json or "[]")


class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    product_code: str = Field(unique=True, index=True)
    name: str
    description: str = ""
    category: str = ""
    price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)

    sizes_json: str = "[]"
    colors_json: str = "[]"

    is_active: bool = True
    created_at: datetime = Field(default_factory=_utc_now)
    deleted_at: Optional[datetime] = None

    @property
    def deletion(self) -> Deletion:
        return deletion_state(self.deleted_at)

    def colors(self) -> list[str]:
        return json.loads(self.colors_json or "[]")


class Stock(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(index=True, foreign_key="product.id")
    batch_number: str = Field(index=True)
    quantity: int = 0
    size: StockSize
    price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    low_stock_alert: int = 5
    supplier: str

    last_restocked: datetime = Field(default_factory=_utc_now)
    created_at: datetime = Field(default_factory=_utc_now)
    deleted_at: Optional[datetime] = None

    @property
    def deletion(self) -> Deletion:
        return deletion_state(self.deleted_at)


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_number: str = Field(unique=True, index=True)

    customer_name: str
    customer_email: str = Field(index=True)
    customer_phone: str = ""
    shipping_address: str = ""

    subtotal: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    shipping: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    tax: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    total: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    currency: str = "usd"

    payment_reference: str = Field(unique=True, index=True)
    payment_status: PaymentStatus = PaymentStatus.pending
    status: OrderStatus = OrderStatus.pending

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def deletion(self) -> Deletion:
        return deletion_state(self.deleted_at)


class OrderItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(index=True, foreign_key="orders.id")
    stock_id: int = Field(foreign_key="stock.id")

    product_name: str
    product_code: str
    size: str = ""
    color: str = ""

    unit_price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    quantity: int
    subtotal: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)


class StaffUser(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    name: str = ""
    role: StaffRole = StaffRole.staff
    created_at: datetime = Field(default_factory=_utc_now)

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from .models import LayoutType, OrderStatus, StaffRole, StockSize


class CategoryIn(BaseModel):
    name: str
    color: str
    row_count: int = Field(default=0, validation_alias=AliasChoices("row_count", "rowCount"))


class SeatMapIn(BaseModel):
    rows: int
    cols: int
    aisle_after_col: Optional[int] = Field(default=None, validation_alias=AliasChoices("aisle_after_col", "aisleAfterCol"))
    categories: list[CategoryIn] = Field(default_factory=list)
    unavailable_seats: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("unavailable_seats", "unavailableSeats")
    )


class VenueCreate(SeatMapIn):
    name: str
    description: str = ""
    layout_type: LayoutType = Field(default=LayoutType.auditorium, validation_alias=AliasChoices("layout_type", "layoutType"))


class VenueUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    layout_type: Optional[LayoutType] = Field(default=None, validation_alias=AliasChoices("layout_type", "layoutType"))
    rows: Optional[int] = None
    cols: Optional[int] = None
    aisle_after_col: Optional[int] = Field(default=None, validation_alias=AliasChoices("aisle_after_col", "aisleAfterCol"))
    categories: Optional[list[CategoryIn]] = None
    unavailable_seats: Optional[list[str]] = Field(
        default=None, validation_alias=AliasChoices("unavailable_seats", "unavailableSeats")
    )


class DiagramPreview(SeatMapIn):
    booked: list[str] = Field(default_factory=list)


class EventCreate(BaseModel):
    name: str
    description: str = ""
    starts_at: Optional[datetime] = None
    venue_id: Optional[int] = None
    status: str = "upcoming"
    # category name -> ticket price
    ticket_types: dict[str, Decimal] = Field(default_factory=dict)
    # explicit seat ids; generated from the venue when omitted
    seats: Optional[list[str]] = None


class HolderIn(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""


class BookingCreate(BaseModel):
    event_id: int
    seat_ids: list[str]
    holder: HolderIn


class PaymentConfirm(BaseModel):
    payment_reference: str


class ProductCreate(BaseModel):
    product_code: str
    name: str
    description: str = ""
    category: str = ""
    price: Decimal = Decimal("0")
    sizes: list[str] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)


class StockCreate(BaseModel):
    product_id: int
    quantity: int
    size: StockSize
    price: Decimal
    supplier: str
    low_stock_alert: int = 5


class StockUpdate(BaseModel):
    quantity: Optional[int] = None
    price: Optional[Decimal] = None
    size: Optional[StockSize] = None
    low_stock_alert: Optional[int] = None
    supplier: Optional[str] = None


class Restock(BaseModel):
    quantity: int


class CartLine(BaseModel):
    stock_id: int
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None
    # ignored; the server prices every line itself
    unit_price: Optional[Decimal] = None


class CustomerIn(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""


class OrderCreate(BaseModel):
    items: list[CartLine] = Field(default_factory=list)
    customer: CustomerIn
    shipping: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    # ignored; recomputed from server prices
    total: Optional[Decimal] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class StaffUserCreate(BaseModel):
    email: str
    name: str = ""
    role: StaffRole = StaffRole.staff

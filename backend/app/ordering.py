"""Order placement against stocked product variants.

Invariants:
- stock quantity never goes negative; every decrement is a conditional UPDATE
- a cart is all-or-nothing: one commit holds every decrement plus the order rows
- prices come from the stock records, never from the client
- low-stock notification happens after the commit and cannot fail the order
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import func, update
from sqlmodel import Session, select

from .context import Collaborators
from .models import Order, OrderItem, OrderStatus, PaymentStatus, Product, Stock
from .notifications import dispatch, low_stock_recipients
from .payments import PaymentError
from .results import (
    Ok,
    Result,
    conflict,
    gone,
    invalid_state,
    not_found,
    payment_error,
    service_boundary,
    validation_error,
)
from .schemas import OrderCreate

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.pending: frozenset({OrderStatus.confirmed, OrderStatus.processing, OrderStatus.cancelled}),
    OrderStatus.confirmed: frozenset({OrderStatus.processing, OrderStatus.shipped, OrderStatus.cancelled}),
    OrderStatus.processing: frozenset({OrderStatus.shipped, OrderStatus.cancelled}),
    OrderStatus.shipped: frozenset({OrderStatus.delivered, OrderStatus.cancelled}),
    OrderStatus.delivered: frozenset(),
    OrderStatus.cancelled: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS[current]


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS)


def order_view(order: Order, items: Optional[list[OrderItem]] = None) -> dict:
    out = {
        "id": order.id,
        "order_number": order.order_number,
        "customer": {
            "name": order.customer_name,
            "email": order.customer_email,
            "phone": order.customer_phone,
            "address": order.shipping_address,
        },
        "subtotal": str(order.subtotal),
        "shipping": str(order.shipping),
        "tax": str(order.tax),
        "total": str(order.total),
        "currency": order.currency,
        "payment_reference": order.payment_reference,
        "payment_status": order.payment_status,
        "status": order.status,
        "deleted": order.deleted_at is not None,
        "deleted_at": order.deleted_at,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "completed_at": order.completed_at,
    }
    if items is not None:
        out["items"] = [
            {
                "stock_id": i.stock_id,
                "product_name": i.product_name,
                "product_code": i.product_code,
                "size": i.size,
                "color": i.color,
                "unit_price": str(i.unit_price),
                "quantity": i.quantity,
                "subtotal": str(i.subtotal),
            }
            for i in items
        ]
    return out


def order_items(session: Session, order_id: int) -> list[OrderItem]:
    return list(session.exec(select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)).all())


def _alert_low_stock(session: Session, ctx: Collaborators, stocks: list[tuple[Stock, Product]]) -> None:
    recipients = low_stock_recipients(session, ctx.recipient_policy)
    for stock, product in stocks:
        ctx.notifier.notify_low_stock(product.name, stock.batch_number, stock.quantity, recipients)


@service_boundary
def place_order(session: Session, ctx: Collaborators, payload: OrderCreate) -> Result[dict]:
    if not payload.items:
        return validation_error("cart is empty", field="items")
    for n, line in enumerate(payload.items):
        if line.quantity <= 0:
            return validation_error(f"line {n + 1}: quantity must be positive", field=f"items[{n}].quantity")
    if payload.shipping < 0:
        return validation_error("shipping must be non-negative", field="shipping")
    if payload.tax < 0:
        return validation_error("tax must be non-negative", field="tax")
    customer = payload.customer
    if not customer.name.strip():
        return validation_error("customer name is required", field="customer.name")
    if not customer.email.strip():
        return validation_error("customer email is required", field="customer.email")

    # stock_id -> (stock, product, requested quantity)
    wanted: dict[int, list] = {}
    for n, line in enumerate(payload.items):
        if line.stock_id in wanted:
            wanted[line.stock_id][2] += line.quantity
        else:
            stock = session.get(Stock, line.stock_id)
            if not stock:
                return not_found("stock", stock_id=line.stock_id, line=n + 1)
            if stock.deleted_at is not None:
                return gone("stock", stock_id=line.stock_id, line=n + 1)
            product = session.get(Product, stock.product_id)
            if not product:
                return not_found("product", product_id=stock.product_id, line=n + 1)
            if product.deleted_at is not None or not product.is_active:
                return gone("product", product_id=product.id, line=n + 1)
            wanted[line.stock_id] = [stock, product, line.quantity]

        stock, product, _ = wanted[line.stock_id]
        if line.size and line.size != stock.size.value:
            return validation_error(
                f"line {n + 1}: size {line.size} is not stocked in batch {stock.batch_number}",
                field=f"items[{n}].size",
            )
        colors = product.colors()
        if line.color and colors and line.color not in colors:
            return validation_error(
                f"line {n + 1}: color {line.color} is not available for {product.name}",
                field=f"items[{n}].color",
            )

    for stock_id, (stock, product, qty) in wanted.items():
        if qty > stock.quantity:
            return conflict(
                f"insufficient stock for {product.name} ({stock.batch_number}, size {stock.size.value}): "
                f"available {stock.quantity}, requested {qty}",
                stock_id=stock_id,
                available=stock.quantity,
                requested=qty,
            )

    lines = []
    subtotal = Decimal("0")
    for line in payload.items:
        stock, product, _ = wanted[line.stock_id]
        unit_price = _money(stock.price)
        line_total = _money(unit_price * line.quantity)
        subtotal += line_total
        lines.append((line, stock, product, unit_price, line_total))
    subtotal = _money(subtotal)
    shipping = _money(payload.shipping)
    tax = _money(payload.tax)
    total = subtotal + shipping + tax

    order_number = ctx.order_numbers.next()
    # Close the precheck transaction so the write lock is not held across the
    # processor call. The conditional decrements below re-check availability.
    session.commit()
    try:
        intent = ctx.gateway.create_payment_intent(total, ctx.currency, {"order_number": order_number})
    except PaymentError as e:
        logger.warning("order_payment_failed", order_number=order_number, error=str(e))
        return payment_error(str(e), order_number=order_number)

    for stock_id, (stock, product, qty) in wanted.items():
        changed = session.exec(
            update(Stock)
            .where(Stock.id == stock_id, Stock.quantity >= qty, Stock.deleted_at.is_(None))
            .values(quantity=Stock.quantity - qty)
            .execution_options(synchronize_session=False)
        ).rowcount
        if changed != 1:
            session.rollback()
            logger.warning("order_lost_race", order_number=order_number, stock_id=stock_id, payment_reference=intent.id)
            return conflict(
                f"insufficient stock for {product.name} ({stock.batch_number}, size {stock.size.value})",
                stock_id=stock_id,
                requested=qty,
            )

    order = Order(
        order_number=order_number,
        customer_name=customer.name.strip(),
        customer_email=customer.email.strip(),
        customer_phone=customer.phone.strip(),
        shipping_address=customer.address.strip(),
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=total,
        currency=ctx.currency,
        payment_reference=intent.id,
    )
    session.add(order)
    session.flush()
    items = []
    for line, stock, product, unit_price, line_total in lines:
        item = OrderItem(
            order_id=order.id,
            stock_id=stock.id,
            product_name=product.name,
            product_code=product.product_code,
            size=line.size or stock.size.value,
            color=line.color or "",
            unit_price=unit_price,
            quantity=line.quantity,
            subtotal=line_total,
        )
        session.add(item)
        items.append(item)
    session.commit()
    logger.info("order_placed", order_number=order_number, total=str(total), lines=len(items))

    low = []
    for stock, product, _ in wanted.values():
        session.refresh(stock)
        if stock.quantity <= stock.low_stock_alert:
            low.append((stock, product))
    if low:
        dispatch(_alert_low_stock, session, ctx, low)

    session.refresh(order)
    view = order_view(order, items)
    view["client_secret"] = intent.client_secret
    return Ok(view)


@service_boundary
def confirm_order_payment(session: Session, ctx: Collaborators, payment_reference: str) -> Result[Order]:
    order = session.exec(select(Order).where(Order.payment_reference == payment_reference)).first()
    if not order:
        return not_found("order", payment_reference=payment_reference)
    if order.deleted_at is not None:
        return gone("order", payment_reference=payment_reference)
    if order.status != OrderStatus.pending:
        return invalid_state(f"order is already {order.status.value}", status=order.status.value)

    session.commit()
    try:
        intent = ctx.gateway.retrieve_payment_intent(payment_reference)
    except PaymentError as e:
        return payment_error(str(e), payment_reference=payment_reference)
    if not intent.succeeded:
        return payment_error(f"payment not completed (status {intent.status})", status=intent.status)

    now = datetime.now(timezone.utc)
    changed = session.exec(
        update(Order)
        .where(Order.id == order.id, Order.status == OrderStatus.pending, Order.deleted_at.is_(None))
        .values(
            status=OrderStatus.confirmed,
            payment_status=PaymentStatus.succeeded,
            completed_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    ).rowcount
    if changed != 1:
        session.rollback()
        session.refresh(order)
        if order.deleted_at is not None:
            return gone("order", payment_reference=payment_reference)
        return invalid_state(f"order is already {order.status.value}", status=order.status.value)
    session.commit()
    session.refresh(order)
    logger.info("order_confirmed", order_number=order.order_number)
    return Ok(order)


@service_boundary
def update_order_status(session: Session, order_id: int, status: OrderStatus) -> Result[Order]:
    order = session.get(Order, order_id)
    if not order:
        return not_found("order", order_id=order_id)
    if order.deleted_at is not None:
        return gone("order", order_id=order_id)
    if not can_transition(order.status, status):
        return invalid_state(
            f"cannot move order from {order.status.value} to {status.value}",
            current=order.status.value,
            requested=status.value,
        )
    order.status = status
    order.updated_at = datetime.now(timezone.utc)
    if status == OrderStatus.delivered:
        order.completed_at = order.updated_at
    session.add(order)
    session.commit()
    session.refresh(order)
    logger.info("order_status_changed", order_id=order_id, status=status.value)
    return Ok(order)


@service_boundary
def get_order(session: Session, order_id: int) -> Result[dict]:
    order = session.get(Order, order_id)
    if not order:
        return not_found("order", order_id=order_id)
    if order.deleted_at is not None:
        return gone("order", order_id=order_id, deleted_at=order.deleted_at.isoformat())
    return Ok(order_view(order, order_items(session, order_id)))


@service_boundary
def list_orders(session: Session, include_deleted: bool = False) -> Result[list[Order]]:
    q = select(Order)
    if not include_deleted:
        q = q.where(Order.deleted_at.is_(None))
    return Ok(list(session.exec(q.order_by(Order.created_at.desc())).all()))


@service_boundary
def soft_delete_order(session: Session, order_id: int) -> Result[Order]:
    order = session.get(Order, order_id)
    if not order:
        return not_found("order", order_id=order_id)
    if order.deleted_at is not None:
        return gone("order", order_id=order_id)
    order.deleted_at = datetime.now(timezone.utc)
    session.add(order)
    session.commit()
    session.refresh(order)
    return Ok(order)


@service_boundary
def restore_order(session: Session, order_id: int) -> Result[Order]:
    order = session.get(Order, order_id)
    if not order:
        return not_found("order", order_id=order_id)
    if order.deleted_at is None:
        return invalid_state("order is not deleted")
    order.deleted_at = None
    order.updated_at = datetime.now(timezone.utc)
    session.add(order)
    session.commit()
    session.refresh(order)
    return Ok(order)


@service_boundary
def order_summary(session: Session) -> Result[dict]:
    active = session.exec(select(func.count()).select_from(Order).where(Order.deleted_at.is_(None))).one()
    deleted = session.exec(select(func.count()).select_from(Order).where(Order.deleted_at.is_not(None))).one()
    sales = session.exec(
        select(func.coalesce(func.sum(Order.total), 0)).where(
            Order.deleted_at.is_(None), Order.payment_status == PaymentStatus.succeeded
        )
    ).one()
    by_status = {s.value: 0 for s in OrderStatus}
    for status, count in session.exec(
        select(Order.status, func.count()).where(Order.deleted_at.is_(None)).group_by(Order.status)
    ).all():
        by_status[status.value if hasattr(status, "value") else status] = count
    return Ok(
        {
            "active_orders": active,
            "deleted_orders": deleted,
            "total_sales": str(_money(Decimal(str(sales)))),
            "by_status": by_status,
        }
    )


def count_orders(session: Session) -> int:
    return session.exec(select(func.count()).select_from(Order)).one()

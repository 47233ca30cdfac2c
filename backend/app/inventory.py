from __future__ import annotations

import json
from datetime import datetime, timezone

import structlog
from sqlalchemy import update
from sqlmodel import Session, select

from .context import Collaborators
from .identifiers import batch_number
from .models import Product, StaffUser, Stock, StockSize
from .notifications import dispatch, low_stock_recipients
from .results import Ok, Result, conflict, gone, invalid_state, not_found, service_boundary, validation_error
from .schemas import ProductCreate, StaffUserCreate, StockCreate, StockUpdate

logger = structlog.get_logger(__name__)

SIZES = {s.value for s in StockSize}


def product_view(product: Product) -> dict:
    return {
        "id": product.id,
        "product_code": product.product_code,
        "name": product.name,
        "description": product.description,
        "category": product.category,
        "price": str(product.price),
        "sizes": json.loads(product.sizes_json or "[]"),
        "colors": product.colors(),
        "is_active": product.is_active,
        "deleted_at": product.deleted_at,
        "created_at": product.created_at,
    }


def stock_view(stock: Stock) -> dict:
    return {
        "id": stock.id,
        "product_id": stock.product_id,
        "batch_number": stock.batch_number,
        "quantity": stock.quantity,
        "size": stock.size,
        "price": str(stock.price),
        "low_stock_alert": stock.low_stock_alert,
        "supplier": stock.supplier,
        "last_restocked": stock.last_restocked,
        "deleted_at": stock.deleted_at,
        "is_low": stock.quantity <= stock.low_stock_alert,
    }


def _load_stock(session: Session, stock_id: int, *, allow_deleted: bool = False):
    stock = session.get(Stock, stock_id)
    if not stock:
        return None, not_found("stock", stock_id=stock_id)
    if stock.deleted_at is not None and not allow_deleted:
        return None, gone("stock", stock_id=stock_id)
    return stock, None


def _notify_low(session: Session, ctx: Collaborators, stocks: list[Stock]) -> int:
    recipients = low_stock_recipients(session, ctx.recipient_policy)
    for stock in stocks:
        product = session.get(Product, stock.product_id)
        ctx.notifier.notify_low_stock(product.name if product else "", stock.batch_number, stock.quantity, recipients)
    return len(stocks)


@service_boundary
def create_product(session: Session, payload: ProductCreate) -> Result[Product]:
    code = payload.product_code.strip()
    if not code:
        return validation_error("product code is required", field="product_code")
    if not payload.name.strip():
        return validation_error("name is required", field="name")
    if payload.price < 0:
        return validation_error("price must be non-negative", field="price")
    bad = [s for s in payload.sizes if s not in SIZES]
    if bad:
        return validation_error(f"unknown sizes: {', '.join(bad)}", field="sizes")
    if session.exec(select(Product.id).where(Product.product_code == code)).first() is not None:
        return conflict(f"product code {code} already exists", product_code=code)

    product = Product(
        product_code=code,
        name=payload.name.strip(),
        description=payload.description,
        category=payload.category,
        price=payload.price,
        sizes_json=json.dumps(payload.sizes),
        colors_json=json.dumps(payload.colors),
    )
    session.add(product)
    session.commit()
    session.refresh(product)
    return Ok(product)


@service_boundary
def get_product(session: Session, product_id: int) -> Result[Product]:
    product = session.get(Product, product_id)
    if not product:
        return not_found("product", product_id=product_id)
    if product.deleted_at is not None:
        return gone("product", product_id=product_id)
    return Ok(product)


@service_boundary
def list_products(session: Session, include_deleted: bool = False) -> Result[list[Product]]:
    q = select(Product)
    if not include_deleted:
        q = q.where(Product.deleted_at.is_(None))
    return Ok(list(session.exec(q.order_by(Product.name)).all()))


@service_boundary
def soft_delete_product(session: Session, product_id: int) -> Result[Product]:
    product = session.get(Product, product_id)
    if not product:
        return not_found("product", product_id=product_id)
    if product.deleted_at is not None:
        return gone("product", product_id=product_id)
    product.deleted_at = datetime.now(timezone.utc)
    product.is_active = False
    session.add(product)
    session.commit()
    session.refresh(product)
    return Ok(product)


@service_boundary
def add_stock(session: Session, payload: StockCreate) -> Result[Stock]:
    product = session.get(Product, payload.product_id)
    if not product:
        return not_found("product", product_id=payload.product_id)
    if product.deleted_at is not None:
        return gone("product", product_id=payload.product_id)
    if payload.quantity < 0:
        return validation_error("quantity must be non-negative", field="quantity")
    if payload.price < 0:
        return validation_error("price must be non-negative", field="price")
    if payload.low_stock_alert < 0:
        return validation_error("low stock alert must be non-negative", field="low_stock_alert")
    if not payload.supplier.strip():
        return validation_error("supplier is required", field="supplier")
    sizes = json.loads(product.sizes_json or "[]")
    if sizes and payload.size.value not in sizes:
        return validation_error(f"size {payload.size.value} is not offered for {product.name}", field="size")

    stock = Stock(
        product_id=product.id,
        batch_number=batch_number(product.product_code),
        quantity=payload.quantity,
        size=payload.size,
        price=payload.price,
        low_stock_alert=payload.low_stock_alert,
        supplier=payload.supplier.strip(),
    )
    session.add(stock)
    session.commit()
    session.refresh(stock)
    logger.info("stock_added", stock_id=stock.id, batch=stock.batch_number, quantity=stock.quantity)
    return Ok(stock)


@service_boundary
def get_stock(session: Session, stock_id: int) -> Result[Stock]:
    stock, err = _load_stock(session, stock_id)
    if err:
        return err
    return Ok(stock)


@service_boundary
def list_stock(session: Session, product_id: int | None = None, include_deleted: bool = False) -> Result[list[Stock]]:
    q = select(Stock)
    if product_id is not None:
        q = q.where(Stock.product_id == product_id)
    if not include_deleted:
        q = q.where(Stock.deleted_at.is_(None))
    return Ok(list(session.exec(q.order_by(Stock.id)).all()))


@service_boundary
def restock(session: Session, stock_id: int, quantity: int) -> Result[Stock]:
    if quantity <= 0:
        return validation_error("restock quantity must be positive", field="quantity")
    changed = session.exec(
        update(Stock)
        .where(Stock.id == stock_id, Stock.deleted_at.is_(None))
        .values(quantity=Stock.quantity + quantity, last_restocked=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    ).rowcount
    if changed != 1:
        _, err = _load_stock(session, stock_id)
        return err or not_found("stock", stock_id=stock_id)
    session.commit()
    stock = session.get(Stock, stock_id)
    session.refresh(stock)
    logger.info("stock_restocked", stock_id=stock_id, added=quantity, quantity=stock.quantity)
    return Ok(stock)


@service_boundary
def update_stock(session: Session, ctx: Collaborators, stock_id: int, payload: StockUpdate) -> Result[Stock]:
    stock, err = _load_stock(session, stock_id)
    if err:
        return err
    if payload.quantity is not None:
        if payload.quantity < 0:
            return validation_error("quantity must be non-negative", field="quantity")
        stock.quantity = payload.quantity
    if payload.price is not None:
        if payload.price < 0:
            return validation_error("price must be non-negative", field="price")
        stock.price = payload.price
    if payload.low_stock_alert is not None:
        if payload.low_stock_alert < 0:
            return validation_error("low stock alert must be non-negative", field="low_stock_alert")
        stock.low_stock_alert = payload.low_stock_alert
    if payload.size is not None:
        stock.size = payload.size
    if payload.supplier is not None:
        if not payload.supplier.strip():
            return validation_error("supplier must not be empty", field="supplier")
        stock.supplier = payload.supplier.strip()
    session.add(stock)
    session.commit()
    session.refresh(stock)

    if stock.quantity <= stock.low_stock_alert:
        dispatch(_notify_low, session, ctx, [stock])
    return Ok(stock)


@service_boundary
def soft_delete_stock(session: Session, stock_id: int) -> Result[Stock]:
    stock, err = _load_stock(session, stock_id)
    if err:
        return err
    stock.deleted_at = datetime.now(timezone.utc)
    session.add(stock)
    session.commit()
    session.refresh(stock)
    return Ok(stock)


@service_boundary
def restore_stock(session: Session, stock_id: int) -> Result[Stock]:
    stock, err = _load_stock(session, stock_id, allow_deleted=True)
    if err:
        return err
    if stock.deleted_at is None:
        return invalid_state("stock is not deleted")
    stock.deleted_at = None
    session.add(stock)
    session.commit()
    session.refresh(stock)
    return Ok(stock)


def _low_stock(session: Session) -> list[Stock]:
    return list(
        session.exec(
            select(Stock)
            .join(Product, Product.id == Stock.product_id)
            .where(
                Stock.deleted_at.is_(None),
                Product.deleted_at.is_(None),
                Stock.quantity <= Stock.low_stock_alert,
            )
            .order_by(Stock.quantity, Stock.id)
        ).all()
    )


@service_boundary
def list_low_stock(session: Session) -> Result[list[Stock]]:
    return Ok(_low_stock(session))


@service_boundary
def send_low_stock_alerts(session: Session, ctx: Collaborators) -> Result[dict]:
    stocks = _low_stock(session)
    sent = dispatch(_notify_low, session, ctx, stocks) if stocks else True
    return Ok({"low_stock": len(stocks), "notified": sent})


@service_boundary
def create_staff_user(session: Session, payload: StaffUserCreate) -> Result[StaffUser]:
    email = payload.email.strip().lower()
    if not email or "@" not in email:
        return validation_error("a valid email is required", field="email")
    if session.exec(select(StaffUser.id).where(StaffUser.email == email)).first() is not None:
        return conflict(f"staff user {email} already exists", email=email)
    user = StaffUser(email=email, name=payload.name.strip(), role=payload.role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return Ok(user)


@service_boundary
def list_staff_users(session: Session) -> Result[list[StaffUser]]:
    return Ok(list(session.exec(select(StaffUser).order_by(StaffUser.email)).all()))



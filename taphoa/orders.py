"""
Order placement and the order status lifecycle.

Placement: read the cart joined with live product rows, reject the first
line whose quantity exceeds stock, price each line (sale price wins over
list price), then in ONE transaction write the order header, its line
snapshots, decrement stock and empty the cart. Each decrement is a
conditional UPDATE (... WHERE stock_quantity >= :qty); if a concurrent
checkout took the stock after our pre-check, zero rows match and the whole
transaction rolls back, so stock never goes negative and no half-written
order is ever visible.

Status lifecycle:
  pending → {confirmed, cancelled}
  confirmed → {shipping, cancelled}
  shipping → {delivered, cancelled}
  delivered, cancelled: terminal

Customers may only cancel their own pending orders. Admins may set any
status from any state. Entering "cancelled" from a non-cancelled state
restores stock with atomic increments; lines whose product has since been
deleted are skipped.
"""

import logging
import random
import string
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import or_, update
from sqlalchemy.orm import Session, joinedload

from taphoa.errors import BusinessRuleViolation, InsufficientStock, NotFound, ValidationFailed
from taphoa.models import ORDER_STATUSES, CartItem, Order, OrderItem, Product, utcnow

logger = logging.getLogger("taphoa.orders")

ORDER_NUMBER_PREFIX = "DH"
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
_SUFFIX_LENGTH = 6


@dataclass
class ShippingInfo:
    name: Optional[str]
    phone: Optional[str]
    address: Optional[str]
    note: Optional[str] = None


def generate_order_number(now: Optional[datetime] = None, rng: random.Random = None) -> str:
    """DH + YYMMDD + 6 chars of [A-Z0-9]. Collisions are not checked."""
    now = now or datetime.now()
    rng = rng or random
    suffix = "".join(rng.choices(_SUFFIX_ALPHABET, k=_SUFFIX_LENGTH))
    return f"{ORDER_NUMBER_PREFIX}{now:%y%m%d}{suffix}"


# ============================================================================
# Stock primitives
# ============================================================================

def decrement_stock(db: Session, product_id: str, quantity: int) -> bool:
    """Take quantity units if available. False when current stock is insufficient."""
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def restore_stock(db: Session, product_id: str, quantity: int) -> bool:
    """Give back quantity units. False when the product no longer exists."""
    result = db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock_quantity=Product.stock_quantity + quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ============================================================================
# Placement
# ============================================================================

def _validate_shipping(shipping: ShippingInfo) -> ShippingInfo:
    name = (shipping.name or "").strip()
    phone = (shipping.phone or "").strip()
    address = (shipping.address or "").strip()
    if not name or not phone or not address:
        raise ValidationFailed("Vui lòng nhập đầy đủ thông tin giao hàng")
    note = (shipping.note or "").strip() or None
    return ShippingInfo(name=name, phone=phone, address=address, note=note)


def place_order(db: Session, user_id: str, shipping: ShippingInfo) -> Order:
    """Turn the user's cart into an order. Raises before any write on invalid input or short stock."""
    logger.info("orders: method=place_order user_id=%s", user_id)
    shipping = _validate_shipping(shipping)

    lines: List[Tuple[CartItem, Product]] = (
        db.query(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.created_at.asc())
        .all()
    )
    if not lines:
        logger.info("orders: method=place_order user_id=%s result=error error=cart_empty", user_id)
        raise BusinessRuleViolation("Giỏ hàng trống")

    for item, product in lines:
        if item.quantity > product.stock_quantity:
            logger.info("orders: method=place_order user_id=%s result=error error=out_of_stock product_id=%s", user_id, product.id)
            raise InsufficientStock(product.name)

    snapshots = []
    total_amount = 0.0
    for item, product in lines:
        unit_price = product.unit_price
        subtotal = unit_price * item.quantity
        total_amount += subtotal
        snapshots.append(OrderItem(
            product_id=product.id,
            product_name=product.name,
            product_price=unit_price,
            quantity=item.quantity,
            subtotal=subtotal,
        ))

    try:
        order = Order(
            user_id=user_id,
            order_number=generate_order_number(),
            total_amount=total_amount,
            shipping_name=shipping.name,
            shipping_phone=shipping.phone,
            shipping_address=shipping.address,
            note=shipping.note,
            status="pending",
        )
        order.items = snapshots
        db.add(order)
        db.flush()

        for item, product in lines:
            if not decrement_stock(db, product.id, item.quantity):
                raise InsufficientStock(product.name)

        db.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("orders: method=place_order user_id=%s result=error error=%s", user_id, e)
        raise

    logger.info(
        "orders: method=place_order user_id=%s result=success order_id=%s order_number=%s total=%s",
        user_id, order.id, order.order_number, total_amount,
    )
    return get_order(db, order.id)


# ============================================================================
# Status transitions
# ============================================================================

def _apply_status(db: Session, order: Order, new_status: str) -> None:
    previous = order.status
    if new_status == "cancelled" and previous != "cancelled":
        for line in order.items:
            if not line.product_id:
                continue
            if not restore_stock(db, line.product_id, line.quantity):
                logger.info("orders: method=restore_stock order_id=%s product_id=%s result=skipped reason=product_missing",
                            order.id, line.product_id)
    order.status = new_status
    order.updated_at = utcnow()
    logger.info("orders: method=set_status order_id=%s from=%s to=%s", order.id, previous, new_status)


def cancel_order(db: Session, user_id: str, order_id: str) -> Order:
    """Customer cancellation: own order, pending only."""
    order = get_user_order(db, user_id, order_id)
    if order.status != "pending":
        raise BusinessRuleViolation("Chỉ có thể hủy đơn hàng đang chờ xử lý")
    try:
        _apply_status(db, order, "cancelled")
        db.commit()
    except Exception:
        db.rollback()
        raise
    return order


def set_order_status(db: Session, order_id: str, status: Optional[str]) -> Order:
    """Admin transition: any known status from any state."""
    if status not in ORDER_STATUSES:
        raise ValidationFailed("Trạng thái không hợp lệ")
    order = get_order(db, order_id)
    try:
        _apply_status(db, order, status)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return order


# ============================================================================
# Queries
# ============================================================================

def get_order(db: Session, order_id: str) -> Order:
    order = (
        db.query(Order)
        .options(joinedload(Order.items), joinedload(Order.user))
        .filter(Order.id == order_id)
        .first()
    )
    if order is None:
        raise NotFound("Không tìm thấy đơn hàng")
    return order


def get_user_order(db: Session, user_id: str, order_id: str) -> Order:
    order = (
        db.query(Order)
        .options(joinedload(Order.items))
        .filter(Order.id == order_id, Order.user_id == user_id)
        .first()
    )
    if order is None:
        raise NotFound("Không tìm thấy đơn hàng")
    return order


def list_user_orders(db: Session, user_id: str, page: int = 1, limit: int = 10) -> Tuple[List[Order], int]:
    query = db.query(Order).filter(Order.user_id == user_id)
    total = query.count()
    rows = (
        query.order_by(Order.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def list_orders(
    db: Session,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> Tuple[List[Order], int]:
    query = db.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Order.order_number.ilike(pattern),
            Order.shipping_name.ilike(pattern),
            Order.shipping_phone.ilike(pattern),
        ))
    total = query.count()
    rows = (
        query.options(joinedload(Order.user))
        .order_by(Order.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total

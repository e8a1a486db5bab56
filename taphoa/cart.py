"""
Shopping cart for signed-in users.

One cart_items row per (user, product); adding a product already in the
cart increments that row. Quantities are checked against the product's
current stock on every add/update, but stock is only reserved at checkout.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session, joinedload

from taphoa.errors import BusinessRuleViolation, NotFound, ValidationFailed
from taphoa.models import CartItem, Product

logger = logging.getLogger("taphoa.cart")


def get_cart_items(db: Session, user_id: str) -> List[CartItem]:
    return (
        db.query(CartItem)
        .options(joinedload(CartItem.product))
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.created_at.asc())
        .all()
    )


def cart_total(items: List[CartItem]) -> float:
    return sum(item.product.unit_price * item.quantity for item in items)


def get_cart(db: Session, user_id: str) -> Dict[str, Any]:
    """Return {"items": [CartItem...], "total": float}."""
    items = get_cart_items(db, user_id)
    return {"items": items, "total": cart_total(items)}


def add_to_cart(db: Session, user_id: str, product_id: str, quantity: int = 1) -> CartItem:
    """Add or increment; the resulting quantity may not exceed current stock."""
    logger.info("cart: method=add_to_cart user_id=%s product_id=%s quantity=%s", user_id, product_id, quantity)
    if quantity < 1:
        raise ValidationFailed("Số lượng phải lớn hơn 0")
    product = (
        db.query(Product)
        .filter(Product.id == product_id, Product.is_active.is_(True))
        .first()
    )
    if product is None:
        raise NotFound("Không tìm thấy sản phẩm")

    existing = (
        db.query(CartItem)
        .filter(CartItem.user_id == user_id, CartItem.product_id == product_id)
        .first()
    )
    new_quantity = quantity + (existing.quantity if existing else 0)
    if new_quantity > product.stock_quantity:
        logger.info("cart: method=add_to_cart user_id=%s product_id=%s result=rejected stock=%s", user_id, product_id, product.stock_quantity)
        raise BusinessRuleViolation("Số lượng vượt quá tồn kho")

    if existing:
        existing.quantity = new_quantity
        item = existing
    else:
        item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
        db.add(item)
    db.commit()
    logger.info("cart: method=add_to_cart user_id=%s product_id=%s result=success quantity=%s", user_id, product_id, new_quantity)
    return item


def _get_own_item(db: Session, user_id: str, item_id: str) -> CartItem:
    item = (
        db.query(CartItem)
        .options(joinedload(CartItem.product))
        .filter(CartItem.id == item_id, CartItem.user_id == user_id)
        .first()
    )
    if item is None:
        raise NotFound("Không tìm thấy sản phẩm trong giỏ")
    return item


def update_quantity(db: Session, user_id: str, item_id: str, quantity: int) -> CartItem:
    logger.info("cart: method=update_quantity user_id=%s item_id=%s quantity=%s", user_id, item_id, quantity)
    if quantity is None or quantity < 1:
        raise ValidationFailed("Số lượng phải lớn hơn 0")
    item = _get_own_item(db, user_id, item_id)
    if quantity > item.product.stock_quantity:
        raise BusinessRuleViolation("Số lượng vượt quá tồn kho")
    item.quantity = quantity
    db.commit()
    return item


def remove_item(db: Session, user_id: str, item_id: str) -> None:
    logger.info("cart: method=remove_item user_id=%s item_id=%s", user_id, item_id)
    db.query(CartItem).filter(CartItem.id == item_id, CartItem.user_id == user_id).delete(synchronize_session=False)
    db.commit()


def clear_cart(db: Session, user_id: str) -> int:
    logger.info("cart: method=clear_cart user_id=%s", user_id)
    deleted = db.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)
    db.commit()
    return deleted

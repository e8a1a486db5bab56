"""
SQLAlchemy database models.
These map the Supabase tables that are the source of truth for the store:

- users        (customers and admins)
- categories   (catalog grouping)
- products     (catalog, price, stock)
- cart_items   (one row per user+product)
- orders       (header with price snapshot total)
- order_items  (immutable line snapshots)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from taphoa.database import Base

ORDER_STATUSES = ("pending", "confirmed", "shipping", "delivered", "cancelled")
USER_ROLES = ("customer", "admin")
DEFAULT_UNIT = "cái"


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def Money(nullable: bool = False) -> Column:
    """Currency column; VND has no minor unit but Supabase stores numeric(12,2)."""
    return Column(Numeric(12, 2, asdecimal=False), nullable=nullable)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password = Column(String(255), nullable=False)
    full_name = Column(String(255))
    phone = Column(String(32))
    address = Column(Text)
    role = Column(String(20), nullable=False, default="customer")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    cart_items = relationship("CartItem", back_populates="user", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="user")


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text)
    image_url = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    products = relationship("Product", back_populates="category")


class Product(Base):
    """
    stock_quantity is mutated by admin edits, order placement (decrement)
    and order cancellation (increment). Placement and cancellation use
    conditional/atomic UPDATEs, see taphoa.orders.
    """
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text)
    price = Money()
    sale_price = Money(nullable=True)
    image_url = Column(Text)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    unit = Column(String(50), nullable=False, default=DEFAULT_UNIT)
    sku = Column(String(100), unique=True, nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    category = relationship("Category", back_populates="products")

    @property
    def unit_price(self) -> float:
        """Price a customer pays right now: sale price when set, else list price."""
        if self.sale_price is not None:
            return float(self.sale_price)
        return float(self.price)


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_cart_user_product"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="cart_items")
    product = relationship("Product")


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_number = Column(String(32), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    total_amount = Money()
    shipping_name = Column(String(255), nullable=False)
    shipping_phone = Column(String(32), nullable=False)
    shipping_address = Column(Text, nullable=False)
    note = Column(Text)
    status = Column(String(20), nullable=False, default="pending", index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    """Snapshot of a product line at order time. product_id is not a foreign key: lines outlive products."""
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), nullable=True)
    product_name = Column(String(255), nullable=False)
    product_price = Money()
    quantity = Column(Integer, nullable=False)
    subtotal = Money()

    order = relationship("Order", back_populates="items")

"""
Catalog queries and admin mutations for categories and products.

Read functions return ORM rows (routers format them); write functions
commit and return the fresh row. Cache invalidation is the caller's job
because the cache lives at the HTTP layer.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from taphoa.errors import BusinessRuleViolation, NotFound, ValidationFailed
from taphoa.models import DEFAULT_UNIT, Category, Order, OrderItem, Product, utcnow

logger = logging.getLogger("taphoa.catalog")

SORTABLE_FIELDS = {
    "created_at": Product.created_at,
    "price": Product.price,
    "name": Product.name,
}

FEED_LIMIT = 8


# ============================================================================
# Categories
# ============================================================================

def list_active_categories(db: Session) -> List[Category]:
    return (
        db.query(Category)
        .filter(Category.is_active.is_(True))
        .order_by(Category.name.asc())
        .all()
    )


def get_category(db: Session, category_id: str) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise NotFound("Không tìm thấy danh mục")
    return category


def list_categories_with_counts(db: Session) -> List[Tuple[Category, int]]:
    """Every category (inactive included) with the number of products referencing it."""
    counts = (
        db.query(Product.category_id, func.count(Product.id))
        .filter(Product.category_id.isnot(None))
        .group_by(Product.category_id)
        .all()
    )
    by_id = dict(counts)
    categories = db.query(Category).order_by(Category.name.asc()).all()
    return [(c, int(by_id.get(c.id, 0))) for c in categories]


def find_category_by_name(db: Session, name: str) -> Optional[Category]:
    # SQLite lower() folds ASCII only, so Vietnamese names compare in Python.
    key = name.strip().lower()
    for category in db.query(Category).all():
        if category.name.lower() == key:
            return category
    return None


def create_category(db: Session, name: Optional[str], description: Optional[str] = None,
                    image_url: Optional[str] = None) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Vui lòng nhập tên danh mục")
    if find_category_by_name(db, name) is not None:
        raise BusinessRuleViolation("Danh mục đã tồn tại")
    category = Category(name=name, description=description, image_url=image_url)
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info("catalog: method=create_category category_id=%s name=%s result=success", category.id, name)
    return category


def update_category(db: Session, category_id: str, fields: Dict[str, Any]) -> Category:
    category = get_category(db, category_id)
    if "name" in fields:
        name = (fields["name"] or "").strip()
        if not name:
            raise ValidationFailed("Vui lòng nhập tên danh mục")
        clash = find_category_by_name(db, name)
        if clash is not None and clash.id != category.id:
            raise BusinessRuleViolation("Danh mục đã tồn tại")
        category.name = name
    for attr in ("description", "image_url"):
        if attr in fields:
            setattr(category, attr, fields[attr])
    if fields.get("is_active") is not None:
        category.is_active = fields["is_active"]
    db.commit()
    db.refresh(category)
    logger.info("catalog: method=update_category category_id=%s result=success", category_id)
    return category


def delete_category(db: Session, category_id: str) -> None:
    """Refuses while any product (active or not) still points at the category."""
    category = get_category(db, category_id)
    in_use = db.query(func.count(Product.id)).filter(Product.category_id == category.id).scalar() or 0
    if in_use:
        logger.info("catalog: method=delete_category category_id=%s result=rejected products=%s", category_id, in_use)
        raise BusinessRuleViolation(f'Không thể xóa danh mục "{category.name}" vì còn {in_use} sản phẩm')
    db.delete(category)
    db.commit()
    logger.info("catalog: method=delete_category category_id=%s result=success", category_id)


# ============================================================================
# Products: reads
# ============================================================================

def search_products(
    db: Session,
    page: int = 1,
    limit: int = 12,
    category_id: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    include_inactive: bool = False,
) -> Tuple[List[Product], int]:
    """Filtered, sorted, paginated product page plus the total matching count."""
    query = db.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category_id:
        query = query.filter(Product.category_id == category_id)
    if search:
        query = query.filter(Product.name.ilike(f"%{search.strip()}%"))
    if min_price is not None:
        query = query.filter(Product.price >= min_price)
    if max_price is not None:
        query = query.filter(Product.price <= max_price)

    total = query.count()

    column = SORTABLE_FIELDS.get(sort_by, Product.created_at)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    rows = (
        query.options(joinedload(Product.category))
        .order_by(ordering, Product.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def get_product(db: Session, product_id: str, active_only: bool = True) -> Product:
    query = db.query(Product).options(joinedload(Product.category)).filter(Product.id == product_id)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    product = query.first()
    if product is None:
        raise NotFound("Không tìm thấy sản phẩm")
    return product


def sale_products(db: Session, limit: int = FEED_LIMIT) -> List[Product]:
    return (
        db.query(Product)
        .options(joinedload(Product.category))
        .filter(Product.is_active.is_(True), Product.sale_price.isnot(None))
        .order_by(Product.created_at.desc())
        .limit(limit)
        .all()
    )


def new_products(db: Session, limit: int = FEED_LIMIT) -> List[Product]:
    return (
        db.query(Product)
        .options(joinedload(Product.category))
        .filter(Product.is_active.is_(True))
        .order_by(Product.created_at.desc())
        .limit(limit)
        .all()
    )


def bestseller_products(db: Session, limit: int = FEED_LIMIT) -> List[Tuple[Product, int]]:
    """Active products ranked by units sold on orders that were not cancelled."""
    sold = func.sum(OrderItem.quantity).label("sold")
    rows = (
        db.query(Product, sold)
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Product.is_active.is_(True), Order.status != "cancelled")
        .group_by(Product.id)
        .order_by(sold.desc(), Product.name.asc())
        .limit(limit)
        .all()
    )
    return [(product, int(count or 0)) for product, count in rows]


# ============================================================================
# Products: admin writes
# ============================================================================

def _check_category(db: Session, category_id: Optional[str]) -> None:
    if category_id and db.query(Category.id).filter(Category.id == category_id).first() is None:
        raise ValidationFailed("Danh mục không tồn tại")


def _check_sku(db: Session, sku: Optional[str], exclude_id: Optional[str] = None) -> None:
    if not sku:
        return
    query = db.query(Product.id).filter(Product.sku == sku)
    if exclude_id:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise BusinessRuleViolation("Mã SKU đã tồn tại")


def create_product(db: Session, fields: Dict[str, Any]) -> Product:
    name = (fields.get("name") or "").strip()
    if not name or fields.get("price") is None:
        raise ValidationFailed("Vui lòng nhập tên và giá sản phẩm")
    sku = (fields.get("sku") or "").strip() or None
    _check_category(db, fields.get("category_id"))
    _check_sku(db, sku)

    product = Product(
        name=name,
        description=fields.get("description"),
        price=fields["price"],
        sale_price=fields.get("sale_price"),
        image_url=fields.get("image_url"),
        category_id=fields.get("category_id") or None,
        stock_quantity=fields.get("stock_quantity") or 0,
        unit=fields.get("unit") or DEFAULT_UNIT,
        sku=sku,
        is_active=True if fields.get("is_active") is None else fields["is_active"],
    )
    db.add(product)
    db.commit()
    logger.info("catalog: method=create_product product_id=%s result=success", product.id)
    return get_product(db, product.id, active_only=False)


def update_product(db: Session, product_id: str, fields: Dict[str, Any]) -> Product:
    product = get_product(db, product_id, active_only=False)
    if "name" in fields:
        name = (fields["name"] or "").strip()
        if not name:
            raise ValidationFailed("Vui lòng nhập tên sản phẩm")
        fields["name"] = name
    if "price" in fields and fields["price"] is None:
        raise ValidationFailed("Vui lòng nhập giá sản phẩm")
    if "category_id" in fields:
        fields["category_id"] = fields["category_id"] or None
        _check_category(db, fields["category_id"])
    if "sku" in fields:
        fields["sku"] = (fields["sku"] or "").strip() or None
        _check_sku(db, fields["sku"], exclude_id=product.id)
    if "unit" in fields and not fields["unit"]:
        fields["unit"] = DEFAULT_UNIT
    for attr in ("is_active", "stock_quantity"):
        if attr in fields and fields[attr] is None:
            del fields[attr]

    for attr, value in fields.items():
        setattr(product, attr, value)
    product.updated_at = utcnow()
    db.commit()
    logger.info("catalog: method=update_product product_id=%s fields=%s result=success", product_id, sorted(fields))
    return get_product(db, product_id, active_only=False)


def delete_product(db: Session, product_id: str) -> None:
    product = get_product(db, product_id, active_only=False)
    db.delete(product)
    db.commit()
    logger.info("catalog: method=delete_product product_id=%s result=success", product_id)

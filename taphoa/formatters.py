"""
Shape ORM rows into the JSON payloads the storefront returns.

Money is emitted as float, timestamps as datetime (FastAPI encodes ISO 8601).
Passwords never leave this module.
"""

import math
from typing import Any, Dict, List, Optional

from taphoa.models import CartItem, Category, Order, OrderItem, Product, User


def format_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "phone": user.phone,
        "address": user.address,
        "role": user.role,
        "is_active": user.is_active,
        "created_at": user.created_at,
    }


def format_category(category: Category, product_count: Optional[int] = None) -> Dict[str, Any]:
    data = {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "image_url": category.image_url,
        "is_active": category.is_active,
        "created_at": category.created_at,
    }
    if product_count is not None:
        data["product_count"] = product_count
    return data


def format_product(product: Product) -> Dict[str, Any]:
    category = None
    if product.category is not None:
        category = {"id": product.category.id, "name": product.category.name}
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": float(product.price),
        "sale_price": float(product.sale_price) if product.sale_price is not None else None,
        "image_url": product.image_url,
        "category_id": product.category_id,
        "categories": category,
        "stock_quantity": product.stock_quantity,
        "unit": product.unit,
        "sku": product.sku,
        "is_active": product.is_active,
        "created_at": product.created_at,
        "updated_at": product.updated_at,
    }


def format_cart_item(item: CartItem) -> Dict[str, Any]:
    product = item.product
    unit_price = product.unit_price
    return {
        "id": item.id,
        "product_id": item.product_id,
        "quantity": item.quantity,
        "unit_price": unit_price,
        "subtotal": unit_price * item.quantity,
        "products": {
            "id": product.id,
            "name": product.name,
            "price": float(product.price),
            "sale_price": float(product.sale_price) if product.sale_price is not None else None,
            "image_url": product.image_url,
            "stock_quantity": product.stock_quantity,
            "unit": product.unit,
        },
    }


def format_order_item(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "product_id": item.product_id,
        "product_name": item.product_name,
        "product_price": float(item.product_price),
        "quantity": item.quantity,
        "subtotal": float(item.subtotal),
    }


def format_order(order: Order, include_items: bool = False, include_user: bool = False) -> Dict[str, Any]:
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "total_amount": float(order.total_amount),
        "shipping_name": order.shipping_name,
        "shipping_phone": order.shipping_phone,
        "shipping_address": order.shipping_address,
        "note": order.note,
        "status": order.status,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }
    if include_items:
        data["items"] = [format_order_item(i) for i in order.items]
    if include_user and order.user is not None:
        data["users"] = {
            "email": order.user.email,
            "full_name": order.user.full_name,
            "phone": order.user.phone,
        }
    return data


def paginate(total: int, page: int, limit: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def page_payload(key: str, rows: List[Dict[str, Any]], total: int, page: int, limit: int) -> Dict[str, Any]:
    """Uniform list envelope: {key: rows, pagination: {...}}."""
    return {key: rows, "pagination": paginate(total, page, limit)}

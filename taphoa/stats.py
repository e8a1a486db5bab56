"""Aggregate numbers for the admin dashboard."""

from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from taphoa.models import Order, Product, User


def dashboard_stats(db: Session) -> Dict[str, Any]:
    """Customer/product/order counts and revenue from delivered orders."""
    total_users = db.query(func.count(User.id)).filter(User.role == "customer").scalar() or 0
    total_products = db.query(func.count(Product.id)).scalar() or 0
    total_orders = db.query(func.count(Order.id)).scalar() or 0
    pending_orders = db.query(func.count(Order.id)).filter(Order.status == "pending").scalar() or 0
    revenue = db.query(func.coalesce(func.sum(Order.total_amount), 0)).filter(Order.status == "delivered").scalar()
    return {
        "totalUsers": int(total_users),
        "totalProducts": int(total_products),
        "totalOrders": int(total_orders),
        "pendingOrders": int(pending_orders),
        "totalRevenue": float(revenue or 0),
    }

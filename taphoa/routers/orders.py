"""
Orders API for the signed-in customer.

Placement and cancellation move stock, so both drop the cached product
pages.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from taphoa import orders as order_service
from taphoa.auth import CurrentUser, get_current_user
from taphoa.cache import ResponseCache, get_response_cache, invalidate_products
from taphoa.database import get_db
from taphoa.formatters import format_order, page_payload
from taphoa.orders import ShippingInfo
from taphoa.schemas import PlaceOrderRequest

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows, total = order_service.list_user_orders(db, user.id, page=page, limit=limit)
    return page_payload("orders", [format_order(o, include_items=True) for o in rows], total, page, limit)


@router.get("/{order_id}")
def get_order(order_id: str, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return format_order(order_service.get_user_order(db, user.id, order_id), include_items=True)


@router.post("", status_code=201)
def place_order(
    body: PlaceOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    shipping = ShippingInfo(
        name=body.shipping_name,
        phone=body.shipping_phone,
        address=body.shipping_address,
        note=body.note,
    )
    order = order_service.place_order(db, user.id, shipping)
    invalidate_products(cache)
    return {"message": "Đặt hàng thành công", "order": format_order(order, include_items=True)}


@router.put("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    order = order_service.cancel_order(db, user.id, order_id)
    invalidate_products(cache)
    return {"message": "Đã hủy đơn hàng", "order": format_order(order, include_items=True)}

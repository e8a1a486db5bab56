"""Cart API for the signed-in user."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taphoa import cart as cart_service
from taphoa.auth import CurrentUser, get_current_user
from taphoa.database import get_db
from taphoa.formatters import format_cart_item
from taphoa.schemas import AddToCartRequest, UpdateCartRequest

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("")
def get_cart(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    cart = cart_service.get_cart(db, user.id)
    return {"items": [format_cart_item(i) for i in cart["items"]], "total": cart["total"]}


@router.post("/add")
def add_to_cart(
    body: AddToCartRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cart_service.add_to_cart(db, user.id, body.product_id, body.quantity)
    return {"message": "Đã thêm vào giỏ hàng"}


@router.put("/update/{item_id}")
def update_cart_item(
    item_id: str,
    body: UpdateCartRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cart_service.update_quantity(db, user.id, item_id, body.quantity)
    return {"message": "Đã cập nhật giỏ hàng"}


@router.delete("/remove/{item_id}")
def remove_cart_item(item_id: str, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    cart_service.remove_item(db, user.id, item_id)
    return {"message": "Đã xóa khỏi giỏ hàng"}


@router.delete("/clear")
def clear_cart(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    cart_service.clear_cart(db, user.id)
    return {"message": "Đã xóa toàn bộ giỏ hàng"}

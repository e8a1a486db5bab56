"""HTTP routers, one per resource family, all mounted under /api."""

from taphoa.routers.admin import router as admin_router
from taphoa.routers.auth import router as auth_router
from taphoa.routers.cart import router as cart_router
from taphoa.routers.categories import router as categories_router
from taphoa.routers.orders import router as orders_router
from taphoa.routers.products import router as products_router

ALL_ROUTERS = (
    auth_router,
    categories_router,
    products_router,
    cart_router,
    orders_router,
    admin_router,
)

"""
Admin API: users, categories, products (incl. Excel import/export and image
upload), orders and dashboard stats.

Every route requires a bearer token with role=admin. Catalog mutations
invalidate the cached public pages they affect:

- category create/update/delete          → categories + products
- product create/update/delete           → products
- import that created categories         → categories + products
- order status change (stock may return) → products
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from taphoa import accounts, catalog, config, importer, stats
from taphoa import orders as order_service
from taphoa.auth import CurrentUser, require_admin
from taphoa.cache import ResponseCache, get_response_cache, invalidate_categories, invalidate_products
from taphoa.database import get_db
from taphoa.errors import ValidationFailed
from taphoa.formatters import format_category, format_order, format_product, format_user, page_payload
from taphoa.schemas import (
    CategoryCreateRequest,
    CategoryUpdateRequest,
    OrderStatusRequest,
    ProductCreateRequest,
    ProductUpdateRequest,
    ResetPasswordRequest,
    UserUpdateRequest,
)
from taphoa.storage import SupabaseStorageClient, get_storage_client

logger = logging.getLogger("taphoa.admin")

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _xlsx_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=importer.XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _read_upload(file: Optional[UploadFile], missing_message: str) -> bytes:
    if file is None:
        raise ValidationFailed(missing_message)
    content = file.file.read()
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise ValidationFailed(f"File quá lớn (tối đa {config.MAX_UPLOAD_MB}MB)")
    return content


# ============================================================================
# Users
# ============================================================================

@router.get("/users")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    role: Optional[str] = None,
    db: Session = Depends(get_db),
):
    rows, total = accounts.list_users(db, page=page, limit=limit, search=search, role=role)
    return page_payload("users", [format_user(u) for u in rows], total, page, limit)


@router.put("/users/{user_id}")
def update_user(user_id: str, body: UserUpdateRequest, db: Session = Depends(get_db)):
    user = accounts.admin_update_user(db, user_id, body.model_dump(exclude_unset=True))
    return {"message": "Cập nhật thành công", "user": format_user(user)}


@router.put("/users/{user_id}/reset-password")
def reset_password(user_id: str, body: ResetPasswordRequest, db: Session = Depends(get_db)):
    accounts.reset_password(db, user_id, body.new_password)
    return {"message": "Đã reset mật khẩu"}


# ============================================================================
# Categories
# ============================================================================

@router.get("/categories")
def list_categories(db: Session = Depends(get_db)):
    return [format_category(c, count) for c, count in catalog.list_categories_with_counts(db)]


@router.post("/categories", status_code=201)
def create_category(
    body: CategoryCreateRequest,
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    category = catalog.create_category(db, body.name, body.description, body.image_url)
    invalidate_categories(cache)
    return {"message": "Thêm danh mục thành công", "category": format_category(category)}


@router.put("/categories/{category_id}")
def update_category(
    category_id: str,
    body: CategoryUpdateRequest,
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    category = catalog.update_category(db, category_id, body.model_dump(exclude_unset=True))
    invalidate_categories(cache)
    return {"message": "Cập nhật thành công", "category": format_category(category)}


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: str,
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    catalog.delete_category(db, category_id)
    invalidate_categories(cache)
    return {"message": "Đã xóa danh mục"}


# ============================================================================
# Products
# ============================================================================

@router.get("/products")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    category: Optional[str] = None,
    db: Session = Depends(get_db),
):
    rows, total = catalog.search_products(
        db, page=page, limit=limit, category_id=category, search=search, include_inactive=True,
    )
    return page_payload("products", [format_product(p) for p in rows], total, page, limit)


@router.get("/products/import-template")
def download_import_template():
    return _xlsx_response(importer.build_template(), importer.TEMPLATE_FILENAME)


@router.get("/products/export")
def export_products(db: Session = Depends(get_db)):
    return _xlsx_response(importer.export_products(db), importer.EXPORT_FILENAME)


@router.post("/products/import")
def import_products(
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
    admin: CurrentUser = Depends(require_admin),
):
    content = _read_upload(file, "Vui lòng chọn file Excel")
    importer.validate_excel_upload(file.filename, file.content_type, len(content), config.MAX_UPLOAD_BYTES)
    logger.info("admin: method=import_products user_id=%s filename=%s size=%s", admin.id, file.filename, len(content))
    result = importer.import_products(db, content)
    if result.created_categories:
        invalidate_categories(cache)
    else:
        invalidate_products(cache)
    return {
        "message": result.message,
        "inserted": result.inserted,
        "updated": result.updated,
        "skipped": result.skipped,
        "errors": result.errors,
        "created_categories": result.created_categories,
    }


@router.get("/products/{product_id}")
def get_product(product_id: str, db: Session = Depends(get_db)):
    return format_product(catalog.get_product(db, product_id, active_only=False))


@router.post("/products", status_code=201)
def create_product(
    body: ProductCreateRequest,
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    product = catalog.create_product(db, body.model_dump())
    invalidate_products(cache)
    return {"message": "Thêm sản phẩm thành công", "product": format_product(product)}


@router.put("/products/{product_id}")
def update_product(
    product_id: str,
    body: ProductUpdateRequest,
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    product = catalog.update_product(db, product_id, body.model_dump(exclude_unset=True))
    invalidate_products(cache)
    return {"message": "Cập nhật thành công", "product": format_product(product)}


@router.delete("/products/{product_id}")
def delete_product(
    product_id: str,
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    catalog.delete_product(db, product_id)
    invalidate_products(cache)
    return {"message": "Đã xóa sản phẩm"}


@router.post("/upload-image")
def upload_image(
    file: Optional[UploadFile] = File(None),
    storage: SupabaseStorageClient = Depends(get_storage_client),
):
    content = _read_upload(file, "Vui lòng chọn ảnh")
    url = storage.upload_image(content, file.filename, file.content_type)
    return {"url": url}


# ============================================================================
# Orders
# ============================================================================

@router.get("/orders")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    rows, total = order_service.list_orders(db, page=page, limit=limit, status=status, search=search)
    return page_payload("orders", [format_order(o, include_user=True) for o in rows], total, page, limit)


@router.get("/orders/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db)):
    return format_order(order_service.get_order(db, order_id), include_items=True, include_user=True)


@router.put("/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    body: OrderStatusRequest,
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    order = order_service.set_order_status(db, order_id, body.status)
    invalidate_products(cache)
    return {"message": "Cập nhật trạng thái thành công", "order": format_order(order, include_items=True)}


# ============================================================================
# Dashboard
# ============================================================================

@router.get("/stats")
def dashboard_stats(db: Session = Depends(get_db)):
    return stats.dashboard_stats(db)

"""
Public product reads, served through the response cache.

Endpoints:
    GET /api/products                          - filtered, sorted, paginated list
    GET /api/products/featured/{sale,new,bestseller}
    GET /api/products/category/{category_id}   - newest first
    GET /api/products/{product_id}
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from taphoa import catalog
from taphoa.cache import ResponseCache, cached_payload, get_response_cache
from taphoa.database import get_db
from taphoa.formatters import format_product, page_payload

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("")
def list_products(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    def load():
        rows, total = catalog.search_products(
            db,
            page=page,
            limit=limit,
            category_id=category,
            search=search,
            min_price=min_price,
            max_price=max_price,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        return page_payload("products", [format_product(p) for p in rows], total, page, limit)

    return cached_payload(cache, request, load)


@router.get("/featured/sale")
def featured_sale(
    request: Request,
    limit: int = Query(catalog.FEED_LIMIT, ge=1, le=100),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    return cached_payload(cache, request, lambda: [format_product(p) for p in catalog.sale_products(db, limit)])


@router.get("/featured/new")
def featured_new(
    request: Request,
    limit: int = Query(catalog.FEED_LIMIT, ge=1, le=100),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    return cached_payload(cache, request, lambda: [format_product(p) for p in catalog.new_products(db, limit)])


@router.get("/featured/bestseller")
def featured_bestseller(
    request: Request,
    limit: int = Query(catalog.FEED_LIMIT, ge=1, le=100),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    def load():
        return [
            {**format_product(product), "total_sold": sold}
            for product, sold in catalog.bestseller_products(db, limit)
        ]

    return cached_payload(cache, request, load)


@router.get("/category/{category_id}")
def products_in_category(
    category_id: str,
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    def load():
        rows, total = catalog.search_products(db, page=page, limit=limit, category_id=category_id)
        return page_payload("products", [format_product(p) for p in rows], total, page, limit)

    return cached_payload(cache, request, load)


@router.get("/{product_id}")
def get_product(
    product_id: str,
    request: Request,
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    return cached_payload(cache, request, lambda: format_product(catalog.get_product(db, product_id)))

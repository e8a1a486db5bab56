"""Public category reads, served through the response cache."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from taphoa import catalog
from taphoa.cache import ResponseCache, cached_payload, get_response_cache
from taphoa.database import get_db
from taphoa.formatters import format_category

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("")
def list_categories(
    request: Request,
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    return cached_payload(
        cache, request,
        lambda: [format_category(c) for c in catalog.list_active_categories(db)],
    )


@router.get("/{category_id}")
def get_category(
    category_id: str,
    request: Request,
    db: Session = Depends(get_db),
    cache: ResponseCache = Depends(get_response_cache),
):
    return cached_payload(cache, request, lambda: format_category(catalog.get_category(db, category_id)))

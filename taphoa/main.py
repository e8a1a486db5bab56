"""
Tạp Hóa storefront API - main FastAPI application.

Mounts the auth, catalog, cart, order and admin routers under /api and
renders every error as {"error": "<message>"}.

Run locally with:  python -m taphoa.main
"""

import logging
import time as _time
import traceback
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response as StarletteResponse

from taphoa import __version__, config
from taphoa.database import get_db, init_db
from taphoa.errors import ShopError
from taphoa.routers import ALL_ROUTERS

config.configure_logging()
logger = logging.getLogger("taphoa.main")

SERVER_ERROR_MESSAGE = "Đã xảy ra lỗi server"
UNKNOWN_ENDPOINT_MESSAGE = "Không tìm thấy API endpoint"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables if they don't exist
    try:
        init_db()
    except SQLAlchemyError as _e:
        logger.warning(
            "Could not run create_all: %s. Tables should already exist (Supabase / remote DB).",
            _e,
        )
    logger.info("Tạp Hóa API starting: env=%s", config.ENV)
    yield


app = FastAPI(
    title="Tạp Hóa Đơn Giản API",
    description="Storefront and back-office API for a small grocery shop",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _route_family(path: str) -> str:
    for family in ("auth", "categories", "products", "cart", "orders", "admin"):
        if path.startswith(f"/api/{family}"):
            return family
    return "other"


class LatencyLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every non-OPTIONS request with method, path, status and duration."""

    async def dispatch(self, request: StarletteRequest, call_next) -> StarletteResponse:
        if request.method == "OPTIONS":
            return await call_next(request)
        t0 = _time.perf_counter()
        response = await call_next(request)
        duration_ms = round((_time.perf_counter() - t0) * 1000, 1)
        path = request.url.path
        logger.info(
            "[LATENCY] %s %s -> %d  %.1fms  [%s]",
            request.method, path, response.status_code, duration_ms, _route_family(path),
        )
        return response


app.add_middleware(LatencyLoggingMiddleware)

for _router in ALL_ROUTERS:
    app.include_router(_router)


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return _error(404, UNKNOWN_ENDPOINT_MESSAGE)
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return _error(400, "Dữ liệu không hợp lệ")
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    reason = first.get("msg", "")
    message = f"Dữ liệu không hợp lệ: {field}: {reason}" if field else f"Dữ liệu không hợp lệ: {reason}"
    return _error(400, message)


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s: %s\n%s", request.method, request.url.path, exc, traceback.format_exc())
    return _error(500, SERVER_ERROR_MESSAGE)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled exceptions and return 500."""
    logger.error("Unhandled exception: %s\n%s", exc, traceback.format_exc())
    return _error(500, SERVER_ERROR_MESSAGE)


@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as e:
        logger.warning("health: database check failed: %s", e)
        database = "unavailable"
    return {"status": "OK", "message": "Tạp Hóa API đang hoạt động", "database": database}


if __name__ == "__main__":
    uvicorn.run("taphoa.main:app", host="0.0.0.0", port=config.PORT, reload=config.is_development())

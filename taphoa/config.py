"""
Environment configuration for the storefront service.

Values come from the process environment; a .env file in the working
directory is loaded first so local development needs no exported vars.
Supabase Postgres is reached through DATABASE_URL, Supabase Storage through
SUPABASE_URL + SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_KEY).
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()

ENV: str = os.getenv("ENV", "development").lower()
PORT: int = int(os.getenv("PORT", "3001"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL: str = os.getenv("DATABASE_URL") or "sqlite:///./taphoa.db"

JWT_SECRET: str = os.getenv("JWT_SECRET") or "taphoa-dev-secret-change-me-in-production"
JWT_ALGORITHM: str = "HS256"
JWT_EXPIRES_DAYS: int = int(os.getenv("JWT_EXPIRES_DAYS", "7"))

CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "60"))
REDIS_URL: str = os.getenv("UPSTASH_REDIS_URL") or os.getenv("REDIS_URL") or ""

SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY", "")
SUPABASE_STORAGE_BUCKET: str = os.getenv("SUPABASE_STORAGE_BUCKET", "product-images")

MAX_UPLOAD_MB: int = int(os.getenv("MAX_UPLOAD_MB", "5"))
MAX_UPLOAD_BYTES: int = MAX_UPLOAD_MB * 1024 * 1024

ENABLE_DEMO_SEED: bool = os.getenv("ENABLE_DEMO_SEED", "1") == "1"


def is_development() -> bool:
    return ENV in ("development", "dev", "")


def configure_logging() -> None:
    """Configure root logging once; later calls are no-ops."""
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

"""
Supabase Storage client for product images.

Objects go to {bucket}/products/<uuid><ext> through the Storage REST API
and are served from the bucket's public URL:

  POST {SUPABASE_URL}/storage/v1/object/{bucket}/{path}
  GET  {SUPABASE_URL}/storage/v1/object/public/{bucket}/{path}
"""

import logging
import os
import uuid
from typing import Optional

import httpx

from taphoa import config
from taphoa.errors import ServiceUnavailable, ValidationFailed

logger = logging.getLogger("taphoa.storage")

IMAGE_CONTENT_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

_storage_client: Optional["SupabaseStorageClient"] = None


class SupabaseStorageClient:
    def __init__(self, base_url: str, key: str, bucket: str, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
            },
            timeout=30.0,
            transport=transport,
        )

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    def upload_image(self, content: bytes, filename: Optional[str], content_type: Optional[str]) -> str:
        """Store an image and return its public URL."""
        if content_type not in IMAGE_CONTENT_TYPES:
            raise ValidationFailed("Chỉ chấp nhận ảnh JPG, PNG, WEBP hoặc GIF")
        ext = os.path.splitext(filename or "")[1].lower() or IMAGE_CONTENT_TYPES[content_type]
        path = f"products/{uuid.uuid4().hex}{ext}"
        logger.info("storage: method=upload_image path=%s size=%s", path, len(content))
        try:
            resp = self._client.post(
                f"/storage/v1/object/{self.bucket}/{path}",
                content=content,
                headers={"Content-Type": content_type, "x-upsert": "true"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("storage: method=upload_image path=%s result=error error=%s", path, e)
            raise ServiceUnavailable("Tải ảnh lên thất bại") from e
        logger.info("storage: method=upload_image path=%s result=success", path)
        return self.public_url(path)


def get_storage_client() -> SupabaseStorageClient:
    """FastAPI dependency: the singleton storage client, 503 when Supabase is not configured."""
    global _storage_client
    if _storage_client is not None:
        return _storage_client
    if not config.SUPABASE_URL or not config.SUPABASE_KEY:
        logger.debug("SUPABASE_URL or key not set, image upload unavailable")
        raise ServiceUnavailable("Chưa cấu hình lưu trữ ảnh")
    _storage_client = SupabaseStorageClient(config.SUPABASE_URL, config.SUPABASE_KEY, config.SUPABASE_STORAGE_BUCKET)
    return _storage_client

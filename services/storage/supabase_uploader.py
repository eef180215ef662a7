"""
Supabase Storage Uploader
=========================
Uploads artifacts through the Supabase Storage REST API.
"""

from typing import Optional
from urllib.parse import quote

import httpx
from loguru import logger

from services.render_job.errors import UploadError

from .base import ArtifactUploader


class SupabaseStorageUploader(ArtifactUploader):
    """Supabase Storage bucket client (upsert uploads, public URLs)."""

    def __init__(
        self,
        supabase_url: str,
        service_key: str,
        bucket: str = "videos",
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not supabase_url or not service_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required")
        self.supabase_url = supabase_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.timeout = timeout
        self._transport = transport

    def _object_path(self, key: str) -> str:
        return f"{quote(self.bucket)}/{quote(key.lstrip('/'))}"

    def public_url(self, key: str) -> str:
        return f"{self.supabase_url}/storage/v1/object/public/{self._object_path(key)}"

    async def upload(self, data: bytes, key: str, content_type: str) -> str:
        url = f"{self.supabase_url}/storage/v1/object/{self._object_path(key)}"
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": content_type,
            "x-upsert": "true",
        }

        logger.info(f"[Storage] Uploading {len(data)} bytes to {self.bucket}/{key}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, content=data, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"[Storage] Upload request failed: {e}")
            raise UploadError(f"Upload failed: {e}") from e

        if response.status_code not in (200, 201):
            logger.error(f"[Storage] Upload rejected: {response.status_code} {response.text}")
            raise UploadError(f"Upload failed: {response.status_code} {response.text[:500]}")

        public_url = self.public_url(key)
        logger.info(f"[Storage] Upload complete: {public_url}")
        return public_url

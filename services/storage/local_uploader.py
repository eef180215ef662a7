"""
Local Directory Uploader
========================
Development storage backend writing artifacts under a local directory.
"""

from pathlib import Path
from typing import Optional

from loguru import logger

from services.render_job.errors import UploadError

from .base import ArtifactUploader


class LocalDirectoryUploader(ArtifactUploader):
    """Stores objects as files under `root`; URLs are `base_url/<key>`."""

    def __init__(self, root: Path, base_url: Optional[str] = None):
        self.root = Path(root)
        self.base_url = (base_url or self.root.resolve().as_uri()).rstrip("/")

    def _object_path(self, key: str) -> Path:
        path = (self.root / key.lstrip("/")).resolve()
        if self.root.resolve() not in path.parents:
            raise UploadError(f"Storage key escapes the storage root: {key}")
        return path

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key.lstrip('/')}"

    async def upload(self, data: bytes, key: str, content_type: str) -> str:
        path = self._object_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise UploadError(f"Upload failed: {e}") from e
        logger.info(f"[Storage] Stored {len(data)} bytes ({content_type}) at {path}")
        return self.public_url(key)

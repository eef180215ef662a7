"""
Storage Services

Artifact uploaders for durable storage.
"""

from typing import Optional

from config.settings import ServiceSettings

from .base import ArtifactUploader
from .local_uploader import LocalDirectoryUploader
from .supabase_uploader import SupabaseStorageUploader


def create_uploader(settings: Optional[ServiceSettings] = None) -> ArtifactUploader:
    """Build the uploader selected by STORAGE_BACKEND."""
    settings = settings or ServiceSettings.from_env()
    if settings.storage_backend == "local":
        if settings.local_storage_dir is None:
            raise ValueError("LOCAL_STORAGE_DIR is required for the local storage backend")
        return LocalDirectoryUploader(settings.local_storage_dir, settings.local_storage_base_url)
    if settings.storage_backend == "supabase":
        return SupabaseStorageUploader(
            supabase_url=settings.supabase_url,
            service_key=settings.supabase_service_key,
            bucket=settings.storage_bucket,
        )
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


__all__ = [
    "ArtifactUploader",
    "LocalDirectoryUploader",
    "SupabaseStorageUploader",
    "create_uploader",
]

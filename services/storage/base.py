"""
Base Artifact Uploader
======================
Abstract base class for durable storage backends.
"""

from abc import ABC, abstractmethod


class ArtifactUploader(ABC):
    """
    Pushes finished video bytes to durable storage.

    Uploads always overwrite the object at the same key, so retrying an
    upload is safe. `public_url` is a pure lookup with no side effects.
    """

    @abstractmethod
    async def upload(self, data: bytes, key: str, content_type: str) -> str:
        """
        Upload `data` under `key`, overwriting any existing object.

        Returns:
            Public URL of the uploaded object

        Raises:
            UploadError: On network, permission or storage-service failure
        """
        pass

    @abstractmethod
    def public_url(self, key: str) -> str:
        """Resolve the public URL of `key`."""
        pass

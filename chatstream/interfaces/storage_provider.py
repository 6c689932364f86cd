"""
Storage provider interface.

Defines the contract for blob storage of uploaded files.
"""

from abc import ABC, abstractmethod
from typing import Optional


class IStorageProvider(ABC):
    """Abstract interface for file storage."""

    @abstractmethod
    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Store a blob.

        Args:
            path: Blob name relative to the storage root
            data: File content
            content_type: Optional MIME type

        Returns:
            The blob name
        """
        pass

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """
        Read a blob.

        Raises:
            NotFoundError: If the blob does not exist
        """
        pass

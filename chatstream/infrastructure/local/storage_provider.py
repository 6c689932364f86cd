"""
Local file system storage provider.
"""

from pathlib import Path
from typing import Optional

from chatstream.core.exceptions import InfrastructureError, NotFoundError, ValidationError
from chatstream.interfaces.storage_provider import IStorageProvider


class LocalStorageProvider(IStorageProvider):
    """Blob store rooted at `base_path`. Blob names are relative paths."""

    def __init__(self, base_path: Optional[str] = None):
        self.base_path = Path(base_path or "./storage").resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _blob_path(self, name: str) -> Path:
        resolved = (self.base_path / name).resolve()
        if self.base_path not in resolved.parents:
            raise ValidationError(f"Blob name escapes storage root: {name}", missing=[])
        return resolved

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        target = self._blob_path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise InfrastructureError(f"Failed to store {path}: {e}")
        return path

    async def download(self, path: str) -> bytes:
        source = self._blob_path(path)
        if not source.is_file():
            raise NotFoundError(f"File not found: {path}")
        try:
            return source.read_bytes()
        except OSError as e:
            raise InfrastructureError(f"Failed to read {path}: {e}")

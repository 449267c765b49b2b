"""
Object storage for uploaded report files
"""

from abc import ABC, abstractmethod
from pathlib import Path
import asyncio
from core.config import settings
from core.exceptions import StoreError, StoreUnavailableError
import logging

logger = logging.getLogger(__name__)


class ObjectStorage(ABC):
    """Write-only content store keyed by a relative path."""

    @abstractmethod
    async def put(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        """
        Store bytes under path.

        Returns:
            The path the object was stored under
        """
        pass


class LocalObjectStorage(ObjectStorage):
    """
    Store objects as files below a root directory.

    Paths are relative ("uploads/<user>/<ts>_<name>"); anything resolving
    outside the root is refused.
    """

    def __init__(self, root: str = None):
        self.root = Path(root or settings.STORAGE_ROOT).resolve()

    def _target(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root != target and self.root not in target.parents:
            raise StoreError(
                "Storage path escapes the storage root",
                context={"operation": "put", "path": path}
            )
        return target

    async def put(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        target = self._target(path)

        def write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

        try:
            await asyncio.to_thread(write)
        except OSError as e:
            raise StoreUnavailableError(
                "Failed to write uploaded file",
                context={"operation": "put", "path": path, "size": len(content)},
                original_exception=e
            )

        logger.info(f"Stored {len(content)} bytes at {path} ({content_type})")
        return path

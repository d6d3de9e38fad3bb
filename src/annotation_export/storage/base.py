"""
Storage gateway contract.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..models import UploadResult


class StorageGateway(ABC):
    """Backend that stores uploaded files and serves them under a public URL."""

    @abstractmethod
    def upload(self,
               data: bytes,
               directory: str,
               filename: str,
               options: Optional[Dict[str, Any]] = None) -> UploadResult:
        """
        Store ``data`` as ``directory/filename``.

        Args:
            data: File contents
            directory: Storage prefix (e.g. ``exports/<id>``)
            filename: Final file name including extension
            options: Backend-specific options such as ``content_type``

        Returns:
            UploadResult with the public URL; width/height are 0 for non-images
        """
        pass

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete one stored file; a missing file is not an error."""
        pass

    @abstractmethod
    def delete_directory(self, prefix: str) -> None:
        """Delete everything stored under ``prefix``."""
        pass

"""
Local-disk storage gateway.
"""

import logging
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

from ..config import UPLOAD_BASE_URL, UPLOAD_DIR
from ..exceptions import InvalidRequestError
from ..models import UploadResult
from .base import StorageGateway

logger = logging.getLogger(__name__)


class LocalStorageGateway(StorageGateway):
    """Stores files under ``base_dir`` and serves them from ``base_url``."""

    def __init__(self, base_dir: str = UPLOAD_DIR, base_url: str = UPLOAD_BASE_URL):
        self.base_dir = Path(base_dir).resolve()
        self.base_url = base_url.rstrip("/")
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def upload(self,
               data: bytes,
               directory: str,
               filename: str,
               options: Optional[Dict[str, Any]] = None) -> UploadResult:
        target = self._resolve(f"{directory}/{filename}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

        relative = target.relative_to(self.base_dir).as_posix()
        logger.info(f"Stored {len(data)} bytes at {target}")
        return UploadResult(url=f"{self.base_url}/{relative}", width=0, height=0)

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target.is_file():
            target.unlink()

    def delete_directory(self, prefix: str) -> None:
        target = self._resolve(prefix)
        if target == self.base_dir:
            raise InvalidRequestError("Refusing to delete the storage root")
        if target.is_dir():
            shutil.rmtree(target)

    def _resolve(self, relative_path: str) -> Path:
        """Map a storage path to disk, rejecting anything outside base_dir."""
        target = (self.base_dir / relative_path.lstrip("/")).resolve()
        if target != self.base_dir and self.base_dir not in target.parents:
            raise InvalidRequestError(f"Storage path escapes the upload directory: {relative_path}")
        return target

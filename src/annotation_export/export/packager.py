"""
Packager - zips an export directory and publishes it through the storage gateway.
"""

import logging
import zipfile
from pathlib import Path
from typing import Union

from ..models import UploadResult
from ..storage import StorageGateway

logger = logging.getLogger(__name__)

EXPORTS_DIRECTORY = "exports"


class Packager:
    """Creates deflate-compressed archives and uploads them."""

    def __init__(self, storage: StorageGateway, compression_level: int = 9):
        self.storage = storage
        self.compression_level = compression_level

    def create_archive(self, source_dir: Union[str, Path], archive_path: Union[str, Path]) -> Path:
        """
        Zip ``source_dir`` preserving paths relative to it.

        Args:
            source_dir: Directory to compress (must not contain archive_path)
            archive_path: Path of the .zip to create

        Returns:
            Path to the archive
        """
        source_dir = Path(source_dir)
        archive_path = Path(archive_path)
        if not source_dir.is_dir():
            raise FileNotFoundError(f"Export directory not found: {source_dir}")
        archive_path.parent.mkdir(parents=True, exist_ok=True)

        entries = 0
        with zipfile.ZipFile(archive_path, 'w',
                             compression=zipfile.ZIP_DEFLATED,
                             compresslevel=self.compression_level) as zf:
            for path in sorted(source_dir.rglob('*')):
                # Directory entries keep empty split folders in the archive
                zf.write(path, path.relative_to(source_dir).as_posix())
                entries += 1

        logger.info(f"Created archive {archive_path} ({entries} entries, {archive_path.stat().st_size} bytes)")
        return archive_path

    def publish(self, archive_path: Union[str, Path], export_id: str, archive_name: str) -> UploadResult:
        """Upload an archive under ``exports/<export_id>.zip``."""
        data = Path(archive_path).read_bytes()
        result = self.storage.upload(
            data,
            EXPORTS_DIRECTORY,
            f"{export_id}.zip",
            {'content_type': 'application/zip', 'original_name': archive_name},
        )
        logger.info(f"Published export {export_id} at {result.url}")
        return result

    def package(self, source_dir: Union[str, Path], archive_path: Union[str, Path],
                export_id: str) -> UploadResult:
        archive_path = self.create_archive(source_dir, archive_path)
        return self.publish(archive_path, export_id, archive_path.name)

"""
Runtime configuration read from environment variables.
"""

import logging
import os

# Temporary working area for export trees and archives
EXPORT_TEMP_DIR = os.environ.get("EXPORT_TEMP_DIR", os.path.join(os.getcwd(), "temp", "exports"))

# Relative Image.file_path values are resolved against this directory
IMAGE_ROOT = os.environ.get("IMAGE_ROOT", os.getcwd())

# Storage gateway
STORAGE_PROVIDER = os.environ.get("STORAGE_PROVIDER", "local")
UPLOAD_DIR = os.environ.get("UPLOAD_DIR", os.path.join(os.getcwd(), "uploads"))
UPLOAD_BASE_URL = os.environ.get("UPLOAD_BASE_URL", "/uploads")

# Informational lifetime of a download link
EXPORT_LINK_TTL_DAYS = int(os.environ.get("EXPORT_LINK_TTL_DAYS", "7"))

# SQLite dataset repository
DATASET_DB_PATH = os.environ.get("DATASET_DB_PATH", os.path.join(os.getcwd(), "data", "datasets.db"))

# Per-image tqdm progress bars in the codecs
EXPORT_SHOW_PROGRESS = os.environ.get("EXPORT_SHOW_PROGRESS", "false").lower() == "true"

# Split ratios must sum to 1 within this tolerance
RATIO_TOLERANCE = 0.001


def setup_logging(level: int = logging.INFO) -> None:
    """Configures logging for the application."""
    logging.basicConfig(
        level=level,
        format='[%(asctime)s] %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

"""
SQLite implementation of the dataset repository.
Thread-safe implementation with one connection per thread.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import DATASET_DB_PATH
from ..exceptions import NotFoundError
from ..models import Dataset, DatasetImage, DatasetSplit, DatasetStatus, ImageCounts
from .base import DatasetRepository


class SQLiteDatasetRepository(DatasetRepository):
    """
    Datasets and split assignments persisted in SQLite.

    Every thread opens its own connection to ``db_path``; ``":memory:"`` would
    therefore give each thread a separate empty database and is not supported.
    """

    def __init__(self, db_path: str = DATASET_DB_PATH):
        """Initialize database connection and create tables if needed."""
        self.db_path = db_path
        self._local = threading.local()
        self._ensure_directory()
        self._init_schema()

    def _ensure_directory(self):
        """Ensure the database directory exists."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get a thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=30.0
            )
            connection.row_factory = sqlite3.Row
            # Needed for the dataset_images cascade
            connection.execute("PRAGMA foreign_keys = ON")
            self._local.connection = connection
        return self._local.connection

    @contextmanager
    def _cursor(self):
        """Context manager for database cursor with automatic commit/rollback."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _init_schema(self):
        """Initialize database schema."""
        with self._cursor() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS datasets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    preprocessing_settings TEXT,
                    augmentation_settings TEXT,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS dataset_images (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    dataset_id INTEGER NOT NULL,
                    image_id INTEGER NOT NULL,
                    split TEXT NOT NULL CHECK (split IN ('train', 'valid', 'test')),
                    UNIQUE (dataset_id, image_id),
                    FOREIGN KEY (dataset_id) REFERENCES datasets(id) ON DELETE CASCADE
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_datasets_project_id ON datasets(project_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_dataset_images_split ON dataset_images(dataset_id, split)")

    def _row_to_dataset(self, row: sqlite3.Row) -> Dataset:
        """Convert a database row to a Dataset, parsing JSON settings."""
        return Dataset(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            status=DatasetStatus(row["status"]),
            preprocessing=json.loads(row["preprocessing_settings"]) if row["preprocessing_settings"] else {},
            augmentation=json.loads(row["augmentation_settings"]) if row["augmentation_settings"] else {},
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # ==================== Dataset CRUD Operations ====================

    def create(self,
               project_id: int,
               name: str,
               preprocessing: Optional[Dict[str, Any]] = None,
               augmentation: Optional[Dict[str, Any]] = None) -> Dataset:
        now = datetime.now().isoformat()

        with self._cursor() as cursor:
            cursor.execute("""
                INSERT INTO datasets (
                    project_id, name, status, preprocessing_settings,
                    augmentation_settings, created_at, updated_at
                ) VALUES (?, ?, 'pending', ?, ?, ?, ?)
            """, (
                project_id,
                name,
                json.dumps(preprocessing or {}),
                json.dumps(augmentation or {}),
                now,
                now
            ))
            dataset_id = cursor.lastrowid

        return self.find_by_id(dataset_id)

    def find_by_id(self, dataset_id: int) -> Dataset:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM datasets WHERE id = ?", (dataset_id,))
            row = cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Dataset {dataset_id} not found")
        return self._row_to_dataset(row)

    def find_by_project(self, project_id: int) -> List[Dataset]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM datasets WHERE project_id = ? ORDER BY created_at DESC, id DESC",
                (project_id,)
            )
            return [self._row_to_dataset(row) for row in cursor.fetchall()]

    def update_status(self, dataset_id: int, status: DatasetStatus) -> Dataset:
        now = datetime.now().isoformat()

        with self._cursor() as cursor:
            cursor.execute("""
                UPDATE datasets
                SET status = ?, updated_at = ?
                WHERE id = ?
            """, (DatasetStatus(status).value, now, dataset_id))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Dataset {dataset_id} not found")

        return self.find_by_id(dataset_id)

    def delete(self, dataset_id: int) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM datasets WHERE id = ?", (dataset_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Dataset {dataset_id} not found")

    # ==================== Split Assignments ====================

    def add_image(self, dataset_id: int, image_id: int, split: DatasetSplit) -> None:
        self._require(dataset_id)
        with self._cursor() as cursor:
            cursor.execute("""
                INSERT INTO dataset_images (dataset_id, image_id, split)
                VALUES (?, ?, ?)
                ON CONFLICT (dataset_id, image_id) DO UPDATE SET split = excluded.split
            """, (dataset_id, image_id, DatasetSplit(split).value))

    def remove_image(self, dataset_id: int, image_id: int) -> None:
        self._require(dataset_id)
        with self._cursor() as cursor:
            cursor.execute(
                "DELETE FROM dataset_images WHERE dataset_id = ? AND image_id = ?",
                (dataset_id, image_id)
            )

    def clear_images(self, dataset_id: int) -> None:
        self._require(dataset_id)
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM dataset_images WHERE dataset_id = ?", (dataset_id,))

    def get_images(self, dataset_id: int, split: Optional[DatasetSplit] = None) -> List[DatasetImage]:
        self._require(dataset_id)
        query = "SELECT dataset_id, image_id, split FROM dataset_images WHERE dataset_id = ?"
        params: list = [dataset_id]
        if split is not None:
            query += " AND split = ?"
            params.append(DatasetSplit(split).value)
        query += " ORDER BY id"

        with self._cursor() as cursor:
            cursor.execute(query, params)
            return [
                DatasetImage(dataset_id=row["dataset_id"], image_id=row["image_id"], split=row["split"])
                for row in cursor.fetchall()
            ]

    def get_counts(self, dataset_id: int) -> ImageCounts:
        self._require(dataset_id)
        with self._cursor() as cursor:
            cursor.execute("""
                SELECT split, COUNT(*) AS n
                FROM dataset_images
                WHERE dataset_id = ?
                GROUP BY split
            """, (dataset_id,))
            per_split = {row["split"]: row["n"] for row in cursor.fetchall()}

        return ImageCounts(
            train=per_split.get("train", 0),
            valid=per_split.get("valid", 0),
            test=per_split.get("test", 0),
            total=sum(per_split.values()),
        )

    def _require(self, dataset_id: int) -> None:
        with self._cursor() as cursor:
            cursor.execute("SELECT 1 FROM datasets WHERE id = ?", (dataset_id,))
            if cursor.fetchone() is None:
                raise NotFoundError(f"Dataset {dataset_id} not found")

    def close(self) -> None:
        """Close this thread's connection."""
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            self._local.connection = None

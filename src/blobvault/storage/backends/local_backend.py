"""
Local Filesystem Storage Driver
===============================

Stores payloads as files directly under the configured root:

    {storage_path}/{quoted blob_id}

The file name is the percent-encoded blob id with a leading "." written as
``%2E``, so distinct ids never share a file and none can leave the root.
Writes go through a dot-prefixed temp file, a name no encoded id can take.

No directory sharding is applied. The storage path returned by ``store`` is
the absolute file path.
"""

import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import quote

from ...config import BACKEND_LOCAL, LocalConfig
from ...error_handling import NotFoundError, StorageReadError, StorageWriteError
from .base import StorageDriver

logger = logging.getLogger(__name__)


class LocalStorageDriver(StorageDriver):
    """Filesystem-based storage driver."""

    backend_type = BACKEND_LOCAL

    def __init__(self, config: LocalConfig):
        self.config = config
        self.base_dir = Path(config.storage_path).expanduser().resolve()
        logger.debug(f"LocalStorageDriver initialized at {self.base_dir}")

    def store(self, blob_id: str, data: bytes, mime_type: str) -> str:
        """Write the payload atomically via a temp file."""
        file_path = self._get_file_path(blob_id)
        temp_path = None

        try:
            self._ensure_directory()
            with tempfile.NamedTemporaryFile(
                dir=self.base_dir, prefix=".", suffix=".tmp", delete=False
            ) as handle:
                temp_path = Path(handle.name)
                handle.write(data)
            temp_path.replace(file_path)
        except OSError as e:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink()
            raise StorageWriteError(
                f"Failed to store blob in local storage: {e}",
                {"blob_id": blob_id, "path": str(file_path)},
            ) from e

        logger.debug(f"Wrote blob {blob_id} ({len(data)} bytes) to {file_path}")
        return str(file_path)

    def retrieve(self, storage_path: str) -> bytes:
        path = Path(storage_path)
        if not path.is_file():
            raise NotFoundError(f"File not found: {storage_path}", {"path": storage_path})

        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(
                f"File not found: {storage_path}", {"path": storage_path}
            ) from e
        except OSError as e:
            raise StorageReadError(
                f"Failed to retrieve blob from local storage: {e}", {"path": storage_path}
            ) from e

    def delete(self, storage_path: str) -> bool:
        path = Path(storage_path)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageWriteError(
                f"Failed to delete blob from local storage: {e}", {"path": storage_path}
            ) from e

        logger.debug(f"Deleted blob file: {storage_path}")
        return True

    def exists(self, storage_path: str) -> bool:
        try:
            return Path(storage_path).is_file()
        except OSError:
            return False

    def size(self, storage_path: str) -> int:
        try:
            return Path(storage_path).stat().st_size
        except FileNotFoundError as e:
            raise NotFoundError(
                f"File not found: {storage_path}", {"path": storage_path}
            ) from e
        except OSError as e:
            raise StorageReadError(
                f"Failed to get blob size from local storage: {e}", {"path": storage_path}
            ) from e

    def is_configured(self) -> bool:
        """Live probe: the root must exist (or be creatable) and be writable."""
        if not self.config.storage_path:
            return False

        try:
            self._ensure_directory()
        except OSError as e:
            logger.debug(f"Local storage root unavailable: {self.base_dir} ({e})")
            return False

        return os.access(self.base_dir, os.W_OK)

    def _ensure_directory(self) -> None:
        if self.base_dir.is_dir():
            return
        if not self.config.create_directories:
            raise FileNotFoundError(f"Storage directory does not exist: {self.base_dir}")
        self.base_dir.mkdir(mode=self.config.permissions, parents=True, exist_ok=True)

    def _get_file_path(self, blob_id: str) -> Path:
        # Injective: separators and "%" are escaped, and no name starts with "."
        name = quote(blob_id, safe="")
        if name.startswith("."):
            name = "%2E" + name[1:]
        return self.base_dir / name

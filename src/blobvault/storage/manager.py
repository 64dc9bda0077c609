"""
Storage Manager
===============

Owns one driver per backend and decides where payloads go.

Selection:
    ``get_best_available_driver()`` uses the configured default backend when
    its driver reports configured, and the database driver otherwise.

Writes:
    ``store()`` makes a single attempt on the requested backend. If that write
    raises and the backend was not already ``database``, it retries once on
    the database driver. The result names the backend actually used.

Reads, deletes, exists and size:
    Dispatched by the backend tag recorded on the metadata row, with no
    fallback. The database driver is addressed by blob id, so the manager
    passes ``blob_id`` to that driver only.

Usage:
    manager = StorageManager.from_config(config, metadata_store)
    result = manager.store("abc", b"payload", "application/octet-stream")
    data = manager.retrieve(result.backend_type, result.storage_path, blob_id="abc")
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config import (
    BACKEND_DATABASE,
    BACKEND_FTP,
    BACKEND_LOCAL,
    BACKEND_S3,
    StorageConfig,
)
from ..error_handling import BlobError, ConfigurationError, ValidationError
from ..metadata import MetadataStore
from .backends import (
    DatabaseStorageDriver,
    FtpStorageDriver,
    LocalStorageDriver,
    S3StorageDriver,
    StorageDriver,
)

logger = logging.getLogger(__name__)

_TEST_PAYLOAD = b"test-blob-data"


@dataclass
class StorageResult:
    """Where a payload was physically written."""

    backend_type: str
    # Empty for the database backend, which is addressed by blob id
    storage_path: str


class StorageManager:
    """Routes blob payload operations to the right storage driver."""

    def __init__(
        self, drivers: Dict[str, StorageDriver], default_backend: str = BACKEND_DATABASE
    ):
        """
        Args:
            drivers: Driver instances keyed by backend type; must include database
            default_backend: Configured default backend name
        """
        if BACKEND_DATABASE not in drivers:
            raise ValueError("A database storage driver is required")

        self.drivers = dict(drivers)
        self.default_backend = (default_backend or BACKEND_DATABASE).lower()

    @classmethod
    def from_config(
        cls, config: StorageConfig, metadata_store: MetadataStore
    ) -> "StorageManager":
        """Build a manager holding one driver for each supported backend."""
        drivers: Dict[str, StorageDriver] = {
            BACKEND_DATABASE: DatabaseStorageDriver(metadata_store),
            BACKEND_LOCAL: LocalStorageDriver(config.local),
            BACKEND_S3: S3StorageDriver(config.s3),
            BACKEND_FTP: FtpStorageDriver(config.ftp),
        }
        return cls(drivers, default_backend=config.default_backend)

    # ── Driver resolution ─────────────────────────────────────────────

    def get_driver(self, backend_type: str) -> StorageDriver:
        """
        Get a configured driver by backend type.

        Raises:
            ValidationError: If the backend type is unknown
            ConfigurationError: If the driver lacks required settings
        """
        driver = self.drivers.get(backend_type)
        if driver is None:
            raise ValidationError(
                f"Unsupported storage backend: {backend_type}",
                {"backend": backend_type, "available": self.available_backends()},
            )

        if not driver.is_configured():
            raise ConfigurationError(
                f"Storage driver '{backend_type}' is not properly configured",
                {"backend": backend_type},
            )
        return driver

    def get_best_available_driver(self) -> StorageDriver:
        """The configured default driver if usable, otherwise the database driver."""
        configured = self.default_backend
        driver = self.drivers.get(configured)

        if driver is None:
            logger.warning(
                f"Storage: configured backend '{configured}' is not available, "
                f"falling back to database"
            )
        elif driver.is_configured():
            logger.info(f"Storage: using configured backend '{configured}'")
            return driver
        else:
            logger.warning(
                f"Storage: configured backend '{configured}' is not properly "
                f"configured, falling back to database"
            )

        return self.drivers[BACKEND_DATABASE]

    # ── Payload operations ────────────────────────────────────────────

    def store(
        self,
        blob_id: str,
        data: bytes,
        mime_type: str,
        backend_type: Optional[str] = None,
    ) -> StorageResult:
        """
        Write a payload, falling back to the database backend on failure.

        Args:
            blob_id: Blob identifier
            data: Raw payload bytes
            mime_type: Content type hint
            backend_type: Backend to use instead of the best available one

        Returns:
            StorageResult naming the backend actually used

        Raises:
            The original write error when no fallback applies or the fallback
            also fails
        """
        driver = (
            self.get_driver(backend_type)
            if backend_type
            else self.get_best_available_driver()
        )
        used = driver.get_backend_type()

        try:
            storage_path = driver.store(blob_id, data, mime_type)
        except Exception as e:
            logger.error(
                f"Storage: failed to store blob '{blob_id}' using {used} backend: {e}"
            )
            if used == BACKEND_DATABASE:
                raise

            logger.warning(f"Storage: falling back to database backend for blob '{blob_id}'")
            try:
                self.drivers[BACKEND_DATABASE].store(blob_id, data, mime_type)
            except Exception as fallback_error:
                logger.error(
                    f"Storage: database fallback also failed for blob '{blob_id}': "
                    f"{fallback_error}"
                )
                raise e
            logger.info(f"Storage: stored blob '{blob_id}' using database fallback")
            return StorageResult(backend_type=BACKEND_DATABASE, storage_path="")

        logger.info(f"Storage: stored blob '{blob_id}' using {used} backend")
        if used == BACKEND_DATABASE:
            storage_path = ""
        return StorageResult(backend_type=used, storage_path=storage_path)

    def retrieve(
        self, backend_type: str, storage_path: str, blob_id: Optional[str] = None
    ) -> bytes:
        return self._dispatch("retrieve", backend_type, storage_path, blob_id)

    def delete(
        self, backend_type: str, storage_path: str, blob_id: Optional[str] = None
    ) -> bool:
        return self._dispatch("delete", backend_type, storage_path, blob_id)

    def exists(
        self, backend_type: str, storage_path: str, blob_id: Optional[str] = None
    ) -> bool:
        """Never raises; unknown or unconfigured backends report False."""
        try:
            return self._dispatch("exists", backend_type, storage_path, blob_id)
        except BlobError:
            return False

    def size(
        self, backend_type: str, storage_path: str, blob_id: Optional[str] = None
    ) -> int:
        return self._dispatch("size", backend_type, storage_path, blob_id)

    def _dispatch(
        self,
        operation: str,
        backend_type: str,
        storage_path: str,
        blob_id: Optional[str],
    ):
        driver = self.get_driver(backend_type)
        method = getattr(driver, operation)
        if backend_type == BACKEND_DATABASE:
            return method(storage_path, blob_id=blob_id)
        return method(storage_path)

    # ── Diagnostics ───────────────────────────────────────────────────

    def available_backends(self) -> List[str]:
        return list(self.drivers)

    def current_backend(self) -> str:
        return self.default_backend

    def configured_backends(self) -> List[str]:
        """Backends whose drivers currently report configured."""
        return [name for name, driver in self.drivers.items() if driver.is_configured()]

    def is_backend_configured(self, backend_type: str) -> bool:
        driver = self.drivers.get(backend_type)
        return driver is not None and driver.is_configured()

    def test_driver(self, backend_type: str) -> Dict[str, Any]:
        """
        Round-trip a throwaway payload through one driver.

        Returns:
            Dict with ``success``, ``configured`` and either the individual
            checks (``data_integrity``, ``exists_check``, ``size_check``) or
            an ``error`` message
        """
        try:
            driver = self.get_driver(backend_type)
            test_blob_id = f"test-{uuid.uuid4().hex}"

            storage_path = driver.store(test_blob_id, _TEST_PAYLOAD, "text/plain")
            retrieved = driver.retrieve(storage_path)
            exists = driver.exists(storage_path)
            size = driver.size(storage_path)
            driver.delete(storage_path)

            return {
                "success": True,
                "configured": True,
                "data_integrity": retrieved == _TEST_PAYLOAD,
                "exists_check": exists,
                "size_check": size == len(_TEST_PAYLOAD),
                "message": "Driver test completed successfully",
            }
        except Exception as e:
            logger.warning(f"Storage: driver test failed for '{backend_type}': {e}")
            return {
                "success": False,
                "configured": self.is_backend_configured(backend_type),
                "error": str(e),
                "message": f"Driver test failed: {e}",
            }

    def close(self) -> None:
        for driver in self.drivers.values():
            driver.close()

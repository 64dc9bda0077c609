"""
Storage Driver Contract
=======================

Abstract interface implemented by every physical storage backend
(database, local filesystem, S3-compatible HTTP, FTP).

A driver only moves raw bytes. Hashing, deduplication and metadata are the
blob service's concern, and any backend-specific encoding (base64 for the
database backend) stays inside the driver.
"""

from abc import ABC, abstractmethod


class StorageDriver(ABC):
    """
    Abstract base class for storage drivers.

    All storage paths returned by :meth:`store` are opaque strings that can be
    passed back to the other operations of the same driver.
    """

    #: One of the fixed backend identifiers ("database", "local", "s3", "ftp")
    backend_type: str = ""

    @abstractmethod
    def store(self, blob_id: str, data: bytes, mime_type: str) -> str:
        """
        Write a payload.

        Args:
            blob_id: Unique identifier for the blob
            data: Raw bytes to store
            mime_type: Content type hint

        Returns:
            Opaque storage path for the written payload

        Raises:
            StorageWriteError: On I/O or protocol failure
        """
        pass

    @abstractmethod
    def retrieve(self, storage_path: str) -> bytes:
        """
        Read a payload back exactly as written.

        Raises:
            NotFoundError: If nothing is stored at the path
            StorageReadError: On any other failure
        """
        pass

    @abstractmethod
    def delete(self, storage_path: str) -> bool:
        """
        Delete a payload.

        Returns:
            True if deleted, False if nothing existed

        Raises:
            StorageWriteError: On transport failure
        """
        pass

    @abstractmethod
    def exists(self, storage_path: str) -> bool:
        """Check whether a payload exists. Never raises."""
        pass

    @abstractmethod
    def size(self, storage_path: str) -> int:
        """
        Byte length of the payload as observed by the backend.

        Raises:
            NotFoundError: If nothing is stored at the path
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """True only if all mandatory settings are present and usable."""
        pass

    def get_backend_type(self) -> str:
        return self.backend_type

    def close(self) -> None:
        """Release any held resources. Default implementation does nothing."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

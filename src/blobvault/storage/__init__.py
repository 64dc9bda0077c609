"""
Storage Layer
=============

- BlobService: blob lifecycle (hashing, dedup, integrity, transactions)
- StorageManager: driver selection, write fallback and read dispatch
- backends: the driver contract and the four storage drivers

Usage:
    from blobvault.storage import BlobService, StorageManager

    manager = StorageManager.from_config(config, metadata_store)
    service = BlobService(metadata_store, manager, config)
"""

from .backends import (
    DatabaseStorageDriver,
    FtpStorageDriver,
    LocalStorageDriver,
    S3StorageDriver,
    StorageDriver,
)
from .blob_service import BlobContent, BlobService
from .manager import StorageManager, StorageResult

__all__ = [
    "BlobService",
    "BlobContent",
    "StorageManager",
    "StorageResult",
    "StorageDriver",
    "DatabaseStorageDriver",
    "LocalStorageDriver",
    "S3StorageDriver",
    "FtpStorageDriver",
]

"""
blobvault - Blob storage with interchangeable database, filesystem, S3 and FTP backends.

A single API for storing, retrieving and deleting binary objects. Payloads go
to one of several physical backends while metadata lives in a relational
database.

Key Features:
- Four storage drivers behind one contract (database, local, S3, FTP)
- S3 access over plain HTTP with built-in SigV4 request signing
- Automatic fallback to database storage when a write fails
- MD5-based deduplication and read-time integrity verification
- Metadata and payload committed together

Quick Start:
    >>> from blobvault import create_blob_service
    >>>
    >>> service = create_blob_service()
    >>>
    >>> # Store some content
    >>> metadata = service.store(b"Hello World", mime_type="text/plain")
    >>>
    >>> # Retrieve it (checksum verified)
    >>> blob = service.retrieve(metadata.id)
    >>>
    >>> # Storage statistics
    >>> stats = service.get_storage_stats()
"""

from .config import (
    FtpConfig,
    LocalConfig,
    MetadataConfig,
    S3Config,
    StorageConfig,
)
from .core import create_blob_service
from .error_handling import (
    BlobError,
    ConfigurationError,
    ConflictError,
    IntegrityError,
    NotFoundError,
    StorageReadError,
    StorageWriteError,
    ValidationError,
    error_response,
)
from .metadata import BlobMetadata, MetadataStore
from .storage import BlobContent, BlobService, StorageManager, StorageResult

__version__ = "0.1.0"

__all__ = [
    # Wiring
    "create_blob_service",
    "BlobService",
    "BlobContent",
    "StorageManager",
    "StorageResult",
    # Metadata
    "BlobMetadata",
    "MetadataStore",
    # Configuration
    "StorageConfig",
    "LocalConfig",
    "S3Config",
    "FtpConfig",
    "MetadataConfig",
    # Errors
    "BlobError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "IntegrityError",
    "StorageWriteError",
    "StorageReadError",
    "ConfigurationError",
    "error_response",
    # Version info
    "__version__",
]

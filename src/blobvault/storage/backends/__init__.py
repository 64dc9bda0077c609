"""
Storage Drivers
===============

One driver per physical medium, all implementing :class:`StorageDriver`:

- DatabaseStorageDriver: base64 payloads in the ``blob_data`` table
- LocalStorageDriver: flat files under a local directory
- S3StorageDriver: S3-compatible object storage over signed HTTP requests
- FtpStorageDriver: files on an FTP/FTPS server

Usage:
    from blobvault.storage.backends import LocalStorageDriver
    from blobvault.config import LocalConfig

    driver = LocalStorageDriver(LocalConfig(storage_path="./blobs"))
    path = driver.store("abc", b"payload", "application/octet-stream")
"""

from .base import StorageDriver
from .database_backend import DatabaseStorageDriver
from .ftp_backend import FtpFilesystem, FtpStorageDriver
from .local_backend import LocalStorageDriver
from .s3_backend import S3StorageDriver
from .signing import EMPTY_PAYLOAD_HASH, SignatureV4Signer

__all__ = [
    "StorageDriver",
    "DatabaseStorageDriver",
    "LocalStorageDriver",
    "S3StorageDriver",
    "FtpStorageDriver",
    "FtpFilesystem",
    "SignatureV4Signer",
    "EMPTY_PAYLOAD_HASH",
]

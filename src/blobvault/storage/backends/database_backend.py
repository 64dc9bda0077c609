"""
Database Storage Driver
=======================

Stores payloads as base64 text in the ``blob_data`` table, one row per blob.

The physical address of a payload is the blob id itself, so the read-side
operations accept an extra ``blob_id`` keyword. The storage manager passes it
for this backend only; the returned storage path (the row id) is still
honoured when no blob id is given.
"""

import base64
import binascii
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ...config import BACKEND_DATABASE
from ...error_handling import NotFoundError, StorageReadError, StorageWriteError
from ...metadata import BlobDataRecord, MetadataStore
from ...utils import encoded_size
from .base import StorageDriver

logger = logging.getLogger(__name__)


class DatabaseStorageDriver(StorageDriver):
    """Payload storage inside the metadata database."""

    backend_type = BACKEND_DATABASE

    def __init__(self, metadata_store: MetadataStore):
        """
        Args:
            metadata_store: Store whose engine and transaction scope are shared,
                so payload writes commit together with the metadata record
        """
        self.metadata_store = metadata_store

    def store(self, blob_id: str, data: bytes, mime_type: str) -> str:
        """Insert the base64-encoded payload and return its row id."""
        encoded = base64.b64encode(data).decode("ascii")
        try:
            with self.metadata_store.session_scope() as session:
                record = BlobDataRecord(blob_id=blob_id, data=encoded)
                session.add(record)
                session.flush()
                row_id = record.id
        except SQLAlchemyError as e:
            raise StorageWriteError(
                f"Failed to store blob in database: {e}",
                {"blob_id": blob_id, "backend": self.backend_type},
            ) from e

        logger.debug(f"Stored blob {blob_id} ({len(data)} bytes) in blob_data row {row_id}")
        return str(row_id)

    def retrieve(self, storage_path: str, blob_id: Optional[str] = None) -> bytes:
        try:
            record = self._find(storage_path, blob_id)
        except SQLAlchemyError as e:
            raise StorageReadError(
                f"Failed to retrieve blob from database: {e}",
                {"blob_id": blob_id, "storage_path": storage_path},
            ) from e

        if record is None:
            raise NotFoundError(
                f"Blob not found in database storage: {blob_id or storage_path}",
                {"blob_id": blob_id, "storage_path": storage_path},
            )

        try:
            return base64.b64decode(record.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise StorageReadError(
                f"Corrupt base64 payload for blob {record.blob_id}: {e}",
                {"blob_id": record.blob_id},
            ) from e

    def delete(self, storage_path: str, blob_id: Optional[str] = None) -> bool:
        try:
            with self.metadata_store.session_scope() as session:
                record = self._find(storage_path, blob_id, session=session)
                if record is None:
                    return False
                session.delete(record)
                session.flush()
        except SQLAlchemyError as e:
            raise StorageWriteError(
                f"Failed to delete blob from database: {e}",
                {"blob_id": blob_id, "storage_path": storage_path},
            ) from e

        logger.debug(f"Deleted database payload for {blob_id or storage_path}")
        return True

    def exists(self, storage_path: str, blob_id: Optional[str] = None) -> bool:
        try:
            return self._find(storage_path, blob_id) is not None
        except SQLAlchemyError:
            return False

    def size(self, storage_path: str, blob_id: Optional[str] = None) -> int:
        """Derive the decoded size from the encoded length."""
        try:
            record = self._find(storage_path, blob_id)
        except SQLAlchemyError as e:
            raise StorageReadError(
                f"Failed to get blob size from database: {e}",
                {"blob_id": blob_id, "storage_path": storage_path},
            ) from e

        if record is None:
            raise NotFoundError(
                f"Blob not found in database storage: {blob_id or storage_path}",
                {"blob_id": blob_id, "storage_path": storage_path},
            )
        return encoded_size(record.data)

    def is_configured(self) -> bool:
        # No external dependency beyond the metadata database
        return True

    def _find(self, storage_path: str, blob_id: Optional[str], session=None):
        if session is None:
            with self.metadata_store.session_scope() as own_session:
                return self._find(storage_path, blob_id, session=own_session)

        if blob_id:
            query = select(BlobDataRecord).where(BlobDataRecord.blob_id == blob_id)
        elif storage_path and storage_path.isdigit():
            query = select(BlobDataRecord).where(BlobDataRecord.id == int(storage_path))
        else:
            return None
        return session.execute(query).scalars().first()

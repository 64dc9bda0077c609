"""
BlobService - Blob Lifecycle Orchestration
==========================================

Ties content hashing, deduplication, metadata persistence and the storage
manager together.

Features:
- MD5 checksums computed at write time and re-verified on every read
- Content-addressable deduplication for auto-generated ids
- Metadata insert and physical write committed as one transaction
- Idempotent delete
- Integrity auditing (dangling rows, size and checksum mismatches)

Usage:
    from blobvault import create_blob_service

    service = create_blob_service()

    metadata = service.store(b"Hello World", mime_type="text/plain")
    blob = service.retrieve(metadata.id)
    assert blob.content == b"Hello World"

    service.delete(metadata.id)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from ..config import BACKEND_DATABASE, StorageConfig
from ..error_handling import (
    BlobError,
    ConflictError,
    IntegrityError,
    NotFoundError,
    StorageWriteError,
    ValidationError,
    operation_context,
)
from ..metadata import BlobMetadata, MetadataStore
from ..utils import compute_md5, format_bytes, generate_blob_id
from .manager import StorageManager, StorageResult

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
MAX_BLOB_ID_LENGTH = 255


@dataclass
class BlobContent:
    """A retrieved payload together with its metadata."""

    content: bytes
    metadata: BlobMetadata


class BlobService:
    """
    End-to-end blob storage operations.

    Attributes:
        metadata_store: Persistence for metadata rows
        storage_manager: Driver selection and payload routing
        config: Upload limits (``max_file_size``, ``allowed_mime_types``)
    """

    def __init__(
        self,
        metadata_store: MetadataStore,
        storage_manager: StorageManager,
        config: Optional[StorageConfig] = None,
    ):
        self.metadata_store = metadata_store
        self.storage_manager = storage_manager
        self.config = config or StorageConfig()

    def store(
        self,
        content: Union[bytes, str],
        blob_id: Optional[str] = None,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
        preferred_backend: Optional[str] = None,
    ) -> BlobMetadata:
        """
        Store a blob.

        Without an explicit id a fresh one is generated and identical content
        (same checksum and size) that still passes an integrity re-read is
        returned instead of being stored again. Explicit ids are never
        deduplicated.

        Args:
            content: Raw bytes (text is encoded as UTF-8)
            blob_id: Optional caller-supplied id
            filename: Original filename
            mime_type: Content type (defaults to application/octet-stream)
            preferred_backend: Backend to use instead of the configured default

        Returns:
            Metadata of the stored (or deduplicated) blob

        Raises:
            ValidationError: Invalid id, oversize content, disallowed MIME type
                or unknown backend
            ConflictError: If the explicit id already exists
            ConfigurationError: If the preferred backend is not configured
            StorageWriteError: If the payload could not be written anywhere
        """
        if isinstance(content, str):
            content = content.encode("utf-8")
        mime_type = mime_type or DEFAULT_MIME_TYPE

        with operation_context("store blob", blob_id=blob_id, backend=preferred_backend):
            self._validate_upload(content, blob_id, mime_type)

            size_bytes = len(content)
            checksum_md5 = compute_md5(content)

            if blob_id is None:
                blob_id = self._generate_unique_id()

                existing = self.metadata_store.find_by_content(checksum_md5, size_bytes)
                if existing is not None and self.verify_blob_integrity(existing):
                    logger.info(
                        f"Duplicate blob detected, returning existing blob "
                        f"{existing.id} (checksum={checksum_md5})"
                    )
                    return existing
            elif self.metadata_store.exists(blob_id):
                raise ConflictError(
                    f"Blob with ID '{blob_id}' already exists", {"blob_id": blob_id}
                )

            if preferred_backend:
                driver = self.storage_manager.get_driver(preferred_backend.lower())
            else:
                driver = self.storage_manager.get_best_available_driver()
            backend = driver.get_backend_type()

            metadata = BlobMetadata(
                id=blob_id,
                size_bytes=size_bytes,
                checksum_md5=checksum_md5,
                storage_backend=backend,
                storage_path="",
                mime_type=mime_type,
                original_filename=filename or blob_id,
            )
            self._persist(metadata, content, backend)

            logger.info(
                f"Blob stored successfully: {blob_id} "
                f"(backend={metadata.storage_backend}, size={size_bytes})"
            )
            return metadata

    def _persist(self, metadata: BlobMetadata, content: bytes, backend: str) -> None:
        """Insert the row, write the payload and record its location atomically."""
        result: Optional[StorageResult] = None

        try:
            with self.metadata_store.session_scope() as session:
                self.metadata_store.insert(session, metadata)
                result = self.storage_manager.store(
                    metadata.id, content, metadata.mime_type, backend
                )
                self.metadata_store.update_location(
                    session, metadata.id, result.backend_type, result.storage_path
                )
                metadata.storage_backend = result.backend_type
                metadata.storage_path = result.storage_path
        except BlobError as e:
            self._discard_payload(metadata.id, result)
            raise e.with_context(
                f"Failed to store blob: {e.message}", blob_id=metadata.id, backend=backend
            ) from e
        except SQLAlchemyError as e:
            self._discard_payload(metadata.id, result)
            raise StorageWriteError(
                f"Failed to store blob: {e}", {"blob_id": metadata.id, "backend": backend}
            ) from e

    def _discard_payload(self, blob_id: str, result: Optional[StorageResult]) -> None:
        """Best-effort removal of a payload whose metadata was rolled back."""
        # Database payloads roll back with the metadata transaction
        if result is None or result.backend_type == BACKEND_DATABASE:
            return

        try:
            self.storage_manager.delete(result.backend_type, result.storage_path)
        except BlobError as e:
            logger.warning(
                f"Failed to clean up payload for blob {blob_id} on "
                f"{result.backend_type} after rollback: {e}"
            )

    def retrieve(self, blob_id: str) -> BlobContent:
        """
        Retrieve a blob and verify it against its recorded checksum and size.

        Raises:
            NotFoundError: If the blob or its payload does not exist
            IntegrityError: If the stored bytes no longer match the metadata
        """
        with operation_context("retrieve blob", blob_id=blob_id):
            metadata = self.metadata_store.get(blob_id)
            if metadata is None:
                raise NotFoundError(f"Blob not found: {blob_id}", {"blob_id": blob_id})

            try:
                content = self.storage_manager.retrieve(
                    metadata.storage_backend, metadata.storage_path, blob_id=metadata.id
                )
            except NotFoundError as e:
                raise e.with_context(
                    f"Blob data not found: {blob_id}",
                    blob_id=blob_id,
                    backend=metadata.storage_backend,
                ) from e
            except BlobError as e:
                raise e.with_context(
                    f"Failed to retrieve blob: {e.message}",
                    blob_id=blob_id,
                    backend=metadata.storage_backend,
                ) from e

            actual_checksum = compute_md5(content)
            if actual_checksum != metadata.checksum_md5 or len(content) != metadata.size_bytes:
                logger.warning(
                    f"Blob integrity check failed for {blob_id}: "
                    f"expected {metadata.checksum_md5}/{metadata.size_bytes} bytes, "
                    f"got {actual_checksum}/{len(content)} bytes"
                )
                raise IntegrityError(
                    "Blob data integrity check failed",
                    {
                        "blob_id": blob_id,
                        "backend": metadata.storage_backend,
                        "expected_checksum": metadata.checksum_md5,
                        "actual_checksum": actual_checksum,
                    },
                )

            return BlobContent(content=content, metadata=metadata)

    def delete(self, blob_id: str) -> bool:
        """
        Delete a blob's payload and then its metadata.

        Returns:
            True if the blob was deleted, False if the id is unknown
        """
        metadata = self.metadata_store.get(blob_id)
        if metadata is None:
            return False

        with operation_context("delete blob", blob_id=blob_id):
            try:
                with self.metadata_store.session_scope() as session:
                    payload_deleted = self.storage_manager.delete(
                        metadata.storage_backend, metadata.storage_path, blob_id=metadata.id
                    )
                    if not payload_deleted:
                        logger.warning(
                            f"Payload for blob {blob_id} was already missing on "
                            f"{metadata.storage_backend}; removing metadata"
                        )
                    removed = self.metadata_store.remove(session, blob_id)
            except BlobError as e:
                raise e.with_context(
                    f"Failed to delete blob: {e.message}",
                    blob_id=blob_id,
                    backend=metadata.storage_backend,
                ) from e
            except SQLAlchemyError as e:
                raise StorageWriteError(
                    f"Failed to delete blob: {e}",
                    {"blob_id": blob_id, "backend": metadata.storage_backend},
                ) from e

        if removed:
            logger.info(
                f"Blob deleted successfully: {blob_id} (backend={metadata.storage_backend})"
            )
        return removed

    def get_metadata(self, blob_id: str) -> Optional[BlobMetadata]:
        return self.metadata_store.get(blob_id)

    def list_blobs(
        self, page: int = 1, per_page: int = 20, mime_type_filter: Optional[str] = None
    ) -> Dict[str, Any]:
        """Paginated listing, newest first, optionally filtered by MIME prefix."""
        return self.metadata_store.list_blobs(
            page=page, per_page=per_page, mime_type_prefix=mime_type_filter
        )

    def get_storage_stats(self) -> Dict[str, Any]:
        """Blob count and total bytes, overall and per backend."""
        distribution = self.metadata_store.stats_by_backend()
        total_blobs = sum(entry["blob_count"] for entry in distribution.values())
        total_size = sum(entry["total_size"] for entry in distribution.values())

        return {
            "total_blobs": total_blobs,
            "total_size_bytes": total_size,
            "total_size_formatted": format_bytes(total_size),
            "backend_distribution": distribution,
        }

    def verify_blob_integrity(self, metadata: BlobMetadata) -> bool:
        """True if the payload can be read and still matches its checksum."""
        if not self.storage_manager.is_backend_configured(metadata.storage_backend):
            logger.debug(
                f"Skipping integrity check for {metadata.id}: backend "
                f"{metadata.storage_backend} is not configured"
            )
            return False

        try:
            content = self.storage_manager.retrieve(
                metadata.storage_backend, metadata.storage_path, blob_id=metadata.id
            )
        except BlobError:
            return False
        return compute_md5(content) == metadata.checksum_md5

    def audit_integrity(
        self, verify_checksums: bool = False, repair: bool = False
    ) -> Dict[str, Any]:
        """
        Cross-check every metadata row against its storage backend.

        Detects:
        - Dangling entries: metadata rows whose payload is missing
        - Size mismatches: backend size != recorded ``size_bytes``
        - Checksum mismatches: payload MD5 != recorded checksum (if verify_checksums)

        Rows on backends that are not currently configured cannot be checked
        and are reported as ``unverified_entries``; repair never touches them.

        Args:
            verify_checksums: Also read every payload and compare checksums
            repair: Remove dangling metadata rows

        Returns:
            Dict with keys: dangling_entries, size_mismatches,
            unverified_entries, checksum_mismatches (if verify_checksums),
            repaired (if repair).
        """
        dangling_entries = []
        size_mismatches = []
        checksum_mismatches = []
        unverified_entries = []

        configured = set(self.storage_manager.configured_backends())

        for metadata in self.metadata_store.iter_all():
            location = {
                "blob_id": metadata.id,
                "backend": metadata.storage_backend,
                "storage_path": metadata.storage_path,
            }

            if metadata.storage_backend not in configured:
                unverified_entries.append(location)
                continue

            if not self.storage_manager.exists(
                metadata.storage_backend, metadata.storage_path, blob_id=metadata.id
            ):
                dangling_entries.append(location)
                continue

            try:
                actual_size = self.storage_manager.size(
                    metadata.storage_backend, metadata.storage_path, blob_id=metadata.id
                )
            except BlobError as e:
                logger.warning(f"Could not read size of blob {metadata.id}: {e}")
                unverified_entries.append(location)
                continue

            if actual_size != metadata.size_bytes:
                size_mismatches.append(
                    {
                        **location,
                        "expected_size": metadata.size_bytes,
                        "actual_size": actual_size,
                    }
                )

            if verify_checksums and not self.verify_blob_integrity(metadata):
                checksum_mismatches.append(
                    {**location, "expected_checksum": metadata.checksum_md5}
                )

        repaired = {"dangling_removed": 0}
        if repair:
            for entry in dangling_entries:
                try:
                    with self.metadata_store.session_scope() as session:
                        if self.metadata_store.remove(session, entry["blob_id"]):
                            repaired["dangling_removed"] += 1
                except SQLAlchemyError as e:
                    logger.warning(
                        f"Failed to remove dangling entry {entry['blob_id']}: {e}"
                    )

        report: Dict[str, Any] = {
            "dangling_entries": dangling_entries,
            "size_mismatches": size_mismatches,
            "unverified_entries": unverified_entries,
        }
        if verify_checksums:
            report["checksum_mismatches"] = checksum_mismatches
        if repair:
            report["repaired"] = repaired

        total_issues = len(dangling_entries) + len(size_mismatches) + len(checksum_mismatches)
        if total_issues == 0:
            logger.info("Blob integrity audit passed, no issues found")
        else:
            logger.warning(
                f"Blob integrity audit found {total_issues} issue(s): "
                f"{len(dangling_entries)} dangling, "
                f"{len(size_mismatches)} size mismatches"
                + (
                    f", {len(checksum_mismatches)} checksum mismatches"
                    if verify_checksums
                    else ""
                )
            )

        return report

    def close(self) -> None:
        self.storage_manager.close()
        self.metadata_store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ── Internals ─────────────────────────────────────────────────────

    def _validate_upload(
        self, content: bytes, blob_id: Optional[str], mime_type: str
    ) -> None:
        if blob_id is not None:
            if not isinstance(blob_id, str) or not blob_id.strip():
                raise ValidationError(
                    "Blob id must be a non-empty string", {"blob_id": blob_id}
                )
            if len(blob_id) > MAX_BLOB_ID_LENGTH:
                raise ValidationError(
                    f"Blob id must be at most {MAX_BLOB_ID_LENGTH} characters",
                    {"length": len(blob_id)},
                )

        max_size = self.config.max_file_size
        if len(content) > max_size:
            raise ValidationError(
                f"File size exceeds maximum allowed size of {format_bytes(max_size)}",
                {"blob_id": blob_id, "size_bytes": len(content)},
            )

        allowed = self.config.allowed_mime_types
        if allowed and mime_type not in allowed:
            raise ValidationError(
                f"File type '{mime_type}' is not allowed",
                {"blob_id": blob_id, "mime_type": mime_type},
            )

    def _generate_unique_id(self) -> str:
        blob_id = generate_blob_id()
        while self.metadata_store.exists(blob_id):
            blob_id = generate_blob_id()
        return blob_id

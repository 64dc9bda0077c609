"""
Blob Metadata Store
===================

SQLAlchemy-backed persistence for blob metadata records and for the payload
table used by the database storage backend.

Both tables live behind one engine so that the metadata insert and a
database-backend payload write can share a single transaction. A
``session_scope()`` opened while another scope is active on the same thread
joins the outer transaction instead of starting a new one.

Usage:
    store = MetadataStore("sqlite:///blobvault.db")

    with store.session_scope() as session:
        store.insert(session, BlobMetadata(id="a", size_bytes=3, ...))

    metadata = store.get("a")
"""

import logging
import math
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    desc,
    func,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .error_handling import ConflictError

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BlobRecord(Base):
    """SQLAlchemy model for blob metadata."""

    __tablename__ = "blobs"

    id = Column(String(255), primary_key=True)
    original_filename = Column(String(255), nullable=True)
    size_bytes = Column(BigInteger, nullable=False, default=0)
    mime_type = Column(String(255), nullable=True)
    storage_backend = Column(String(20), nullable=False)
    # Empty for the database backend, which addresses payloads by blob id
    storage_path = Column(String(1024), nullable=False, default="")
    checksum_md5 = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        # DEDUP: content lookup on auto-generated ids (deliberately not unique)
        Index("idx_blobs_content", "checksum_md5", "size_bytes"),
        # LIST: newest first
        Index("idx_blobs_created", desc("created_at")),
        Index("idx_blobs_backend", "storage_backend"),
    )


class BlobDataRecord(Base):
    """SQLAlchemy model for payloads held by the database backend."""

    __tablename__ = "blob_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    blob_id = Column(String(255), nullable=False, unique=True)
    data = Column(Text, nullable=False)  # base64
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


@dataclass
class BlobMetadata:
    """Metadata for one logical blob."""

    id: str
    size_bytes: int
    checksum_md5: str
    storage_backend: str
    storage_path: str = ""
    mime_type: Optional[str] = None
    original_filename: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: BlobRecord) -> "BlobMetadata":
        return cls(
            id=record.id,
            size_bytes=record.size_bytes,
            checksum_md5=record.checksum_md5,
            storage_backend=record.storage_backend,
            storage_path=record.storage_path or "",
            mime_type=record.mime_type,
            original_filename=record.original_filename,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Public representation returned by the API layer."""
        return {
            "id": self.id,
            "size_bytes": self.size_bytes,
            "mime_type": self.mime_type,
            "storage_backend": self.storage_backend,
            "checksum_md5": self.checksum_md5,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class MetadataStore:
    """Relational metadata store using SQLAlchemy ORM."""

    def __init__(self, database_url: str = "sqlite:///blobvault.db", echo: bool = False):
        """
        Initialize the metadata store and create tables if needed.

        Args:
            database_url: SQLAlchemy database URL
            echo: Whether to echo SQL queries (for debugging)
        """
        self.database_url = database_url

        engine_kwargs: Dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {
                "check_same_thread": False,  # Allow multi-threading
                "timeout": 30,  # Wait for concurrent writers
            }

        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )
        self._local = threading.local()

        Base.metadata.create_all(self.engine)

        logger.info(f"Metadata store initialized: {self.engine.url!r}")

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Provide a transactional scope around a series of operations.

        Nested scopes on the same thread reuse the outer session; only the
        outermost scope commits or rolls back.
        """
        active = getattr(self._local, "session", None)
        if active is not None:
            yield active
            return

        session = self.SessionLocal()
        self._local.session = session
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            self._local.session = None
            session.close()

    # ── Reads ─────────────────────────────────────────────────────────

    def get(self, blob_id: str) -> Optional[BlobMetadata]:
        """Get metadata for a blob, or None if unknown."""
        with self.session_scope() as session:
            record = session.get(BlobRecord, blob_id)
            return BlobMetadata.from_record(record) if record else None

    def exists(self, blob_id: str) -> bool:
        with self.session_scope() as session:
            return (
                session.execute(
                    select(BlobRecord.id).where(BlobRecord.id == blob_id)
                ).first()
                is not None
            )

    def find_by_content(self, checksum_md5: str, size_bytes: int) -> Optional[BlobMetadata]:
        """Find the oldest blob with identical checksum and size."""
        with self.session_scope() as session:
            record = (
                session.execute(
                    select(BlobRecord)
                    .where(
                        BlobRecord.checksum_md5 == checksum_md5,
                        BlobRecord.size_bytes == size_bytes,
                    )
                    .order_by(BlobRecord.created_at)
                    .limit(1)
                )
                .scalars()
                .first()
            )
            return BlobMetadata.from_record(record) if record else None

    def iter_all(self) -> Iterator[BlobMetadata]:
        """Iterate over every metadata record."""
        with self.session_scope() as session:
            records = session.execute(select(BlobRecord)).scalars().all()
            items = [BlobMetadata.from_record(r) for r in records]
        yield from items

    def list_blobs(
        self, page: int = 1, per_page: int = 20, mime_type_prefix: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        List blobs newest first with pagination.

        Args:
            page: 1-based page number
            per_page: Page size
            mime_type_prefix: Optional MIME type prefix filter (e.g. "image/")

        Returns:
            Dict with ``data`` (list of BlobMetadata) and ``pagination``
        """
        page = max(page, 1)
        per_page = max(per_page, 1)

        with self.session_scope() as session:
            query = select(BlobRecord)
            count_query = select(func.count()).select_from(BlobRecord)
            if mime_type_prefix:
                condition = BlobRecord.mime_type.like(f"{mime_type_prefix}%")
                query = query.where(condition)
                count_query = count_query.where(condition)

            total = session.execute(count_query).scalar_one()
            records = (
                session.execute(
                    query.order_by(desc(BlobRecord.created_at), BlobRecord.id)
                    .offset((page - 1) * per_page)
                    .limit(per_page)
                )
                .scalars()
                .all()
            )
            data = [BlobMetadata.from_record(r) for r in records]

        last_page = max(math.ceil(total / per_page), 1)
        return {
            "data": data,
            "pagination": {
                "current_page": page,
                "per_page": per_page,
                "total": total,
                "last_page": last_page,
                "has_more": page < last_page,
            },
        }

    def stats_by_backend(self) -> Dict[str, Dict[str, int]]:
        """Count and total bytes grouped by storage backend."""
        with self.session_scope() as session:
            rows = session.execute(
                select(
                    BlobRecord.storage_backend,
                    func.count(BlobRecord.id),
                    func.coalesce(func.sum(BlobRecord.size_bytes), 0),
                ).group_by(BlobRecord.storage_backend)
            ).all()

        return {
            backend: {"blob_count": int(count), "total_size": int(total)}
            for backend, count, total in rows
        }

    # ── Writes (caller owns the transaction) ──────────────────────────

    def insert(self, session: Session, metadata: BlobMetadata) -> None:
        """
        Insert a metadata record and flush it.

        Raises:
            ConflictError: If a record with the same id already exists
        """
        now = _utcnow()
        record = BlobRecord(
            id=metadata.id,
            original_filename=metadata.original_filename,
            size_bytes=metadata.size_bytes,
            mime_type=metadata.mime_type,
            storage_backend=metadata.storage_backend,
            storage_path=metadata.storage_path,
            checksum_md5=metadata.checksum_md5,
            created_at=now,
            updated_at=now,
        )
        session.add(record)
        try:
            session.flush()
        except SQLIntegrityError as e:
            raise ConflictError(
                f"Blob with ID '{metadata.id}' already exists", {"blob_id": metadata.id}
            ) from e

        metadata.created_at = now
        metadata.updated_at = now

    def update_location(
        self, session: Session, blob_id: str, storage_backend: str, storage_path: str
    ) -> None:
        """Record where the payload actually ended up."""
        session.execute(
            update(BlobRecord)
            .where(BlobRecord.id == blob_id)
            .values(
                storage_backend=storage_backend,
                storage_path=storage_path,
                updated_at=_utcnow(),
            )
        )

    def remove(self, session: Session, blob_id: str) -> bool:
        """Delete a metadata record. Returns False if it did not exist."""
        result = session.execute(delete(BlobRecord).where(BlobRecord.id == blob_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()

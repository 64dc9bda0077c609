"""
Configuration Management for Blobvault
======================================

Configuration is split into one focused dataclass per storage backend plus the
metadata store, composed by :class:`StorageConfig`. Values normally come from
environment-style keys via :meth:`StorageConfig.from_env`.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

logger = logging.getLogger(__name__)

BACKEND_DATABASE = "database"
BACKEND_LOCAL = "local"
BACKEND_S3 = "s3"
BACKEND_FTP = "ftp"

SUPPORTED_BACKENDS = (BACKEND_DATABASE, BACKEND_LOCAL, BACKEND_S3, BACKEND_FTP)

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class LocalConfig:
    """Configuration for the local filesystem backend."""

    storage_path: str = "./storage/blobs"
    create_directories: bool = True
    permissions: int = 0o755

    def __post_init__(self):
        if not (0 <= self.permissions <= 0o7777):
            raise ValueError("permissions must be a valid octal file mode")

        logger.debug(f"Local storage configured: path={self.storage_path}")


@dataclass
class S3Config:
    """Configuration for the S3-compatible HTTP backend."""

    endpoint: Optional[str] = None
    bucket: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = "us-east-1"
    prefix: str = "blobs"
    # PUT requests are signed against the hash of an empty payload; MinIO-style
    # path endpoints expect this. Disable for strict SigV4 payload signing.
    sign_empty_payload: bool = True
    timeout: Optional[float] = None

    def __post_init__(self):
        self.prefix = (self.prefix or "").strip("/")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")

        logger.debug(
            f"S3 storage configured: endpoint={self.endpoint}, bucket={self.bucket}, "
            f"region={self.region}, prefix={self.prefix}"
        )

    @property
    def is_complete(self) -> bool:
        return all([self.endpoint, self.bucket, self.access_key, self.secret_key])


@dataclass
class FtpConfig:
    """Configuration for the FTP backend."""

    host: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    port: int = 21
    root: str = "/"
    passive: bool = True
    ssl: bool = False
    timeout: int = 30
    prefix: str = "blobs"

    def __post_init__(self):
        if not (1 <= self.port <= 65535):
            raise ValueError("port must be between 1 and 65535")

        if not (1 <= self.timeout <= 300):
            raise ValueError("timeout must be between 1 and 300 seconds")

        self.prefix = (self.prefix or "").strip("/")

        logger.debug(
            f"FTP storage configured: host={self.host}, port={self.port}, "
            f"ssl={self.ssl}, passive={self.passive}"
        )

    @property
    def is_complete(self) -> bool:
        return all([self.host, self.username, self.password])


@dataclass
class MetadataConfig:
    """Configuration for the metadata store."""

    database_url: str = "sqlite:///blobvault.db"
    echo: bool = False


@dataclass
class StorageConfig:
    """Main configuration combining all backend sub-configurations."""

    default_backend: str = BACKEND_DATABASE
    local: LocalConfig = field(default_factory=LocalConfig)
    s3: S3Config = field(default_factory=S3Config)
    ftp: FtpConfig = field(default_factory=FtpConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    max_file_size: int = 100 * 1024 * 1024
    allowed_mime_types: List[str] = field(default_factory=list)

    def __post_init__(self):
        # Unknown names are tolerated here; selection falls back to database
        self.default_backend = (self.default_backend or BACKEND_DATABASE).lower()

        if self.max_file_size <= 0:
            raise ValueError("max_file_size must be positive")

        logger.debug(f"Storage configuration initialized: default={self.default_backend}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StorageConfig":
        """
        Build a configuration from environment-style keys.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Returns:
            Populated StorageConfig
        """
        env = os.environ if environ is None else environ

        local = LocalConfig(
            storage_path=env.get("LOCAL_STORAGE_PATH") or LocalConfig.storage_path,
            create_directories=_env_bool(env, "LOCAL_CREATE_DIRECTORIES", True),
            permissions=int(env.get("LOCAL_PERMISSIONS", "755"), 8),
        )

        s3_timeout = env.get("S3_TIMEOUT")
        s3 = S3Config(
            endpoint=env.get("S3_ENDPOINT") or None,
            bucket=env.get("S3_BUCKET") or None,
            access_key=env.get("S3_ACCESS_KEY") or None,
            secret_key=env.get("S3_SECRET_KEY") or None,
            region=env.get("S3_REGION") or "us-east-1",
            prefix=env.get("S3_PREFIX", "blobs"),
            sign_empty_payload=_env_bool(env, "S3_SIGN_EMPTY_PAYLOAD", True),
            timeout=float(s3_timeout) if s3_timeout else None,
        )

        ftp = FtpConfig(
            host=env.get("FTP_HOST") or None,
            username=env.get("FTP_USERNAME") or None,
            password=env.get("FTP_PASSWORD") or None,
            port=int(env.get("FTP_PORT", "21")),
            root=env.get("FTP_ROOT", "/"),
            passive=_env_bool(env, "FTP_PASSIVE", True),
            ssl=_env_bool(env, "FTP_SSL", False),
            timeout=int(env.get("FTP_TIMEOUT", "30")),
            prefix=env.get("FTP_PREFIX", "blobs"),
        )

        metadata = MetadataConfig(
            database_url=env.get("DATABASE_URL") or MetadataConfig.database_url,
            echo=_env_bool(env, "DATABASE_ECHO", False),
        )

        allowed = env.get("STORAGE_ALLOWED_MIME_TYPES", "")
        return cls(
            default_backend=env.get("STORAGE_BACKEND") or BACKEND_DATABASE,
            local=local,
            s3=s3,
            ftp=ftp,
            metadata=metadata,
            max_file_size=int(env.get("STORAGE_MAX_FILE_SIZE", str(100 * 1024 * 1024))),
            allowed_mime_types=[m.strip() for m in allowed.split(",") if m.strip()],
        )


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(key)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES

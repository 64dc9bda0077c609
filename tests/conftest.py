"""
Shared fixtures for blobvault tests.

Network backends run against the in-process fakes in ``fakes.py``.
"""

from unittest.mock import patch

import pytest

from blobvault.config import (
    FtpConfig,
    LocalConfig,
    MetadataConfig,
    S3Config,
    StorageConfig,
)
from blobvault.metadata import MetadataStore
from blobvault.storage import BlobService, StorageManager
from blobvault.storage.backends import (
    DatabaseStorageDriver,
    FtpStorageDriver,
    LocalStorageDriver,
    S3StorageDriver,
)

from fakes import FIXED_NOW, FakeFTPServer, FakeS3Session


# ==================== Fixtures ====================


@pytest.fixture
def metadata_store(tmp_path):
    """Fresh SQLite-backed metadata store."""
    store = MetadataStore(f"sqlite:///{tmp_path / 'blobvault.db'}")
    yield store
    store.close()


@pytest.fixture
def local_config(tmp_path):
    return LocalConfig(storage_path=str(tmp_path / "blobs"))


@pytest.fixture
def s3_config():
    return S3Config(
        endpoint="http://minio.test:9000",
        bucket="blob-bucket",
        access_key="AKIDEXAMPLE",
        secret_key="wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY",
        region="us-east-1",
        prefix="blobs",
    )


@pytest.fixture
def fake_s3_session():
    return FakeS3Session()


@pytest.fixture
def s3_driver(s3_config, fake_s3_session):
    return S3StorageDriver(s3_config, session=fake_s3_session, clock=lambda: FIXED_NOW)


@pytest.fixture
def ftp_server():
    """Patch ftplib so every FTP/FTPS connection talks to one fake server."""
    server = FakeFTPServer()
    with patch("ftplib.FTP", side_effect=lambda: server.connect()), patch(
        "ftplib.FTP_TLS", side_effect=lambda: server.connect(ssl=True)
    ):
        yield server


@pytest.fixture
def ftp_config():
    return FtpConfig(host="ftp.test", username="ftpuser", password="ftppass")


@pytest.fixture
def build_service(metadata_store, tmp_path, s3_config, fake_s3_session, ftp_server, ftp_config):
    """
    Factory building a BlobService over all four drivers.

    Args (of the returned callable):
        default_backend: Configured default backend name
        s3_configured / ftp_configured: Whether those drivers get settings
        **overrides: Extra StorageConfig fields (max_file_size, ...)
    """

    def _build(
        default_backend="database", s3_configured=True, ftp_configured=True, **overrides
    ):
        config = StorageConfig(
            default_backend=default_backend,
            local=LocalConfig(storage_path=str(tmp_path / "blobs")),
            s3=s3_config if s3_configured else S3Config(),
            ftp=ftp_config if ftp_configured else FtpConfig(),
            metadata=MetadataConfig(database_url=metadata_store.database_url),
            **overrides,
        )
        drivers = {
            "database": DatabaseStorageDriver(metadata_store),
            "local": LocalStorageDriver(config.local),
            "s3": S3StorageDriver(config.s3, session=fake_s3_session, clock=lambda: FIXED_NOW),
            "ftp": FtpStorageDriver(config.ftp),
        }
        manager = StorageManager(drivers, default_backend=config.default_backend)
        return BlobService(metadata_store, manager, config)

    return _build

"""
FTP Storage Driver
==================

Stores payloads on an FTP (or explicit FTPS) server under a flat prefix:

    {root}/{prefix}/{blob_id}

:class:`FtpFilesystem` is a small remote-filesystem facade over ``ftplib``
(write, read, delete, file_exists, file_size, directory handling). It opens
one control connection per operation, so the driver holds no long-lived
socket between requests.
"""

import ftplib
import io
import logging
import posixpath
from contextlib import contextmanager
from typing import Iterator, Optional

from ...config import BACKEND_FTP, FtpConfig
from ...error_handling import NotFoundError, StorageReadError, StorageWriteError
from .base import StorageDriver

logger = logging.getLogger(__name__)


def _is_missing(error: ftplib.Error) -> bool:
    """550 is the reply servers use for missing files and directories."""
    return str(error).startswith("550")


class FtpFilesystem:
    """Remote filesystem operations over one FTP account."""

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        port: int = 21,
        root: str = "/",
        passive: bool = True,
        ssl: bool = False,
        timeout: int = 30,
    ):
        if not host:
            raise ValueError("FTP host is required")

        self.host = host
        self.username = username
        self.password = password
        self.port = port
        self.root = root or "/"
        self.passive = passive
        self.ssl = ssl
        self.timeout = timeout

    @contextmanager
    def connect(self) -> Iterator[ftplib.FTP]:
        """Open an authenticated connection positioned at the root directory."""
        ftp = ftplib.FTP_TLS() if self.ssl else ftplib.FTP()
        ftp.connect(self.host, self.port, timeout=self.timeout)
        try:
            ftp.login(self.username, self.password)
            if self.ssl:
                ftp.prot_p()
            ftp.set_pasv(self.passive)
            if self.root not in ("", "/"):
                ftp.cwd(self.root)
            yield ftp
        finally:
            try:
                ftp.quit()
            except ftplib.all_errors:
                ftp.close()

    def write(self, path: str, data: bytes) -> None:
        with self.connect() as ftp:
            directory = posixpath.dirname(path)
            if directory and not self._directory_exists(ftp, directory):
                self._create_directory(ftp, directory)
            ftp.storbinary(f"STOR {path}", io.BytesIO(data))

    def read(self, path: str) -> bytes:
        buffer = io.BytesIO()
        with self.connect() as ftp:
            ftp.retrbinary(f"RETR {path}", buffer.write)
        return buffer.getvalue()

    def delete(self, path: str) -> None:
        with self.connect() as ftp:
            ftp.delete(path)

    def file_exists(self, path: str) -> bool:
        with self.connect() as ftp:
            try:
                ftp.voidcmd("TYPE I")
                ftp.size(path)
                return True
            except ftplib.error_perm as e:
                if _is_missing(e):
                    return False
                raise

    def file_size(self, path: str) -> int:
        with self.connect() as ftp:
            ftp.voidcmd("TYPE I")
            size = ftp.size(path)
        if size is None:
            raise ftplib.error_reply(f"SIZE not supported for {path}")
        return int(size)

    def directory_exists(self, path: str) -> bool:
        with self.connect() as ftp:
            return self._directory_exists(ftp, path)

    def create_directory(self, path: str) -> None:
        with self.connect() as ftp:
            self._create_directory(ftp, path)

    @staticmethod
    def _directory_exists(ftp: ftplib.FTP, path: str) -> bool:
        current = ftp.pwd()
        try:
            ftp.cwd(path)
            return True
        except ftplib.error_perm:
            return False
        finally:
            ftp.cwd(current)

    @staticmethod
    def _create_directory(ftp: ftplib.FTP, path: str) -> None:
        partial = ""
        for part in path.strip("/").split("/"):
            partial = f"{partial}/{part}" if partial else part
            try:
                ftp.mkd(partial)
            except ftplib.error_perm as e:
                # 550/521: already exists
                if not (_is_missing(e) or str(e).startswith("521")):
                    raise


class FtpStorageDriver(StorageDriver):
    """FTP storage driver."""

    backend_type = BACKEND_FTP

    def __init__(self, config: FtpConfig):
        self.config = config
        self.filesystem: Optional[FtpFilesystem] = None

        if not config.is_complete:
            logger.debug("FtpStorageDriver: host/username/password not set")
            return

        # A construction failure leaves the driver unconfigured for its lifetime
        try:
            self.filesystem = FtpFilesystem(
                host=config.host,
                username=config.username,
                password=config.password,
                port=config.port,
                root=config.root,
                passive=config.passive,
                ssl=config.ssl,
                timeout=config.timeout,
            )
        except (ValueError, TypeError) as e:
            logger.warning(f"FtpStorageDriver: failed to initialize FTP filesystem: {e}")
            self.filesystem = None
            return

        logger.info(
            f"FtpStorageDriver: host={config.host}, port={config.port}, "
            f"ssl={config.ssl}, passive={config.passive}"
        )

    def get_blob_path(self, blob_id: str) -> str:
        prefix = self.config.prefix
        return f"{prefix}/{blob_id}" if prefix else blob_id

    def store(self, blob_id: str, data: bytes, mime_type: str) -> str:
        filesystem = self._require_filesystem(StorageWriteError)
        path = self.get_blob_path(blob_id)

        try:
            filesystem.write(path, data)
        except ftplib.all_errors as e:
            raise StorageWriteError(
                f"Failed to store blob on FTP server: {e}",
                {"blob_id": blob_id, "path": path},
            ) from e

        logger.debug(f"Wrote blob {blob_id} ({len(data)} bytes) to ftp://{self.config.host}/{path}")
        return path

    def retrieve(self, storage_path: str) -> bytes:
        filesystem = self._require_filesystem(StorageReadError)

        try:
            return filesystem.read(storage_path)
        except ftplib.error_perm as e:
            if _is_missing(e):
                raise NotFoundError(
                    f"Blob not found on FTP server: {storage_path}", {"path": storage_path}
                ) from e
            raise StorageReadError(
                f"Failed to retrieve blob from FTP server: {e}", {"path": storage_path}
            ) from e
        except ftplib.all_errors as e:
            raise StorageReadError(
                f"Failed to retrieve blob from FTP server: {e}", {"path": storage_path}
            ) from e

    def delete(self, storage_path: str) -> bool:
        filesystem = self._require_filesystem(StorageWriteError)

        try:
            if not filesystem.file_exists(storage_path):
                return False
            filesystem.delete(storage_path)
        except ftplib.all_errors as e:
            raise StorageWriteError(
                f"Failed to delete blob from FTP server: {e}", {"path": storage_path}
            ) from e

        logger.debug(f"Deleted blob from ftp://{self.config.host}/{storage_path}")
        return True

    def exists(self, storage_path: str) -> bool:
        if self.filesystem is None:
            return False
        try:
            return self.filesystem.file_exists(storage_path)
        except ftplib.all_errors:
            return False

    def size(self, storage_path: str) -> int:
        filesystem = self._require_filesystem(StorageReadError)

        try:
            return filesystem.file_size(storage_path)
        except ftplib.error_perm as e:
            if _is_missing(e):
                raise NotFoundError(
                    f"Blob not found on FTP server: {storage_path}", {"path": storage_path}
                ) from e
            raise StorageReadError(
                f"Failed to get blob size from FTP server: {e}", {"path": storage_path}
            ) from e
        except ftplib.all_errors as e:
            raise StorageReadError(
                f"Failed to get blob size from FTP server: {e}", {"path": storage_path}
            ) from e

    def is_configured(self) -> bool:
        return self.config.is_complete and self.filesystem is not None

    def _require_filesystem(self, error_type) -> FtpFilesystem:
        if self.filesystem is None:
            raise error_type(
                "FTP filesystem not initialized", {"host": self.config.host}
            )
        return self.filesystem

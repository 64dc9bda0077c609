"""
S3 Storage Driver
=================

S3-compatible object storage over plain HTTP (AWS S3, MinIO and similar).
No vendor SDK is used: every PUT/GET/HEAD/DELETE is built by hand with
``requests`` and signed with :class:`SignatureV4Signer`.

Objects are addressed path-style and namespaced under a prefix:

    {endpoint}/{bucket}/{prefix}/{blob_id}

Read-side operations accept either the stored object key or a bare blob id.

Empty-payload signing:
    With ``S3Config.sign_empty_payload`` enabled (the default) object writes
    are signed against the SHA-256 of an empty string even though the request
    carries a body. Path-style S3-compatible services this driver targets
    accept that form; strict SigV4 payload signing is available by turning
    the flag off, which also sends ``x-amz-content-sha256``.

Usage:
    driver = S3StorageDriver(S3Config(
        endpoint="http://minio.internal:9000",
        bucket="blobs",
        access_key="minioadmin",
        secret_key="minioadmin",
    ))
    key = driver.store("abc", b"payload", "application/octet-stream")
    data = driver.retrieve(key)
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional
from urllib.parse import quote, urlsplit

import requests

from ...config import BACKEND_S3, S3Config
from ...error_handling import NotFoundError, StorageReadError, StorageWriteError
from .base import StorageDriver
from .signing import EMPTY_PAYLOAD_HASH, SignatureV4Signer, sha256_hex

logger = logging.getLogger(__name__)


class S3StorageDriver(StorageDriver):
    """S3-compatible storage driver using hand-signed HTTP requests."""

    backend_type = BACKEND_S3

    def __init__(
        self,
        config: S3Config,
        session: Optional[requests.Session] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            config: S3 connection settings
            session: HTTP session to use (a new ``requests.Session`` by default)
            clock: Callable returning the signing time (UTC now by default)
        """
        self.config = config
        self.session = session or requests.Session()
        self.clock = clock
        self.signer = SignatureV4Signer(
            config.access_key or "", config.secret_key or "", region=config.region
        )

        logger.debug(
            f"S3StorageDriver initialized: endpoint={config.endpoint}, "
            f"bucket={config.bucket}, prefix={config.prefix}"
        )

    # ── Addressing ────────────────────────────────────────────────────

    def get_object_key(self, blob_id_or_key: str) -> str:
        """Normalize a bare blob id or an already-prefixed key to an object key."""
        prefix = self.config.prefix
        if not prefix:
            return blob_id_or_key.lstrip("/")
        if blob_id_or_key.startswith(f"{prefix}/"):
            return blob_id_or_key
        return f"{prefix}/{blob_id_or_key}"

    def _canonical_uri(self, object_key: str) -> str:
        return quote(f"/{self.config.bucket}/{object_key}", safe="/~")

    def _host(self) -> str:
        # netloc keeps an explicit port, matching what requests sends as Host
        return urlsplit(self.config.endpoint).netloc

    def _object_url(self, object_key: str) -> str:
        return self.config.endpoint.rstrip("/") + self._canonical_uri(object_key)

    # ── Request plumbing ──────────────────────────────────────────────

    def _signed_headers(
        self, method: str, object_key: str, payload: bytes = b""
    ) -> Dict[str, str]:
        headers = {"Host": self._host()}

        if self.config.sign_empty_payload:
            # Only PUT carries a body; it is signed as if it were empty
            payload_hash = EMPTY_PAYLOAD_HASH
        else:
            payload_hash = sha256_hex(payload)
            headers["x-amz-content-sha256"] = payload_hash

        now = self.clock() if self.clock else None
        auth = self.signer.sign(
            method,
            self._canonical_uri(object_key),
            headers,
            payload_hash=payload_hash,
            now=now,
        )
        headers.update(auth)
        return headers

    def _request(
        self,
        method: str,
        object_key: str,
        data: bytes = b"",
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        headers = self._signed_headers(method, object_key, data)
        if extra_headers:
            headers.update(extra_headers)

        return self.session.request(
            method,
            self._object_url(object_key),
            headers=headers,
            data=data if data else None,
            timeout=self.config.timeout,
        )

    # ── Driver contract ───────────────────────────────────────────────

    def store(self, blob_id: str, data: bytes, mime_type: str) -> str:
        object_key = self.get_object_key(blob_id)
        context = {"blob_id": blob_id, "object_key": object_key}

        try:
            response = self._request(
                "PUT",
                object_key,
                data,
                extra_headers={
                    "Content-Type": mime_type or "application/octet-stream",
                    "Content-Length": str(len(data)),
                },
            )
        except requests.RequestException as e:
            raise StorageWriteError(f"S3 PUT request failed: {e}", context) from e

        if not response.ok:
            raise StorageWriteError(
                f"S3 PUT request failed: {response.status_code} - {response.text}",
                {**context, "status": response.status_code},
            )

        logger.debug(
            f"Wrote blob {blob_id} ({len(data)} bytes) to "
            f"{self.config.bucket}/{object_key}"
        )
        return object_key

    def retrieve(self, storage_path: str) -> bytes:
        object_key = self.get_object_key(storage_path)
        context = {"object_key": object_key}

        try:
            response = self._request("GET", object_key)
        except requests.RequestException as e:
            raise StorageReadError(f"S3 GET request failed: {e}", context) from e

        if response.status_code == 404:
            raise NotFoundError(f"Blob not found in S3 storage: {object_key}", context)
        if not response.ok:
            raise StorageReadError(
                f"S3 GET request failed: {response.status_code} - {response.text}",
                {**context, "status": response.status_code},
            )
        return response.content

    def delete(self, storage_path: str) -> bool:
        object_key = self.get_object_key(storage_path)
        context = {"object_key": object_key}

        try:
            response = self._request("DELETE", object_key)
        except requests.RequestException as e:
            raise StorageWriteError(f"S3 DELETE request failed: {e}", context) from e

        if response.status_code == 404:
            return False
        if not response.ok:
            raise StorageWriteError(
                f"S3 DELETE request failed: {response.status_code} - {response.text}",
                {**context, "status": response.status_code},
            )

        logger.debug(f"Deleted blob from {self.config.bucket}/{object_key}")
        return True

    def exists(self, storage_path: str) -> bool:
        try:
            response = self._request("HEAD", self.get_object_key(storage_path))
        except requests.RequestException:
            return False
        return response.ok

    def size(self, storage_path: str) -> int:
        object_key = self.get_object_key(storage_path)
        context = {"object_key": object_key}

        try:
            response = self._request("HEAD", object_key)
        except requests.RequestException as e:
            raise StorageReadError(f"S3 HEAD request failed: {e}", context) from e

        if response.status_code == 404:
            raise NotFoundError(f"Blob not found in S3 storage: {object_key}", context)
        if not response.ok:
            raise StorageReadError(
                f"S3 HEAD request failed: {response.status_code}",
                {**context, "status": response.status_code},
            )

        content_length = response.headers.get("Content-Length")
        if content_length is None:
            raise StorageReadError(
                "Content-Length header not found in S3 response", context
            )
        return int(content_length)

    def is_configured(self) -> bool:
        return self.config.is_complete

    def close(self) -> None:
        self.session.close()

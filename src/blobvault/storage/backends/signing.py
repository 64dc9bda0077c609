"""
S3 Request Signing
==================

A self-contained implementation of the AWS Signature Version 4 header
signing scheme, sufficient for path-style requests against S3-compatible
services without a vendor SDK.

Signing steps:
    1. Canonical request:
           METHOD \\n URI \\n <empty query> \\n canonical_headers \\n
           signed_headers \\n hex(sha256(payload))
    2. String to sign:
           AWS4-HMAC-SHA256 \\n timestamp \\n scope \\n hex(sha256(canonical_request))
    3. Signing key: HMAC chain date -> region -> service -> "aws4_request",
       seeded with "AWS4" + secret key
    4. Signature: hex(HMAC-SHA256(signing_key, string_to_sign))

Query parameters are never signed; every request this package issues has an
empty query string.

Usage:
    signer = SignatureV4Signer("AKID", "secret", region="us-east-1")
    auth = signer.sign("GET", "/bucket/blobs/abc", {"Host": "minio:9000"})
    headers = {"Host": "minio:9000", **auth}
"""

import hashlib
import hmac
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Tuple

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "s3"
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"
DATE_FORMAT = "%Y%m%d"

EMPTY_PAYLOAD_HASH = hashlib.sha256(b"").hexdigest()


def sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


class SignatureV4Signer:
    """
    Computes SigV4 authorization headers.

    ``sign`` is a pure function of its inputs: the same credentials, method,
    path, headers, payload and timestamp always produce the same header.
    """

    def __init__(self, access_key: str, secret_key: str, region: str = "us-east-1"):
        self.access_key = access_key
        self.secret_key = secret_key
        self.region = region

    def sign(
        self,
        method: str,
        uri: str,
        headers: Mapping[str, str],
        payload: bytes = b"",
        now: Optional[datetime] = None,
        payload_hash: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Sign a request.

        Args:
            method: HTTP verb
            uri: Canonical URI (already percent-encoded path, e.g. "/bucket/key")
            headers: Headers to sign; ``X-Amz-Date`` is added automatically
            payload: Request body used for the payload hash
            now: Signing time (defaults to the current UTC time)
            payload_hash: Precomputed payload hash overriding ``payload``

        Returns:
            Dict with ``Authorization`` and ``X-Amz-Date`` headers
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        timestamp = now.strftime(TIMESTAMP_FORMAT)
        date = now.strftime(DATE_FORMAT)

        signing_headers = dict(headers)
        signing_headers["X-Amz-Date"] = timestamp

        canonical_headers, signed_headers = self.canonicalize_headers(signing_headers)
        canonical_request = self.canonical_request(
            method,
            uri,
            canonical_headers,
            signed_headers,
            payload_hash or sha256_hex(payload),
        )

        scope = self.credential_scope(date)
        string_to_sign = "\n".join(
            [ALGORITHM, timestamp, scope, sha256_hex(canonical_request.encode("utf-8"))]
        )
        signature = hmac.new(
            self.signing_key(date), string_to_sign.encode("utf-8"), hashlib.sha256
        ).hexdigest()

        authorization = (
            f"{ALGORITHM} "
            f"Credential={self.access_key}/{scope}, "
            f"SignedHeaders={signed_headers}, "
            f"Signature={signature}"
        )
        return {"Authorization": authorization, "X-Amz-Date": timestamp}

    @staticmethod
    def canonicalize_headers(headers: Mapping[str, str]) -> Tuple[str, str]:
        """
        Build the canonical header block and the signed-headers list.

        Names are lower-cased and sorted, values trimmed. Each entry ends with
        a newline.
        """
        normalized = {name.lower(): str(value).strip() for name, value in headers.items()}
        names = sorted(normalized)
        canonical = "".join(f"{name}:{normalized[name]}\n" for name in names)
        return canonical, ";".join(names)

    @staticmethod
    def canonical_request(
        method: str,
        uri: str,
        canonical_headers: str,
        signed_headers: str,
        payload_hash: str,
    ) -> str:
        # Empty line stands for the (never signed) query string
        return "\n".join(
            [method.upper(), uri, "", canonical_headers, signed_headers, payload_hash]
        )

    def credential_scope(self, date: str) -> str:
        return f"{date}/{self.region}/{SERVICE}/aws4_request"

    def signing_key(self, date: str) -> bytes:
        date_key = _hmac(f"AWS4{self.secret_key}".encode("utf-8"), date)
        region_key = _hmac(date_key, self.region)
        service_key = _hmac(region_key, SERVICE)
        return _hmac(service_key, "aws4_request")

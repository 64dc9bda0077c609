"""
Tests for the S3 storage driver against an in-memory fake session.
"""

import pytest
import requests

from blobvault.config import S3Config
from blobvault.error_handling import NotFoundError, StorageReadError, StorageWriteError
from blobvault.storage.backends import S3StorageDriver
from blobvault.storage.backends.signing import EMPTY_PAYLOAD_HASH, sha256_hex

from fakes import FIXED_NOW, FakeResponse, FakeS3Session


class TestObjectAddressing:
    def test_bare_id_gets_prefix(self, s3_driver):
        assert s3_driver.get_object_key("abc") == "blobs/abc"

    def test_prefixed_key_is_kept(self, s3_driver):
        assert s3_driver.get_object_key("blobs/abc") == "blobs/abc"

    def test_empty_prefix(self, s3_config, fake_s3_session):
        s3_config.prefix = ""
        driver = S3StorageDriver(s3_config, session=fake_s3_session)
        assert driver.get_object_key("/abc") == "abc"

    def test_prefix_slashes_are_stripped(self):
        config = S3Config(prefix="/nested/blobs/")
        assert config.prefix == "nested/blobs"

    def test_url_is_path_style(self, s3_driver, fake_s3_session):
        s3_driver.store("abc", b"data", "text/plain")
        assert fake_s3_session.requests[0].url == "http://minio.test:9000/blob-bucket/blobs/abc"


class TestStoreAndRetrieve:
    def test_round_trip(self, s3_driver):
        key = s3_driver.store("abc", b"hello s3", "text/plain")

        assert key == "blobs/abc"
        assert s3_driver.retrieve(key) == b"hello s3"
        assert s3_driver.retrieve("abc") == b"hello s3"

    def test_put_headers(self, s3_driver, fake_s3_session):
        s3_driver.store("abc", b"12345", "image/png")
        request = fake_s3_session.requests[-1]

        assert request.method == "PUT"
        assert request.data == b"12345"
        assert request.headers["Content-Type"] == "image/png"
        assert request.headers["Content-Length"] == "5"
        assert request.headers["Host"] == "minio.test:9000"
        assert request.headers["X-Amz-Date"] == "20240102T030405Z"
        assert request.headers["Authorization"].startswith(
            "AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/20240102/us-east-1/s3/aws4_request, "
            "SignedHeaders=host;x-amz-date, "
        )

    def test_retrieve_missing_raises_not_found(self, s3_driver):
        with pytest.raises(NotFoundError):
            s3_driver.retrieve("missing")

    def test_put_failure_status(self, s3_driver, fake_s3_session):
        fake_s3_session.fail_with = 500

        with pytest.raises(StorageWriteError) as exc_info:
            s3_driver.store("abc", b"data", "text/plain")

        assert "500" in str(exc_info.value)
        assert exc_info.value.context["status"] == 500

    def test_put_transport_error(self, s3_driver, fake_s3_session):
        fake_s3_session.fail_with = requests.ConnectionError("connection reset")

        with pytest.raises(StorageWriteError, match="connection reset"):
            s3_driver.store("abc", b"data", "text/plain")

    def test_get_failure_status(self, s3_driver, fake_s3_session):
        s3_driver.store("abc", b"data", "text/plain")
        fake_s3_session.fail_with = 403

        with pytest.raises(StorageReadError) as exc_info:
            s3_driver.retrieve("abc")
        assert exc_info.value.context["status"] == 403

    def test_timeout_is_forwarded(self, s3_config, fake_s3_session):
        s3_config.timeout = 5.0
        driver = S3StorageDriver(s3_config, session=fake_s3_session)
        driver.exists("abc")
        assert fake_s3_session.requests[-1].timeout == 5.0


class TestEmptyPayloadSigning:
    def _signature(self, request):
        return request.headers["Authorization"].rsplit("Signature=", 1)[1]

    def test_put_signed_as_empty_payload_by_default(self, s3_config, s3_driver, fake_s3_session):
        s3_driver.store("abc", b"non-empty body", "text/plain")
        put = fake_s3_session.requests[-1]

        assert "x-amz-content-sha256" not in put.headers

        expected = s3_driver.signer.sign(
            "PUT",
            "/blob-bucket/blobs/abc",
            {"Host": "minio.test:9000"},
            payload_hash=EMPTY_PAYLOAD_HASH,
            now=FIXED_NOW,
        )
        assert put.headers["Authorization"] == expected["Authorization"]

    def test_strict_mode_signs_real_payload(self, s3_config, fake_s3_session):
        s3_config.sign_empty_payload = False
        driver = S3StorageDriver(s3_config, session=fake_s3_session, clock=lambda: FIXED_NOW)

        driver.store("abc", b"non-empty body", "text/plain")
        put = fake_s3_session.requests[-1]

        assert put.headers["x-amz-content-sha256"] == sha256_hex(b"non-empty body")
        assert "x-amz-content-sha256" in put.headers["Authorization"]

    def test_modes_produce_different_signatures(self, s3_config):
        quirk_session, strict_session = FakeS3Session(), FakeS3Session()
        quirk = S3StorageDriver(s3_config, session=quirk_session, clock=lambda: FIXED_NOW)
        strict = S3StorageDriver(
            S3Config(**{**s3_config.__dict__, "sign_empty_payload": False}),
            session=strict_session,
            clock=lambda: FIXED_NOW,
        )

        quirk.store("abc", b"body", "text/plain")
        strict.store("abc", b"body", "text/plain")

        assert self._signature(quirk_session.requests[0]) != self._signature(
            strict_session.requests[0]
        )

    def test_signing_is_deterministic_for_fixed_clock(self, s3_driver, fake_s3_session):
        s3_driver.store("abc", b"body", "text/plain")
        s3_driver.store("abc", b"body", "text/plain")

        first, second = fake_s3_session.requests
        assert first.headers["Authorization"] == second.headers["Authorization"]


class TestDeleteExistsSize:
    def test_delete_existing(self, s3_driver):
        key = s3_driver.store("abc", b"data", "text/plain")
        assert s3_driver.delete(key) is True
        assert s3_driver.exists(key) is False

    def test_delete_missing_returns_false(self, s3_driver):
        assert s3_driver.delete("missing") is False

    def test_delete_failure_raises(self, s3_driver, fake_s3_session):
        fake_s3_session.fail_with = 500
        with pytest.raises(StorageWriteError):
            s3_driver.delete("abc")

    def test_exists_never_raises(self, s3_driver, fake_s3_session):
        fake_s3_session.fail_with = requests.Timeout("timed out")
        assert s3_driver.exists("abc") is False

    def test_size_from_content_length(self, s3_driver):
        key = s3_driver.store("abc", b"0123456789", "text/plain")
        assert s3_driver.size(key) == 10

    def test_size_missing(self, s3_driver):
        with pytest.raises(NotFoundError):
            s3_driver.size("missing")

    def test_size_without_content_length(self, s3_driver, fake_s3_session, monkeypatch):
        monkeypatch.setattr(
            fake_s3_session, "request", lambda *args, **kwargs: FakeResponse(200)
        )
        with pytest.raises(StorageReadError, match="Content-Length"):
            s3_driver.size("abc")


class TestConfiguration:
    def test_complete_config_is_configured(self, s3_driver):
        assert s3_driver.is_configured() is True

    @pytest.mark.parametrize("missing", ["endpoint", "bucket", "access_key", "secret_key"])
    def test_missing_setting_is_unconfigured(self, s3_config, missing):
        setattr(s3_config, missing, None)
        assert S3StorageDriver(s3_config, session=FakeS3Session()).is_configured() is False

    def test_backend_type(self, s3_driver):
        assert s3_driver.get_backend_type() == "s3"

    def test_close_closes_session(self, s3_driver, fake_s3_session):
        with s3_driver:
            pass
        assert fake_s3_session.closed is True

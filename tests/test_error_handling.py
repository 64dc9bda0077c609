"""
Tests for the error_handling module.

Covers the error taxonomy, logging on construction, context merging, API
error bodies and operation_context.
"""

import logging

import orjson
import pytest

from blobvault.error_handling import (
    BlobError,
    ConfigurationError,
    ConflictError,
    IntegrityError,
    NotFoundError,
    StorageReadError,
    StorageWriteError,
    ValidationError,
    error_response,
    error_response_json,
    operation_context,
)


class TestErrorHierarchy:
    def test_base_initialization(self):
        error = BlobError("Test message")
        assert str(error) == "Test message"
        assert error.context == {}
        assert error.status_code == 500

    @pytest.mark.parametrize(
        "error_type, status",
        [
            (NotFoundError, 404),
            (ConflictError, 409),
            (ValidationError, 422),
            (IntegrityError, 500),
            (StorageWriteError, 500),
            (StorageReadError, 500),
            (ConfigurationError, 500),
        ],
    )
    def test_status_codes(self, error_type, status):
        error = error_type("Test message", {"blob_id": "abc"})

        assert isinstance(error, BlobError)
        assert error.status_code == status
        assert error.context["blob_id"] == "abc"

    def test_logs_with_context(self, caplog):
        with caplog.at_level(logging.ERROR):
            StorageWriteError("disk full", {"blob_id": "abc", "backend": "local"})

        assert "Blob error: disk full" in caplog.text
        assert "blob_id=abc" in caplog.text
        assert "backend=local" in caplog.text

    def test_client_errors_log_as_warnings(self, caplog):
        with caplog.at_level(logging.WARNING):
            NotFoundError("gone")

        assert caplog.records[-1].levelno == logging.WARNING

    def test_with_context_keeps_type_and_merges(self):
        original = NotFoundError("File not found", {"path": "/tmp/x"})
        wrapped = original.with_context("Blob data not found: abc", blob_id="abc")

        assert type(wrapped) is NotFoundError
        assert wrapped.message == "Blob data not found: abc"
        assert wrapped.context == {"path": "/tmp/x", "blob_id": "abc"}
        assert original.context == {"path": "/tmp/x"}

    def test_with_context_is_not_logged_again(self, caplog):
        original = StorageReadError("timeout", {"path": "/tmp/x"})
        caplog.clear()

        with caplog.at_level(logging.DEBUG, logger="blobvault.error_handling"):
            original.with_context("Failed to retrieve blob: timeout", blob_id="abc")

        assert caplog.records == []


class TestErrorResponse:
    def test_server_errors_expose_message(self):
        body = error_response(StorageWriteError("S3 PUT request failed: 500"))
        assert body == {"success": False, "message": "S3 PUT request failed: 500"}

    @pytest.mark.parametrize(
        "error, message",
        [
            (NotFoundError("Blob not found: secret-path"), "Blob not found"),
            (ConflictError("Blob with ID 'x' already exists"), "Blob already exists"),
            (ValidationError("Invalid base64 content"), "Validation failed"),
        ],
    )
    def test_client_errors_use_public_message(self, error, message):
        assert error_response(error)["message"] == message

    def test_field_errors_included(self):
        body = error_response(
            ValidationError("bad input"), errors={"data": ["Invalid base64 content"]}
        )
        assert body["errors"] == {"data": ["Invalid base64 content"]}

    def test_json_encoding(self):
        payload = error_response_json(ConflictError("dup"))
        assert orjson.loads(payload) == {"success": False, "message": "Blob already exists"}


class TestOperationContext:
    def test_logs_completion(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="blobvault.error_handling"):
            with operation_context("store blob", blob_id="abc"):
                pass

        assert "Starting blob operation: store blob" in caplog.text
        assert "Blob operation completed: store blob" in caplog.text

    def test_reraises_blob_errors(self, caplog):
        with pytest.raises(IntegrityError):
            with operation_context("retrieve blob"):
                raise IntegrityError("checksum mismatch")

        assert "Blob operation failed: retrieve blob - checksum mismatch" in caplog.text

    def test_reraises_unexpected_errors(self, caplog):
        with pytest.raises(RuntimeError):
            with operation_context("delete blob"):
                raise RuntimeError("boom")

        assert "Unexpected error in blob operation: delete blob - boom" in caplog.text

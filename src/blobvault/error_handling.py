"""
Standardized Error Handling for Blobvault
=========================================

This module provides the error taxonomy shared by the storage drivers, the
storage manager and the blob service, plus helpers for logging operations and
rendering errors as API response bodies.
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from .json_utils import dumps as json_dumps

logger = logging.getLogger(__name__)


class BlobError(Exception):
    """Base exception for all blob storage errors."""

    status_code = 500
    public_message: Optional[str] = None
    log_level = logging.ERROR

    def __init__(
        self, message: str, context: Optional[Dict[str, Any]] = None, log: bool = True
    ):
        self.message = message
        self.context = context or {}
        super().__init__(message)

        if not log:
            return

        # Log error with context for debugging
        context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        logger.log(
            self.log_level,
            f"Blob error: {message}" + (f" ({context_str})" if context_str else ""),
        )

    def with_context(self, message: str, **context) -> "BlobError":
        """
        Build an error of the same type with extra context merged in.

        The returned wrapper is not logged on construction.
        """
        merged = dict(self.context)
        merged.update(context)
        return type(self)(message, merged, log=False)


class NotFoundError(BlobError):
    """Raised when a blob or its physical payload does not exist."""

    status_code = 404
    public_message = "Blob not found"
    log_level = logging.WARNING


class ConflictError(BlobError):
    """Raised when an explicit blob id is already taken."""

    status_code = 409
    public_message = "Blob already exists"
    log_level = logging.WARNING


class ValidationError(BlobError):
    """Raised for malformed input such as invalid base64 content."""

    status_code = 422
    public_message = "Validation failed"
    log_level = logging.WARNING


class IntegrityError(BlobError):
    """Raised when stored bytes no longer match the recorded checksum."""

    pass


class StorageWriteError(BlobError):
    """Raised when a backend fails to write or delete a payload."""

    pass


class StorageReadError(BlobError):
    """Raised when a backend fails to read a payload."""

    pass


class ConfigurationError(BlobError):
    """Raised when the selected backend lacks required settings."""

    pass


def error_response(
    error: BlobError, errors: Optional[Dict[str, List[str]]] = None
) -> Dict[str, Any]:
    """
    Build the JSON error body returned to API clients.

    Internal messages are only exposed for operator-facing 5xx errors;
    client errors get the fixed public message of their class.

    Args:
        error: The error being reported
        errors: Optional field-level validation messages

    Returns:
        Dict with ``success``, ``message`` and optionally ``errors``
    """
    if error.status_code >= 500 or error.public_message is None:
        message = error.message
    else:
        message = error.public_message

    body: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def error_response_json(
    error: BlobError, errors: Optional[Dict[str, List[str]]] = None
) -> str:
    """Serialize :func:`error_response` to a JSON string."""
    return json_dumps(error_response(error, errors))


@contextmanager
def operation_context(operation: str, **context):
    """
    Context manager for blob operations with standardized logging.

    Args:
        operation: Description of the operation
        **context: Additional context for logging
    """
    logger.debug(f"Starting blob operation: {operation}", extra=context)
    start_time = time.time()

    try:
        yield
    except BlobError as e:
        logger.error(f"Blob operation failed: {operation} - {e}", extra=context)
        raise
    except Exception as e:
        logger.error(
            f"Unexpected error in blob operation: {operation} - {e}", extra=context
        )
        raise

    duration = time.time() - start_time
    logger.debug(
        f"Blob operation completed: {operation} ({duration:.3f}s)", extra=context
    )

"""
Utility functions for blobvault
===============================

Content hashing, id generation and formatting helpers shared by the service
and the storage drivers.
"""

import base64
import binascii
import hashlib
import uuid

from .error_handling import ValidationError

_SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def compute_md5(content: bytes) -> str:
    """Compute the hex MD5 digest used for dedup and integrity checks."""
    return hashlib.md5(content).hexdigest()


def generate_blob_id() -> str:
    """Generate a random blob identifier."""
    return str(uuid.uuid4())


def format_bytes(num_bytes: int) -> str:
    """
    Format a byte count as a human readable string.

    Example:
        >>> format_bytes(1536)
        '1.5 KB'
    """
    size = float(num_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1
    number = f"{size:.2f}".rstrip("0").rstrip(".")
    return f"{number} {_SIZE_UNITS[unit_index]}"


def decode_base64(text: str) -> bytes:
    """
    Strictly decode base64 text received from API clients.

    Raises:
        ValidationError: If the text is not valid base64
    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(
            "Invalid base64 content", {"original_error": str(e)}
        ) from e


def encoded_size(encoded: str) -> int:
    """
    Derive the decoded byte length of a base64 string without decoding it.

    Uses ``ceil(len * 3 / 4)`` minus the padding characters.
    """
    length = len(encoded)
    if length == 0:
        return 0
    padding = encoded[-2:].count("=")
    return -(-length * 3 // 4) - padding

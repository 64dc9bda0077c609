"""
Tests for hashing, formatting and base64 helpers.
"""

import base64

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from blobvault.error_handling import ValidationError
from blobvault.json_utils import dumps, loads
from blobvault.utils import (
    compute_md5,
    decode_base64,
    format_bytes,
    generate_blob_id,
)


class TestHashingAndIds:
    def test_md5_of_hello_world(self):
        assert compute_md5(b"Hello World") == "b10a8db164e0754105b7a99be72e3fe5"

    def test_generated_ids_are_unique(self):
        ids = {generate_blob_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(len(blob_id) == 36 for blob_id in ids)


class TestFormatBytes:
    @pytest.mark.parametrize(
        "size, expected",
        [
            (0, "0 B"),
            (1023, "1023 B"),
            (1024, "1 KB"),
            (1536, "1.5 KB"),
            (5 * 1024 * 1024, "5 MB"),
            (1024**4 * 3, "3 TB"),
            (1024**5, "1024 TB"),
            (1234567 * 1024**4, "1234567 TB"),
            (int(1234567.5 * 1024**4), "1234567.5 TB"),
        ],
    )
    def test_units(self, size, expected):
        assert format_bytes(size) == expected

    def test_two_decimals(self):
        assert format_bytes(1024 + 123) == "1.12 KB"


class TestDecodeBase64:
    def test_valid(self):
        assert decode_base64("SGVsbG8gV29ybGQ=") == b"Hello World"

    @pytest.mark.parametrize("text", ["not base64!", "SGVsbG8", "SGVs bG8="])
    def test_invalid_raises_validation_error(self, text):
        with pytest.raises(ValidationError) as exc_info:
            decode_base64(text)
        assert exc_info.value.status_code == 422

    @given(payload=st.binary(max_size=512))
    @settings(max_examples=100, deadline=None)
    def test_accepts_standard_encoding(self, payload):
        assert decode_base64(base64.b64encode(payload).decode("ascii")) == payload


class TestJsonUtils:
    def test_dumps_returns_str(self):
        assert dumps({"b": 1, "a": 2}, sort_keys=True) == '{"a":2,"b":1}'

    def test_loads(self):
        assert loads('{"success":false}') == {"success": False}

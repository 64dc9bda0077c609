"""
JSON Utilities
==============

Thin wrappers around orjson so the rest of the package deals in ``str``.
orjson handles datetime objects natively, which keeps metadata documents
free of custom encoders.
"""

from typing import Any, Union

import orjson


def dumps(obj: Any, sort_keys: bool = False) -> str:
    """
    Serialize object to JSON string using orjson.

    Args:
        obj: Object to serialize
        sort_keys: Whether to sort dictionary keys (for stable output)

    Returns:
        JSON string
    """
    option = 0
    if sort_keys:
        option |= orjson.OPT_SORT_KEYS

    # orjson returns bytes, decode to string for compatibility
    return orjson.dumps(obj, option=option).decode("utf-8")


def loads(s: Union[str, bytes]) -> Any:
    """Deserialize a JSON string or bytes."""
    return orjson.loads(s)

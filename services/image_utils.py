"""Image utility functions for base64 and data URL handling."""

from __future__ import annotations

import base64


def strip_data_url_prefix(value: str) -> str:
    """
    Return the base64 payload of a data URL, or the value unchanged.

    Examples:
        >>> strip_data_url_prefix("data:image/png;base64,aGVsbG8=")
        'aGVsbG8='
        >>> strip_data_url_prefix("aGVsbG8=")
        'aGVsbG8='
    """
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


def decode_data_url(data_url: str) -> bytes:
    """
    Decode a data URL to raw bytes.

    Args:
        data_url: A data URL (e.g., "data:image/png;base64,iVBOR...")
                  or raw base64 string.

    Returns:
        Decoded bytes.

    Examples:
        >>> decode_data_url("data:image/png;base64,aGVsbG8=")
        b'hello'
        >>> decode_data_url("aGVsbG8=")
        b'hello'
    """
    return base64.b64decode(strip_data_url_prefix(data_url))


def encode_base64(data: bytes | str) -> str:
    """
    Return data as base64 text.

    The Gemini SDK may hand back inline data either as raw bytes or as an
    already-encoded string; strings are passed through unchanged.
    """
    if isinstance(data, str):
        return data
    return base64.b64encode(data).decode("ascii")

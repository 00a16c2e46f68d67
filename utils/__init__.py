"""Utility functions for the Pixshop AI server."""

from .json_stream import (
    JSON_STREAM_MEDIA_TYPE,
    JsonStreamWriter,
    StreamClosedError,
)

from .ai_logging import (
    get_image_metadata,
    log_image_input,
    ImageMetadata,
)

__all__ = [
    "JSON_STREAM_MEDIA_TYPE",
    "JsonStreamWriter",
    "StreamClosedError",
    "get_image_metadata",
    "log_image_input",
    "ImageMetadata",
]

"""AI logging utilities for image input visibility.

Extracts metadata from images sent to (or received from) the provider so
requests can be logged without writing image data to the log.
"""

import base64
import binascii
import io
import logging
from typing import TypedDict

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


class ImageMetadata(TypedDict):
    """Metadata extracted from an image."""

    width: int
    height: int
    sizeBytes: int
    mimeType: str


def _decoded_size(base64_data: str) -> int:
    try:
        return len(base64.b64decode(base64_data))
    except (binascii.Error, ValueError):
        return 0


def get_image_metadata(base64_data: str, mime_type: str = "image/png") -> ImageMetadata:
    """
    Extract metadata from base64 image data.

    Args:
        base64_data: Base64-encoded image data (without data URL prefix).
        mime_type: MIME type of the image.

    Returns:
        Dictionary with width, height, sizeBytes, and mimeType. Width and
        height are 0 when the bytes cannot be opened as an image.
    """
    try:
        image_bytes = base64.b64decode(base64_data)
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size

        return ImageMetadata(
            width=width,
            height=height,
            sizeBytes=len(image_bytes),
            mimeType=mime_type,
        )

    except (binascii.Error, ValueError, OSError, UnidentifiedImageError) as e:
        logger.warning("Failed to get image metadata: %s", e)
        return ImageMetadata(
            width=0,
            height=0,
            sizeBytes=_decoded_size(base64_data),
            mimeType=mime_type,
        )


def log_image_input(
    logger_instance: logging.Logger,
    image_data: str,
    mime_type: str,
    label: str = "sourceImage",
) -> None:
    """
    Log an image input with metadata only (no base64 data).

    Args:
        logger_instance: Logger to use for output.
        image_data: Raw base64 image data.
        mime_type: MIME type declared by the caller.
        label: Key the metadata is logged under.
    """
    if not image_data:
        return
    logger_instance.info("Image inputs: %s", {label: get_image_metadata(image_data, mime_type)})

"""Services for the Pixshop AI server."""

from .image_utils import decode_data_url, encode_base64, strip_data_url_prefix

__all__ = [
    "decode_data_url",
    "encode_base64",
    "strip_data_url_prefix",
]

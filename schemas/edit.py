"""
Pydantic schemas and result types for the image edit endpoints.

Wire contract:
- Request:  { imageData: base64, mimeType: "image/...", prompt: str }
- Success:  { imageData: base64 }                       (200)
- Failure:  { error: str }                              (400 / 500)
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from enum import Enum
from typing import Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from services.image_utils import strip_data_url_prefix

MISSING_FIELDS_MESSAGE = "Missing image, MIME type, or instruction."
INVALID_BODY_MESSAGE = "Request body must be a JSON object."
MISSING_KEY_MESSAGE = "Gemini API key is not configured on the server."
BLOCKED_MESSAGE_PREFIX = "The request was blocked by the safety filter."
INTERRUPTED_MESSAGE_PREFIX = "Processing was interrupted."
NO_CANDIDATE_MESSAGE = "The provider returned no valid candidate."
NO_IMAGE_MESSAGE = "The provider processed the request but returned no image."
INVALID_BASE64_MESSAGE = "Image data is not valid base64."
UNSUPPORTED_MIME_PREFIX = "Unsupported MIME type:"
BLANK_INSTRUCTION_MESSAGE = "Instruction must not be blank."
UPSTREAM_UNREACHABLE_PREFIX = "Could not reach the image provider:"

_VALIDATION_MESSAGES = (
    MISSING_FIELDS_MESSAGE,
    INVALID_BODY_MESSAGE,
    INVALID_BASE64_MESSAGE,
    UNSUPPORTED_MIME_PREFIX,
    BLANK_INSTRUCTION_MESSAGE,
)


# =============================================================================
# Failure Taxonomy
# =============================================================================


class FailureCause(str, Enum):
    """Why an edit request did not produce an image."""

    VALIDATION_ERROR = "ValidationError"
    AUTH_ERROR = "AuthError"
    UPSTREAM_BLOCKED = "UpstreamBlocked"
    UPSTREAM_EMPTY = "UpstreamEmpty"
    UPSTREAM_FAILURE = "UpstreamFailure"
    NETWORK_ERROR = "NetworkError"

    @property
    def status_code(self) -> int:
        """HTTP status the handler answers with for this cause."""
        if self in (FailureCause.VALIDATION_ERROR, FailureCause.UPSTREAM_BLOCKED):
            return 400
        return 500


def classify_failure(status_code: int | None, message: str) -> FailureCause:
    """
    Recover the failure cause from an {error} body.

    The wire format carries only the message, so the cause is read back from
    the handler's fixed message texts, falling back to the HTTP status.
    Streamed responses always arrive with status 200.
    """
    if message == MISSING_KEY_MESSAGE:
        return FailureCause.AUTH_ERROR
    if message.startswith((BLOCKED_MESSAGE_PREFIX, INTERRUPTED_MESSAGE_PREFIX)):
        return FailureCause.UPSTREAM_BLOCKED
    if message.startswith(NO_IMAGE_MESSAGE):
        return FailureCause.UPSTREAM_EMPTY
    if message.startswith(UPSTREAM_UNREACHABLE_PREFIX):
        return FailureCause.NETWORK_ERROR
    if message.startswith(_VALIDATION_MESSAGES):
        return FailureCause.VALIDATION_ERROR
    if status_code is not None and 400 <= status_code < 500:
        return FailureCause.VALIDATION_ERROR
    return FailureCause.UPSTREAM_FAILURE


# =============================================================================
# POST /api/editImage - Request / Response
# =============================================================================


class EditImageRequest(BaseModel):
    """
    Request body for POST /api/editImage.

    imageData also accepts the older "imageBase64" field name. A data URL
    prefix is stripped; the explicit mimeType always wins over the prefix.
    """

    model_config = ConfigDict(populate_by_name=True)

    imageData: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("imageData", "imageBase64"),
        description="Source image as raw base64 (no data URL prefix)",
    )
    mimeType: str = Field(..., min_length=1, description="MIME type of the source image")
    prompt: str = Field(..., min_length=1, description="Free-text edit instruction")

    @field_validator("imageData")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        encoded = strip_data_url_prefix(v)
        if not encoded:
            raise ValueError(MISSING_FIELDS_MESSAGE)
        try:
            base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError(INVALID_BASE64_MESSAGE)
        return encoded

    @field_validator("mimeType")
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        if not v.startswith("image/"):
            raise ValueError(f"{UNSUPPORTED_MIME_PREFIX} {v}")
        return v

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        if not v.strip():
            raise ValueError(BLANK_INSTRUCTION_MESSAGE)
        return v


class EditImageResponse(BaseModel):
    """Successful edit: the first image part returned by the provider."""

    imageData: str = Field(..., description="Edited image as raw base64")


class ErrorResponse(BaseModel):
    """Normalized failure body shared by every endpoint."""

    error: str


# =============================================================================
# EditResult (what the forwarder hands back to the UI layer)
# =============================================================================


@dataclass(frozen=True)
class EditSuccess:
    """The edit produced an image."""

    image_data: str


@dataclass(frozen=True)
class EditFailure:
    """The edit failed; message is meant to be shown to the user as-is."""

    message: str
    cause: FailureCause


EditResult = Union[EditSuccess, EditFailure]

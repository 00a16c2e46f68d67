"""
Provider response model.

The Gemini SDK response is converted into these types as soon as it is
received (see services.gemini_client.to_provider_response) so that the
interpretation logic never touches SDK objects directly.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class FinishReason(str, Enum):
    """Normalized candidate finish status."""

    STOP = "STOP"
    LENGTH = "LENGTH"
    SAFETY = "SAFETY"
    OTHER = "OTHER"

    @property
    def completed(self) -> bool:
        """True when the candidate ran to a natural end."""
        return self in (FinishReason.STOP, FinishReason.LENGTH)


# Raw SDK finish reasons grouped by their normalized value
_LENGTH_REASONS = frozenset({"MAX_TOKENS", "MODEL_LENGTH", "LENGTH"})
_SAFETY_REASONS = frozenset(
    {
        "SAFETY",
        "IMAGE_SAFETY",
        "PROHIBITED_CONTENT",
        "BLOCKLIST",
        "SPII",
        "RECITATION",
        "IMAGE_PROHIBITED_CONTENT",
    }
)


def normalize_finish_reason(raw: str | None) -> FinishReason:
    """
    Map a provider finish reason string to FinishReason.

    A missing finish reason is treated as STOP, so a candidate that carries
    an image but no reason is accepted rather than reported as interrupted.
    """
    if raw is None or raw == "STOP":
        return FinishReason.STOP
    if raw in _LENGTH_REASONS:
        return FinishReason.LENGTH
    if raw in _SAFETY_REASONS:
        return FinishReason.SAFETY
    return FinishReason.OTHER


class TextPart(BaseModel):
    """Plain text returned alongside (or instead of) an image."""

    kind: Literal["text"] = "text"
    text: str


class InlineImagePart(BaseModel):
    """Inline binary data with its MIME type; data is base64 text."""

    kind: Literal["inline_data"] = "inline_data"
    mime_type: str
    data: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


Part = Annotated[Union[TextPart, InlineImagePart], Field(discriminator="kind")]


class Candidate(BaseModel):
    """One generated candidate."""

    finish_reason: FinishReason = FinishReason.STOP
    # Provider's own spelling, kept for error messages
    raw_finish_reason: Optional[str] = None
    parts: list[Part] = []

    @property
    def reason_label(self) -> str:
        return self.raw_finish_reason or self.finish_reason.value


class ProviderResponse(BaseModel):
    """Everything the edit handler needs from a generate_content call."""

    candidates: list[Candidate] = []
    block_reason: Optional[str] = None

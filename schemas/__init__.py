"""Schemas and configuration for the Pixshop AI server."""

from .config import AI_MODELS, EDIT_RESPONSE_MODALITIES, ServerSettings
from .edit import (
    MISSING_FIELDS_MESSAGE,
    EditFailure,
    EditImageRequest,
    EditImageResponse,
    EditResult,
    EditSuccess,
    ErrorResponse,
    FailureCause,
    classify_failure,
)
from .ideas import GenerateIdeasRequest, GenerateIdeasResponse, Idea
from .provider import (
    Candidate,
    FinishReason,
    InlineImagePart,
    ProviderResponse,
    TextPart,
)

__all__ = [
    # Config
    "AI_MODELS",
    "EDIT_RESPONSE_MODALITIES",
    "ServerSettings",
    # Edit Types
    "MISSING_FIELDS_MESSAGE",
    "EditImageRequest",
    "EditImageResponse",
    "ErrorResponse",
    "FailureCause",
    "EditResult",
    "EditSuccess",
    "EditFailure",
    "classify_failure",
    # Provider Response Types
    "ProviderResponse",
    "Candidate",
    "FinishReason",
    "TextPart",
    "InlineImagePart",
    # Idea Generation Types
    "GenerateIdeasRequest",
    "GenerateIdeasResponse",
    "Idea",
]

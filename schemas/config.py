"""
AI model and server configuration.

PROVIDER CONFIGURATION:
This file contains the only provider-specific configuration in the codebase.
To switch models, update the identifiers below or override them per
ServerSettings instance.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Final

# =============================================================================
# Model Identifiers
# =============================================================================

AI_MODELS: Final[dict[str, str]] = {
    # Image editing (image in, image + text out)
    "IMAGE_EDIT": "gemini-2.5-flash-image",
    # Structured text generation (idea lists)
    "IDEAS": "gemini-2.5-flash",
}

# Modalities the edit call accepts back from the provider
EDIT_RESPONSE_MODALITIES: Final[list[str]] = ["IMAGE", "TEXT"]

# =============================================================================
# Idea Generation
# =============================================================================

IDEA_COUNT: Final[int] = 4
IDEA_TEMPERATURE: Final[float] = 0.8
IDEA_TOP_P: Final[float] = 0.9

# =============================================================================
# Secrets
# =============================================================================

# Checked in order; the first non-empty value wins
API_KEY_ENV_VARS: Final[tuple[str, ...]] = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY")


@dataclass(frozen=True)
class ServerSettings:
    """
    Explicit configuration handed to the request handlers.

    The API key is resolved on every call to resolve_api_key() so a rotated
    secret takes effect without restarting the process. A pinned api_key
    (tests, embedding) bypasses the environment entirely.
    """

    api_key: str | None = None
    api_key_env_vars: tuple[str, ...] = API_KEY_ENV_VARS
    edit_model: str = AI_MODELS["IMAGE_EDIT"]
    ideas_model: str = AI_MODELS["IDEAS"]
    allowed_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3001"]
    )

    @classmethod
    def from_env(cls) -> ServerSettings:
        """Build settings from process environment variables."""
        origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3001")
        return cls(
            edit_model=os.getenv("EDIT_MODEL", AI_MODELS["IMAGE_EDIT"]),
            ideas_model=os.getenv("IDEAS_MODEL", AI_MODELS["IDEAS"]),
            allowed_origins=[origin.strip() for origin in origins.split(",") if origin.strip()],
        )

    def resolve_api_key(self) -> str | None:
        """Return the current API key, or None when no source provides one."""
        if self.api_key:
            return self.api_key
        for name in self.api_key_env_vars:
            value = os.getenv(name)
            if value:
                return value
        return None

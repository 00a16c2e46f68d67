"""
Gemini client for image editing and idea generation.

Every call goes through GeminiClient, which builds the request parts in the
order the provider expects and converts the SDK response into the explicit
ProviderResponse model before returning it.

A client is constructed per request with the API key resolved at that
moment, so key rotation never needs a restart.
"""

from __future__ import annotations

import logging
from typing import Any

from google import genai
from google.genai import types
from pydantic import TypeAdapter

from schemas import AI_MODELS, EDIT_RESPONSE_MODALITIES
from schemas.config import IDEA_COUNT, IDEA_TEMPERATURE, IDEA_TOP_P
from schemas.ideas import Idea
from schemas.provider import (
    Candidate,
    InlineImagePart,
    ProviderResponse,
    TextPart,
    normalize_finish_reason,
)
from services.image_utils import decode_data_url, encode_base64

logger = logging.getLogger(__name__)

_IDEA_LIST = TypeAdapter(list[Idea])


# =============================================================================
# SDK Response Conversion
# =============================================================================


def _enum_value(value: Any) -> str | None:
    """Return the string value of an SDK enum (or plain string), or None."""
    if value is None:
        return None
    return str(getattr(value, "value", value))


def to_provider_response(response: Any) -> ProviderResponse:
    """
    Convert a google-genai GenerateContentResponse into a ProviderResponse.

    Thought parts are skipped. Inline data is always exposed as base64 text,
    whether the SDK returned raw bytes or an encoded string.
    """
    block_reason = None
    feedback = getattr(response, "prompt_feedback", None)
    if feedback is not None:
        block_reason = _enum_value(getattr(feedback, "block_reason", None))

    candidates: list[Candidate] = []
    for sdk_candidate in getattr(response, "candidates", None) or []:
        raw_reason = _enum_value(getattr(sdk_candidate, "finish_reason", None))
        parts: list[TextPart | InlineImagePart] = []

        content = getattr(sdk_candidate, "content", None)
        for part in (content.parts if content else None) or []:
            if getattr(part, "thought", None):
                continue
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                parts.append(
                    InlineImagePart(
                        mime_type=inline.mime_type or "application/octet-stream",
                        data=encode_base64(inline.data),
                    )
                )
            elif getattr(part, "text", None):
                parts.append(TextPart(text=part.text))

        candidates.append(
            Candidate(
                finish_reason=normalize_finish_reason(raw_reason),
                raw_finish_reason=raw_reason,
                parts=parts,
            )
        )

    return ProviderResponse(candidates=candidates, block_reason=block_reason)


# =============================================================================
# Gemini Client
# =============================================================================


class GeminiClient:
    """Thin async wrapper around google.genai for the server's two calls."""

    def __init__(self, api_key: str):
        """Initialize the client with an API key."""
        if not api_key:
            raise ValueError("A Gemini API key is required")
        self._client = genai.Client(api_key=api_key)

    async def edit_image(
        self,
        *,
        image_data: str,
        mime_type: str,
        instruction: str,
        model: str = AI_MODELS["IMAGE_EDIT"],
    ) -> ProviderResponse:
        """
        Send one image edit request.

        The image part is sent before the text part; some multi-modal models
        read the instruction relative to the image that precedes it.

        Args:
            image_data: Source image as raw base64
            mime_type: MIME type of the source image
            instruction: Free-text edit instruction
            model: Model to use (defaults to IMAGE_EDIT model)

        Returns:
            ProviderResponse with all candidates and any prompt block reason
        """
        parts: list[types.Part] = [
            types.Part.from_bytes(data=decode_data_url(image_data), mime_type=mime_type),
            types.Part.from_text(text=instruction),
        ]

        response = await self._client.aio.models.generate_content(
            model=model,
            contents=types.Content(role="user", parts=parts),
            config=types.GenerateContentConfig(
                response_modalities=EDIT_RESPONSE_MODALITIES,
            ),
        )
        return to_provider_response(response)

    async def generate_ideas(
        self,
        *,
        topic: str,
        count: int = IDEA_COUNT,
        model: str = AI_MODELS["IDEAS"],
    ) -> list[Idea]:
        """
        Generate `count` distinct ideas about a topic as structured JSON.

        Raises:
            pydantic.ValidationError: the model returned JSON of the wrong shape.
        """
        prompt = (
            f'Generate {count} creative and distinct ideas about the following topic: "{topic}". '
            "For each idea, provide a title and a short description."
        )

        response = await self._client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=list[Idea],
                temperature=IDEA_TEMPERATURE,
                top_p=IDEA_TOP_P,
            ),
        )
        return _IDEA_LIST.validate_json((response.text or "").strip())

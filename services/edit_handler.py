"""
Server-side image edit pipeline.

Each request moves through:

    Validating -> Authenticating -> Invoking -> Interpreting -> Success | Failed

Every failure is raised as EditError inside the pipeline and converted at the
handler boundary into the normalized {"error": ...} body; nothing propagates
to the client as a stack trace. There are no retries.

How the final JSON reaches the client is a strategy the handler is built
with: BufferedDelivery answers with a single JSON body, StreamedDelivery
commits the response immediately and writes the result into a stream once
the upstream call returns.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

import httpx
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import ValidationError

from schemas import ServerSettings
from schemas.edit import (
    BLOCKED_MESSAGE_PREFIX,
    INTERRUPTED_MESSAGE_PREFIX,
    INVALID_BODY_MESSAGE,
    MISSING_FIELDS_MESSAGE,
    MISSING_KEY_MESSAGE,
    NO_CANDIDATE_MESSAGE,
    NO_IMAGE_MESSAGE,
    UPSTREAM_UNREACHABLE_PREFIX,
    EditImageRequest,
    FailureCause,
)
from schemas.provider import InlineImagePart, ProviderResponse, TextPart
from services.gemini_client import GeminiClient
from utils.ai_logging import log_image_input
from utils.json_stream import JSON_STREAM_MEDIA_TYPE, JsonStreamWriter

logger = logging.getLogger(__name__)


# =============================================================================
# Errors and Outcomes
# =============================================================================


class EditStage(str, Enum):
    """Pipeline stage a request is in."""

    VALIDATING = "validating"
    AUTHENTICATING = "authenticating"
    INVOKING = "invoking"
    INTERPRETING = "interpreting"


class EditError(Exception):
    """A failed edit, carrying its cause and a user-facing message."""

    def __init__(self, cause: FailureCause, message: str):
        super().__init__(message)
        self.cause = cause
        self.message = message

    @property
    def status_code(self) -> int:
        return self.cause.status_code


@dataclass(frozen=True)
class EditOutcome:
    """Status code and JSON payload produced by one pass through the pipeline."""

    status_code: int
    payload: dict[str, str]

    @classmethod
    def success(cls, image_data: str) -> EditOutcome:
        return cls(status_code=200, payload={"imageData": image_data})

    @classmethod
    def failure(cls, error: EditError) -> EditOutcome:
        return cls(status_code=error.status_code, payload={"error": error.message})


# =============================================================================
# Pipeline Steps
# =============================================================================

_MISSING_ERROR_TYPES = frozenset({"missing", "string_too_short", "string_type"})
_SHAPE_ERROR_TYPES = frozenset({"json_invalid", "json_type", "model_type", "model_attributes_type"})


def _describe_validation_error(exc: ValidationError) -> str:
    errors = exc.errors()
    error_types = {err["type"] for err in errors}
    if error_types & _SHAPE_ERROR_TYPES:
        return INVALID_BODY_MESSAGE
    if error_types & _MISSING_ERROR_TYPES:
        return MISSING_FIELDS_MESSAGE
    ctx = errors[0].get("ctx") or {}
    if "error" in ctx:
        return str(ctx["error"])
    return errors[0]["msg"]


def parse_edit_request(raw_body: bytes | str) -> EditImageRequest:
    """Parse and validate a raw JSON request body."""
    try:
        return EditImageRequest.model_validate_json(raw_body)
    except ValidationError as e:
        raise EditError(FailureCause.VALIDATION_ERROR, _describe_validation_error(e)) from e


def interpret_response(response: ProviderResponse) -> str:
    """
    Pick the edited image out of a provider response.

    Only the first candidate is considered. Its finish reason is checked
    before any part is looked at, so a blocked candidate fails even when it
    carries an image.

    Returns:
        Base64 data of the first inline part with an image/* MIME type.

    Raises:
        EditError: UpstreamBlocked, UpstreamFailure or UpstreamEmpty.
    """
    if not response.candidates:
        if response.block_reason:
            raise EditError(
                FailureCause.UPSTREAM_BLOCKED,
                f"{BLOCKED_MESSAGE_PREFIX} Reason: {response.block_reason}",
            )
        raise EditError(FailureCause.UPSTREAM_FAILURE, NO_CANDIDATE_MESSAGE)

    candidate = response.candidates[0]
    if not candidate.finish_reason.completed:
        raise EditError(
            FailureCause.UPSTREAM_BLOCKED,
            f"{INTERRUPTED_MESSAGE_PREFIX} Reason: {candidate.reason_label}",
        )

    for part in candidate.parts:
        if isinstance(part, InlineImagePart) and part.is_image:
            return part.data

    # Providers sometimes explain a refusal in text instead of returning an image
    explanation = " ".join(
        part.text.strip() for part in candidate.parts if isinstance(part, TextPart) and part.text.strip()
    )
    message = NO_IMAGE_MESSAGE
    if explanation:
        message = f"{message} Provider response: {explanation}"
    raise EditError(FailureCause.UPSTREAM_EMPTY, message)


# =============================================================================
# Delivery Strategies
# =============================================================================

OutcomeFactory = Callable[[], Awaitable[EditOutcome]]


class BufferedDelivery:
    """Wait for the outcome, then answer with one JSON body and its status."""

    async def deliver(self, run: OutcomeFactory) -> Response:
        outcome = await run()
        return JSONResponse(outcome.payload, status_code=outcome.status_code)


async def _produce(writer: JsonStreamWriter, run: OutcomeFactory) -> None:
    async with writer:
        outcome = await run()
        writer.write(outcome.payload)


class StreamedDelivery:
    """
    Start the response at once and write the outcome into it when ready.

    The status line goes out before the outcome exists, so it is always 200;
    failures are reported through the "error" field of the body.
    """

    async def deliver(self, run: OutcomeFactory) -> Response:
        async def body():
            writer = JsonStreamWriter()
            producer = asyncio.create_task(_produce(writer, run))
            try:
                async for chunk in writer.chunks():
                    yield chunk
                await producer
            finally:
                # Client disconnected mid-request
                if not producer.done():
                    producer.cancel()

        return StreamingResponse(
            body(),
            media_type=JSON_STREAM_MEDIA_TYPE,
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )


Delivery = BufferedDelivery | StreamedDelivery


# =============================================================================
# Edit Handler
# =============================================================================


class EditHandler:
    """
    Validate, authenticate, call Gemini and normalize its answer.

    Stateless apart from its configuration; one instance serves any number
    of concurrent requests.
    """

    def __init__(
        self,
        settings: ServerSettings,
        delivery: Delivery | None = None,
        client_factory: Callable[[str], GeminiClient] = GeminiClient,
    ):
        self._settings = settings
        self._delivery = delivery or BufferedDelivery()
        self._client_factory = client_factory

    async def handle_edit(self, raw_body: bytes | str) -> EditOutcome:
        """Run the pipeline for one request body. Never raises."""
        stage = EditStage.VALIDATING
        try:
            request = parse_edit_request(raw_body)

            stage = EditStage.AUTHENTICATING
            api_key = self._settings.resolve_api_key()
            if not api_key:
                raise EditError(FailureCause.AUTH_ERROR, MISSING_KEY_MESSAGE)

            stage = EditStage.INVOKING
            logger.info(
                "Image edit request: model=%s, prompt_length=%d",
                self._settings.edit_model,
                len(request.prompt),
            )
            log_image_input(logger, request.imageData, request.mimeType)
            client = self._client_factory(api_key)
            response = await client.edit_image(
                image_data=request.imageData,
                mime_type=request.mimeType,
                instruction=request.prompt,
                model=self._settings.edit_model,
            )

            stage = EditStage.INTERPRETING
            image_data = interpret_response(response)

        except EditError as e:
            logger.warning("Image edit failed while %s (%s): %s", stage.value, e.cause.value, e.message)
            return EditOutcome.failure(e)
        except httpx.RequestError as e:
            logger.error("Image edit failed while %s: provider unreachable: %s", stage.value, e)
            return EditOutcome.failure(
                EditError(FailureCause.NETWORK_ERROR, f"{UPSTREAM_UNREACHABLE_PREFIX} {e}")
            )
        except Exception as e:
            logger.exception("Image edit failed while %s: %s", stage.value, e)
            return EditOutcome.failure(EditError(FailureCause.UPSTREAM_FAILURE, f"Server error: {e}"))

        logger.info("Image edit successful")
        return EditOutcome.success(image_data)

    async def respond(self, raw_body: bytes | str) -> Response:
        """Run the pipeline and deliver its outcome with the configured strategy."""
        return await self._delivery.deliver(lambda: self.handle_edit(raw_body))

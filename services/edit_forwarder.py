"""
Client for the local edit and idea endpoints.

EditForwarder packages one edit request, POSTs it to the server and unwraps
the answer into an EditResult. It never raises for edit failures: transport
errors, error statuses and unreadable bodies all come back as EditFailure
with a message that can be shown to the user directly.

Two ways of reading the response body are supported:
- BUFFERED: read the whole body, then parse it.
- STREAMED: read chunks until the stream ends, decode them incrementally,
  then parse the concatenated text as one JSON document. Use this against
  the streamed endpoint, whose body arrives only after the upstream call.

No retries and no timeout of its own: each call makes exactly one request
and relies on the transport's limits.
"""

from __future__ import annotations

import codecs
import json
import logging
from enum import Enum
from typing import Any, NamedTuple

import httpx
from pydantic import TypeAdapter, ValidationError

from schemas.edit import EditFailure, EditResult, EditSuccess, FailureCause, classify_failure
from schemas.ideas import Idea

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_EDIT_PATH = "/api/editImage"
DEFAULT_STREAMED_EDIT_PATH = "/api/editImage/stream"
DEFAULT_IDEAS_PATH = "/api/generate"

_IDEA_LIST = TypeAdapter(list[Idea])


class ResponseMode(str, Enum):
    """How the forwarder consumes the response body."""

    BUFFERED = "buffered"
    STREAMED = "streamed"


class ForwarderError(Exception):
    """Raised by generate_ideas when the server does not return ideas."""

    def __init__(self, message: str, cause: FailureCause):
        super().__init__(message)
        self.message = message
        self.cause = cause


class RawResponse(NamedTuple):
    """Status and decoded body of one HTTP exchange."""

    status_code: int
    reason_phrase: str
    text: str


# =============================================================================
# Response Interpretation
# =============================================================================


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _error_message(raw: RawResponse, payload: Any) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, str) and error:
            return error
    # Not our JSON (e.g. a gateway error page): surface the text itself
    return raw.text.strip() or raw.reason_phrase or f"Request failed with status {raw.status_code}"


def interpret_edit_response(raw: RawResponse) -> EditResult:
    """Turn a raw HTTP exchange with the edit endpoint into an EditResult."""
    payload = _parse_json(raw.text)

    if not 200 <= raw.status_code < 300:
        message = _error_message(raw, payload)
        return EditFailure(message=message, cause=classify_failure(raw.status_code, message))

    if not isinstance(payload, dict):
        return EditFailure(
            message="The edit service returned a response that is not valid JSON.",
            cause=FailureCause.UPSTREAM_FAILURE,
        )

    image_data = payload.get("imageData")
    if isinstance(image_data, str) and image_data:
        return EditSuccess(image_data=image_data)

    error = payload.get("error")
    if isinstance(error, str) and error:
        return EditFailure(message=error, cause=classify_failure(raw.status_code, error))

    return EditFailure(
        message="The edit service returned neither an image nor an error.",
        cause=FailureCause.UPSTREAM_EMPTY,
    )


# =============================================================================
# Forwarder
# =============================================================================


class EditForwarder:
    """
    Async client for the Pixshop server.

    Args:
        base_url: Server origin.
        mode: Body consumption mode for submit_edit.
        edit_path: Path of the edit endpoint.
        ideas_path: Path of the idea generation endpoint.
        timeout: Passed to httpx; None disables client-side timeouts.
        transport: Optional httpx transport (tests, in-process ASGI apps).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        mode: ResponseMode = ResponseMode.BUFFERED,
        edit_path: str = DEFAULT_EDIT_PATH,
        ideas_path: str = DEFAULT_IDEAS_PATH,
        timeout: float | httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url
        self._mode = mode
        self._edit_path = edit_path
        self._ideas_path = ideas_path
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _post_buffered(self, client: httpx.AsyncClient, path: str, body: dict) -> RawResponse:
        response = await client.post(path, json=body)
        return RawResponse(response.status_code, response.reason_phrase, response.text)

    async def _post_streamed(self, client: httpx.AsyncClient, path: str, body: dict) -> RawResponse:
        # Incremental decoding keeps multi-byte characters split across chunks intact
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pieces: list[str] = []
        async with client.stream("POST", path, json=body) as response:
            async for chunk in response.aiter_bytes():
                pieces.append(decoder.decode(chunk))
            pieces.append(decoder.decode(b"", final=True))
            return RawResponse(response.status_code, response.reason_phrase, "".join(pieces))

    async def submit_edit(self, image_data: str, mime_type: str, instruction: str) -> EditResult:
        """
        Submit one edit request.

        Args:
            image_data: Source image as raw base64 (no data URL prefix)
            mime_type: MIME type of the source image
            instruction: Free-text edit instruction

        Returns:
            EditSuccess with the edited image, or EditFailure.
        """
        body = {"imageData": image_data, "mimeType": mime_type, "prompt": instruction}
        try:
            async with self._client() as client:
                if self._mode is ResponseMode.STREAMED:
                    raw = await self._post_streamed(client, self._edit_path, body)
                else:
                    raw = await self._post_buffered(client, self._edit_path, body)
        except httpx.RequestError as e:
            logger.error("Edit request to %s failed: %s", self._base_url, e)
            return EditFailure(
                message=f"Could not reach the edit service: {e}",
                cause=FailureCause.NETWORK_ERROR,
            )

        result = interpret_edit_response(raw)
        if isinstance(result, EditFailure):
            logger.warning("Edit request failed (%s): %s", result.cause.value, result.message)
        return result

    async def generate_ideas(self, topic: str) -> list[Idea]:
        """
        Ask the server for ideas about a topic.

        Raises:
            ForwarderError: on transport failure, error status or bad payload.
        """
        try:
            async with self._client() as client:
                raw = await self._post_buffered(client, self._ideas_path, {"topic": topic})
        except httpx.RequestError as e:
            logger.error("Idea request to %s failed: %s", self._base_url, e)
            raise ForwarderError(f"Could not reach the idea service: {e}", FailureCause.NETWORK_ERROR) from e

        payload = _parse_json(raw.text)
        if not 200 <= raw.status_code < 300:
            message = _error_message(raw, payload)
            raise ForwarderError(message, classify_failure(raw.status_code, message))

        if not isinstance(payload, dict) or "ideas" not in payload:
            raise ForwarderError("The idea service returned no ideas.", FailureCause.UPSTREAM_EMPTY)
        try:
            return _IDEA_LIST.validate_python(payload["ideas"])
        except ValidationError as e:
            raise ForwarderError("The idea service returned malformed ideas.", FailureCause.UPSTREAM_FAILURE) from e

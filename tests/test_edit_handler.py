"""Tests for the edit pipeline in services/edit_handler.py.

Tests cover:
1. parse_edit_request - required fields, aliases, base64 and MIME checks
2. interpret_response - candidate, finish reason and part selection rules
3. EditHandler.handle_edit - stage ordering, auth before invocation, error capture
4. Delivery strategies - buffered status codes, streamed single-chunk body
"""

import json

import httpx
import pytest
from fastapi.responses import JSONResponse, StreamingResponse

from schemas import ServerSettings
from schemas.edit import (
    MISSING_FIELDS_MESSAGE,
    MISSING_KEY_MESSAGE,
    UPSTREAM_UNREACHABLE_PREFIX,
    FailureCause,
    classify_failure,
)
from schemas.provider import (
    Candidate,
    FinishReason,
    InlineImagePart,
    ProviderResponse,
    TextPart,
)
from services.edit_handler import (
    BufferedDelivery,
    EditError,
    EditHandler,
    EditOutcome,
    StreamedDelivery,
    interpret_response,
    parse_edit_request,
)


# =============================================================================
# Test Fixtures
# =============================================================================


class FakeGeminiClient:
    """Stands in for GeminiClient; records calls and returns a canned response."""

    def __init__(self, response: ProviderResponse | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    async def edit_image(self, **kwargs) -> ProviderResponse:
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.response


def image_response(data: str = "qwerty") -> ProviderResponse:
    return ProviderResponse(
        candidates=[
            Candidate(
                finish_reason=FinishReason.STOP,
                parts=[InlineImagePart(mime_type="image/png", data=data)],
            )
        ]
    )


def make_handler(client: FakeGeminiClient, api_key: str | None = "test-key", delivery=None):
    keys: list[str] = []

    def factory(key: str) -> FakeGeminiClient:
        keys.append(key)
        return client

    settings = ServerSettings(api_key=api_key, api_key_env_vars=())
    handler = EditHandler(settings, delivery, client_factory=factory)
    return handler, keys


async def read_body(response: StreamingResponse) -> bytes:
    return b"".join([chunk async for chunk in response.body_iterator])


# =============================================================================
# parse_edit_request
# =============================================================================


class TestParseEditRequest:
    """Tests for request body validation."""

    def test_valid_body(self, edit_body):
        request = parse_edit_request(json.dumps(edit_body))
        assert request.mimeType == "image/png"
        assert request.prompt == "Make the sky purple"

    @pytest.mark.parametrize("missing", ["imageData", "mimeType", "prompt"])
    def test_missing_field(self, edit_body, missing):
        del edit_body[missing]
        with pytest.raises(EditError) as exc_info:
            parse_edit_request(json.dumps(edit_body))
        assert exc_info.value.cause is FailureCause.VALIDATION_ERROR
        assert exc_info.value.message == MISSING_FIELDS_MESSAGE
        assert exc_info.value.status_code == 400

    def test_empty_field_counts_as_missing(self, edit_body):
        edit_body["mimeType"] = ""
        with pytest.raises(EditError) as exc_info:
            parse_edit_request(json.dumps(edit_body))
        assert exc_info.value.message == MISSING_FIELDS_MESSAGE

    def test_blank_instruction_rejected(self, edit_body):
        edit_body["prompt"] = "   \n"
        with pytest.raises(EditError) as exc_info:
            parse_edit_request(json.dumps(edit_body))
        assert "blank" in exc_info.value.message

    def test_invalid_base64_rejected(self, edit_body):
        edit_body["imageData"] = "not base64 at all!"
        with pytest.raises(EditError) as exc_info:
            parse_edit_request(json.dumps(edit_body))
        assert "base64" in exc_info.value.message

    def test_non_image_mime_type_rejected(self, edit_body):
        edit_body["mimeType"] = "text/plain"
        with pytest.raises(EditError) as exc_info:
            parse_edit_request(json.dumps(edit_body))
        assert "text/plain" in exc_info.value.message

    def test_malformed_json_rejected(self):
        with pytest.raises(EditError) as exc_info:
            parse_edit_request(b"{not json")
        assert exc_info.value.cause is FailureCause.VALIDATION_ERROR

    def test_json_array_rejected(self):
        with pytest.raises(EditError) as exc_info:
            parse_edit_request(b"[]")
        assert exc_info.value.cause is FailureCause.VALIDATION_ERROR

    def test_legacy_image_field_name_accepted(self, edit_body):
        edit_body["imageBase64"] = edit_body.pop("imageData")
        request = parse_edit_request(json.dumps(edit_body))
        assert request.imageData == edit_body["imageBase64"]

    def test_data_url_prefix_stripped(self, edit_body, png_base64):
        edit_body["imageData"] = f"data:image/png;base64,{png_base64}"
        request = parse_edit_request(json.dumps(edit_body))
        assert request.imageData == png_base64


# =============================================================================
# interpret_response
# =============================================================================


class TestInterpretResponse:
    """Tests for picking the result out of a provider response."""

    def test_zero_candidates_with_block_reason(self):
        response = ProviderResponse(candidates=[], block_reason="SAFETY")
        with pytest.raises(EditError) as exc_info:
            interpret_response(response)
        assert exc_info.value.cause is FailureCause.UPSTREAM_BLOCKED
        assert exc_info.value.status_code == 400
        assert "SAFETY" in exc_info.value.message

    def test_zero_candidates_without_block_reason(self):
        with pytest.raises(EditError) as exc_info:
            interpret_response(ProviderResponse())
        assert exc_info.value.cause is FailureCause.UPSTREAM_FAILURE
        assert exc_info.value.status_code == 500

    def test_first_image_part_wins_over_leading_text(self):
        response = ProviderResponse(
            candidates=[
                Candidate(
                    finish_reason=FinishReason.STOP,
                    parts=[
                        TextPart(text="ok"),
                        InlineImagePart(mime_type="image/png", data="qwerty"),
                        InlineImagePart(mime_type="image/png", data="second"),
                    ],
                )
            ]
        )
        assert interpret_response(response) == "qwerty"

    def test_non_image_inline_data_skipped(self):
        response = ProviderResponse(
            candidates=[
                Candidate(
                    parts=[
                        InlineImagePart(mime_type="application/pdf", data="pdf"),
                        InlineImagePart(mime_type="image/jpeg", data="jpeg"),
                    ],
                )
            ]
        )
        assert interpret_response(response) == "jpeg"

    def test_length_finish_reason_is_accepted(self):
        response = ProviderResponse(
            candidates=[
                Candidate(
                    finish_reason=FinishReason.LENGTH,
                    raw_finish_reason="MAX_TOKENS",
                    parts=[InlineImagePart(mime_type="image/png", data="abc")],
                )
            ]
        )
        assert interpret_response(response) == "abc"

    def test_safety_finish_reason_blocks_even_with_image(self):
        response = ProviderResponse(
            candidates=[
                Candidate(
                    finish_reason=FinishReason.SAFETY,
                    raw_finish_reason="IMAGE_SAFETY",
                    parts=[InlineImagePart(mime_type="image/png", data="qwerty")],
                )
            ]
        )
        with pytest.raises(EditError) as exc_info:
            interpret_response(response)
        assert exc_info.value.cause is FailureCause.UPSTREAM_BLOCKED
        assert "IMAGE_SAFETY" in exc_info.value.message

    def test_other_finish_reason_blocks(self):
        response = ProviderResponse(candidates=[Candidate(finish_reason=FinishReason.OTHER)])
        with pytest.raises(EditError) as exc_info:
            interpret_response(response)
        assert exc_info.value.cause is FailureCause.UPSTREAM_BLOCKED
        assert "OTHER" in exc_info.value.message

    def test_no_image_includes_text_explanation(self):
        response = ProviderResponse(
            candidates=[Candidate(parts=[TextPart(text="I can't edit photos of people.")])]
        )
        with pytest.raises(EditError) as exc_info:
            interpret_response(response)
        assert exc_info.value.cause is FailureCause.UPSTREAM_EMPTY
        assert exc_info.value.status_code == 500
        assert "I can't edit photos of people." in exc_info.value.message

    def test_no_parts_at_all(self):
        with pytest.raises(EditError) as exc_info:
            interpret_response(ProviderResponse(candidates=[Candidate()]))
        assert exc_info.value.cause is FailureCause.UPSTREAM_EMPTY


# =============================================================================
# EditHandler.handle_edit
# =============================================================================


class TestHandleEdit:
    """Tests for the full pipeline with a fake provider."""

    @pytest.mark.asyncio
    async def test_success(self, edit_body):
        client = FakeGeminiClient(image_response("edited"))
        handler, keys = make_handler(client)

        outcome = await handler.handle_edit(json.dumps(edit_body))

        assert outcome == EditOutcome(status_code=200, payload={"imageData": "edited"})
        assert keys == ["test-key"]
        assert len(client.calls) == 1
        call = client.calls[0]
        assert call["image_data"] == edit_body["imageData"]
        assert call["mime_type"] == "image/png"
        assert call["instruction"] == "Make the sky purple"

    @pytest.mark.asyncio
    async def test_missing_key_fails_before_invoking(self, edit_body):
        client = FakeGeminiClient(image_response())
        handler, keys = make_handler(client, api_key=None)

        outcome = await handler.handle_edit(json.dumps(edit_body))

        assert outcome.status_code == 500
        assert outcome.payload == {"error": MISSING_KEY_MESSAGE}
        assert keys == []
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_validation_runs_before_auth(self):
        client = FakeGeminiClient(image_response())
        handler, _ = make_handler(client, api_key=None)

        outcome = await handler.handle_edit(b"{}")

        assert outcome.status_code == 400
        assert outcome.payload == {"error": MISSING_FIELDS_MESSAGE}

    @pytest.mark.asyncio
    async def test_provider_exception_becomes_500(self, edit_body):
        client = FakeGeminiClient(error=RuntimeError("quota exceeded"))
        handler, _ = make_handler(client)

        outcome = await handler.handle_edit(json.dumps(edit_body))

        assert outcome.status_code == 500
        assert outcome.payload == {"error": "Server error: quota exceeded"}

    @pytest.mark.asyncio
    async def test_unreachable_provider_is_network_error(self, edit_body):
        client = FakeGeminiClient(error=httpx.ConnectError("upstream unreachable"))
        handler, _ = make_handler(client)

        outcome = await handler.handle_edit(json.dumps(edit_body))

        assert outcome.status_code == 500
        assert outcome.payload == {"error": f"{UPSTREAM_UNREACHABLE_PREFIX} upstream unreachable"}
        assert classify_failure(outcome.status_code, outcome.payload["error"]) is FailureCause.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_key_is_read_per_request(self, edit_body, monkeypatch):
        monkeypatch.delenv("PIXSHOP_TEST_KEY", raising=False)
        client = FakeGeminiClient(image_response())
        keys: list[str] = []

        def factory(key):
            keys.append(key)
            return client

        settings = ServerSettings(api_key_env_vars=("PIXSHOP_TEST_KEY",))
        handler = EditHandler(settings, client_factory=factory)

        first = await handler.handle_edit(json.dumps(edit_body))
        monkeypatch.setenv("PIXSHOP_TEST_KEY", "rotated")
        second = await handler.handle_edit(json.dumps(edit_body))

        assert first.status_code == 500
        assert second.status_code == 200
        assert keys == ["rotated"]


# =============================================================================
# Delivery Strategies
# =============================================================================


class TestDelivery:
    """Tests for buffered and streamed delivery of the same outcome."""

    @pytest.mark.asyncio
    async def test_buffered_uses_outcome_status(self):
        handler, _ = make_handler(FakeGeminiClient(image_response()), delivery=BufferedDelivery())

        response = await handler.respond(b"{}")

        assert isinstance(response, JSONResponse)
        assert response.status_code == 400
        assert json.loads(response.body) == {"error": MISSING_FIELDS_MESSAGE}

    @pytest.mark.asyncio
    async def test_streamed_success_is_single_json_document(self, edit_body):
        handler, _ = make_handler(FakeGeminiClient(image_response("xyz")), delivery=StreamedDelivery())

        response = await handler.respond(json.dumps(edit_body))

        assert isinstance(response, StreamingResponse)
        assert response.media_type == "application/json; charset=utf-8"
        chunks = [chunk async for chunk in response.body_iterator]
        assert len(chunks) == 1
        assert json.loads(chunks[0]) == {"imageData": "xyz"}

    @pytest.mark.asyncio
    async def test_streamed_failure_reports_error_with_200(self, edit_body):
        handler, _ = make_handler(FakeGeminiClient(image_response()), api_key=None, delivery=StreamedDelivery())

        response = await handler.respond(json.dumps(edit_body))

        assert response.status_code == 200
        assert json.loads(await read_body(response)) == {"error": MISSING_KEY_MESSAGE}

    @pytest.mark.asyncio
    async def test_streamed_body_ends_when_producer_raises(self):
        async def broken():
            raise RuntimeError("producer exploded")

        response = await StreamedDelivery().deliver(broken)

        with pytest.raises(RuntimeError, match="producer exploded"):
            await read_body(response)

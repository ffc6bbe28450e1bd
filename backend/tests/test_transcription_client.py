"""Tests for the ElevenLabs speech-to-text client."""

import httpx
import pytest

from toolbox_subtitles.services.results import FailureKind
from toolbox_subtitles.services.transcription_client import ElevenLabsTranscriptionClient

VIDEO = "https://cdn.example.com/talks/fire-drill.mp4"

BODY = {
    "language_code": "en",
    "text": "Stay safe.",
    "words": [
        {"text": "Stay", "type": "word", "start": 0.0, "end": 0.3},
        {"text": " ", "type": "spacing", "start": 0.3, "end": 0.3},
        {"text": "safe.", "type": "word", "start": 0.3, "end": 0.8, "logprob": -0.1},
    ],
}


def make_client(handler, api_key="el-key"):
    return ElevenLabsTranscriptionClient(
        api_key,
        model="scribe_v1",
        base_url="https://elevenlabs.test/v1/",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_transcribe_posts_url_as_multipart_form():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        request.read()
        seen.append(request)
        return httpx.Response(200, json=BODY)

    result = await make_client(handler).transcribe(VIDEO)

    assert result.ok
    assert [w.text for w in result.value] == ["Stay", " ", "safe."]
    assert result.value[2].end == 0.8

    request = seen[0]
    assert str(request.url) == "https://elevenlabs.test/v1/speech-to-text"
    assert request.headers["xi-api-key"] == "el-key"
    assert request.headers["content-type"].startswith("multipart/form-data")
    body = request.content.decode()
    assert 'name="cloud_storage_url"' in body
    assert VIDEO in body
    assert 'name="model_id"' in body
    assert "scribe_v1" in body


@pytest.mark.asyncio
async def test_missing_api_key_skips_request():
    def handler(request):
        raise AssertionError("no request expected")

    result = await make_client(handler, api_key="").transcribe(VIDEO)

    assert result.kind is FailureKind.CONFIGURATION


@pytest.mark.asyncio
async def test_http_error_status_is_transport_failure():
    result = await make_client(
        lambda request: httpx.Response(401, json={"detail": "invalid key"})
    ).transcribe(VIDEO)

    assert result.kind is FailureKind.TRANSPORT
    assert "401" in result.error


@pytest.mark.asyncio
async def test_network_error_is_transport_failure():
    def handler(request):
        raise httpx.ReadTimeout("timed out")

    result = await make_client(handler).transcribe(VIDEO)

    assert result.kind is FailureKind.TRANSPORT


@pytest.mark.asyncio
async def test_undecodable_body_is_malformed():
    result = await make_client(
        lambda request: httpx.Response(200, text="<html>oops</html>")
    ).transcribe(VIDEO)

    assert result.kind is FailureKind.MALFORMED_RESPONSE


@pytest.mark.asyncio
async def test_no_words_is_empty_result():
    result = await make_client(
        lambda request: httpx.Response(200, json={"text": "", "words": []})
    ).transcribe(VIDEO)

    assert result.kind is FailureKind.EMPTY_RESULT

"""Speech-to-text client for the ElevenLabs API."""

import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from toolbox_subtitles.config import settings
from toolbox_subtitles.schemas.subtitles import TranscriptionResponse, TranscriptWord
from toolbox_subtitles.services.results import FailureKind, ServiceResult

logger = logging.getLogger(__name__)


class ElevenLabsTranscriptionClient:
    """Transcribe a publicly reachable video URL into timed words."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.elevenlabs_api_key
        self.model = model or settings.elevenlabs_model
        self.base_url = (base_url or settings.elevenlabs_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self._transport = transport

    async def transcribe(self, video_url: str) -> ServiceResult[List[TranscriptWord]]:
        if not self.api_key:
            return ServiceResult.failure(
                FailureKind.CONFIGURATION, "ElevenLabs API key is not configured"
            )

        logger.info("Starting transcription for %s", video_url)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/speech-to-text",
                    headers={"xi-api-key": self.api_key},
                    # multipart form fields without a file part
                    files={
                        "cloud_storage_url": (None, video_url),
                        "model_id": (None, self.model),
                    },
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Transcription request rejected: %s %s",
                exc.response.status_code,
                exc.response.text[:500],
            )
            return ServiceResult.failure(
                FailureKind.TRANSPORT,
                f"Transcription service returned HTTP {exc.response.status_code}",
            )
        except httpx.HTTPError as exc:
            logger.warning("Transcription request failed: %s", exc)
            return ServiceResult.failure(FailureKind.TRANSPORT, f"HTTP request failed: {exc}")

        try:
            body = TranscriptionResponse.model_validate_json(response.content)
        except ValidationError as exc:
            logger.warning("Could not decode transcription response: %s", exc)
            return ServiceResult.failure(
                FailureKind.MALFORMED_RESPONSE, "Failed to parse transcription response"
            )

        if not body.words:
            return ServiceResult.failure(
                FailureKind.EMPTY_RESULT, "Transcription returned no words"
            )

        logger.info("Transcription completed. Words extracted: %s", len(body.words))
        return ServiceResult.success(body.words)

"""Pydantic schemas package."""

from toolbox_subtitles.schemas.subtitles import (
    StartProcessingRequest,
    StartProcessingResponse,
    SubtitleProcessingStatus,
    SubtitleProgressUpdate,
    TranscriptWord,
    TranslationItem,
)

__all__ = [
    "StartProcessingRequest",
    "StartProcessingResponse",
    "SubtitleProcessingStatus",
    "SubtitleProgressUpdate",
    "TranscriptWord",
    "TranslationItem",
]

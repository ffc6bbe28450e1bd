"""Pydantic schemas for subtitle processing."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from toolbox_subtitles.models.subtitle_job import VideoSourceType


class TranscriptWord(BaseModel):
    """One timed token returned by speech-to-text."""

    text: str = ""
    type: Literal["word", "spacing", "punctuation", "audio_event"] = "word"
    start: float = 0.0
    end: float = 0.0


class TranscriptionResponse(BaseModel):
    """Subset of the speech-to-text response body we rely on."""

    language_code: Optional[str] = None
    text: Optional[str] = None
    words: List[TranscriptWord] = []


class TranslationItem(BaseModel):
    """A keyed piece of content for batch translation."""

    key: str
    text: str
    is_html: bool = False
    context: Optional[str] = None


class StartProcessingRequest(BaseModel):
    """Request schema for starting subtitle processing."""

    video_url: str = Field(min_length=1, max_length=2048)
    video_source_type: VideoSourceType = VideoSourceType.DIRECT_URL
    target_languages: List[str] = Field(min_length=1)


class StartProcessingResponse(BaseModel):
    """Response schema for an accepted processing or retry request."""

    job_id: str
    message: str
    status_url: str


class LanguageStatus(BaseModel):
    """Per-language progress."""

    model_config = {"from_attributes": True}

    language: str
    language_code: str
    status: str
    percentage: int = 0
    srt_url: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    updated_at: Optional[datetime] = None


class SubtitleProcessingStatus(BaseModel):
    """Aggregate job status with per-language detail."""

    job_id: str
    toolbox_talk_id: str
    status: str
    overall_percentage: int
    current_step: str
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_subtitles: int = 0
    languages: List[LanguageStatus] = []


class LanguageProgress(BaseModel):
    language: str
    language_code: str
    status: str
    percentage: int = 0
    srt_url: Optional[str] = None


class SubtitleProgressUpdate(BaseModel):
    """Ephemeral progress message pushed to subscribers of a job."""

    job_id: str
    stage: str
    percent: int = Field(ge=0, le=100)
    message: str
    error_message: Optional[str] = None
    languages: List[LanguageProgress] = []


class SupportedLanguage(BaseModel):
    language: str
    language_code: str


class AvailableLanguagesResponse(BaseModel):
    languages: List[SupportedLanguage]

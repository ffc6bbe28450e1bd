"""Database models package."""

from toolbox_subtitles.models.toolbox_talk import ToolboxTalk
from toolbox_subtitles.models.subtitle_job import (
    SubtitleJob,
    SubtitleJobStatus,
    SubtitleTranslation,
    TranslationStatus,
    VideoSourceType,
)

__all__ = [
    "ToolboxTalk",
    "SubtitleJob",
    "SubtitleJobStatus",
    "SubtitleTranslation",
    "TranslationStatus",
    "VideoSourceType",
]

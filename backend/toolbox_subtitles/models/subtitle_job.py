"""Subtitle processing job and per-language translation models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from toolbox_subtitles.database import Base


class SubtitleJobStatus(str, Enum):
    PENDING = "pending"
    TRANSCRIBING = "transcribing"
    GENERATING_SRT = "generating_srt"
    TRANSLATING = "translating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATUSES = {
    SubtitleJobStatus.COMPLETED.value,
    SubtitleJobStatus.FAILED.value,
    SubtitleJobStatus.CANCELLED.value,
}


class TranslationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class VideoSourceType(str, Enum):
    DIRECT_URL = "direct_url"
    GOOGLE_DRIVE = "google_drive"
    AZURE_BLOB = "azure_blob"


class SubtitleJob(Base):
    """One end-to-end subtitle processing attempt for a toolbox talk.

    Status values:
    pending         - Created, waiting for a worker
    transcribing    - Resolving the video URL and running speech-to-text
    generating_srt  - Building and uploading the English SRT
    translating     - Translating the English SRT into each requested language
    completed       - English SRT exists; individual languages may still have failed
    failed          - No usable English SRT was produced
    cancelled       - Cancellation requested by a user
    """

    __tablename__ = "subtitle_jobs"

    id = Column(String(36), primary_key=True)  # UUID
    tenant_id = Column(String(36), nullable=False, index=True)
    toolbox_talk_id = Column(
        String(36), ForeignKey("toolbox_talks.id"), nullable=False, index=True
    )
    source_video_url = Column(String(2048), nullable=False)
    video_source_type = Column(String(20), nullable=False, default=VideoSourceType.DIRECT_URL.value)
    status = Column(String(20), nullable=False, index=True, default=SubtitleJobStatus.PENDING.value)
    english_srt_content = Column(Text, nullable=True)
    english_srt_url = Column(String(2048), nullable=True)
    total_subtitles = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    toolbox_talk = relationship("ToolboxTalk", back_populates="subtitle_jobs")
    translations = relationship(
        "SubtitleTranslation",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="SubtitleTranslation.id",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def translation_for(self, language_code: str) -> "SubtitleTranslation | None":
        code = language_code.lower()
        for translation in self.translations:
            if translation.language_code.lower() == code:
                return translation
        return None

    def __repr__(self) -> str:
        return f"<SubtitleJob(id='{self.id}', talk='{self.toolbox_talk_id}', status='{self.status}')>"


class SubtitleTranslation(Base):
    """Subtitle output for one requested language of a job."""

    __tablename__ = "subtitle_job_languages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(
        String(36), ForeignKey("subtitle_jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    language = Column(String(64), nullable=False)
    language_code = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False, default=TranslationStatus.PENDING.value)
    srt_content = Column(Text, nullable=True)
    srt_url = Column(String(2048), nullable=True)
    storage_key = Column(String(512), nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)
    total_subtitles = Column(Integer, default=0, nullable=False)
    subtitles_processed = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    job = relationship("SubtitleJob", back_populates="translations")

    @property
    def percentage(self) -> int:
        if not self.total_subtitles:
            return 0
        return (self.subtitles_processed * 100) // self.total_subtitles

    def __repr__(self) -> str:
        return (
            f"<SubtitleTranslation(job='{self.job_id}', code='{self.language_code}', "
            f"status='{self.status}')>"
        )

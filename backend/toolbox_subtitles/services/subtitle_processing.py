"""Subtitle processing for toolbox talk videos.

A job moves through resolve URL -> transcribe -> English SRT -> per-language
translation. English is produced first and every other language is derived
from the stored English SRT, so languages can be retried or added later
without transcribing again.

Failures before the English SRT exists fail the whole job. Failures while
translating are recorded on that language only and the job still completes.
"""

import asyncio
import logging
import uuid
import weakref
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from toolbox_subtitles.config import settings
from toolbox_subtitles.models.subtitle_job import (
    TERMINAL_JOB_STATUSES,
    SubtitleJob,
    SubtitleJobStatus,
    SubtitleTranslation,
    TranslationStatus,
    VideoSourceType,
)
from toolbox_subtitles.models.toolbox_talk import ToolboxTalk
from toolbox_subtitles.schemas.subtitles import (
    LanguageProgress,
    LanguageStatus,
    SubtitleProcessingStatus,
    SubtitleProgressUpdate,
)
from toolbox_subtitles.services.errors import (
    JobStateError,
    SubtitleProcessingError,
    TalkNotFoundError,
)
from toolbox_subtitles.services.language_codes import ENGLISH_CODE, ENGLISH_NAME, resolve_language
from toolbox_subtitles.services.progress import ProgressBroker
from toolbox_subtitles.services.storage import ArtifactKind, ArtifactMetadata, ObjectStorage
from toolbox_subtitles.services.video_source import detect_source_type
from toolbox_subtitles.utils.subtitle_format import count_blocks, generate_srt, split_into_blocks

logger = logging.getLogger(__name__)

MODE_PROCESS = "process"
MODE_RETRY = "retry"

# Overall percent at the end of each stage; translations share 15..95.
PERCENT_RESOLVED = 2
PERCENT_TRANSCRIBING = 5
PERCENT_SRT = 10
PERCENT_ENGLISH_UPLOADED = 15
PERCENT_TRANSLATIONS_END = 95

CANCELLED_MESSAGE = "Processing was cancelled by user"


class UnsupportedLanguageError(SubtitleProcessingError):
    """One or more requested languages are not in the language table."""

    def __init__(self, languages: Sequence[str]):
        self.languages = list(languages)
        super().__init__(f"Unsupported languages: {', '.join(self.languages)}")


class JobDispatcher(Protocol):
    async def enqueue(self, job_id: str, *, mode: str = MODE_PROCESS) -> None: ...


def _now() -> datetime:
    return datetime.utcnow()


def _is_english(translation: SubtitleTranslation) -> bool:
    return translation.language_code.lower() == ENGLISH_CODE


def normalize_languages(target_languages: Sequence[str]) -> List[Tuple[str, str]]:
    """Return ``(name, code)`` pairs with English first and duplicates dropped.

    Raises:
        UnsupportedLanguageError: if any entry is neither a known name nor code
    """
    resolved: List[Tuple[str, str]] = [(ENGLISH_NAME, ENGLISH_CODE)]
    seen = {ENGLISH_CODE}
    unknown: List[str] = []
    for value in target_languages:
        if not value or not value.strip():
            continue
        try:
            name, code = resolve_language(value)
        except ValueError:
            unknown.append(value)
            continue
        if code not in seen:
            seen.add(code)
            resolved.append((name, code))
    if unknown:
        raise UnsupportedLanguageError(unknown)
    return resolved


def overall_percentage(job: SubtitleJob) -> int:
    status = job.status
    if status == SubtitleJobStatus.TRANSCRIBING:
        return PERCENT_TRANSCRIBING
    if status == SubtitleJobStatus.GENERATING_SRT:
        return PERCENT_SRT
    if status == SubtitleJobStatus.TRANSLATING:
        others = [t for t in job.translations if not _is_english(t)]
        if not others:
            return PERCENT_ENGLISH_UPLOADED
        done = sum(1 for t in others if t.status == TranslationStatus.COMPLETED)
        span = PERCENT_TRANSLATIONS_END - PERCENT_ENGLISH_UPLOADED
        return PERCENT_ENGLISH_UPLOADED + done * span // len(others)
    if status == SubtitleJobStatus.COMPLETED:
        return 100
    return 0


def current_step(job: SubtitleJob) -> str:
    status = job.status
    if status == SubtitleJobStatus.TRANSLATING:
        for translation in job.translations:
            if translation.status == TranslationStatus.IN_PROGRESS:
                return (
                    f"Translating {translation.language}... "
                    f"({translation.subtitles_processed}/{translation.total_subtitles})"
                )
        return "Translating..."
    return {
        SubtitleJobStatus.PENDING.value: "Waiting to start...",
        SubtitleJobStatus.TRANSCRIBING.value: "Transcribing audio...",
        SubtitleJobStatus.GENERATING_SRT.value: "Generating subtitles...",
        SubtitleJobStatus.COMPLETED.value: "Complete!",
        SubtitleJobStatus.FAILED.value: "Failed",
        SubtitleJobStatus.CANCELLED.value: "Cancelled",
    }.get(status, "Unknown")


def build_status(job: SubtitleJob) -> SubtitleProcessingStatus:
    return SubtitleProcessingStatus(
        job_id=job.id,
        toolbox_talk_id=job.toolbox_talk_id,
        status=job.status,
        overall_percentage=overall_percentage(job),
        current_step=current_step(job),
        error_message=job.error_message,
        started_at=job.started_at,
        completed_at=job.completed_at,
        total_subtitles=job.total_subtitles or 0,
        languages=[LanguageStatus.model_validate(t) for t in job.translations],
    )


class SubtitleProcessingOrchestrator:
    """Drive subtitle jobs through their states.

    Collaborators are injected so each one can be replaced in tests.
    ``process`` and ``process_retry`` are serialized per job id.
    """

    def __init__(
        self,
        *,
        transcriber,
        translator,
        video_resolver,
        storage: ObjectStorage,
        broker: ProgressBroker,
        dispatcher: Optional[JobDispatcher] = None,
        words_per_cue: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        self.transcriber = transcriber
        self.translator = translator
        self.video_resolver = video_resolver
        self.storage = storage
        self.broker = broker
        self.dispatcher = dispatcher
        self.words_per_cue = words_per_cue or settings.words_per_subtitle
        self.batch_size = batch_size or settings.batch_size
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, job_id: str) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[job_id] = lock
        return lock

    # ------------------------------------------------------------------ queries

    async def _load_job(self, db: AsyncSession, job_id: str) -> Optional[SubtitleJob]:
        result = await db.execute(
            select(SubtitleJob)
            .options(selectinload(SubtitleJob.translations), selectinload(SubtitleJob.toolbox_talk))
            .where(SubtitleJob.id == job_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _latest_job(
        self,
        db: AsyncSession,
        talk_id: str,
        tenant_id: Optional[str] = None,
        *,
        completed_with_srt: bool = False,
    ) -> Optional[SubtitleJob]:
        stmt = (
            select(SubtitleJob)
            .options(selectinload(SubtitleJob.translations), selectinload(SubtitleJob.toolbox_talk))
            .where(SubtitleJob.toolbox_talk_id == talk_id)
        )
        if tenant_id is not None:
            stmt = stmt.where(SubtitleJob.tenant_id == tenant_id)
        if completed_with_srt:
            stmt = stmt.where(
                SubtitleJob.status == SubtitleJobStatus.COMPLETED.value,
                SubtitleJob.english_srt_content.isnot(None),
                SubtitleJob.english_srt_content != "",
            )
        stmt = (
            stmt.order_by(SubtitleJob.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_status(
        self, db: AsyncSession, talk_id: str, *, tenant_id: Optional[str] = None
    ) -> Optional[SubtitleProcessingStatus]:
        job = await self._latest_job(db, talk_id, tenant_id)
        return build_status(job) if job else None

    async def get_srt_content(
        self,
        db: AsyncSession,
        talk_id: str,
        language_code: str,
        *,
        tenant_id: Optional[str] = None,
    ) -> Optional[str]:
        """SRT text of a language on the talk's latest job, only once Completed."""
        job = await self._latest_job(db, talk_id, tenant_id)
        if job is None:
            return None
        translation = job.translation_for(language_code)
        if translation is None or translation.status != TranslationStatus.COMPLETED:
            return None
        return translation.srt_content

    # ----------------------------------------------------------------- commands

    async def start_processing(
        self,
        db: AsyncSession,
        talk_id: str,
        video_url: str,
        source_type: Optional[VideoSourceType | str],
        target_languages: Sequence[str],
        *,
        tenant_id: Optional[str] = None,
    ) -> str:
        """Create a pending job and hand it to the dispatcher.

        Raises:
            TalkNotFoundError: talk missing, soft-deleted or in another tenant
            JobStateError: the talk already has an active job
            UnsupportedLanguageError: a requested language is unknown
        """
        stmt = select(ToolboxTalk).where(
            ToolboxTalk.id == talk_id, ToolboxTalk.is_deleted.is_(False)
        )
        if tenant_id is not None:
            stmt = stmt.where(ToolboxTalk.tenant_id == tenant_id)
        talk = (await db.execute(stmt)).scalar_one_or_none()
        if talk is None:
            raise TalkNotFoundError(f"Toolbox talk {talk_id} not found")

        active = await db.execute(
            select(SubtitleJob.id).where(
                SubtitleJob.toolbox_talk_id == talk_id,
                SubtitleJob.status.notin_(TERMINAL_JOB_STATUSES),
            )
        )
        active_id = active.scalars().first()
        if active_id:
            raise JobStateError(
                f"A processing job is already active for this talk. Job ID: {active_id}"
            )

        languages = normalize_languages(target_languages)
        kind = VideoSourceType(source_type) if source_type else detect_source_type(video_url)

        job = SubtitleJob(
            id=str(uuid.uuid4()),
            tenant_id=talk.tenant_id,
            toolbox_talk_id=talk.id,
            source_video_url=video_url,
            video_source_type=kind.value,
            status=SubtitleJobStatus.PENDING.value,
            translations=[
                SubtitleTranslation(
                    language=name, language_code=code, status=TranslationStatus.PENDING.value
                )
                for name, code in languages
            ],
        )
        db.add(job)
        await db.commit()
        logger.info(
            "Subtitle job %s created for talk %s with languages %s",
            job.id,
            talk_id,
            [code for _, code in languages],
        )

        await self._dispatch(job.id, MODE_PROCESS)
        return job.id

    async def retry_failed_translations(
        self, db: AsyncSession, talk_id: str, *, tenant_id: Optional[str] = None
    ) -> Optional[str]:
        """Queue a retry of the failed languages of the talk's latest job.

        Returns None when the talk has no job.

        Raises:
            JobStateError: the job is still running or has nothing to retry
        """
        job = await self._latest_job(db, talk_id, tenant_id)
        if job is None:
            return None
        if not job.is_terminal:
            raise JobStateError("Job is still processing")
        english = job.translation_for(ENGLISH_CODE)
        if (
            not job.english_srt_content
            or english is None
            or english.status != TranslationStatus.COMPLETED
        ):
            raise JobStateError(
                "English subtitles not available. Please start a new processing job."
            )
        failed = [
            t for t in job.translations
            if not _is_english(t) and t.status == TranslationStatus.FAILED
        ]
        if not failed:
            raise JobStateError("No failed translations to retry")

        logger.info("Retrying %s failed translations for job %s", len(failed), job.id)
        await self._dispatch(job.id, MODE_RETRY)
        return job.id

    async def cancel_processing(
        self, db: AsyncSession, talk_id: str, *, tenant_id: Optional[str] = None
    ) -> bool:
        """Cancel the talk's latest job.

        Returns False when there is no job. Running workers notice the new
        status at their next checkpoint.

        Raises:
            JobStateError: the job already finished
        """
        job = await self._latest_job(db, talk_id, tenant_id)
        if job is None:
            return False
        if job.status == SubtitleJobStatus.COMPLETED:
            raise JobStateError("Cannot cancel a completed job")
        if job.status == SubtitleJobStatus.FAILED:
            raise JobStateError("Cannot cancel a failed job")
        if job.status == SubtitleJobStatus.CANCELLED:
            raise JobStateError("Job is already cancelled")

        logger.info("Cancelling subtitle job %s for talk %s", job.id, talk_id)
        job.status = SubtitleJobStatus.CANCELLED.value
        job.error_message = CANCELLED_MESSAGE
        job.completed_at = _now()
        for translation in job.translations:
            if translation.status == TranslationStatus.IN_PROGRESS:
                translation.status = TranslationStatus.FAILED.value
                translation.error_message = "Cancelled by user"
        await db.commit()

        await self._publish(job, 0, "Cancelled", error_message=CANCELLED_MESSAGE)
        return True

    async def translate_missing_languages(
        self,
        db: AsyncSession,
        talk_id: str,
        tenant_id: str,
        language_codes: Sequence[str],
    ) -> int:
        """Translate extra languages from the latest completed job's English SRT.

        Returns how many languages now have a completed translation.
        """
        job = await self._latest_job(db, talk_id, tenant_id, completed_with_srt=True)
        if job is None:
            logger.warning("No completed subtitle job with English SRT for talk %s", talk_id)
            return 0

        succeeded = 0
        for value in language_codes:
            try:
                name, code = resolve_language(value)
            except ValueError:
                logger.warning("Skipping unsupported language %r for talk %s", value, talk_id)
                continue
            if code == ENGLISH_CODE:
                continue
            translation = job.translation_for(code)
            if translation is not None and translation.status == TranslationStatus.COMPLETED:
                continue
            if translation is None:
                translation = SubtitleTranslation(
                    language=name, language_code=code, status=TranslationStatus.PENDING.value
                )
                job.translations.append(translation)
                await db.commit()
            else:
                translation.retry_count = (translation.retry_count or 0) + 1
            if await self._translate_language(db, job, translation):
                succeeded += 1

        logger.info(
            "Translated %s of %s missing languages for talk %s",
            succeeded,
            len(language_codes),
            talk_id,
        )
        return succeeded

    # ------------------------------------------------------------------ workers

    async def process(self, db: AsyncSession, job_id: str) -> None:
        """Run a job to a terminal state, skipping stages it already passed."""
        async with self._lock_for(job_id):
            job = await self._load_job(db, job_id)
            if job is None:
                logger.error("Subtitle job %s not found", job_id)
                return
            if job.is_terminal:
                logger.info("Subtitle job %s already %s; nothing to do", job_id, job.status)
                return

            logger.info("Processing subtitle job %s for talk %s", job_id, job.toolbox_talk_id)
            try:
                english = job.translation_for(ENGLISH_CODE)
                english_done = (
                    bool(job.english_srt_content)
                    and english is not None
                    and english.status == TranslationStatus.COMPLETED
                )
                if not english_done and not await self._produce_english(db, job):
                    return

                targets = [
                    t for t in job.translations
                    if not _is_english(t)
                    and t.status in (TranslationStatus.PENDING, TranslationStatus.IN_PROGRESS)
                ]
                if not await self._translate_all(db, job, targets):
                    return
                await self._complete_job(db, job)
            except Exception as exc:
                logger.exception("Subtitle job %s failed with exception", job_id)
                await db.rollback()
                job = await self._load_job(db, job_id)
                if job is not None and not job.is_terminal:
                    await self._fail_job(db, job, f"Processing failed: {exc}")

    async def process_retry(self, db: AsyncSession, job_id: str) -> int:
        """Re-run translation for the job's failed languages only.

        Returns the number of languages re-run; 0 means there was nothing to do.
        """
        async with self._lock_for(job_id):
            job = await self._load_job(db, job_id)
            if job is None:
                logger.error("Subtitle job %s not found for retry", job_id)
                return 0
            english = job.translation_for(ENGLISH_CODE)
            if (
                not job.english_srt_content
                or english is None
                or english.status != TranslationStatus.COMPLETED
            ):
                logger.warning("Subtitle job %s has no English SRT; cannot retry", job_id)
                return 0
            failed = [
                t for t in job.translations
                if not _is_english(t) and t.status == TranslationStatus.FAILED
            ]
            if not failed:
                logger.info("No failed translations to retry for job %s", job_id)
                return 0

            logger.info("Retrying %s translations for job %s", len(failed), job_id)
            try:
                job.status = SubtitleJobStatus.TRANSLATING.value
                job.error_message = None
                job.completed_at = None
                for translation in failed:
                    translation.retry_count = (translation.retry_count or 0) + 1
                await db.commit()
                await self._publish(job, PERCENT_ENGLISH_UPLOADED, "Retrying failed translations...")

                if await self._translate_all(db, job, failed):
                    await self._complete_job(db, job)
            except Exception as exc:
                logger.exception("Retry of subtitle job %s failed with exception", job_id)
                await db.rollback()
                job = await self._load_job(db, job_id)
                if job is not None and not job.is_terminal:
                    await self._fail_job(db, job, f"Retry failed: {exc}")
            return len(failed)

    # ------------------------------------------------------------------- stages

    async def _produce_english(self, db: AsyncSession, job: SubtitleJob) -> bool:
        """Resolve, transcribe, build and upload the English SRT."""
        if job.started_at is None:
            job.started_at = _now()
        await self._set_stage(
            db, job, SubtitleJobStatus.TRANSCRIBING, PERCENT_RESOLVED, "Getting video URL..."
        )
        url_result = await self.video_resolver.resolve_playable_url(
            job.source_video_url, job.video_source_type
        )
        if not url_result.ok:
            await self._fail_job(db, job, f"Failed to get video URL: {url_result.error}")
            return False
        if await self._is_cancelled(db, job):
            return False

        await self._publish(job, PERCENT_TRANSCRIBING, "Transcribing audio...")
        transcript = await self.transcriber.transcribe(url_result.value)
        if not transcript.ok:
            await self._fail_job(db, job, f"Transcription failed: {transcript.error}")
            return False
        if await self._is_cancelled(db, job):
            return False

        await self._set_stage(
            db, job, SubtitleJobStatus.GENERATING_SRT, PERCENT_SRT, "Generating subtitles..."
        )
        srt = generate_srt(transcript.value, self.words_per_cue)
        if not srt.strip():
            await self._fail_job(db, job, "Transcription produced no subtitle text")
            return False

        english = job.translation_for(ENGLISH_CODE)
        total = count_blocks(srt)
        job.english_srt_content = srt
        job.total_subtitles = total
        english.srt_content = srt
        english.total_subtitles = total
        english.status = TranslationStatus.IN_PROGRESS.value
        await db.commit()
        logger.info("Generated %s subtitle blocks for job %s", total, job.id)

        await self._publish(job, PERCENT_ENGLISH_UPLOADED, "Uploading English subtitles...")
        upload = await self.storage.upload_artifact(
            job.tenant_id,
            job.toolbox_talk_id,
            ArtifactKind.SUBTITLE,
            srt,
            ArtifactMetadata(title=self._talk_title(job), language_code=ENGLISH_CODE),
        )
        if not upload.ok:
            await self._fail_job(db, job, f"Failed to upload English subtitles: {upload.error}")
            return False

        english.status = TranslationStatus.COMPLETED.value
        english.srt_url = upload.value.url
        english.storage_key = upload.value.storage_key
        english.subtitles_processed = total
        english.error_message = None
        job.english_srt_url = upload.value.url
        await db.commit()
        return not await self._is_cancelled(db, job)

    async def _translate_all(
        self, db: AsyncSession, job: SubtitleJob, targets: List[SubtitleTranslation]
    ) -> bool:
        """Translate each target in turn; False if the job was cancelled."""
        if await self._is_cancelled(db, job):
            return False
        if job.status != SubtitleJobStatus.TRANSLATING:
            await self._set_stage(
                db, job, SubtitleJobStatus.TRANSLATING, PERCENT_ENGLISH_UPLOADED, "Translating..."
            )
        span = PERCENT_TRANSLATIONS_END - PERCENT_ENGLISH_UPLOADED
        for index, translation in enumerate(targets):
            if await self._is_cancelled(db, job):
                return False
            window = (
                PERCENT_ENGLISH_UPLOADED + index * span // len(targets),
                PERCENT_ENGLISH_UPLOADED + (index + 1) * span // len(targets),
            )
            await self._translate_language(db, job, translation, window)
        return not await self._is_cancelled(db, job)

    async def _translate_language(
        self,
        db: AsyncSession,
        job: SubtitleJob,
        translation: SubtitleTranslation,
        window: Optional[Tuple[int, int]] = None,
    ) -> bool:
        """Translate the English SRT batch by batch and upload the result.

        Any failed batch fails this language; the English text is never used
        as a stand-in for a missing translation.
        """
        job_id = job.id
        language = translation.language
        blocks = split_into_blocks(job.english_srt_content or "")
        logger.info("Translating to %s for job %s", language, job_id)

        try:
            translation.status = TranslationStatus.IN_PROGRESS.value
            translation.error_message = None
            translation.total_subtitles = len(blocks)
            translation.subtitles_processed = 0
            await db.commit()
            if window:
                await self._publish(job, window[0], f"Translating {language}...")

            translated: List[str] = []
            batch_count = (len(blocks) + self.batch_size - 1) // self.batch_size
            for number, start in enumerate(range(0, len(blocks), self.batch_size), start=1):
                batch = blocks[start : start + self.batch_size]
                result = await self.translator.translate_srt("\n\n".join(batch), language)
                if not result.ok:
                    await self._fail_translation(
                        db,
                        job,
                        translation,
                        f"Batch {number}/{batch_count} failed: {result.error}",
                        window[1] if window else None,
                    )
                    return False
                translated.append(result.value.strip())
                translation.subtitles_processed += len(batch)
                await db.commit()
                if await self._is_cancelled(db, job):
                    return False
                if window:
                    low, high = window
                    percent = low + (high - low) * translation.subtitles_processed // len(blocks)
                    await self._publish(
                        job,
                        percent,
                        f"Translating {language}... "
                        f"({translation.subtitles_processed}/{len(blocks)})",
                    )

            content = "\n\n".join(translated) + "\n\n"
            if count_blocks(content) != len(blocks):
                logger.warning(
                    "%s translation for job %s has %s blocks, expected %s",
                    language,
                    job_id,
                    count_blocks(content),
                    len(blocks),
                )

            upload = await self.storage.upload_artifact(
                job.tenant_id,
                job.toolbox_talk_id,
                ArtifactKind.SUBTITLE,
                content,
                ArtifactMetadata(
                    title=self._talk_title(job), language_code=translation.language_code
                ),
            )
            if not upload.ok:
                await self._fail_translation(
                    db,
                    job,
                    translation,
                    f"Upload failed: {upload.error}",
                    window[1] if window else None,
                )
                return False

            translation.status = TranslationStatus.COMPLETED.value
            translation.srt_content = content
            translation.srt_url = upload.value.url
            translation.storage_key = upload.value.storage_key
            await db.commit()
        except Exception as exc:
            logger.exception("Translation to %s failed for job %s", language, job_id)
            await db.rollback()
            job = await self._load_job(db, job_id)
            await self._fail_translation(
                db, job, translation, f"Translation failed: {exc}", window[1] if window else None
            )
            return False

        logger.info("Completed translation to %s for job %s", language, job_id)
        if window:
            await self._publish(job, window[1], f"{language} subtitles ready")
        return True

    # ------------------------------------------------------------------ helpers

    async def _set_stage(
        self,
        db: AsyncSession,
        job: SubtitleJob,
        status: SubtitleJobStatus,
        percent: int,
        message: str,
    ) -> None:
        job.status = status.value
        await db.commit()
        await self._publish(job, percent, message)

    async def _is_cancelled(self, db: AsyncSession, job: SubtitleJob) -> bool:
        await db.refresh(job, attribute_names=["status"])
        if job.status == SubtitleJobStatus.CANCELLED:
            logger.info("Subtitle job %s was cancelled; stopping", job.id)
            return True
        return False

    async def _fail_translation(
        self,
        db: AsyncSession,
        job: SubtitleJob,
        translation: SubtitleTranslation,
        message: str,
        percent: Optional[int] = None,
    ) -> None:
        logger.warning("%s translation failed for job %s: %s", translation.language, job.id, message)
        translation.status = TranslationStatus.FAILED.value
        translation.error_message = message
        await db.commit()
        await self._publish(
            job,
            overall_percentage(job) if percent is None else percent,
            f"{translation.language} failed",
            error_message=message,
        )

    async def _fail_job(self, db: AsyncSession, job: SubtitleJob, message: str) -> None:
        logger.error("Subtitle job %s failed: %s", job.id, message)
        job.status = SubtitleJobStatus.FAILED.value
        job.error_message = message
        job.completed_at = _now()
        for translation in job.translations:
            if translation.status != TranslationStatus.COMPLETED:
                translation.status = TranslationStatus.FAILED.value
                translation.error_message = message
        await db.commit()
        await self._publish(job, 0, "Failed", error_message=message)

    async def _complete_job(self, db: AsyncSession, job: SubtitleJob) -> None:
        job.status = SubtitleJobStatus.COMPLETED.value
        job.completed_at = _now()
        await db.commit()
        failed = [t.language_code for t in job.translations if t.status == TranslationStatus.FAILED]
        if failed:
            logger.info("Subtitle job %s completed; failed languages: %s", job.id, failed)
        else:
            logger.info("Subtitle job %s completed", job.id)
        await self._publish(job, 100, "Processing complete!")

    async def _publish(
        self,
        job: SubtitleJob,
        percent: int,
        message: str,
        *,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            update = SubtitleProgressUpdate(
                job_id=job.id,
                stage=job.status,
                percent=max(0, min(100, percent)),
                message=message,
                error_message=error_message,
                languages=[
                    LanguageProgress(
                        language=t.language,
                        language_code=t.language_code,
                        status=t.status,
                        percentage=t.percentage,
                        srt_url=t.srt_url,
                    )
                    for t in job.translations
                ],
            )
            await self.broker.publish(update)
        except Exception as exc:
            logger.warning("Failed to publish progress for job %s: %s", job.id, exc)

    async def _dispatch(self, job_id: str, mode: str) -> None:
        if self.dispatcher is None:
            logger.warning("No dispatcher configured; job %s (%s) not queued", job_id, mode)
            return
        await self.dispatcher.enqueue(job_id, mode=mode)

    @staticmethod
    def _talk_title(job: SubtitleJob) -> str:
        return job.toolbox_talk.title if job.toolbox_talk is not None else "subtitles"


_orchestrator: Optional[SubtitleProcessingOrchestrator] = None


def get_orchestrator() -> SubtitleProcessingOrchestrator:
    """Process-wide orchestrator wired to the real clients and the job queue."""
    global _orchestrator
    if _orchestrator is None:
        from toolbox_subtitles.services.job_queue import queue
        from toolbox_subtitles.services.progress import broker
        from toolbox_subtitles.services.storage import LocalObjectStorage
        from toolbox_subtitles.services.transcription_client import ElevenLabsTranscriptionClient
        from toolbox_subtitles.services.translation_client import ClaudeTranslationClient
        from toolbox_subtitles.services.video_source import VideoSourceResolver

        _orchestrator = SubtitleProcessingOrchestrator(
            transcriber=ElevenLabsTranscriptionClient(),
            translator=ClaudeTranslationClient(),
            video_resolver=VideoSourceResolver(),
            storage=LocalObjectStorage(),
            broker=broker,
            dispatcher=queue,
        )
    return _orchestrator


def set_orchestrator(orchestrator: Optional[SubtitleProcessingOrchestrator]) -> None:
    """Replace the process-wide orchestrator (None resets to the default wiring)."""
    global _orchestrator
    _orchestrator = orchestrator


async def process_subtitle_job(job_id: str, db: AsyncSession, *, mode: str = MODE_PROCESS) -> None:
    """Queue worker entry point."""
    orchestrator = get_orchestrator()
    if mode == MODE_RETRY:
        await orchestrator.process_retry(db, job_id)
    else:
        await orchestrator.process(db, job_id)

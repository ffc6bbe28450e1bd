"""Subtitle processing routes for toolbox talks."""

from typing import Literal

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Response,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from toolbox_subtitles.database import get_db
from toolbox_subtitles.logging_config import get_logger
from toolbox_subtitles.models.subtitle_job import TERMINAL_JOB_STATUSES, SubtitleJob
from toolbox_subtitles.models.toolbox_talk import ToolboxTalk
from toolbox_subtitles.routes.auth import (
    EDIT_PERMISSION,
    VIEW_PERMISSION,
    Principal,
    principal_from_token,
    require_permission,
)
from toolbox_subtitles.schemas.subtitles import (
    AvailableLanguagesResponse,
    StartProcessingRequest,
    StartProcessingResponse,
    SubtitleProcessingStatus,
    SupportedLanguage,
)
from toolbox_subtitles.services.errors import JobStateError, TalkNotFoundError
from toolbox_subtitles.services.language_codes import all_languages
from toolbox_subtitles.services.storage import generate_slug
from toolbox_subtitles.services.subtitle_processing import (
    SubtitleProcessingOrchestrator,
    UnsupportedLanguageError,
    get_orchestrator,
)
from toolbox_subtitles.utils.subtitle_format import srt_to_vtt

logger = get_logger(__name__)

router = APIRouter(prefix="/toolbox-talks/{talk_id}/subtitles", tags=["subtitles"])
languages_router = APIRouter(prefix="/subtitles", tags=["subtitles"])

SUBTITLE_MEDIA_TYPES = {"srt": "application/x-subrip", "vtt": "text/vtt"}


def get_subtitle_orchestrator() -> SubtitleProcessingOrchestrator:
    return get_orchestrator()


def _status_url(talk_id: str) -> str:
    return f"/toolbox-talks/{talk_id}/subtitles/status"


@router.post(
    "/process",
    response_model=StartProcessingResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_processing(
    talk_id: str,
    payload: StartProcessingRequest,
    principal: Principal = Depends(require_permission(EDIT_PERMISSION)),
    db: AsyncSession = Depends(get_db),
    orchestrator: SubtitleProcessingOrchestrator = Depends(get_subtitle_orchestrator),
):
    """
    Start subtitle processing for a toolbox talk video.

    Returns immediately; poll the status URL or subscribe to the progress
    channel for updates.

    Raises:
        HTTPException: 400 for unknown languages, a missing talk or an active job
    """
    try:
        job_id = await orchestrator.start_processing(
            db,
            talk_id,
            payload.video_url,
            payload.video_source_type,
            payload.target_languages,
            tenant_id=principal.tenant_id,
        )
    except UnsupportedLanguageError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": str(exc),
                "invalid_languages": exc.languages,
                "valid_languages": list(all_languages()),
            },
        )
    except (TalkNotFoundError, JobStateError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    return StartProcessingResponse(
        job_id=job_id,
        message="Subtitle processing started",
        status_url=_status_url(talk_id),
    )


@router.get("/status", response_model=SubtitleProcessingStatus)
async def get_processing_status(
    talk_id: str,
    principal: Principal = Depends(require_permission(VIEW_PERMISSION)),
    db: AsyncSession = Depends(get_db),
    orchestrator: SubtitleProcessingOrchestrator = Depends(get_subtitle_orchestrator),
):
    result = await orchestrator.get_status(db, talk_id, tenant_id=principal.tenant_id)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No subtitle processing job found for this toolbox talk",
        )
    return result


@router.post("/cancel")
async def cancel_processing(
    talk_id: str,
    principal: Principal = Depends(require_permission(EDIT_PERMISSION)),
    db: AsyncSession = Depends(get_db),
    orchestrator: SubtitleProcessingOrchestrator = Depends(get_subtitle_orchestrator),
):
    try:
        cancelled = await orchestrator.cancel_processing(
            db, talk_id, tenant_id=principal.tenant_id
        )
    except JobStateError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if not cancelled:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No subtitle processing job found for this toolbox talk",
        )
    return {"message": "Subtitle processing cancelled"}


@router.post(
    "/retry",
    response_model=StartProcessingResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def retry_failed_translations(
    talk_id: str,
    principal: Principal = Depends(require_permission(EDIT_PERMISSION)),
    db: AsyncSession = Depends(get_db),
    orchestrator: SubtitleProcessingOrchestrator = Depends(get_subtitle_orchestrator),
):
    try:
        job_id = await orchestrator.retry_failed_translations(
            db, talk_id, tenant_id=principal.tenant_id
        )
    except JobStateError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if job_id is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No subtitle processing job found for this toolbox talk",
        )
    return StartProcessingResponse(
        job_id=job_id,
        message="Retrying failed translations",
        status_url=_status_url(talk_id),
    )


@router.get("/{language_code}")
async def get_subtitle_file(
    talk_id: str,
    language_code: str,
    format: Literal["srt", "vtt"] = "srt",
    download: bool = False,
    principal: Principal = Depends(require_permission(VIEW_PERMISSION)),
    db: AsyncSession = Depends(get_db),
    orchestrator: SubtitleProcessingOrchestrator = Depends(get_subtitle_orchestrator),
):
    """
    Return a completed subtitle file as SRT or WebVTT.

    Raises:
        HTTPException: 404 if the talk or a completed subtitle file is missing
    """
    result = await db.execute(
        select(ToolboxTalk).where(
            ToolboxTalk.id == talk_id,
            ToolboxTalk.tenant_id == principal.tenant_id,
            ToolboxTalk.is_deleted.is_(False),
        )
    )
    talk = result.scalar_one_or_none()
    if talk is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Toolbox talk not found")

    content = await orchestrator.get_srt_content(
        db, talk_id, language_code, tenant_id=principal.tenant_id
    )
    if content is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Subtitles not available for language '{language_code}'",
        )

    if format == "vtt":
        content = srt_to_vtt(content)

    headers = {}
    if download:
        filename = f"{generate_slug(talk.title)}_{language_code.lower()}.{format}"
        headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return Response(
        content=content,
        media_type=f"{SUBTITLE_MEDIA_TYPES[format]}; charset=utf-8",
        headers=headers,
    )


@languages_router.get("/languages", response_model=AvailableLanguagesResponse)
async def get_available_languages(
    principal: Principal = Depends(require_permission(VIEW_PERMISSION)),
):
    return AvailableLanguagesResponse(
        languages=[
            SupportedLanguage(language=name, language_code=code)
            for name, code in all_languages().items()
        ]
    )


@languages_router.websocket("/jobs/{job_id}/progress")
async def job_progress(
    websocket: WebSocket,
    job_id: str,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db),
    orchestrator: SubtitleProcessingOrchestrator = Depends(get_subtitle_orchestrator),
):
    """Stream progress updates for one job until it reaches a terminal state."""
    try:
        principal = principal_from_token(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    if VIEW_PERMISSION not in principal.permissions:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    job = await db.get(SubtitleJob, job_id)
    if job is None or job.tenant_id != principal.tenant_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    updates = orchestrator.broker.subscribe(job_id)
    try:
        while True:
            update = await updates.get()
            await websocket.send_json(update.model_dump(mode="json"))
            if update.stage in TERMINAL_JOB_STATUSES:
                break
        await websocket.close()
    except WebSocketDisconnect:
        logger.debug("Progress subscriber for job %s disconnected", job_id)
    finally:
        orchestrator.broker.unsubscribe(job_id, updates)

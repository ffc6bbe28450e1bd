"""Turn a stored video link into a URL the transcription service can fetch."""

import logging
import re
from urllib.parse import parse_qs, urlparse

from toolbox_subtitles.models.subtitle_job import VideoSourceType
from toolbox_subtitles.services.results import FailureKind, ServiceResult

logger = logging.getLogger(__name__)

GOOGLE_DRIVE_HOSTS = {"drive.google.com", "docs.google.com"}
_DRIVE_FILE_PATH = re.compile(r"/file/d/([A-Za-z0-9_-]+)")


def detect_source_type(url: str) -> VideoSourceType:
    host = (urlparse(url.strip()).hostname or "").lower()
    if host in GOOGLE_DRIVE_HOSTS:
        return VideoSourceType.GOOGLE_DRIVE
    if host.endswith(".blob.core.windows.net"):
        return VideoSourceType.AZURE_BLOB
    return VideoSourceType.DIRECT_URL


def extract_drive_file_id(url: str) -> str | None:
    parsed = urlparse(url)
    match = _DRIVE_FILE_PATH.search(parsed.path)
    if match:
        return match.group(1)
    ids = parse_qs(parsed.query).get("id")
    return ids[0] if ids else None


class VideoSourceResolver:
    """Stateless; safe to share between concurrent jobs."""

    async def resolve_playable_url(
        self, source_url: str, source_type: VideoSourceType | str
    ) -> ServiceResult[str]:
        url = (source_url or "").strip()
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return ServiceResult.failure(
                FailureKind.VALIDATION, f"Video URL must be an http(s) URL: {source_url!r}"
            )

        try:
            kind = VideoSourceType(source_type)
        except ValueError:
            return ServiceResult.failure(
                FailureKind.VALIDATION, f"Unsupported video source type: {source_type}"
            )

        if kind is VideoSourceType.GOOGLE_DRIVE:
            file_id = extract_drive_file_id(url)
            if not file_id:
                return ServiceResult.failure(
                    FailureKind.VALIDATION, "Could not find a file id in the Google Drive link"
                )
            resolved = f"https://drive.google.com/uc?export=download&id={file_id}"
            logger.debug("Resolved Google Drive link %s to %s", url, resolved)
            return ServiceResult.success(resolved)

        # Direct and Azure Blob URLs (including SAS tokens) are passed through.
        return ServiceResult.success(url)

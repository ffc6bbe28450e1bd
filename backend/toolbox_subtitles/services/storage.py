"""Tenant-scoped object storage for generated artifacts.

Keys always have the shape ``{tenant_id}/{folder}/{filename}``. Filenames embed
an 8 character short id of the owning talk so every artifact of a talk can be
found (and removed) by name alone.
"""

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, Union
from urllib.parse import quote

import aiofiles
import aiofiles.os

from toolbox_subtitles.config import settings
from toolbox_subtitles.services.errors import StorageKeyError
from toolbox_subtitles.services.results import FailureKind, ServiceResult

logger = logging.getLogger(__name__)


class ArtifactKind(str, Enum):
    SUBTITLE = "subtitle"
    VIDEO = "video"
    PDF = "pdf"
    CERTIFICATE = "certificate"


KIND_FOLDERS = {
    ArtifactKind.SUBTITLE: "subs",
    ArtifactKind.VIDEO: "videos",
    ArtifactKind.PDF: "pdfs",
    ArtifactKind.CERTIFICATE: "certificates",
}

CONTENT_TYPES = {
    "srt": "application/x-subrip",
    "vtt": "text/vtt",
    "pdf": "application/pdf",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "webm": "video/webm",
    "avi": "video/x-msvideo",
    "mkv": "video/x-matroska",
}


@dataclass
class ArtifactMetadata:
    """Naming inputs for an uploaded artifact."""

    title: str = ""
    language_code: Optional[str] = None
    extension: Optional[str] = None
    certificate_number: Optional[str] = None


@dataclass
class StoredArtifact:
    url: str
    storage_key: str
    size: int
    content_type: str


def generate_slug(title: str) -> str:
    """Lower-case, strip symbols, join words with underscores."""
    slug = re.sub(r"[^a-z0-9\s]", "", (title or "").lower())
    slug = re.sub(r"\s+", "_", slug).strip("_")
    return slug or "untitled"


def short_id(entity_id: str) -> str:
    return str(entity_id).replace("-", "").lower()[:8]


def _validate_tenant(tenant_id: str) -> str:
    tenant = str(tenant_id or "").strip()
    if not tenant or "/" in tenant or "\\" in tenant or tenant in (".", ".."):
        raise StorageKeyError(f"Invalid tenant id: {tenant_id!r}")
    return tenant


def ensure_tenant_key(tenant_id: str, storage_key: str) -> str:
    """Return the key if it lives under the tenant prefix, else raise."""
    tenant = _validate_tenant(tenant_id)
    key = (storage_key or "").strip()
    parts = key.split("/")
    if (
        not key.startswith(f"{tenant}/")
        or "\\" in key
        or any(part in ("", ".", "..") for part in parts)
    ):
        raise StorageKeyError(f"Storage key {storage_key!r} is outside tenant {tenant}")
    return key


def build_storage_key(
    tenant_id: str, talk_id: str, kind: ArtifactKind, metadata: ArtifactMetadata
) -> str:
    tenant = _validate_tenant(tenant_id)
    folder = KIND_FOLDERS[kind]
    if kind is ArtifactKind.CERTIFICATE:
        number = re.sub(r"[^A-Za-z0-9_-]", "", metadata.certificate_number or "")
        return f"{tenant}/{folder}/{number or short_id(talk_id)}.pdf"

    name = f"{generate_slug(metadata.title)}_{short_id(talk_id)}"
    if kind is ArtifactKind.SUBTITLE:
        if metadata.language_code:
            name = f"{name}_{metadata.language_code.lower()}"
        extension = metadata.extension or "srt"
    elif kind is ArtifactKind.PDF:
        extension = "pdf"
    else:
        extension = metadata.extension or "mp4"
    return f"{tenant}/{folder}/{name}.{extension.lstrip('.').lower()}"


class ObjectStorage(Protocol):
    async def upload_artifact(
        self,
        tenant_id: str,
        talk_id: str,
        kind: ArtifactKind,
        content: Union[bytes, str],
        metadata: ArtifactMetadata,
    ) -> ServiceResult[StoredArtifact]: ...

    async def download(self, tenant_id: str, storage_key: str) -> Optional[bytes]: ...

    async def delete_artifacts_for_talk(
        self, tenant_id: str, talk_id: str, kind: Optional[ArtifactKind] = None
    ) -> int: ...

    def public_url(self, storage_key: str) -> str: ...


class LocalObjectStorage:
    """Filesystem bucket rooted at ``storage_root``."""

    def __init__(
        self,
        root: Optional[Union[str, Path]] = None,
        public_base_url: Optional[str] = None,
        *,
        max_video_bytes: Optional[int] = None,
        max_pdf_bytes: Optional[int] = None,
    ):
        self.root = Path(root or settings.storage_root).resolve()
        self.public_base_url = (public_base_url or settings.storage_public_url).rstrip("/")
        self.max_video_bytes = max_video_bytes or settings.max_video_size_bytes
        self.max_pdf_bytes = max_pdf_bytes or settings.max_pdf_size_bytes

    def public_url(self, storage_key: str) -> str:
        return f"{self.public_base_url}/{quote(storage_key, safe='/')}"

    def _size_limit(self, kind: ArtifactKind) -> Optional[int]:
        if kind is ArtifactKind.VIDEO:
            return self.max_video_bytes
        if kind in (ArtifactKind.PDF, ArtifactKind.CERTIFICATE):
            return self.max_pdf_bytes
        return None

    def _path_for(self, storage_key: str) -> Path:
        path = (self.root / storage_key).resolve()
        if self.root not in path.parents:
            raise StorageKeyError(f"Storage key {storage_key!r} escapes the storage root")
        return path

    async def upload_artifact(
        self,
        tenant_id: str,
        talk_id: str,
        kind: ArtifactKind,
        content: Union[bytes, str],
        metadata: ArtifactMetadata,
    ) -> ServiceResult[StoredArtifact]:
        data = content.encode("utf-8") if isinstance(content, str) else content
        kind = ArtifactKind(kind)

        limit = self._size_limit(kind)
        if limit is not None and len(data) > limit:
            max_mb = limit / (1024 * 1024)
            return ServiceResult.failure(
                FailureKind.VALIDATION,
                f"{kind.value} exceeds maximum allowed size ({max_mb:g}MB)",
            )

        try:
            key = build_storage_key(tenant_id, talk_id, kind, metadata)
            path = self._path_for(key)
        except StorageKeyError as exc:
            return ServiceResult.failure(FailureKind.VALIDATION, str(exc))

        try:
            os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as buffer:
                await buffer.write(data)
        except OSError as exc:
            logger.error("Failed to write %s: %s", key, exc)
            return ServiceResult.failure(FailureKind.TRANSPORT, f"Failed to store file: {exc}")

        extension = key.rsplit(".", 1)[-1]
        logger.info("Stored %s (%s bytes)", key, len(data))
        return ServiceResult.success(
            StoredArtifact(
                url=self.public_url(key),
                storage_key=key,
                size=len(data),
                content_type=CONTENT_TYPES.get(extension, "application/octet-stream"),
            )
        )

    async def download(self, tenant_id: str, storage_key: str) -> Optional[bytes]:
        """Read an object; None when it does not exist.

        Raises:
            StorageKeyError: if the key is outside the tenant prefix
        """
        key = ensure_tenant_key(tenant_id, storage_key)
        path = self._path_for(key)
        if not path.is_file():
            return None
        async with aiofiles.open(path, "rb") as handle:
            return await handle.read()

    async def delete_artifacts_for_talk(
        self, tenant_id: str, talk_id: str, kind: Optional[ArtifactKind] = None
    ) -> int:
        """Delete every object of the talk, optionally limited to one kind."""
        tenant = _validate_tenant(tenant_id)
        marker = short_id(talk_id)
        folders = [KIND_FOLDERS[ArtifactKind(kind)]] if kind else sorted(set(KIND_FOLDERS.values()))

        deleted = 0
        for folder in folders:
            directory = self._path_for(f"{tenant}/{folder}")
            if not directory.is_dir():
                continue
            for entry in os.scandir(directory):
                if not entry.is_file():
                    continue
                if f"_{marker}." in entry.name or f"_{marker}_" in entry.name:
                    await aiofiles.os.remove(entry.path)
                    deleted += 1
        logger.info("Deleted %s artifacts for talk %s in tenant %s", deleted, talk_id, tenant)
        return deleted

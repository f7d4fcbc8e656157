"""
FamilyVault Store - Upload Service

Upload pipeline: blob upload, caption, catalog append.

The blob and caption calls are blocking HTTP requests and run in a worker
thread; the catalog append goes through the engine on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Callable, Optional, Union

from ..ai.service import Caption, CaptionService
from ..clients.drive_client import DriveClient, preview_url
from ..utils.media_detection import MediaType, detect_media
from .engine import ReconciliationEngine
from .layout import UploadConfigError
from .models import MediaEntry, MediaKind, Profile, StorageConfig

logger = logging.getLogger(__name__)


DriveClientFactory = Callable[[StorageConfig], DriveClient]


def _default_drive_client(storage: StorageConfig) -> DriveClient:
    return DriveClient(storage.api_key, storage.folder_id)


class UploadService:
    """
    Service for adding media to the shared catalog.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        drive_client_factory: Optional[DriveClientFactory] = None,
        caption_service: Optional[CaptionService] = None,
    ):
        """
        Initialize upload service.

        Args:
            engine: Engine owning the catalog and configuration
            drive_client_factory: Builds a blob client from storage settings
            caption_service: Caption service (built lazily when omitted)
        """
        self.engine = engine
        self._drive_client_factory = drive_client_factory or _default_drive_client
        self._caption_service = caption_service

    @property
    def caption_service(self) -> CaptionService:
        if self._caption_service is None:
            self._caption_service = CaptionService(self.engine.settings.caption)
        return self._caption_service

    def _drive_client(self) -> DriveClient:
        storage = self.engine.config.storage
        if not storage.is_configured:
            raise UploadConfigError(
                "Google Drive is not configured (Folder ID or API Key missing). "
                "An administrator must set up storage first."
            )
        return self._drive_client_factory(storage)

    async def upload(
        self,
        path: Union[str, Path],
        owner: Profile,
        mime_type: Optional[str] = None,
    ) -> MediaEntry:
        """
        Upload a file and add it to the catalog.

        Args:
            path: Local file to upload
            owner: Profile the entry is attributed to
            mime_type: MIME type override (detected from the name otherwise)

        Returns:
            The catalog entry that was appended

        Raises:
            UploadConfigError: If blob storage is not configured.
            DriveError: If the blob upload fails.
        """
        client = self._drive_client()
        path = Path(path)
        info = detect_media(path.name, mime_type)
        data = await asyncio.to_thread(path.read_bytes)

        logger.info(f"[Upload] {path.name}: {info.mime_type} ({info.detection_method}), {len(data)} bytes")
        file_id = await asyncio.to_thread(client.upload, path.name, data, info.mime_type)

        if info.type == MediaType.IMAGE:
            caption = await asyncio.to_thread(self.caption_service.describe, data, info.mime_type)
        elif info.type == MediaType.VIDEO:
            caption = Caption(path.name, ["Video"])
        else:
            caption = Caption(path.name, ["Gallery"])

        entry = MediaEntry(
            id=file_id,
            url=file_id,
            kind=MediaKind.VIDEO if info.is_video else MediaKind.IMAGE,
            file_name=path.name,
            owner_id=owner.id,
            owner_name=owner.display_name,
            timestamp=int(time.time() * 1000),
            size=len(data),
            ai_description=caption.description,
            tags=caption.tags,
        )
        self.engine.append_media_entry(entry)
        logger.info(f"[Upload] Added {entry.id} for {owner.id}")
        return entry

    async def upload_avatar(self, path: Union[str, Path]) -> str:
        """
        Upload an avatar image.

        Returns:
            Preview URL of the uploaded image
        """
        client = self._drive_client()
        path = Path(path)
        info = detect_media(path.name)
        data = await asyncio.to_thread(path.read_bytes)
        file_id = await asyncio.to_thread(client.upload, path.name, data, info.mime_type)
        return preview_url(file_id)

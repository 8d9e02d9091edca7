"""Copy finished provider results into the uploads directory."""

from __future__ import annotations

import logging

from genstudio.errors import GenerationError
from genstudio.media_types import is_data_uri
from genstudio.providers import ProviderRegistry
from genstudio.schemas.models import GenerationRecord, ProviderStatus
from genstudio.storage import UploadStorage

logger = logging.getLogger(__name__)


class ResultLocalizer:
    """Tracker finalizer.

    Inline (data URI) results are always written to uploads, since they
    cannot be served as-is. Remote URLs are downloaded only when
    ``download_remote`` is on; if that download fails the provider URL is
    kept.
    """

    def __init__(self, storage: UploadStorage, registry: ProviderRegistry, download_remote: bool = True):
        self.storage = storage
        self.registry = registry
        self.download_remote = download_remote

    async def __call__(self, record: GenerationRecord, status: ProviderStatus) -> ProviderStatus:
        updates: dict[str, str | None] = {}
        headers = {}
        if record.provider:
            try:
                headers = self.registry.get(record.provider).result_headers(status.video_url or status.image_url or "")
            except KeyError:
                headers = {}

        if status.video_url:
            updates["video_url"] = await self._localize(status.video_url, headers, "video/mp4")
        if status.image_url:
            updates["image_url"] = await self._localize(status.image_url, headers, "image/png")

        thumbnail = status.thumbnail_url
        if thumbnail and thumbnail == status.image_url:
            thumbnail = updates.get("image_url")
        elif thumbnail and thumbnail == status.video_url:
            thumbnail = updates.get("video_url")
        elif thumbnail:
            thumbnail = await self._localize(thumbnail, headers, "image/jpeg")
        else:
            # Poster falls back to the result itself
            thumbnail = updates.get("image_url") or updates.get("video_url")
        updates["thumbnail_url"] = thumbnail
        return status.model_copy(update=updates)

    async def _localize(self, url: str, headers: dict[str, str], default_mime: str) -> str:
        if is_data_uri(url):
            filename = await self.storage.save_data_uri(url)
            return self.storage.public_url(filename)
        if not self.download_remote or self.storage.filename_for(url):
            return url
        try:
            filename = await self.storage.download(url, headers=headers, default_mime=default_mime)
        except GenerationError as e:
            logger.warning("Keeping provider URL, download failed for %s: %s", url[:80], e)
            return url
        return self.storage.public_url(filename)

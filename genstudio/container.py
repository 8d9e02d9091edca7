"""Wire the service graph from settings."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from genstudio.config import Settings
from genstudio.generation import GenerationService
from genstudio.jobs import GenerationPoller, GenerationTracker, PollSchedule, RecordStore, build_record_store
from genstudio.jobs.results import ResultLocalizer
from genstudio.media import MediaResolver
from genstudio.providers import ProviderRegistry, build_registry
from genstudio.providers.base import Sleep
from genstudio.storage import UploadStorage
from genstudio.workflows import FfmpegJoiner, VideoConcatenator, VideoJoiner, WorkflowComposer


@dataclass
class Container:
    settings: Settings
    storage: UploadStorage
    media: MediaResolver
    registry: ProviderRegistry
    store: RecordStore
    tracker: GenerationTracker
    poller: GenerationPoller
    service: GenerationService
    concatenator: VideoConcatenator
    composer: WorkflowComposer

    async def shutdown(self) -> None:
        await self.poller.shutdown()


def build_container(
    settings: Settings,
    *,
    transport=None,
    store: RecordStore | None = None,
    joiner: VideoJoiner | None = None,
    sleep: Sleep = asyncio.sleep,
) -> Container:
    """Build every collaborator once. ``transport`` / ``store`` / ``joiner`` are test seams."""
    settings.ensure_dirs()
    storage = UploadStorage(settings.uploads_dir, settings.public_base_url)
    media = MediaResolver(storage)
    registry = build_registry(settings, media, transport=transport)
    store = store if store is not None else build_record_store(settings)
    tracker = GenerationTracker(
        store, finalizer=ResultLocalizer(storage, registry, download_remote=settings.localize_results)
    )
    poller = GenerationPoller(
        tracker,
        registry,
        video_schedule=PollSchedule(
            interval_seconds=settings.poll_interval_seconds, max_attempts=settings.poll_max_attempts
        ),
        image_schedule=PollSchedule(
            interval_seconds=settings.image_poll_interval_seconds, max_attempts=settings.image_poll_max_attempts
        ),
        max_consecutive_errors=settings.poll_max_consecutive_errors,
        sleep=sleep,
    )
    service = GenerationService(
        registry,
        tracker,
        poller,
        retry_attempts=settings.retry_attempts,
        retry_backoff_seconds=settings.retry_backoff_seconds,
        skip_polling_with_webhook=settings.skip_polling_with_webhook,
        sleep=sleep,
    )
    concatenator = VideoConcatenator(
        tracker, storage, joiner or FfmpegJoiner(settings.ffmpeg_binary), registry=registry
    )
    composer = WorkflowComposer(
        service,
        concatenator,
        video_concurrency=settings.transition_video_concurrency,
        stage_timeout_seconds=settings.stage_image_timeout_seconds,
    )
    return Container(
        settings=settings,
        storage=storage,
        media=media,
        registry=registry,
        store=store,
        tracker=tracker,
        poller=poller,
        service=service,
        concatenator=concatenator,
        composer=composer,
    )

"""Single-generation submission: validate, record, submit with retry, then poll."""

from __future__ import annotations

import asyncio
import logging

from genstudio.capabilities import validate_request
from genstudio.errors import GenerationError
from genstudio.jobs.poller import GenerationPoller
from genstudio.jobs.state import GenerationTracker
from genstudio.providers import ProviderRegistry, retry_async
from genstudio.providers.base import Sleep
from genstudio.schemas.models import (
    GenerationRecord,
    GenerationRequest,
    GenerationStatus,
    new_record_id,
)

logger = logging.getLogger(__name__)


class GenerationService:
    def __init__(
        self,
        registry: ProviderRegistry,
        tracker: GenerationTracker,
        poller: GenerationPoller,
        *,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 1.0,
        skip_polling_with_webhook: bool = False,
        sleep: Sleep = asyncio.sleep,
    ):
        self.registry = registry
        self.tracker = tracker
        self.poller = poller
        self.retry_attempts = retry_attempts
        self.retry_backoff_seconds = retry_backoff_seconds
        self.skip_polling_with_webhook = skip_polling_with_webhook
        self._sleep = sleep

    def new_record(self, request: GenerationRequest, **fields) -> GenerationRecord:
        return GenerationRecord(
            id=new_record_id(),
            model_name=request.model_name,
            generation_type=request.generation_type,
            feature=request.feature or request.generation_type.value,
            prompt=request.prompt,
            aspect_ratio=request.aspect_ratio,
            resolution=request.resolution,
            input_image_url=request.image_url,
            input_video_url=request.video_url,
            **fields,
        )

    async def submit(self, request: GenerationRequest, *, raise_on_failure: bool = True) -> GenerationRecord:
        """Submit one generation.

        Validation problems raise before anything is recorded or sent.
        Provider failures after the record exists mark it failed and re-raise,
        or return the failed record when ``raise_on_failure`` is false.
        """
        validate_request(request)
        provider = self.registry.for_model(request.model_name)

        record = self.tracker.create(self.new_record(request, provider=provider.name))
        try:
            job = await retry_async(
                lambda: provider.submit(request),
                attempts=self.retry_attempts,
                backoff_seconds=self.retry_backoff_seconds,
                sleep=self._sleep,
                label=f"{provider.name} submit",
            )
        except GenerationError as e:
            logger.warning("Submission of %s to %s failed: %s", record.id, provider.name, e)
            record = await self.tracker.fail(record.id, e, source="submit")
            if raise_on_failure:
                raise
            return record

        record = await self.tracker.mark_submitted(record.id, job)
        if job.result is not None:
            record, _ = await self.tracker.apply_status(record.id, job.result, source="submit")
        elif self.skip_polling_with_webhook and getattr(provider, "callback_url", None):
            logger.info("Waiting for %s webhook for %s instead of polling", provider.name, record.id)
        else:
            self.poller.start(record)
        return record

    async def submit_and_wait(
        self, request: GenerationRequest, timeout: float | None = None, *, raise_on_failure: bool = True
    ) -> GenerationRecord:
        """Submit and block until the record is terminal."""
        record = await self.submit(request, raise_on_failure=raise_on_failure)
        if record.is_terminal:
            return record
        return await self.tracker.wait_for_terminal(record.id, timeout)

    def record_pass_through(self, request: GenerationRequest, result_url: str) -> GenerationRecord:
        """A completed record that reuses an existing image (no provider call)."""
        record = self.new_record(
            request,
            status=GenerationStatus.COMPLETED,
            image_url=result_url,
            thumbnail_url=result_url,
        )
        return self.tracker.create(record)

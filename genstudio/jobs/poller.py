"""Poll loop: one asyncio task per in-flight generation."""

from __future__ import annotations

import asyncio
import functools
import logging
from datetime import datetime, timedelta

from pydantic import BaseModel

from genstudio.errors import (
    AuthenticationError,
    GenerationError,
    GenerationTimeoutError,
    TransientServiceError,
    UnknownProviderError,
)
from genstudio.jobs.state import GenerationTracker, RecordNotFoundError
from genstudio.providers import ProviderRegistry
from genstudio.providers.base import Sleep
from genstudio.schemas.models import GenerationRecord, GenerationStatus

logger = logging.getLogger(__name__)

IMAGE_TASK_TYPES = {"text2image", "image2image"}
TIMEOUT_MESSAGE = "Generation timed out after maximum polling attempts"


class PollSchedule(BaseModel):
    interval_seconds: float = 10.0
    max_attempts: int = 120


class GenerationPoller:
    def __init__(
        self,
        tracker: GenerationTracker,
        registry: ProviderRegistry,
        *,
        video_schedule: PollSchedule | None = None,
        image_schedule: PollSchedule | None = None,
        max_consecutive_errors: int = 3,
        sleep: Sleep = asyncio.sleep,
    ):
        self.tracker = tracker
        self.registry = registry
        self.video_schedule = video_schedule or PollSchedule()
        self.image_schedule = image_schedule or PollSchedule(interval_seconds=5.0, max_attempts=60)
        self.max_consecutive_errors = max_consecutive_errors
        self._sleep = sleep
        self._tasks: dict[str, asyncio.Task] = {}

    def schedule_for(self, record: GenerationRecord) -> PollSchedule:
        if record.task_type in IMAGE_TASK_TYPES:
            return self.image_schedule
        return self.video_schedule

    def is_polling(self, record_id: str) -> bool:
        task = self._tasks.get(record_id)
        return task is not None and not task.done()

    def start(self, record: GenerationRecord) -> asyncio.Task | None:
        """Start polling ``record`` unless it is terminal or already polled."""
        if record.is_terminal or not record.provider_job_id:
            return None
        existing = self._tasks.get(record.id)
        if existing is not None and not existing.done():
            return existing
        task = asyncio.create_task(self._run(record.id), name=f"poll-{record.id}")
        self._tasks[record.id] = task
        task.add_done_callback(functools.partial(self._discard, record.id))
        return task

    def _discard(self, record_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(record_id) is task:
            del self._tasks[record_id]

    async def poll_once(self, record_id: str) -> GenerationRecord:
        """One immediate tick. Auth errors fail the record; other errors propagate."""
        record = self.tracker.require(record_id)
        if record.is_terminal or not record.provider_job_id:
            return record
        provider = self.registry.get(record.provider)
        try:
            status = await provider.poll_status(record.provider_job_id, record.task_type or "", record.model_name)
        except AuthenticationError as e:
            return await self.tracker.fail(record_id, e)
        record, _ = await self.tracker.apply_status(record_id, status)
        return record

    def cancel(self, record_id: str) -> bool:
        """Stop polling one record (e.g. it was deleted). Returns whether a task was running."""
        task = self._tasks.pop(record_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _run(self, record_id: str) -> None:
        try:
            await self._poll_until_terminal(record_id)
        except RecordNotFoundError:
            logger.info("Generation %s was deleted while being polled", record_id)
        except Exception as e:
            # Anything unexpected still has to end the record, not just the task
            logger.exception("Polling %s crashed", record_id)
            try:
                await self.tracker.fail(
                    record_id, UnknownProviderError(f"Status polling crashed: {e.__class__.__name__}: {e}")
                )
            except RecordNotFoundError:
                logger.info("Generation %s was deleted before it could be failed", record_id)

    async def _poll_until_terminal(self, record_id: str) -> None:
        record = self.tracker.get(record_id)
        if record is None:
            return
        schedule = self.schedule_for(record)
        provider = self.registry.get(record.provider)
        consecutive_errors = 0

        for attempt in range(1, schedule.max_attempts + 1):
            await self._sleep(schedule.interval_seconds)
            record = self.tracker.get(record_id)
            if record is None or record.is_terminal:
                return
            try:
                status = await provider.poll_status(
                    record.provider_job_id, record.task_type or "", record.model_name
                )
            except AuthenticationError as e:
                logger.error("Polling %s stopped, authentication failed: %s", record_id, e)
                await self.tracker.fail(record_id, e)
                return
            except (TransientServiceError, UnknownProviderError) as e:
                consecutive_errors += 1
                logger.warning(
                    "Poll %d for %s failed (%d/%d consecutive): %s",
                    attempt, record_id, consecutive_errors, self.max_consecutive_errors, e,
                )
                if consecutive_errors >= self.max_consecutive_errors:
                    await self.tracker.fail(
                        record_id,
                        GenerationError(f"Status polling failed repeatedly: {e}", code="POLLING_ERROR"),
                    )
                    return
                continue
            except GenerationError as e:
                await self.tracker.fail(record_id, e)
                return
            consecutive_errors = 0
            record, _ = await self.tracker.apply_status(record_id, status)
            if record.is_terminal:
                return

        logger.warning(
            "Generation %s never reached a terminal state after %d polls (%s job %s)",
            record_id, schedule.max_attempts, record.provider, record.provider_job_id,
        )
        await self.tracker.fail(record_id, GenerationTimeoutError(TIMEOUT_MESSAGE))

    async def resume_pending(self, max_age: timedelta = timedelta(minutes=30)) -> dict[str, int]:
        """Restart polling for non-terminal records; fail the ones too old to matter."""
        started = expired = 0
        cutoff = datetime.utcnow() - max_age
        for status in (GenerationStatus.QUEUED, GenerationStatus.IN_PROGRESS):
            for record in self.tracker.store.list(status=status):
                if record.created_at < cutoff:
                    await self.tracker.fail(
                        record.id, GenerationTimeoutError("Generation expired before completion")
                    )
                    expired += 1
                elif self.start(record) is not None:
                    started += 1
        return {"started": started, "expired": expired}

    async def check_pending(self, max_age: timedelta = timedelta(minutes=30)) -> dict[str, int]:
        """Expire stale pending records and poll every other one once, now."""
        counts = {"checked": 0, "completed": 0, "failed": 0, "pending": 0, "expired": 0, "errors": 0}
        cutoff = datetime.utcnow() - max_age
        for status in (GenerationStatus.QUEUED, GenerationStatus.IN_PROGRESS):
            for record in self.tracker.store.list(status=status):
                if record.created_at < cutoff:
                    await self.tracker.fail(
                        record.id, GenerationTimeoutError("Generation expired before completion")
                    )
                    counts["expired"] += 1
                    continue
                counts["checked"] += 1
                try:
                    record = await self.poll_once(record.id)
                except RecordNotFoundError:
                    continue
                except GenerationError as e:
                    logger.warning("Status check for %s failed: %s", record.id, e)
                    counts["errors"] += 1
                    self.start(record)
                    continue
                if record.status == GenerationStatus.COMPLETED:
                    counts["completed"] += 1
                elif record.status == GenerationStatus.FAILED:
                    counts["failed"] += 1
                else:
                    counts["pending"] += 1
                    self.start(record)
        return counts

    async def shutdown(self) -> None:
        """Cancel poll tasks. Provider-side jobs keep running; nothing tells them to stop."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

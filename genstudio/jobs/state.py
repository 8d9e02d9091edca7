"""Generation state machine.

    queued -> in_progress -> completed | failed

Terminal states are final. Poll ticks and webhook deliveries both go through
``apply_status``; whichever observes the terminal state first wins and every
later delivery is a no-op, so terminal listeners fire exactly once per record.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Awaitable, Callable, Union

from genstudio.errors import GenerationError, GenerationTimeoutError
from genstudio.jobs.store import RecordStore
from genstudio.schemas.models import GenerationRecord, GenerationStatus, ProviderJob, ProviderStatus

logger = logging.getLogger(__name__)

TerminalListener = Callable[[GenerationRecord], Union[Awaitable[None], None]]
# Rewrites a completed status before it is stored (e.g. localizing result URLs)
Finalizer = Callable[[GenerationRecord, ProviderStatus], Awaitable[ProviderStatus]]


class RecordNotFoundError(KeyError):
    pass


class GenerationTracker:
    def __init__(self, store: RecordStore, finalizer: Finalizer | None = None):
        self.store = store
        self.finalizer = finalizer
        self._locks: dict[str, asyncio.Lock] = {}
        self._terminal_events: dict[str, asyncio.Event] = {}
        self._listeners: list[TerminalListener] = []

    def add_terminal_listener(self, listener: TerminalListener) -> None:
        self._listeners.append(listener)

    def remove_terminal_listener(self, listener: TerminalListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _lock(self, record_id: str) -> asyncio.Lock:
        lock = self._locks.get(record_id)
        if lock is None:
            lock = self._locks[record_id] = asyncio.Lock()
        return lock

    def _event(self, record_id: str) -> asyncio.Event:
        event = self._terminal_events.get(record_id)
        if event is None:
            event = self._terminal_events[record_id] = asyncio.Event()
        return event

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, record_id: str) -> GenerationRecord | None:
        return self.store.get(record_id)

    def require(self, record_id: str) -> GenerationRecord:
        record = self.store.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def find_by_provider_job_id(self, provider_job_id: str) -> GenerationRecord | None:
        return self.store.get_by_provider_job_id(provider_job_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create(self, record: GenerationRecord) -> GenerationRecord:
        self.store.create(record)
        if record.is_terminal:
            self._event(record.id).set()
        return record

    async def mark_submitted(self, record_id: str, job: ProviderJob) -> GenerationRecord:
        async with self._lock(record_id):
            record = self.require(record_id)
            if record.is_terminal:
                return record
            record.provider = job.provider
            record.provider_job_id = job.job_id
            record.task_type = job.task_type
            if job.duration_seconds is not None:
                record.duration_seconds = job.duration_seconds
            record.status = GenerationStatus.IN_PROGRESS
            record.updated_at = datetime.utcnow()
            self.store.update(record)
            logger.info("Generation %s submitted to %s as %s", record.id, job.provider, job.job_id)
            return record

    async def apply_status(
        self, record_id: str, status: ProviderStatus, *, source: str = "poll"
    ) -> tuple[GenerationRecord, bool]:
        """Apply one observation. Returns (record, became_terminal)."""
        async with self._lock(record_id):
            record = self.require(record_id)
            if record.is_terminal:
                logger.debug("Ignoring %s update for terminal generation %s", source, record_id)
                return record, False

            if not status.status.is_terminal:
                if status.status == GenerationStatus.IN_PROGRESS and record.status != status.status:
                    record.status = GenerationStatus.IN_PROGRESS
                    record.updated_at = datetime.utcnow()
                    self.store.update(record)
                return record, False

            if status.status == GenerationStatus.COMPLETED and self.finalizer is not None:
                try:
                    status = await self.finalizer(record, status)
                except GenerationError as e:
                    logger.warning("Finalizing generation %s failed: %s", record_id, e)
                    status = ProviderStatus(
                        status=GenerationStatus.FAILED, error_code=e.code, error_message=str(e)
                    )

            self._write_terminal(record, status)
            logger.info(
                "Generation %s %s via %s%s",
                record_id,
                record.status.value,
                source,
                f": {record.error_message}" if record.error_message else "",
            )
        await self._notify(record)
        return record, True

    async def fail(self, record_id: str, error: GenerationError, *, source: str = "poll") -> GenerationRecord:
        status = ProviderStatus(
            status=GenerationStatus.FAILED, error_code=error.code, error_message=str(error)[:500]
        )
        record, _ = await self.apply_status(record_id, status, source=source)
        return record

    async def apply_webhook(self, provider_job_id: str, status: ProviderStatus) -> GenerationRecord | None:
        record = self.find_by_provider_job_id(provider_job_id)
        if record is None:
            return None
        try:
            record, _ = await self.apply_status(record.id, status, source="webhook")
        except RecordNotFoundError:
            # Deleted between lookup and apply
            return None
        return record

    def _write_terminal(self, record: GenerationRecord, status: ProviderStatus) -> None:
        record.status = status.status
        if status.status == GenerationStatus.COMPLETED:
            record.video_url = status.video_url or record.video_url
            record.image_url = status.image_url or record.image_url
            record.thumbnail_url = status.thumbnail_url or record.thumbnail_url
            if status.duration_seconds is not None:
                record.duration_seconds = status.duration_seconds
            record.error_code = None
            record.error_message = None
        else:
            record.error_code = status.error_code or "UNKNOWN_ERROR"
            record.error_message = status.error_message or "Generation failed"
        record.updated_at = datetime.utcnow()
        self.store.update(record)

    async def _notify(self, record: GenerationRecord) -> None:
        self._event(record.id).set()
        for listener in list(self._listeners):
            try:
                result = listener(record)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Terminal listener failed for generation %s", record.id)

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    async def wait_for_terminal(self, record_id: str, timeout: float | None = None) -> GenerationRecord:
        """Block until the record is terminal; raises GenerationTimeoutError on timeout."""
        record = self.require(record_id)
        if record.is_terminal:
            return record
        try:
            await asyncio.wait_for(self._event(record_id).wait(), timeout)
        except asyncio.TimeoutError:
            raise GenerationTimeoutError(f"Generation {record_id} did not finish within {timeout}s")
        return self.require(record_id)

    def forget(self, record_id: str) -> None:
        self._locks.pop(record_id, None)
        self._terminal_events.pop(record_id, None)

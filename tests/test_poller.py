"""Tests for the background poll loop."""

import asyncio
import logging
from datetime import datetime, timedelta

import pytest

from genstudio.errors import AuthenticationError, GenerationFailedError, TransientServiceError
from genstudio.jobs import GenerationPoller, PollSchedule
from genstudio.providers import ProviderRegistry
from genstudio.providers.kling import KlingProvider
from genstudio.schemas.models import GenerationRecord, GenerationStatus, ProviderStatus

from conftest import FakeProvider, MockRoutes, completed_image, completed_video


def _in_flight(tracker, record_id="gen_1", task_type="image2video", **fields):
    record = GenerationRecord(
        id=record_id,
        status=GenerationStatus.IN_PROGRESS,
        provider="kling",
        provider_job_id=f"job-{record_id}",
        task_type=task_type,
        model_name="Kling 2.6",
        **fields,
    )
    return tracker.create(record)


@pytest.mark.asyncio
async def test_completes_on_first_terminal_poll(tracker, poller, fake_kling, sleep):
    fake_kling.poll_script.extend([ProviderStatus(status=GenerationStatus.IN_PROGRESS), completed_video()])
    await poller.start(_in_flight(tracker))

    record = tracker.get("gen_1")
    assert record.status == GenerationStatus.COMPLETED
    assert fake_kling.poll_calls == 2
    assert sleep.delays == [10, 10]
    assert not poller.is_polling("gen_1")


@pytest.mark.asyncio
async def test_times_out_after_max_attempts(tracker, poller, fake_kling, sleep, caplog):
    caplog.set_level(logging.INFO)
    await poller.start(_in_flight(tracker))

    record = tracker.get("gen_1")
    assert record.status == GenerationStatus.FAILED
    assert record.error_code == "TIMEOUT"
    assert "maximum polling attempts" in record.error_message
    assert fake_kling.poll_calls == 5
    warnings = [r for r in caplog.records if r.name == "genstudio.jobs.poller" and r.levelno == logging.WARNING]
    assert any("never reached a terminal state" in r.getMessage() for r in warnings)


@pytest.mark.asyncio
async def test_image_jobs_use_image_schedule(tracker, poller, fake_kling, sleep):
    fake_kling.poll_script.append(completed_image())
    await poller.start(_in_flight(tracker, task_type="image2image"))
    assert sleep.delays == [5]


@pytest.mark.asyncio
async def test_auth_error_stops_polling(tracker, poller, fake_kling):
    fake_kling.poll_script.append(AuthenticationError("token rejected"))
    await poller.start(_in_flight(tracker))

    record = tracker.get("gen_1")
    assert record.error_code == "AUTH_ERROR"
    assert fake_kling.poll_calls == 1


@pytest.mark.asyncio
async def test_consecutive_errors_fail_the_record(tracker, poller, fake_kling):
    fake_kling.poll_script.extend([TransientServiceError("503")] * 3)
    await poller.start(_in_flight(tracker))

    record = tracker.get("gen_1")
    assert record.error_code == "POLLING_ERROR"
    assert fake_kling.poll_calls == 3


@pytest.mark.asyncio
async def test_successful_poll_resets_error_count(tracker, poller, fake_kling):
    fake_kling.poll_script.extend(
        [TransientServiceError("503"), TransientServiceError("503"), completed_video()]
    )
    await poller.start(_in_flight(tracker))
    assert tracker.get("gen_1").status == GenerationStatus.COMPLETED


@pytest.mark.asyncio
async def test_provider_failure_is_recorded(tracker, poller, fake_kling, caplog):
    caplog.set_level(logging.INFO)
    fake_kling.poll_script.append(GenerationFailedError("Content moderation"))
    await poller.start(_in_flight(tracker))

    record = tracker.get("gen_1")
    assert record.error_code == "GENERATION_FAILED"
    assert record.error_message == "Content moderation"
    # Logged as a provider failure, not as a timeout
    assert not any("never reached a terminal state" in r.getMessage() for r in caplog.records)
    assert any(r.levelno == logging.INFO and "Content moderation" in r.getMessage() for r in caplog.records)


def test_start_ignores_terminal_and_unsubmitted(tracker, poller):
    done = tracker.create(GenerationRecord(id="gen_done", status=GenerationStatus.COMPLETED, provider="kling"))
    queued = tracker.create(GenerationRecord(id="gen_new", provider="kling"))
    assert poller.start(done) is None
    assert poller.start(queued) is None


@pytest.mark.asyncio
async def test_check_pending_expires_stale_and_polls_the_rest(tracker, poller, fake_kling):
    _in_flight(tracker, "gen_old", created_at=datetime.utcnow() - timedelta(hours=2))
    _in_flight(tracker, "gen_new")
    fake_kling.poll_script.append(completed_video())

    counts = await poller.check_pending()
    assert counts["expired"] == 1
    assert counts["checked"] == 1
    assert counts["completed"] == 1
    assert tracker.get("gen_old").error_code == "TIMEOUT"
    assert tracker.get("gen_new").status == GenerationStatus.COMPLETED
    await poller.shutdown()


@pytest.mark.asyncio
async def test_resume_pending_restarts_polling(tracker, poller, fake_kling):
    _in_flight(tracker)
    fake_kling.poll_script.append(completed_video())
    assert await poller.resume_pending() == {"started": 1, "expired": 0}
    await poller.shutdown()


@pytest.mark.asyncio
async def test_unexpected_error_still_fails_the_record(tracker, poller, fake_kling):
    fake_kling.poll_script.append(RuntimeError("decoder exploded"))
    await poller.start(_in_flight(tracker))

    record = tracker.get("gen_1")
    assert record.status == GenerationStatus.FAILED
    assert record.error_code == "UNKNOWN_ERROR"
    assert "RuntimeError" in record.error_message
    assert not poller.is_polling("gen_1")


class DeletingProvider(FakeProvider):
    """Deletes the record while its status request is in flight."""

    def __init__(self, tracker):
        super().__init__("kling")
        self.tracker = tracker

    async def poll_status(self, job_id, task_type, model_name=""):
        self.poll_calls += 1
        self.tracker.store.delete("gen_1")
        return completed_video()


@pytest.mark.asyncio
async def test_record_deleted_during_poll_ends_quietly(tracker, sleep):
    provider = DeletingProvider(tracker)
    poller = GenerationPoller(tracker, ProviderRegistry({"kling": provider}), sleep=sleep)
    task = poller.start(_in_flight(tracker))
    await task

    assert provider.poll_calls == 1
    assert tracker.get("gen_1") is None
    assert not poller.is_polling("gen_1")


@pytest.mark.asyncio
async def test_cancel_stops_polling(tracker, poller, fake_kling):
    task = poller.start(_in_flight(tracker))
    assert poller.cancel("gen_1")
    with pytest.raises(asyncio.CancelledError):
        await task
    assert fake_kling.poll_calls == 0
    assert not poller.cancel("gen_1")


@pytest.fixture
def kling_routes():
    return MockRoutes()


@pytest.fixture
def kling_poller(tracker, media, kling_routes, sleep):
    kling = KlingProvider(media=media, api_key="static-key", transport=kling_routes.transport)
    return GenerationPoller(
        tracker,
        ProviderRegistry({"kling": kling}),
        video_schedule=PollSchedule(interval_seconds=10, max_attempts=5),
        max_consecutive_errors=3,
        sleep=sleep,
    )


@pytest.mark.asyncio
async def test_unrecognised_kling_status_runs_into_the_timeout(tracker, kling_poller, kling_routes):
    kling_routes.add(
        "GET", "/videos/image2video/job-gen_1", {"code": 0, "data": {"task_id": "job-gen_1", "task_status": "cancelled"}}
    )
    await kling_poller.start(_in_flight(tracker))

    record = tracker.get("gen_1")
    assert record.status == GenerationStatus.FAILED
    assert record.error_code == "TIMEOUT"
    assert len(kling_routes.requests) == 5


@pytest.mark.asyncio
async def test_malformed_kling_body_counts_as_poll_error(tracker, kling_poller, kling_routes):
    kling_routes.add("GET", "/videos/image2video/job-gen_1", {"code": 0, "data": {"task_status": "processing"}})
    await kling_poller.start(_in_flight(tracker))

    record = tracker.get("gen_1")
    assert record.status == GenerationStatus.FAILED
    assert record.error_code == "POLLING_ERROR"
    assert len(kling_routes.requests) == 3

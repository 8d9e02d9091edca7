"""Pytest configuration and shared fixtures."""

import json
from collections import deque
from pathlib import Path

import httpx
import pytest

from genstudio.config import Settings
from genstudio.jobs import GenerationPoller, GenerationTracker, InMemoryRecordStore, PollSchedule
from genstudio.media import MediaResolver
from genstudio.providers import ProviderRegistry
from genstudio.schemas.models import GenerationStatus, ProviderJob, ProviderStatus
from genstudio.storage import UploadStorage

PUBLIC_BASE_URL = "http://testserver"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class MockRoutes:
    """Records requests and answers them from a table of (method, path suffix) -> handler.

    A handler is a dict (JSON 200), an ``httpx.Response`` or a callable
    taking the request. Several handlers are consumed in order; the last
    one keeps answering.
    """

    def __init__(self):
        self.routes: list[tuple[str, str, deque]] = []
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *handlers):
        self.routes.append((method.upper(), path, deque(handlers)))
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, path, handlers in self.routes:
            if request.method == method and request.url.path.endswith(path):
                handler = handlers[0] if len(handlers) == 1 else handlers.popleft()
                if callable(handler) and not isinstance(handler, httpx.Response):
                    handler = handler(request)
                if isinstance(handler, httpx.Response):
                    return handler
                return httpx.Response(200, json=handler)
        return httpx.Response(404, json={"message": f"no route for {request.method} {request.url.path}"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def json_bodies(self, method: str = "POST") -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.method == method and r.content]


class RecordingSleep:
    """Stand-in for asyncio.sleep that returns immediately and remembers the delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeProvider:
    """Scripted provider: submit outcomes and poll statuses are consumed in order."""

    def __init__(self, name: str = "kling", *, submit=None, polls=None, configured: bool = True):
        self.name = name
        self.configured = configured
        self.callback_url = None
        self.submit_script = deque(submit or [])
        self.poll_script = deque(polls or [])
        self.submitted = []
        self.poll_calls = 0

    def is_configured(self) -> bool:
        return self.configured

    def result_headers(self, url: str) -> dict[str, str]:
        return {}

    async def submit(self, request) -> ProviderJob:
        self.submitted.append(request)
        outcome = self.submit_script.popleft() if self.submit_script else None
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, ProviderJob):
            return outcome
        return ProviderJob(
            job_id=f"job-{len(self.submitted)}",
            provider=self.name,
            task_type="image2image" if request.generation_type.is_image else "image2video",
            duration_seconds=5,
            result=outcome,
        )

    async def poll_status(self, job_id: str, task_type: str, model_name: str = "") -> ProviderStatus:
        self.poll_calls += 1
        outcome = self.poll_script.popleft() if self.poll_script else ProviderStatus(
            status=GenerationStatus.IN_PROGRESS
        )
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeJoiner:
    """Concatenates by appending bytes; remembers every call."""

    def __init__(self):
        self.calls: list[list[Path]] = []

    async def join(self, inputs: list[Path], output: Path) -> None:
        self.calls.append(list(inputs))
        output.write_bytes(b"".join(p.read_bytes() for p in inputs))


def completed_image(url: str = "https://cdn.example.com/out.png") -> ProviderStatus:
    return ProviderStatus(status=GenerationStatus.COMPLETED, image_url=url, thumbnail_url=url)


def completed_video(url: str = "https://cdn.example.com/out.mp4", duration: float = 5) -> ProviderStatus:
    return ProviderStatus(
        status=GenerationStatus.COMPLETED, video_url=url, thumbnail_url=url, duration_seconds=duration
    )


def failed(message: str = "content policy", code: str = "GENERATION_FAILED") -> ProviderStatus:
    return ProviderStatus(status=GenerationStatus.FAILED, error_code=code, error_message=message)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        genstudio_data_dir=str(tmp_path / "data"),
        public_base_url=PUBLIC_BASE_URL,
        record_store="memory",
        kling_access_key="ak-test",
        kling_secret_key="sk-test",
        google_api_key="google-test",
        localize_results=False,
        poll_interval_seconds=10,
        poll_max_attempts=5,
        image_poll_interval_seconds=5,
        image_poll_max_attempts=5,
        retry_backoff_seconds=1.0,
    )


@pytest.fixture
def storage(tmp_path) -> UploadStorage:
    return UploadStorage(tmp_path / "uploads", PUBLIC_BASE_URL)


@pytest.fixture
def fetch_calls():
    return []


@pytest.fixture
def media(storage, fetch_calls) -> MediaResolver:
    async def fetch(url: str):
        fetch_calls.append(url)
        return PNG_BYTES, "image/png"

    return MediaResolver(storage, fetch=fetch)


@pytest.fixture
def local_image(storage) -> str:
    """Filename of a small PNG in the uploads directory."""
    name = "reference.png"
    (Path(storage.uploads_dir) / name).write_bytes(PNG_BYTES)
    return name


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def tracker() -> GenerationTracker:
    return GenerationTracker(InMemoryRecordStore())


@pytest.fixture
def fake_kling() -> FakeProvider:
    return FakeProvider("kling")


@pytest.fixture
def fake_gemini() -> FakeProvider:
    return FakeProvider("gemini-image")


@pytest.fixture
def registry(fake_kling, fake_gemini) -> ProviderRegistry:
    return ProviderRegistry(
        {
            "kling": fake_kling,
            "gemini-image": fake_gemini,
            "veo": FakeProvider("veo"),
            "imagen": FakeProvider("imagen"),
        }
    )


@pytest.fixture
def poller(tracker, registry, sleep) -> GenerationPoller:
    return GenerationPoller(
        tracker,
        registry,
        video_schedule=PollSchedule(interval_seconds=10, max_attempts=5),
        image_schedule=PollSchedule(interval_seconds=5, max_attempts=5),
        max_consecutive_errors=3,
        sleep=sleep,
    )


@pytest.fixture
def joiner() -> FakeJoiner:
    return FakeJoiner()


@pytest.fixture
def local_video(storage):
    """Write a fake clip into uploads; returns its public URL."""

    def make(name: str, content: bytes | None = None) -> str:
        (Path(storage.uploads_dir) / name).write_bytes(content or name.encode())
        return storage.public_url(name)

    return make

"""Tests for the Kling adapter: auth, payload shaping, status mapping and callbacks."""

import jwt
import pytest

from genstudio.errors import AuthenticationError, UnknownProviderError, ValidationError
from genstudio.providers.kling import (
    KlingProvider,
    normalize_base_url,
    resolve_model_id,
    supports_cfg_scale,
    supports_sound,
)
from genstudio.schemas.kling import KlingCallback, KlingTaskData
from genstudio.schemas.models import GenerationRequest, GenerationStatus, GenerationType

from conftest import PUBLIC_BASE_URL, MockRoutes

NOW = 1_700_000_000
SUBMITTED = {"code": 0, "message": "SUCCEED", "data": {"task_id": "task-1", "task_status": "submitted"}}


@pytest.fixture
def routes():
    return MockRoutes()


@pytest.fixture
def kling(media, routes):
    return KlingProvider(
        media=media,
        access_key="ak-test",
        secret_key="sk-test",
        base_url="https://api.klingai.com/v1/",
        transport=routes.transport,
        clock=lambda: NOW,
    )


def _request(generation_type=GenerationType.TEXT_TO_VIDEO, **fields):
    values = dict(prompt="a crane lifts a steel beam", generation_type=generation_type, model_name="Kling 2.6")
    values.update(fields)
    return GenerationRequest(**values)


def test_jwt_claims_are_signed_with_secret(kling):
    token = kling.auth_token()
    assert jwt.get_unverified_header(token)["typ"] == "JWT"
    claims = jwt.decode(token, "sk-test", algorithms=["HS256"], options={"verify_exp": False, "verify_nbf": False})
    assert claims == {"iss": "ak-test", "iat": NOW, "exp": NOW + 1800, "nbf": NOW - 5}


def test_static_api_key_and_missing_credentials(media):
    assert KlingProvider(media=media, api_key="static-key").auth_token() == "static-key"
    unconfigured = KlingProvider(media=media)
    assert not unconfigured.is_configured()
    with pytest.raises(AuthenticationError):
        unconfigured.auth_token()


def test_base_url_and_model_helpers():
    assert normalize_base_url("https://api.klingai.com/v1/") == "https://api.klingai.com"
    assert normalize_base_url("https://proxy.example.com/v2") == "https://proxy.example.com"
    assert normalize_base_url("") == "https://api.klingai.com"
    assert resolve_model_id("Kling O1", GenerationType.IMAGE_TO_IMAGE) == "kling-image-o1"
    assert resolve_model_id("Kling O1", GenerationType.IMAGE_TO_VIDEO) == "kling-video-o1"
    assert resolve_model_id("Kling 2.6", GenerationType.MOTION_CONTROL) == "kling-motion-control"
    assert resolve_model_id("Kling 9", GenerationType.TEXT_TO_VIDEO) == "kling-v2.6-pro"
    assert supports_cfg_scale("kling-v1-6")
    assert not supports_cfg_scale("kling-v2.6-pro")
    assert supports_sound("kling-v2.6-std")
    assert not supports_sound("kling-v2.5-turbo")


@pytest.mark.asyncio
async def test_text_to_video_submit(kling, routes):
    routes.add("POST", "/v1/videos/text2video", SUBMITTED)
    job = await kling.submit(_request(duration="7s", audio_enabled=True))

    [request] = routes.requests
    assert request.url.path == "/v1/videos/text2video"
    assert request.headers["authorization"].startswith("Bearer ")
    [body] = routes.json_bodies()
    assert body["model_name"] == "kling-v2.6-pro"
    assert body["duration"] == 5
    assert body["sound"] == "on"
    assert "cfg_scale" not in body
    assert body["negative_prompt"].startswith("blurry")
    assert job.job_id == "task-1"
    assert job.task_type == "text2video"
    assert job.duration_seconds == 5


@pytest.mark.asyncio
async def test_sound_is_dropped_for_models_without_audio(kling, routes):
    routes.add("POST", "/v1/videos/text2video", SUBMITTED)
    await kling.submit(_request(model_name="Kling 2.5 Turbo", audio_enabled=True, duration="10s"))
    [body] = routes.json_bodies()
    assert "sound" not in body
    assert body["duration"] == 10


@pytest.mark.asyncio
async def test_tail_frame_forces_five_seconds_and_inlines_the_start(kling, routes, fetch_calls):
    routes.add("POST", "/v1/videos/image2video", SUBMITTED)
    await kling.submit(
        _request(
            GenerationType.IMAGE_TO_VIDEO,
            duration="10s",
            image_url="https://cdn.example.com/start.png",
            end_image_url="https://cdn.example.com/end.png",
        )
    )
    [body] = routes.json_bodies()
    assert body["duration"] == 5
    assert "image" in body and "image_url" not in body
    assert body["image_tail_url"] == "https://cdn.example.com/end.png"
    assert fetch_calls == ["https://cdn.example.com/start.png"]


@pytest.mark.asyncio
async def test_image_to_video_without_tail_passes_url(kling, routes, fetch_calls):
    routes.add("POST", "/v1/videos/image2video", SUBMITTED)
    await kling.submit(_request(GenerationType.IMAGE_TO_VIDEO, image_url="https://cdn.example.com/start.png"))
    [body] = routes.json_bodies()
    assert body["image_url"] == "https://cdn.example.com/start.png"
    assert fetch_calls == []


@pytest.mark.asyncio
async def test_o1_always_inlines_images(kling, routes, fetch_calls):
    routes.add("POST", "/v1/videos/image2video", SUBMITTED)
    await kling.submit(
        _request(GenerationType.IMAGE_TO_VIDEO, model_name="Kling O1", image_url="https://cdn.example.com/a.png")
    )
    [body] = routes.json_bodies()
    assert body["model_name"] == "kling-video-o1"
    assert "image" in body
    assert fetch_calls == ["https://cdn.example.com/a.png"]


@pytest.mark.asyncio
async def test_image_to_image_uses_omni_image(kling, routes):
    routes.add("POST", "/v1/images/omni-image", SUBMITTED)
    job = await kling.submit(
        _request(GenerationType.IMAGE_TO_IMAGE, image_url="https://cdn.example.com/site.png")
    )
    [body] = routes.json_bodies()
    assert body["strength"] == 0.7
    assert body["image_url"] == "https://cdn.example.com/site.png"
    assert job.task_type == "image2image"
    assert job.duration_seconds is None


@pytest.mark.asyncio
async def test_motion_control_uses_public_upload_url(kling, routes, local_image):
    routes.add("POST", "/v1/videos/motion-control", SUBMITTED)
    await kling.submit(
        _request(
            GenerationType.MOTION_CONTROL,
            prompt=None,
            character_image_url=local_image,
            video_url="https://cdn.example.com/dance.mp4",
        )
    )
    [body] = routes.json_bodies()
    assert body["image_url"] == f"{PUBLIC_BASE_URL}/uploads/{local_image}"
    assert body["video_url"] == "https://cdn.example.com/dance.mp4"
    assert body["mode"] == "std"


@pytest.mark.asyncio
async def test_motion_control_rejects_missing_upload(kling):
    with pytest.raises(ValidationError):
        await kling.submit(
            _request(
                GenerationType.MOTION_CONTROL,
                character_image_url="gone.png",
                video_url="https://cdn.example.com/dance.mp4",
            )
        )


@pytest.mark.asyncio
async def test_nonzero_code_is_an_error(kling, routes):
    routes.add(
        "POST",
        "/v1/videos/text2video",
        {"code": 1201, "message": "prompt is invalid"},
        {"code": 1102, "message": "Account balance not enough, quota exhausted"},
    )
    with pytest.raises(UnknownProviderError) as exc:
        await kling.submit(_request())
    assert exc.value.code == "UNKNOWN_ERROR"
    assert "1201" in str(exc.value)

    with pytest.raises(UnknownProviderError) as exc:
        await kling.submit(_request())
    assert exc.value.code == "QUOTA_EXCEEDED"


@pytest.mark.asyncio
async def test_poll_paths_and_results(kling, routes):
    routes.add(
        "GET",
        "/v1/videos/image2video/task-2",
        {
            "code": 0,
            "data": {
                "task_id": "task-2",
                "task_status": "succeed",
                "task_result": {
                    "videos": [{"url": "https://cdn.example.com/v.mp4", "duration": "5.1", "cover_url": "https://cdn.example.com/c.jpg"}]
                },
            },
        },
    )
    routes.add(
        "GET",
        "/v1/images/omni-image/task-3",
        {"code": 0, "data": {"task_id": "task-3", "task_status": "processing"}},
    )

    video = await kling.poll_status("task-2", "image2video")
    assert video.status == GenerationStatus.COMPLETED
    assert video.video_url == "https://cdn.example.com/v.mp4"
    assert video.thumbnail_url == "https://cdn.example.com/c.jpg"
    assert video.duration_seconds == 5.1

    image = await kling.poll_status("task-3", "image2image")
    assert image.status == GenerationStatus.IN_PROGRESS


def test_status_mapping_failures():
    failed = KlingProvider.status_from_task(
        KlingTaskData(task_id="t", task_status="failed", task_status_msg="Risk control: sensitive content")
    )
    assert failed.status == GenerationStatus.FAILED
    assert failed.error_code == "GENERATION_FAILED"
    assert failed.error_message == "Risk control: sensitive content"

    empty = KlingProvider.status_from_task(KlingTaskData(task_id="t", task_status="succeed"))
    assert empty.status == GenerationStatus.FAILED

    queued = KlingProvider.status_from_task(KlingTaskData(task_id="t", task_status="submitted"))
    assert queued.status == GenerationStatus.QUEUED


def test_callback_shapes():
    task_shape = KlingCallback.model_validate(
        {"task_id": "t1", "task_status": "succeed", "task_result": {"images": [{"url": "https://cdn.example.com/i.png"}]}}
    )
    assert task_shape.provider_job_id == "t1"
    assert KlingProvider.status_from_callback(task_shape).image_url == "https://cdn.example.com/i.png"

    simple = KlingCallback(generation_id="t2", status="completed", video_url="https://cdn.example.com/v.mp4")
    status = KlingProvider.status_from_callback(simple)
    assert status.status == GenerationStatus.COMPLETED
    assert status.thumbnail_url == "https://cdn.example.com/v.mp4"

    missing = KlingProvider.status_from_callback(KlingCallback(generation_id="t3", status="completed"))
    assert missing.status == GenerationStatus.FAILED

    failed = KlingProvider.status_from_callback(KlingCallback(generation_id="t4", status="failed", error="nope"))
    assert failed.error_message == "nope"


@pytest.mark.asyncio
async def test_unrecognised_task_status_keeps_polling(kling, routes):
    routes.add("GET", "/v1/videos/image2video/task-4", {"code": 0, "data": {"task_id": "task-4", "task_status": "cancelled"}})
    status = await kling.poll_status("task-4", "image2video")
    assert status.status == GenerationStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_malformed_task_body_is_a_provider_error(kling, routes):
    routes.add("GET", "/v1/videos/image2video/task-5", {"code": 0, "data": {"task_status": "processing"}})
    with pytest.raises(UnknownProviderError) as exc:
        await kling.poll_status("task-5", "image2video")
    assert "unexpected response" in str(exc.value)
    assert "task_id" in str(exc.value)

"""Kling adapter: text/image/video-to-video, motion control and omni-image."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import jwt
from pydantic import BaseModel

from genstudio.capabilities import KLING_TAIL_DURATION, parse_duration, snap_duration
from genstudio.errors import (
    AuthenticationError,
    UnknownProviderError,
    ValidationError,
    is_quota_message,
    quota_hint,
)
from genstudio.http import ProviderHttp, parse_response, redact_payload
from genstudio.media import InlinePolicy, MediaResolver, is_remote
from genstudio.schemas.kling import (
    KlingCallback,
    KlingImage2VideoRequest,
    KlingMotionControlRequest,
    KlingOmniImageRequest,
    KlingResponse,
    KlingTaskData,
    KlingText2VideoRequest,
    KlingVideo2VideoRequest,
)
from genstudio.schemas.models import (
    GenerationRequest,
    GenerationStatus,
    GenerationType,
    ProviderJob,
    ProviderStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.klingai.com"
AUTH_HINT = "Please verify KLING_ACCESS_KEY and KLING_SECRET_KEY (or KLING_API_KEY)."
TOKEN_TTL_SECONDS = 1800
TOKEN_CLOCK_SKEW_SECONDS = 5

DEFAULT_MODEL_ID = "kling-v2.6-pro"
MOTION_MODEL_ID = "kling-motion-control"
O1_VIDEO_MODEL_ID = "kling-video-o1"
O1_IMAGE_MODEL_ID = "kling-image-o1"

VIDEO_MODEL_IDS = {
    "Kling 2.6": "kling-v2.6-pro",
    "Kling 2.6 Standard": "kling-v2.6-std",
    "Kling Motion Control": MOTION_MODEL_ID,
    "Kling 2.5 Turbo": "kling-v2.5-turbo",
    "Kling O1": O1_VIDEO_MODEL_ID,
}
# Friendly names that resolve differently for image generation
IMAGE_MODEL_OVERRIDES = {
    "Kling O1": O1_IMAGE_MODEL_ID,
}

# Wire ids that accept sound="on"
AUDIO_MODEL_IDS = {"kling-v2.6-pro", "kling-v2.6-std"}

NEGATIVE_PROMPT_STRICT = "blurry, low quality, distorted, ugly, bad anatomy"
NEGATIVE_PROMPT_LIGHT = "blurry, low quality, distorted"
DEFAULT_IMAGE_STRENGTH = 0.7

TASK_TYPES = {
    GenerationType.TEXT_TO_VIDEO: "text2video",
    GenerationType.IMAGE_TO_VIDEO: "image2video",
    GenerationType.VIDEO_TO_VIDEO: "video2video",
    GenerationType.MOTION_CONTROL: "motion-control",
    GenerationType.TEXT_TO_IMAGE: "text2image",
    GenerationType.IMAGE_TO_IMAGE: "image2image",
}
IMAGE_TASK_TYPES = {"text2image", "image2image"}

SUBMIT_PATHS = {
    "text2video": "/v1/videos/text2video",
    "image2video": "/v1/videos/image2video",
    "video2video": "/v1/videos/video2video",
    "motion-control": "/v1/videos/motion-control",
    "text2image": "/v1/images/omni-image",
    "image2image": "/v1/images/omni-image",
}

STATUS_MAP = {
    "submitted": GenerationStatus.QUEUED,
    "processing": GenerationStatus.IN_PROGRESS,
    "succeed": GenerationStatus.COMPLETED,
    "failed": GenerationStatus.FAILED,
}


def normalize_base_url(url: str) -> str:
    """Strip trailing slashes and a trailing /v1 or /v2 segment."""
    trimmed = (url or DEFAULT_BASE_URL).strip().rstrip("/")
    if trimmed.endswith(("/v1", "/v2")):
        trimmed = trimmed[:-3]
    return trimmed


def resolve_model_id(model_name: str | None, generation_type: GenerationType) -> str:
    if generation_type == GenerationType.MOTION_CONTROL:
        return MOTION_MODEL_ID
    name = model_name or ""
    if generation_type.is_image and name in IMAGE_MODEL_OVERRIDES:
        return IMAGE_MODEL_OVERRIDES[name]
    return VIDEO_MODEL_IDS.get(name, DEFAULT_MODEL_ID)


def is_o1(model_id: str) -> bool:
    return model_id in (O1_VIDEO_MODEL_ID, O1_IMAGE_MODEL_ID)


def supports_cfg_scale(model_id: str) -> bool:
    return "v1" in model_id and not is_o1(model_id)


def supports_sound(model_id: str) -> bool:
    return model_id in AUDIO_MODEL_IDS


def _duration_seconds(value: str | float | None) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class KlingProvider:
    name = "kling"

    def __init__(
        self,
        *,
        media: MediaResolver,
        access_key: str | None = None,
        secret_key: str | None = None,
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        callback_url: str | None = None,
        timeout: float = 30.0,
        transport=None,
        clock: Callable[[], float] = time.time,
    ):
        self.media = media
        self.access_key = access_key
        self.secret_key = secret_key
        self.api_key = api_key
        self.base_url = normalize_base_url(base_url)
        self.callback_url = callback_url or None
        self._clock = clock
        self._http = ProviderHttp(
            "Kling", base_url=self.base_url, timeout=timeout, transport=transport, auth_hint=AUTH_HINT
        )

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    @property
    def uses_jwt(self) -> bool:
        return bool(self.access_key and self.secret_key)

    def is_configured(self) -> bool:
        return self.uses_jwt or bool(self.api_key)

    def auth_token(self) -> str:
        """A freshly signed token (key pair) or the static API key."""
        if self.uses_jwt:
            now = int(self._clock())
            payload = {
                "iss": self.access_key,
                "iat": now,
                "exp": now + TOKEN_TTL_SECONDS,
                "nbf": now - TOKEN_CLOCK_SKEW_SECONDS,
            }
            return jwt.encode(payload, self.secret_key, algorithm="HS256", headers={"typ": "JWT"})
        if self.api_key:
            return self.api_key
        raise AuthenticationError(f"Kling is not configured. {AUTH_HINT}", provider=self.name)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.auth_token()}", "Content-Type": "application/json"}

    def result_headers(self, url: str) -> dict[str, str]:
        return {}

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def snap_duration(self, duration: str | float | None, has_tail: bool = False) -> int:
        if has_tail:
            return KLING_TAIL_DURATION
        return snap_duration("kling", parse_duration(duration, default=5))

    def _public_url(self, ref: str | None, slot: str) -> str:
        """URL-only slots: remote refs pass through, local uploads use our public URL."""
        if not ref:
            raise ValidationError(f"Missing {slot}", field=slot)
        if is_remote(ref):
            return ref
        storage = self.media.storage
        if not storage.public_base_url or not storage.exists(ref):
            raise ValidationError(f"{slot} must be a publicly accessible URL", field=slot)
        return storage.public_url(storage.filename_for(ref))

    async def build_payload(self, request: GenerationRequest) -> tuple[str, str, BaseModel, int | None]:
        """Return (task_type, model_id, wire request, snapped duration)."""
        gen_type = request.generation_type
        task_type = TASK_TYPES[gen_type]
        model_id = resolve_model_id(request.model_name, gen_type)
        callback = self.callback_url

        if gen_type == GenerationType.MOTION_CONTROL:
            body = KlingMotionControlRequest(
                model_name=model_id,
                video_url=self._public_url(request.video_url, "video"),
                image_url=self._public_url(
                    request.character_image_url or request.image_url, "characterImage"
                ),
                character_orientation=request.character_orientation or "video",
                prompt=request.prompt or None,
                mode="pro" if request.resolution == "1080p" else "std",
                callback_url=callback,
            )
            return task_type, model_id, body, None

        if gen_type.is_image:
            body = KlingOmniImageRequest(
                model_name=model_id,
                prompt=request.prompt or "",
                aspect_ratio=request.aspect_ratio,
                callback_url=callback,
            )
            if not is_o1(model_id):
                body.negative_prompt = request.negative_prompt or NEGATIVE_PROMPT_STRICT
            if gen_type == GenerationType.IMAGE_TO_IMAGE:
                body.strength = (
                    request.image_strength if request.image_strength is not None else DEFAULT_IMAGE_STRENGTH
                )
                image = await self.media.resolve(request.image_url, "image")
                if image.is_inline:
                    body.image = image.data
                else:
                    body.image_url = image.url
            return task_type, model_id, body, None

        has_tail = bool(request.end_image_url)
        duration = self.snap_duration(request.duration, has_tail=has_tail)
        common: dict[str, Any] = {
            "model_name": model_id,
            "prompt": request.prompt or None,
            "duration": duration,
            "aspect_ratio": request.aspect_ratio,
            "callback_url": callback,
        }
        if supports_cfg_scale(model_id):
            common["cfg_scale"] = 0.5
        if request.audio_enabled and supports_sound(model_id):
            common["sound"] = "on"

        if gen_type == GenerationType.TEXT_TO_VIDEO:
            body = KlingText2VideoRequest(
                negative_prompt=request.negative_prompt or NEGATIVE_PROMPT_STRICT, **common
            )
        elif gen_type == GenerationType.IMAGE_TO_VIDEO:
            policy = InlinePolicy(force_inline=is_o1(model_id), inline_primary_with_secondary=True)
            main, tail = await self.media.resolve_pair(request.image_url, request.end_image_url, policy)
            body = KlingImage2VideoRequest(
                negative_prompt=request.negative_prompt or NEGATIVE_PROMPT_LIGHT, **common
            )
            if main.is_inline:
                body.image = main.data
            else:
                body.image_url = main.url
            if tail is not None:
                if tail.is_inline:
                    body.image_tail = tail.data
                else:
                    body.image_tail_url = tail.url
        else:
            body = KlingVideo2VideoRequest(
                negative_prompt=request.negative_prompt or NEGATIVE_PROMPT_LIGHT, **common
            )
            if is_o1(model_id):
                body.video_url = self._public_url(request.video_url, "video")
                if request.audio_enabled:
                    body.keep_audio = True
            else:
                video = await self.media.resolve(request.video_url, "video", kind="video")
                if video.is_inline:
                    body.video = video.data
                else:
                    body.video_url = video.url
        return task_type, model_id, body, duration

    # ------------------------------------------------------------------
    # Submit / poll
    # ------------------------------------------------------------------

    def _parse(self, body: dict[str, Any]) -> KlingTaskData:
        parsed = parse_response(KlingResponse, body, "Kling")
        if parsed.code != 0 or parsed.data is None:
            message = parsed.message or "Kling API returned unexpected response format"
            text = f"Kling API error: {parsed.code} - {message}"
            if is_quota_message(message):
                raise UnknownProviderError(quota_hint(text), code="QUOTA_EXCEEDED", provider=self.name)
            raise UnknownProviderError(text, provider=self.name)
        return parsed.data

    async def submit(self, request: GenerationRequest) -> ProviderJob:
        task_type, model_id, body, duration = await self.build_payload(request)
        payload = body.model_dump(exclude_none=True)
        path = SUBMIT_PATHS[task_type]
        logger.info("Kling submit %s model=%s payload=%s", path, model_id, redact_payload(payload))
        data = self._parse(await self._http.request_json("POST", path, headers=self._headers(), json=payload))
        return ProviderJob(
            job_id=data.task_id,
            provider=self.name,
            task_type=task_type,
            model_id=model_id,
            payload=redact_payload(payload),
            duration_seconds=duration,
        )

    def status_path(self, task_type: str, job_id: str) -> str:
        if task_type in IMAGE_TASK_TYPES:
            return f"/v1/images/omni-image/{job_id}"
        return f"/v1/videos/{task_type}/{job_id}"

    async def poll_status(self, job_id: str, task_type: str, model_name: str = "") -> ProviderStatus:
        path = self.status_path(task_type, job_id)
        data = self._parse(await self._http.request_json("GET", path, headers=self._headers()))
        return self.status_from_task(data)

    @staticmethod
    def status_from_task(data: KlingTaskData | KlingCallback) -> ProviderStatus:
        if data.task_status and data.task_status not in STATUS_MAP:
            logger.warning("Unrecognised Kling task status %r, treating as in progress", data.task_status)
        status = STATUS_MAP.get(data.task_status or "processing", GenerationStatus.IN_PROGRESS)
        if status == GenerationStatus.FAILED:
            message = data.task_status_msg or "Kling reported the task as failed"
            code = "QUOTA_EXCEEDED" if is_quota_message(message) else "GENERATION_FAILED"
            return ProviderStatus(status=status, error_code=code, error_message=message)
        if status != GenerationStatus.COMPLETED:
            return ProviderStatus(status=status)
        result = data.task_result
        if result and result.videos:
            video = result.videos[0]
            return ProviderStatus(
                status=status,
                video_url=video.url,
                thumbnail_url=video.cover_url,
                duration_seconds=_duration_seconds(video.duration),
            )
        if result and result.images:
            image = result.images[0]
            return ProviderStatus(status=status, image_url=image.url, thumbnail_url=image.url)
        return ProviderStatus(
            status=GenerationStatus.FAILED,
            error_code="GENERATION_FAILED",
            error_message="Kling reported success without a result URL",
        )

    @classmethod
    def status_from_callback(cls, callback: KlingCallback) -> ProviderStatus:
        """Map an inbound webhook body onto the same status shape as a poll."""
        if callback.task_status:
            return cls.status_from_task(callback)
        if callback.status == "completed":
            if not callback.video_url:
                return ProviderStatus(
                    status=GenerationStatus.FAILED,
                    error_code="GENERATION_FAILED",
                    error_message="Webhook reported completion without a video URL",
                )
            return ProviderStatus(
                status=GenerationStatus.COMPLETED,
                video_url=callback.video_url,
                thumbnail_url=callback.thumbnail_url or callback.video_url,
            )
        if callback.status == "failed":
            return ProviderStatus(
                status=GenerationStatus.FAILED,
                error_code="GENERATION_FAILED",
                error_message=callback.error or "Generation failed",
            )
        return ProviderStatus(status=GenerationStatus.IN_PROGRESS)

"""Google Veo adapter (long-running predict operations)."""

from __future__ import annotations

import logging

from genstudio.capabilities import parse_duration, snap_duration
from genstudio.errors import UnknownProviderError, ValidationError
from genstudio.http import redact_payload
from genstudio.media import InlinePolicy
from genstudio.providers.google import GoogleProviderBase
from genstudio.schemas.google import InlineImage, Operation, VeoInstance, VeoParameters, VeoRequest
from genstudio.schemas.models import (
    GenerationRequest,
    GenerationStatus,
    GenerationType,
    ProviderJob,
    ProviderStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "veo-3.0-generate-001"
MODEL_IDS = {
    "Veo 3": "veo-3.0-generate-001",
    "Veo 3.0": "veo-3.0-generate-001",
    "Veo 3.1": "veo-3.1-generate-preview",
    "Veo 3 Fast": "veo-3.0-fast-generate-001",
}

SUPPORTED_ASPECT_RATIOS = ("16:9", "9:16")
ASPECT_RATIO_FALLBACKS = {
    "1:1": "16:9",
    "4:3": "16:9",
    "3:2": "16:9",
    "21:9": "16:9",
    "3:4": "9:16",
    "2:3": "9:16",
    "9:21": "9:16",
}

# Veo reads reference images from the request body only
IMAGE_POLICY = InlinePolicy(force_inline=True)

TASK_TYPES = {
    GenerationType.TEXT_TO_VIDEO: "text2video",
    GenerationType.IMAGE_TO_VIDEO: "image2video",
}


def resolve_model_id(model_name: str | None) -> str:
    return MODEL_IDS.get(model_name or "", DEFAULT_MODEL_ID)


def coerce_aspect_ratio(aspect_ratio: str | None) -> str:
    if aspect_ratio in SUPPORTED_ASPECT_RATIOS:
        return aspect_ratio
    return ASPECT_RATIO_FALLBACKS.get(aspect_ratio or "", "16:9")


class VeoProvider(GoogleProviderBase):
    name = "veo"
    label = "Veo"

    def snap_duration(self, duration: str | float | None) -> int:
        return snap_duration("veo", parse_duration(duration, default=6))

    async def build_payload(self, request: GenerationRequest) -> tuple[str, str, VeoRequest, int]:
        task_type = TASK_TYPES.get(request.generation_type)
        if task_type is None:
            raise ValidationError(
                f"Veo does not support {request.generation_type.value}", field="generationType"
            )
        model_id = resolve_model_id(request.model_name)
        duration = self.snap_duration(request.duration)
        instance = VeoInstance(prompt=request.prompt or "")
        parameters = VeoParameters(
            duration_seconds=duration,
            aspect_ratio=coerce_aspect_ratio(request.aspect_ratio),
            negative_prompt=request.negative_prompt,
        )
        if request.generation_type == GenerationType.IMAGE_TO_VIDEO:
            image = await self.media.resolve(request.image_url, "image", IMAGE_POLICY)
            instance.image = InlineImage(bytes_base64_encoded=image.data, mime_type=image.mime_type)
        else:
            parameters.resolution = request.resolution
        return task_type, model_id, VeoRequest(instances=[instance], parameters=parameters), duration

    async def submit(self, request: GenerationRequest) -> ProviderJob:
        task_type, model_id, body, duration = await self.build_payload(request)
        payload = body.to_wire()
        logger.info("Veo submit model=%s payload=%s", model_id, redact_payload(payload))
        data = await self._http.request_json(
            "POST", f"/models/{model_id}:predictLongRunning", headers=self._headers(), json=payload
        )
        name = data.get("name")
        if not name:
            raise UnknownProviderError("Veo did not return an operation name", provider=self.name)
        return ProviderJob(
            job_id=name,
            provider=self.name,
            task_type=task_type,
            model_id=model_id,
            payload=redact_payload(payload),
            duration_seconds=duration,
        )

    async def poll_status(self, job_id: str, task_type: str, model_name: str = "") -> ProviderStatus:
        return self.status_from_operation(await self.get_operation(job_id))

    def status_from_operation(self, operation: Operation) -> ProviderStatus:
        if not operation.done:
            return ProviderStatus(status=GenerationStatus.IN_PROGRESS)
        if operation.error:
            return self.failed_status(operation.error)
        video_response = operation.response.generate_video_response if operation.response else None
        samples = video_response.generated_samples if video_response else []
        if not samples or not samples[0].video or not samples[0].video.uri:
            reasons = video_response.rai_media_filtered_reasons if video_response else []
            message = "; ".join(reasons) or "Veo finished without a generated video"
            return ProviderStatus(
                status=GenerationStatus.FAILED, error_code="GENERATION_FAILED", error_message=message
            )
        sample = samples[0]
        video_url = sample.video.uri
        thumbnail = sample.thumbnail.uri if sample.thumbnail and sample.thumbnail.uri else video_url
        return ProviderStatus(status=GenerationStatus.COMPLETED, video_url=video_url, thumbnail_url=thumbnail)

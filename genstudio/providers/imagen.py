"""Google Imagen adapter.

``:predict`` usually answers with the image inline; the result is carried on
the ProviderJob and no polling happens. When Google hands back a long-running
operation instead, it is polled like Veo.
"""

from __future__ import annotations

import logging
import uuid

from genstudio.errors import UnknownProviderError, ValidationError
from genstudio.http import parse_response, redact_payload
from genstudio.media import InlinePolicy
from genstudio.providers.google import GoogleProviderBase
from genstudio.schemas.google import (
    ImagenInstance,
    ImagenParameters,
    ImagenRequest,
    ImagenResponse,
    InlineImage,
    Operation,
)
from genstudio.schemas.models import (
    GenerationRequest,
    GenerationStatus,
    GenerationType,
    ProviderJob,
    ProviderStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "imagen-4.0-generate-001"
MODEL_IDS = {
    "Imagen 4": "imagen-4.0-generate-001",
    "Imagen 4 Fast": "imagen-4.0-fast-generate-001",
    "Imagen 4 Ultra": "imagen-4.0-ultra-generate-001",
    # Legacy names still sent by older clients
    "Imagen Nano": "imagen-4.0-fast-generate-001",
    "Imagen 3": "imagen-4.0-generate-001",
    "Imagen 3 Fast": "imagen-4.0-fast-generate-001",
}
DEFAULT_STRENGTH = 0.7
EDIT_MODE = "inpainting-insert"
IMAGE_POLICY = InlinePolicy(force_inline=True)

TASK_TYPES = {
    GenerationType.TEXT_TO_IMAGE: "text2image",
    GenerationType.IMAGE_TO_IMAGE: "image2image",
}


def resolve_model_id(model_name: str | None) -> str:
    return MODEL_IDS.get(model_name or "", DEFAULT_MODEL_ID)


def _status_from_response(response: ImagenResponse | Operation) -> ProviderStatus | None:
    predictions = getattr(response, "predictions", None) or []
    for prediction in predictions:
        if prediction.bytes_base64_encoded:
            mime = prediction.mime_type or "image/png"
            data_uri = f"data:{mime};base64,{prediction.bytes_base64_encoded}"
            return ProviderStatus(status=GenerationStatus.COMPLETED, image_url=data_uri)
    inner = response.response
    image_response = getattr(inner, "generate_image_response", None) if inner else None
    if image_response and image_response.generated_samples:
        sample = image_response.generated_samples[0]
        if sample.image and sample.image.uri:
            return ProviderStatus(
                status=GenerationStatus.COMPLETED, image_url=sample.image.uri, thumbnail_url=sample.image.uri
            )
    return None


class ImagenProvider(GoogleProviderBase):
    name = "imagen"
    label = "Imagen"

    async def build_payload(self, request: GenerationRequest) -> tuple[str, str, ImagenRequest]:
        task_type = TASK_TYPES.get(request.generation_type)
        if task_type is None:
            raise ValidationError(
                f"Imagen does not support {request.generation_type.value}", field="generationType"
            )
        model_id = resolve_model_id(request.model_name)
        instance = ImagenInstance(prompt=request.prompt or "")
        parameters = ImagenParameters(aspect_ratio=request.aspect_ratio)
        if request.generation_type == GenerationType.IMAGE_TO_IMAGE:
            image = await self.media.resolve(request.image_url, "image", IMAGE_POLICY)
            instance.image = InlineImage(bytes_base64_encoded=image.data, mime_type=image.mime_type)
            parameters.edit_mode = EDIT_MODE
            parameters.strength = (
                request.image_strength if request.image_strength is not None else DEFAULT_STRENGTH
            )
        return task_type, model_id, ImagenRequest(instances=[instance], parameters=parameters)

    async def submit(self, request: GenerationRequest) -> ProviderJob:
        task_type, model_id, body = await self.build_payload(request)
        payload = body.to_wire()
        logger.info("Imagen submit model=%s payload=%s", model_id, redact_payload(payload))
        data = await self._http.request_json(
            "POST", f"/models/{model_id}:predict", headers=self._headers(), json=payload
        )
        parsed = parse_response(ImagenResponse, data, self.label)
        if parsed.error:
            raise UnknownProviderError(f"Imagen API error: {parsed.error.message}", provider=self.name)
        result = _status_from_response(parsed)
        if result is None and not parsed.name:
            raise UnknownProviderError("Imagen returned no image and no operation", provider=self.name)
        return ProviderJob(
            job_id=parsed.name or f"imagen_{uuid.uuid4().hex[:16]}",
            provider=self.name,
            task_type=task_type,
            model_id=model_id,
            payload=redact_payload(payload),
            result=result,
        )

    async def poll_status(self, job_id: str, task_type: str, model_name: str = "") -> ProviderStatus:
        data = await self._http.request_json("GET", f"/{job_id.lstrip('/')}", headers=self._headers())
        parsed = parse_response(ImagenResponse, data, self.label)
        if not parsed.done:
            return ProviderStatus(status=GenerationStatus.IN_PROGRESS)
        if parsed.error:
            return self.failed_status(parsed.error)
        return _status_from_response(parsed) or ProviderStatus(
            status=GenerationStatus.FAILED,
            error_code="GENERATION_FAILED",
            error_message="Imagen finished without an image",
        )

"""Gemini image adapter ("Nano Banana"). Answers synchronously."""

from __future__ import annotations

import logging
import uuid

from genstudio.errors import UnknownProviderError, ValidationError
from genstudio.http import parse_response, redact_payload
from genstudio.media import InlinePolicy
from genstudio.providers.google import GoogleProviderBase
from genstudio.schemas.google import (
    Content,
    GenerateContentRequest,
    GenerateContentResponse,
    InlineData,
    Part,
)
from genstudio.schemas.models import (
    GenerationRequest,
    GenerationStatus,
    GenerationType,
    ProviderJob,
    ProviderStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "gemini-2.5-flash-image"
MODEL_IDS = {
    "Nano Banana": "gemini-2.5-flash-image",
    "Nano Banana Pro": "gemini-3-pro-image-preview",
}
IMAGE_POLICY = InlinePolicy(force_inline=True)

TASK_TYPES = {
    GenerationType.TEXT_TO_IMAGE: "text2image",
    GenerationType.IMAGE_TO_IMAGE: "image2image",
}


def resolve_model_id(model_name: str | None) -> str:
    return MODEL_IDS.get(model_name or "", DEFAULT_MODEL_ID)


def extract_image(response: GenerateContentResponse) -> str | None:
    """First inline image of the first candidate, as a data URI."""
    for candidate in response.candidates:
        if not candidate.content:
            continue
        for part in candidate.content.parts:
            if part.inline_data and part.inline_data.data:
                return f"data:{part.inline_data.mime_type};base64,{part.inline_data.data}"
    return None


class GeminiImageProvider(GoogleProviderBase):
    name = "gemini-image"
    label = "Gemini"

    def __init__(self, *, timeout: float = 120.0, **kwargs):
        super().__init__(timeout=timeout, **kwargs)

    async def build_payload(self, request: GenerationRequest) -> tuple[str, str, GenerateContentRequest]:
        task_type = TASK_TYPES.get(request.generation_type)
        if task_type is None:
            raise ValidationError(
                f"Gemini image models do not support {request.generation_type.value}",
                field="generationType",
            )
        parts: list[Part] = []
        if request.generation_type == GenerationType.IMAGE_TO_IMAGE:
            image = await self.media.resolve(request.image_url, "image", IMAGE_POLICY)
            parts.append(Part(inline_data=InlineData(mime_type=image.mime_type, data=image.data)))
        prompt = request.prompt or ""
        if request.aspect_ratio:
            prompt = f"{prompt} (aspect ratio {request.aspect_ratio})".strip()
        parts.append(Part(text=prompt))
        body = GenerateContentRequest(contents=[Content(parts=parts)])
        return task_type, resolve_model_id(request.model_name), body

    async def submit(self, request: GenerationRequest) -> ProviderJob:
        task_type, model_id, body = await self.build_payload(request)
        payload = body.to_wire()
        logger.info("Gemini image submit model=%s payload=%s", model_id, redact_payload(payload))
        data = await self._http.request_json(
            "POST", f"/models/{model_id}:generateContent", headers=self._headers(), json=payload
        )
        parsed = parse_response(GenerateContentResponse, data, self.label)
        image = extract_image(parsed)
        if image:
            result = ProviderStatus(status=GenerationStatus.COMPLETED, image_url=image)
        else:
            reason = parsed.prompt_feedback.block_reason if parsed.prompt_feedback else None
            result = ProviderStatus(
                status=GenerationStatus.FAILED,
                error_code="GENERATION_FAILED",
                error_message=f"Gemini API did not return image data{f' ({reason})' if reason else ''}",
            )
        return ProviderJob(
            job_id=f"gemini_{uuid.uuid4().hex[:16]}",
            provider=self.name,
            task_type=task_type,
            model_id=model_id,
            payload=redact_payload(payload),
            result=result,
        )

    async def poll_status(self, job_id: str, task_type: str, model_name: str = "") -> ProviderStatus:
        raise UnknownProviderError(
            "Gemini image jobs complete synchronously and cannot be polled", provider=self.name
        )

"""Google Generative Language wire schemas (Veo, Imagen, Gemini image).

The API speaks camelCase; fields here are snake_case with camelCase aliases,
so payloads must be dumped with ``by_alias=True``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class GoogleModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class InlineImage(GoogleModel):
    bytes_base64_encoded: str
    mime_type: str = "image/jpeg"


# ---------------------------------------------------------------------------
# Veo: models/{model}:predictLongRunning
# ---------------------------------------------------------------------------

class VeoInstance(GoogleModel):
    prompt: str
    image: InlineImage | None = None


class VeoParameters(GoogleModel):
    sample_count: int = 1
    duration_seconds: int
    aspect_ratio: str
    resolution: str | None = None
    negative_prompt: str | None = None


class VeoRequest(GoogleModel):
    instances: list[VeoInstance]
    parameters: VeoParameters


class GoogleFileRef(GoogleModel):
    uri: str | None = None
    mime_type: str | None = None


class VeoSample(GoogleModel):
    video: GoogleFileRef | None = None
    thumbnail: GoogleFileRef | None = None


class VeoGenerateVideoResponse(GoogleModel):
    generated_samples: list[VeoSample] = Field(default_factory=list)
    rai_media_filtered_reasons: list[str] = Field(default_factory=list)


class VeoOperationResponse(GoogleModel):
    generate_video_response: VeoGenerateVideoResponse | None = None


class OperationError(GoogleModel):
    code: int | None = None
    message: str = "Unknown error"
    status: str | None = None


class Operation(GoogleModel):
    """Long-running operation returned by predictLongRunning and by polling."""

    name: str
    done: bool = False
    error: OperationError | None = None
    response: VeoOperationResponse | None = None


# ---------------------------------------------------------------------------
# Imagen: models/{model}:predict
# ---------------------------------------------------------------------------

class ImagenInstance(GoogleModel):
    prompt: str
    image: InlineImage | None = None


class ImagenParameters(GoogleModel):
    sample_count: int = 1
    aspect_ratio: str | None = None
    edit_mode: str | None = None
    strength: float | None = None


class ImagenRequest(GoogleModel):
    instances: list[ImagenInstance]
    parameters: ImagenParameters


class ImagenPrediction(GoogleModel):
    bytes_base64_encoded: str | None = None
    mime_type: str | None = None


class ImagenImage(GoogleModel):
    uri: str | None = None


class ImagenSample(GoogleModel):
    image: ImagenImage | None = None


class ImagenGenerateResponse(GoogleModel):
    generated_samples: list[ImagenSample] = Field(default_factory=list)


class ImagenLongRunningResponse(GoogleModel):
    generate_image_response: ImagenGenerateResponse | None = None


class ImagenResponse(GoogleModel):
    """Either immediate predictions or a long-running operation."""

    predictions: list[ImagenPrediction] = Field(default_factory=list)
    name: str | None = None
    done: bool | None = None
    error: OperationError | None = None
    response: ImagenLongRunningResponse | None = None


# ---------------------------------------------------------------------------
# Gemini image: models/{model}:generateContent
# ---------------------------------------------------------------------------

class InlineData(GoogleModel):
    mime_type: str
    data: str


class Part(GoogleModel):
    text: str | None = None
    inline_data: InlineData | None = None


class Content(GoogleModel):
    role: str | None = None
    parts: list[Part] = Field(default_factory=list)


class GenerationConfig(GoogleModel):
    temperature: float = 1.0
    top_k: int = 40
    top_p: float = 0.95
    response_modalities: list[str] | None = None


class GenerateContentRequest(GoogleModel):
    contents: list[Content]
    generation_config: GenerationConfig = Field(default_factory=GenerationConfig)


class Candidate(GoogleModel):
    content: Content | None = None
    finish_reason: str | None = None


class PromptFeedback(GoogleModel):
    block_reason: str | None = None


class GenerateContentResponse(GoogleModel):
    candidates: list[Candidate] = Field(default_factory=list)
    prompt_feedback: PromptFeedback | None = None

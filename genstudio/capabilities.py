"""Model capability table and duration snapping.

The numeric tables here describe what each provider accepted at the time of
writing. Providers revise them, so they are plain data: edit the tables, not
the adapters.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from genstudio.errors import ValidationError
from genstudio.schemas.models import GenerationRequest, GenerationType

T2V = GenerationType.TEXT_TO_VIDEO
I2V = GenerationType.IMAGE_TO_VIDEO
V2V = GenerationType.VIDEO_TO_VIDEO
MOTION = GenerationType.MOTION_CONTROL
T2I = GenerationType.TEXT_TO_IMAGE
I2I = GenerationType.IMAGE_TO_IMAGE


class DurationBuckets(BaseModel):
    """Discrete durations a provider accepts.

    ``thresholds[i]`` is the upper bound for ``buckets[i]``; anything above
    the last threshold lands in the last bucket.
    """

    buckets: list[int]
    thresholds: list[float]
    inclusive: bool = False

    def snap(self, seconds: float) -> int:
        for bound, bucket in zip(self.thresholds, self.buckets):
            if seconds < bound or (self.inclusive and seconds == bound):
                return bucket
        return self.buckets[-1]


DURATION_BUCKETS: dict[str, DurationBuckets] = {
    "kling": DurationBuckets(buckets=[5, 10], thresholds=[7.5]),
    "veo": DurationBuckets(buckets=[4, 6, 8], thresholds=[4, 6], inclusive=True),
}

# Kling only accepts 5s when an end frame (image_tail) is supplied
KLING_TAIL_DURATION = 5


class ModelCapability(BaseModel):
    name: str
    provider: str
    durations: list[int] = Field(default_factory=list)
    aspect_ratios: list[str] = Field(default_factory=list)
    resolutions: list[str] = Field(default_factory=list)
    supports_audio: bool = False
    default_duration: int | None = None
    default_aspect_ratio: str = "16:9"
    default_resolution: str = "720p"
    features: list[GenerationType] = Field(default_factory=list)


_KLING_RATIOS = ["1:1", "16:9", "9:16", "4:3", "3:4"]
_VEO_RATIOS = ["16:9", "9:16"]
_IMAGE_RATIOS = ["1:1", "16:9", "9:16", "4:3", "3:4"]
_KLING_FULL = [T2V, I2V, V2V, T2I, I2I]

MODEL_CAPABILITIES: dict[str, ModelCapability] = {
    cap.name: cap
    for cap in [
        ModelCapability(
            name="Veo 3", provider="veo", durations=[4, 6, 8], aspect_ratios=_VEO_RATIOS,
            resolutions=["480p", "720p", "1080p"], supports_audio=True, default_duration=6,
            features=[T2V, I2V],
        ),
        ModelCapability(
            name="Veo 3.1", provider="veo", durations=[4, 6, 8], aspect_ratios=_VEO_RATIOS,
            resolutions=["480p", "720p", "1080p"], supports_audio=True, default_duration=6,
            features=[T2V, I2V],
        ),
        ModelCapability(
            name="Veo 3 Fast", provider="veo", durations=[4, 6, 8], aspect_ratios=_VEO_RATIOS,
            resolutions=["480p", "720p"], supports_audio=True, default_duration=4,
            features=[T2V, I2V],
        ),
        ModelCapability(
            name="Kling 2.6", provider="kling", durations=[5, 10], aspect_ratios=_KLING_RATIOS,
            resolutions=["480p", "720p", "1080p"], supports_audio=True, default_duration=5,
            features=_KLING_FULL,
        ),
        ModelCapability(
            name="Kling 2.6 Standard", provider="kling", durations=[5, 10], aspect_ratios=_KLING_RATIOS,
            resolutions=["480p", "720p"], supports_audio=True, default_duration=5,
            features=_KLING_FULL,
        ),
        ModelCapability(
            name="Kling 2.5 Turbo", provider="kling", durations=[5, 10], aspect_ratios=_KLING_RATIOS,
            resolutions=["480p", "720p"], supports_audio=False, default_duration=5,
            features=_KLING_FULL,
        ),
        ModelCapability(
            name="Kling Motion Control", provider="kling", durations=[5, 10],
            aspect_ratios=["1:1", "16:9", "9:16"], resolutions=["480p", "720p", "1080p"],
            default_duration=5, features=[MOTION],
        ),
        ModelCapability(
            name="Kling O1", provider="kling", durations=[5, 10], aspect_ratios=_KLING_RATIOS,
            resolutions=["480p", "720p", "1080p"], supports_audio=True, default_duration=5,
            features=_KLING_FULL,
        ),
        ModelCapability(
            name="Imagen 4", provider="imagen", aspect_ratios=_IMAGE_RATIOS, features=[T2I, I2I],
        ),
        ModelCapability(
            name="Imagen 4 Fast", provider="imagen", aspect_ratios=_IMAGE_RATIOS, features=[T2I, I2I],
        ),
        ModelCapability(
            name="Imagen 4 Ultra", provider="imagen", aspect_ratios=_IMAGE_RATIOS, features=[T2I, I2I],
        ),
        ModelCapability(
            name="Nano Banana", provider="gemini-image", aspect_ratios=_IMAGE_RATIOS, features=[T2I, I2I],
        ),
        ModelCapability(
            name="Nano Banana Pro", provider="gemini-image", aspect_ratios=_IMAGE_RATIOS, features=[T2I, I2I],
        ),
    ]
}

# Name fragments used to route model names that are not in the table
_PROVIDER_HINTS = [
    ("nano banana", "gemini-image"),
    ("gemini", "gemini-image"),
    ("imagen", "imagen"),
    ("veo", "veo"),
    ("kling", "kling"),
]

_PROVIDER_FEATURES: dict[str, list[GenerationType]] = {
    "kling": [T2V, I2V, V2V, MOTION, T2I, I2I],
    "veo": [T2V, I2V],
    "imagen": [T2I, I2I],
    "gemini-image": [T2I, I2I],
}


def get_capability(model_name: str) -> ModelCapability | None:
    return MODEL_CAPABILITIES.get(model_name)


def provider_for_model(model_name: str) -> str:
    """Return the provider key serving ``model_name``."""
    cap = get_capability(model_name)
    if cap:
        return cap.provider
    lowered = (model_name or "").lower()
    for fragment, provider in _PROVIDER_HINTS:
        if fragment in lowered:
            return provider
    raise ValidationError(f"Unknown model: {model_name!r}", field="modelName")


def supports_feature(model_name: str, generation_type: GenerationType) -> bool:
    cap = get_capability(model_name)
    if cap:
        return generation_type in cap.features
    try:
        provider = provider_for_model(model_name)
    except ValidationError:
        return False
    return generation_type in _PROVIDER_FEATURES[provider]


def supports_end_frame(model_name: str) -> bool:
    """Only Kling accepts an end frame (image_tail) for image-to-video."""
    try:
        return provider_for_model(model_name) == "kling"
    except ValidationError:
        return False


def models_for_feature(generation_type: GenerationType) -> list[ModelCapability]:
    return [cap for cap in MODEL_CAPABILITIES.values() if generation_type in cap.features]


def parse_duration(value: str | int | float | None, default: float = 5) -> float:
    """Parse "5s" / "5" / 5 into seconds."""
    if value is None or value == "":
        return float(default)
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip().lower().removesuffix("s").strip()
        try:
            seconds = float(text)
        except ValueError:
            raise ValidationError(f"Invalid duration: {value!r}", field="duration")
    if seconds <= 0:
        raise ValidationError(f"Duration must be positive: {value!r}", field="duration")
    return seconds


def snap_duration(provider: str, seconds: float) -> int:
    return DURATION_BUCKETS[provider].snap(seconds)


def nearest_supported_duration(model_name: str, requested: str | int | float | None) -> int | None:
    """Closest duration the model lists; ``None`` for image models."""
    cap = get_capability(model_name)
    if not cap or not cap.durations:
        return None
    seconds = parse_duration(requested, default=cap.default_duration or cap.durations[0])
    return min(cap.durations, key=lambda d: (abs(d - seconds), d))


def validate_request(request: GenerationRequest) -> None:
    """Reject requests a model cannot serve, before anything is sent."""
    gen_type = request.generation_type
    if not supports_feature(request.model_name, gen_type):
        raise ValidationError(
            f"Model {request.model_name!r} does not support {gen_type.value}",
            field="generationType",
        )

    if gen_type in (I2V, I2I) and not request.image_url:
        raise ValidationError(f"{gen_type.value} requires an input image", field="image")
    if gen_type == V2V and not request.video_url:
        raise ValidationError("video-to-video requires an input video", field="video")
    if gen_type == MOTION:
        if not request.video_url:
            raise ValidationError("motion-control requires a reference video", field="video")
        if not (request.character_image_url or request.image_url):
            raise ValidationError("motion-control requires a character image", field="characterImage")
    if gen_type in (T2V, T2I) and not (request.prompt or "").strip():
        raise ValidationError(f"{gen_type.value} requires a prompt", field="prompt")
    if request.end_image_url and (gen_type != I2V or not supports_end_frame(request.model_name)):
        raise ValidationError(
            f"An end frame is only supported for image-to-video on Kling models, not {request.model_name!r}",
            field="endFrame",
        )

    if not gen_type.is_image:
        parse_duration(request.duration)

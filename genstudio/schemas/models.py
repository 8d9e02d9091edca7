"""Provider-agnostic generation models: requests, jobs, records and workflow plans."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GenerationType(str, Enum):
    TEXT_TO_VIDEO = "text-to-video"
    IMAGE_TO_VIDEO = "image-to-video"
    VIDEO_TO_VIDEO = "video-to-video"
    MOTION_CONTROL = "motion-control"
    TEXT_TO_IMAGE = "text-to-image"
    IMAGE_TO_IMAGE = "image-to-image"

    @property
    def is_image(self) -> bool:
        return self in (GenerationType.TEXT_TO_IMAGE, GenerationType.IMAGE_TO_IMAGE)


# UI feature tags that are not generation types themselves
FEATURE_ALIASES: dict[str, GenerationType] = {
    "edit": GenerationType.VIDEO_TO_VIDEO,
    "video-edit": GenerationType.VIDEO_TO_VIDEO,
    "motion": GenerationType.MOTION_CONTROL,
}


class GenerationStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.COMPLETED, GenerationStatus.FAILED)


class GenerationRequest(BaseModel):
    """What the user asked for, before any provider translation."""

    prompt: str | None = None
    feature: str | None = None
    generation_type: GenerationType
    model_name: str
    duration: str | None = None
    aspect_ratio: str = "16:9"
    resolution: str = "720p"
    audio_enabled: bool = False
    negative_prompt: str | None = None
    # Media references: http(s) URLs or filenames in the uploads directory
    image_url: str | None = None
    end_image_url: str | None = None
    character_image_url: str | None = None
    video_url: str | None = None
    image_strength: float | None = Field(default=None, ge=0.0, le=1.0)
    character_orientation: str | None = None


class ProviderStatus(BaseModel):
    """One observation of a provider job, already mapped to internal status."""

    status: GenerationStatus
    video_url: str | None = None
    image_url: str | None = None
    thumbnail_url: str | None = None
    duration_seconds: float | None = None
    error_code: str | None = None
    error_message: str | None = None


class ProviderJob(BaseModel):
    """A submitted unit of work as the provider sees it. Never mutated."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    provider: str
    task_type: str
    model_id: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)
    duration_seconds: float | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    # Set by providers that answer synchronously
    result: ProviderStatus | None = None


class GenerationRecord(BaseModel):
    """The system's view of one generation, independent of provider."""

    id: str = ""
    status: GenerationStatus = GenerationStatus.QUEUED
    provider: str | None = None
    provider_job_id: str | None = None
    task_type: str | None = None
    model_name: str = ""
    generation_type: GenerationType | None = None
    feature: str | None = None
    prompt: str | None = None
    aspect_ratio: str | None = None
    resolution: str | None = None
    duration_seconds: float | None = None
    input_image_url: str | None = None
    input_video_url: str | None = None
    video_url: str | None = None
    image_url: str | None = None
    thumbnail_url: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def result_url(self) -> str | None:
        return self.video_url or self.image_url


class StagePlan(BaseModel):
    """One named image step of a multi-stage workflow."""

    key: str
    order: int
    name: str
    prompt: str
    strength: float | None = None
    # The first stage may reuse the reference image instead of generating
    pass_through: bool = False


class StageOutcome(BaseModel):
    key: str
    order: int
    name: str
    prompt: str
    success: bool
    image_url: str | None = None
    generation_id: str | None = None
    error: str | None = None


class TransitionVideoPlan(BaseModel):
    """A video bridging two adjacent successful stage images."""

    video_number: int
    from_stage_key: str
    to_stage_key: str
    from_stage_order: int
    to_stage_order: int
    from_image_url: str
    to_image_url: str
    prompt: str
    title: str
    generation_id: str | None = None
    error: str | None = None


class MergedVideoResult(BaseModel):
    generation_ids: list[str]
    video_url: str
    thumbnail_url: str | None = None
    duration_seconds: float = 0.0
    partial: bool = False
    skipped_ids: list[str] = Field(default_factory=list)


def new_record_id() -> str:
    return f"gen_{uuid.uuid4().hex[:16]}"

"""Kling wire schemas (request bodies, task responses, callbacks)."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class KlingVideoRequestBase(BaseModel):
    model_name: str
    prompt: str | None = None
    negative_prompt: str | None = None
    duration: int | None = None
    aspect_ratio: str | None = None
    cfg_scale: float | None = None
    sound: Literal["on", "off"] | None = None
    callback_url: str | None = None


class KlingText2VideoRequest(KlingVideoRequestBase):
    pass


class KlingImage2VideoRequest(KlingVideoRequestBase):
    image: str | None = None
    image_url: str | None = None
    image_tail: str | None = None
    image_tail_url: str | None = None


class KlingVideo2VideoRequest(KlingVideoRequestBase):
    video: str | None = None
    video_url: str | None = None
    keep_audio: bool | None = None


class KlingMotionControlRequest(BaseModel):
    model_name: str = "kling-motion-control"
    video_url: str
    image_url: str
    character_orientation: Literal["image", "video"] = "video"
    prompt: str | None = None
    mode: Literal["std", "pro"] = "std"
    callback_url: str | None = None


class KlingOmniImageRequest(BaseModel):
    model_name: str
    prompt: str
    negative_prompt: str | None = None
    aspect_ratio: str | None = None
    resolution: str = "1k"
    n: int = 1
    strength: float | None = None
    image: str | None = None
    image_url: str | None = None
    callback_url: str | None = None


class KlingTaskVideo(BaseModel):
    id: str | None = None
    url: str
    duration: str | float | None = None
    cover_url: str | None = None


class KlingTaskImage(BaseModel):
    id: str | None = None
    url: str


class KlingTaskResult(BaseModel):
    videos: list[KlingTaskVideo] = Field(default_factory=list)
    images: list[KlingTaskImage] = Field(default_factory=list)


class KlingTaskData(BaseModel):
    task_id: str
    # submitted, processing, succeed or failed; unknown values are treated as in progress
    task_status: str = "submitted"
    task_status_msg: str | None = None
    task_result: KlingTaskResult | None = None


class KlingResponse(BaseModel):
    code: int = 0
    message: str | None = None
    request_id: str | None = None
    data: KlingTaskData | None = None


class KlingCallback(BaseModel):
    """Inbound webhook body.

    Kling pushes the same task shape it returns from the status endpoint;
    a simplified ``generation_id``/``status`` shape is also accepted.
    """

    task_id: str | None = None
    task_status: str | None = None
    task_status_msg: str | None = None
    task_result: KlingTaskResult | None = None

    generation_id: str | None = None
    status: Literal["completed", "failed", "processing"] | None = None
    video_url: str | None = None
    thumbnail_url: str | None = None
    error: str | None = None

    @property
    def provider_job_id(self) -> str | None:
        return self.task_id or self.generation_id

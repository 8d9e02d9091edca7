"""Generation API routes: single generations and the multi-stage workflows."""

import logging
from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backend.deps import get_container, save_upload
from genstudio.container import Container
from genstudio.errors import ValidationError
from genstudio.jobs import RecordNotFoundError
from genstudio.schemas.models import (
    FEATURE_ALIASES,
    GenerationRecord,
    GenerationRequest,
    GenerationStatus,
    GenerationType,
    MergedVideoResult,
)
from genstudio.workflows.stages import (
    construction_stage_plans,
    default_video_duration,
    describe_construction_transition,
    interior_stage_plans,
    interior_transition_describer,
)

logger = logging.getLogger(__name__)
router = APIRouter()

DEFAULT_STAGE_IMAGE_MODEL = "Nano Banana"
DEFAULT_INTERIOR_VIDEO_MODEL = "Kling 2.6"


class BulkDeleteRequest(BaseModel):
    ids: list[str]


class DeleteResponse(BaseModel):
    deleted: list[str]
    not_found: list[str] = Field(default_factory=list)
    files_deleted: int = 0


class MergeRequest(BaseModel):
    videoIds: list[str]
    allowPartial: bool = False


def resolve_generation_type(
    generation_type: Optional[str],
    feature: Optional[str],
    *,
    has_image: bool,
    has_video: bool,
    has_character: bool,
) -> GenerationType:
    """Explicit type first, then a known feature tag, then infer from the inputs."""
    if generation_type:
        if generation_type in FEATURE_ALIASES:
            return FEATURE_ALIASES[generation_type]
        try:
            return GenerationType(generation_type)
        except ValueError:
            raise ValidationError(f"Unknown generation type: {generation_type!r}", field="generationType")
    if feature:
        if feature in FEATURE_ALIASES:
            return FEATURE_ALIASES[feature]
        if feature in GenerationType._value2member_map_:
            return GenerationType(feature)
    if has_character:
        return GenerationType.MOTION_CONTROL
    if has_video:
        return GenerationType.VIDEO_TO_VIDEO
    if has_image:
        return GenerationType.IMAGE_TO_VIDEO
    return GenerationType.TEXT_TO_VIDEO


def build_request(**fields) -> GenerationRequest:
    try:
        return GenerationRequest(**fields)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"Invalid {field}: {first.get('msg')}", field=field or None)


async def upload_url(container: Container, upload: Optional[UploadFile]) -> Optional[str]:
    filename = await save_upload(container, upload)
    return container.storage.public_url(filename) if filename else None


def _require_record(container: Container, generation_id: str) -> GenerationRecord:
    record = container.tracker.get(generation_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Generation not found")
    return record


def _delete_record(container: Container, record: GenerationRecord) -> int:
    """Remove the record and every local file it references."""
    refs = {
        record.video_url,
        record.image_url,
        record.thumbnail_url,
        record.input_image_url,
        record.input_video_url,
    }
    container.poller.cancel(record.id)
    files_deleted = sum(1 for ref in refs if ref and container.storage.delete(ref))
    container.store.delete(record.id)
    container.tracker.forget(record.id)
    return files_deleted


# ---------------------------------------------------------------------------
# Single generations
# ---------------------------------------------------------------------------

@router.post("/generations", response_model=GenerationRecord, status_code=status.HTTP_201_CREATED)
async def create_generation(
    container: Container = Depends(get_container),
    model_name: str = Form(..., alias="modelName"),
    prompt: Optional[str] = Form(None),
    generation_type: Optional[str] = Form(None, alias="generationType"),
    feature: Optional[str] = Form(None),
    duration: Optional[str] = Form(None),
    aspect_ratio: str = Form("16:9", alias="aspectRatio"),
    resolution: str = Form("720p"),
    audio_enabled: bool = Form(False, alias="audioEnabled"),
    negative_prompt: Optional[str] = Form(None, alias="negativePrompt"),
    image_strength: Optional[float] = Form(None, alias="imageStrength"),
    character_orientation: Optional[str] = Form(None, alias="characterOrientation"),
    image_url: Optional[str] = Form(None, alias="imageUrl"),
    video_url: Optional[str] = Form(None, alias="videoUrl"),
    image: Optional[UploadFile] = File(None),
    video: Optional[UploadFile] = File(None),
    character_image: Optional[UploadFile] = File(None, alias="characterImage"),
    start_frame: Optional[UploadFile] = File(None, alias="startFrame"),
    end_frame: Optional[UploadFile] = File(None, alias="endFrame"),
):
    """Submit one generation. Polling continues in the background."""
    image_ref = await upload_url(container, image) or image_url
    start_ref = await upload_url(container, start_frame)
    if start_ref and not image_ref:
        image_ref = start_ref
    end_ref = await upload_url(container, end_frame)
    video_ref = await upload_url(container, video) or video_url
    character_ref = await upload_url(container, character_image)

    gen_type = resolve_generation_type(
        generation_type,
        feature,
        has_image=bool(image_ref),
        has_video=bool(video_ref),
        has_character=bool(character_ref),
    )
    request = build_request(
        prompt=prompt,
        feature=feature,
        generation_type=gen_type,
        model_name=model_name,
        duration=duration,
        aspect_ratio=aspect_ratio,
        resolution=resolution,
        audio_enabled=audio_enabled,
        negative_prompt=negative_prompt,
        image_url=image_ref,
        end_image_url=end_ref,
        character_image_url=character_ref,
        video_url=video_ref,
        image_strength=image_strength,
        character_orientation=character_orientation,
    )
    logger.info("New %s generation with %s", gen_type.value, model_name)
    return await container.service.submit(request)


@router.get("/generations", response_model=list[GenerationRecord])
async def list_generations(
    status_filter: Optional[GenerationStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    container: Container = Depends(get_container),
):
    return container.store.list(status=status_filter, limit=limit)


@router.post("/generations/bulk-delete", response_model=DeleteResponse)
async def bulk_delete_generations(body: BulkDeleteRequest, container: Container = Depends(get_container)):
    if not body.ids:
        raise HTTPException(status_code=400, detail="'ids' must be a non-empty list")
    deleted: list[str] = []
    not_found: list[str] = []
    files_deleted = 0
    for generation_id in body.ids:
        record = container.tracker.get(generation_id)
        if record is None:
            not_found.append(generation_id)
            continue
        files_deleted += _delete_record(container, record)
        deleted.append(generation_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="No generations found with the provided IDs")
    logger.info("Bulk deleted %d generations (%d files)", len(deleted), files_deleted)
    return DeleteResponse(deleted=deleted, not_found=not_found, files_deleted=files_deleted)


@router.post("/generations/check-all-pending")
async def check_all_pending(container: Container = Depends(get_container)):
    """Poll every pending generation once; stale ones are failed."""
    return await container.poller.check_pending()


@router.get("/generations/{generation_id}", response_model=GenerationRecord)
async def get_generation(generation_id: str, container: Container = Depends(get_container)):
    return _require_record(container, generation_id)


@router.post("/generations/{generation_id}/check-status", response_model=GenerationRecord)
async def check_generation_status(generation_id: str, container: Container = Depends(get_container)):
    """Force an immediate poll tick."""
    record = _require_record(container, generation_id)
    if not record.is_terminal and not record.provider_job_id:
        raise HTTPException(status_code=400, detail="No provider job ID found for this generation")
    try:
        return await container.poller.poll_once(generation_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Generation not found")


@router.delete("/generations/{generation_id}", response_model=DeleteResponse)
async def delete_generation(generation_id: str, container: Container = Depends(get_container)):
    record = _require_record(container, generation_id)
    files_deleted = _delete_record(container, record)
    return DeleteResponse(deleted=[generation_id], files_deleted=files_deleted)


# ---------------------------------------------------------------------------
# Multi-stage workflows
# ---------------------------------------------------------------------------

def _workflow_response(run) -> JSONResponse:
    body = run.model_dump(mode="json")
    body["success"] = run.succeeded
    if run.succeeded:
        body["message"] = f"All {len(run.stages)} stages generated successfully"
        return JSONResponse(status_code=200, content=body)
    body["message"] = f"Generation stopped at stage {run.failed_at_stage}. Earlier stages completed."
    return JSONResponse(status_code=207, content=body)


@router.post("/generations/construction-stages")
async def create_construction_stages(
    container: Container = Depends(get_container),
    image: Optional[UploadFile] = File(None),
    input_image_url: Optional[str] = Form(None, alias="inputImageUrl"),
    model_name: str = Form(DEFAULT_STAGE_IMAGE_MODEL, alias="modelName"),
    video_model_name: Optional[str] = Form(None, alias="videoModelName"),
    aspect_ratio: str = Form("16:9", alias="aspectRatio"),
    base_prompt: Optional[str] = Form(None, alias="basePrompt"),
    auto_merge: bool = Form(True, alias="autoMerge"),
):
    """Eight reverse-chronological stages; optional transition videos between them."""
    reference = input_image_url or await upload_url(container, image)
    if not reference:
        raise HTTPException(status_code=400, detail="Either inputImageUrl or an image file is required")

    run = await container.composer.run(
        "construction-stages",
        construction_stage_plans(base_prompt),
        reference,
        image_model=model_name,
        video_model=video_model_name,
        aspect_ratio=aspect_ratio,
        describe=describe_construction_transition,
        descending=True,
        auto_merge=auto_merge,
    )
    return _workflow_response(run)


@router.post("/generations/interior-stages")
async def create_interior_stages(
    container: Container = Depends(get_container),
    image: Optional[UploadFile] = File(None),
    input_image_url: Optional[str] = Form(None, alias="inputImageUrl"),
    model_name: str = Form(DEFAULT_STAGE_IMAGE_MODEL, alias="modelName"),
    video_model_name: str = Form(DEFAULT_INTERIOR_VIDEO_MODEL, alias="videoModelName"),
    aspect_ratio: str = Form("16:9", alias="aspectRatio"),
    start_frame_prompt: Optional[str] = Form(None, alias="startFramePrompt"),
    end_frame_prompt: Optional[str] = Form(None, alias="endFramePrompt"),
    video_prompt: Optional[str] = Form(None, alias="videoPrompt"),
    duration: Optional[str] = Form(None),
):
    """Empty-room start frame, furnished end frame, one video between them."""
    reference = input_image_url or await upload_url(container, image)
    if not reference:
        raise HTTPException(status_code=400, detail="Either inputImageUrl or an image file is required")

    run = await container.composer.run(
        "interior-stages",
        interior_stage_plans(start_frame_prompt, end_frame_prompt),
        reference,
        image_model=model_name,
        video_model=video_model_name,
        duration=duration or default_video_duration(video_model_name),
        aspect_ratio=aspect_ratio,
        describe=interior_transition_describer(video_prompt),
    )
    return _workflow_response(run)


@router.post("/generations/construction-stages/merge", response_model=MergedVideoResult)
async def merge_construction_videos(body: MergeRequest, container: Container = Depends(get_container)):
    """Concatenate completed videos in the given order."""
    return await container.concatenator.merge(body.videoIds, allow_partial=body.allowPartial)

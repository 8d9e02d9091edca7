"""Model catalogue routes."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.deps import get_container
from genstudio.capabilities import MODEL_CAPABILITIES, ModelCapability, models_for_feature
from genstudio.container import Container
from genstudio.schemas.models import GenerationType

router = APIRouter()


class ModelInfo(ModelCapability):
    configured: bool


class ModelsResponse(BaseModel):
    models: list[ModelInfo]


@router.get("/models", response_model=ModelsResponse)
async def list_models(
    feature: Optional[GenerationType] = None,
    container: Container = Depends(get_container),
):
    """Capability table, optionally narrowed to models serving one generation type."""
    caps = models_for_feature(feature) if feature else list(MODEL_CAPABILITIES.values())
    configured = container.registry.configured()
    return ModelsResponse(
        models=[ModelInfo(**cap.model_dump(), configured=configured.get(cap.provider, False)) for cap in caps]
    )

"""Pydantic schemas: internal models plus provider wire formats."""

from genstudio.schemas.models import (
    GenerationRecord,
    GenerationRequest,
    GenerationStatus,
    GenerationType,
    MergedVideoResult,
    ProviderJob,
    ProviderStatus,
    StageOutcome,
    StagePlan,
    TransitionVideoPlan,
)

__all__ = [
    "GenerationRecord",
    "GenerationRequest",
    "GenerationStatus",
    "GenerationType",
    "MergedVideoResult",
    "ProviderJob",
    "ProviderStatus",
    "StageOutcome",
    "StagePlan",
    "TransitionVideoPlan",
]

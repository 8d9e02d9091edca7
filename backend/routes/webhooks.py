"""Inbound provider webhooks."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from backend.deps import get_container
from genstudio.container import Container
from genstudio.providers.kling import KlingProvider
from genstudio.schemas.kling import KlingCallback

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/webhooks/kling")
async def kling_webhook(callback: KlingCallback, container: Container = Depends(get_container)):
    """Kling task callback. Goes through the same transition path as polling."""
    job_id = callback.provider_job_id
    if not job_id:
        raise HTTPException(status_code=400, detail="Callback carries no task id")

    record = await container.tracker.apply_webhook(job_id, KlingProvider.status_from_callback(callback))
    if record is None:
        logger.warning("Kling callback for unknown task %s", job_id)
        raise HTTPException(status_code=404, detail="Generation not found")
    return {"success": True, "id": record.id, "status": record.status}

"""Workflow run status and manual merge."""

from fastapi import APIRouter, Depends, HTTPException

from backend.deps import get_container
from genstudio.container import Container
from genstudio.workflows import WorkflowRun

router = APIRouter()


def _require_run(container: Container, run_id: str) -> WorkflowRun:
    run = container.composer.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Workflow run not found")
    return run


@router.get("/workflows/{run_id}", response_model=WorkflowRun)
async def get_workflow(run_id: str, container: Container = Depends(get_container)):
    return _require_run(container, run_id)


@router.post("/workflows/{run_id}/merge", response_model=WorkflowRun)
async def merge_workflow(run_id: str, allow_partial: bool = True, container: Container = Depends(get_container)):
    """Merge the videos completed so far instead of waiting for the rest."""
    _require_run(container, run_id)
    return await container.composer.merge_now(run_id, allow_partial=allow_partial)

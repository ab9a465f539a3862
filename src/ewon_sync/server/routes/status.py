"""Status and control routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from ewon_sync.engine.orchestrator import SyncOrchestrator
from ewon_sync.server.dependencies import get_orchestrator
from ewon_sync.server.models import ControlResponse, StatusResponse

router = APIRouter(tags=["status"])


@router.get("/status", response_model=StatusResponse)
async def get_status(
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> StatusResponse:
    """Checkpoint, counters and realtime devices of the sync engine."""
    return StatusResponse(**orchestrator.status().to_dict())


@router.post("/control/reset", response_model=ControlResponse)
async def reset_sync(
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> ControlResponse:
    """Restart historical sync from the beginning of the remote history."""
    persisted = await orchestrator.reset_sync()
    return ControlResponse(
        action="reset",
        accepted=persisted,
        detail="" if persisted else "checkpoint could not be persisted",
    )


@router.post(
    "/control/force",
    response_model=ControlResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def force_sync(
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> ControlResponse:
    """Start a sync cycle now; it runs in the background."""
    await orchestrator.force_sync()
    return ControlResponse(action="force", accepted=True, detail="sync cycle scheduled")

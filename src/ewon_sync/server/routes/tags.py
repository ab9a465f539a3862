"""Live tag routes: list, read and write through the live store."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from ewon_sync.core.models import Quality
from ewon_sync.engine.orchestrator import SyncOrchestrator
from ewon_sync.server.dependencies import get_orchestrator
from ewon_sync.server.models import TagListResponse, TagResponse, TagWriteRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tags", tags=["tags"])


async def _tag_response(orchestrator: SyncOrchestrator, path: str) -> TagResponse:
    current = await orchestrator.store.get_value(path)
    if current is None:
        raise HTTPException(status_code=404, detail=f"Unknown tag path: {path}")
    value, quality, timestamp = current
    return TagResponse(path=path, value=value, quality=quality.value, timestamp=timestamp)


@router.get("", response_model=TagListResponse)
async def list_tags(
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> TagListResponse:
    paths = await orchestrator.store.list_paths()
    return TagListResponse(paths=paths, count=len(paths))


@router.get("/{path:path}", response_model=TagResponse)
async def read_tag(
    path: str,
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> TagResponse:
    return await _tag_response(orchestrator, path)


@router.put("/{path:path}", response_model=TagResponse)
async def write_tag(
    path: str,
    request: TagWriteRequest,
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> TagResponse:
    """Write a tag; device tags are written back to the remote device."""
    if await orchestrator.store.get_value(path) is None:
        raise HTTPException(status_code=404, detail=f"Unknown tag path: {path}")

    quality = await orchestrator.store.write(path, request.value)
    if quality is Quality.BAD:
        raise HTTPException(status_code=502, detail=f"Write to '{path}' was rejected")
    return await _tag_response(orchestrator, path)

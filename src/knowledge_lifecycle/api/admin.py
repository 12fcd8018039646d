"""Admin endpoints: manual sync, stats, learning queue and feedback."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from knowledge_lifecycle.api.schemas import (
    FeedbackRequest,
    KnowledgeItemResponse,
    LearningQueueResponse,
    QueueEntryResponse,
    SyncTriggerRequest,
)
from knowledge_lifecycle.exceptions import StoreUnavailable
from knowledge_lifecycle.service import KnowledgeLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def get_service(request: Request) -> KnowledgeLifecycleService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return service


@router.post("/sync/trigger")
async def trigger_sync(
    body: SyncTriggerRequest,
    service: KnowledgeLifecycleService = Depends(get_service),
) -> dict[str, Any]:
    """Run a sync now. A sync already in progress makes this a no-op (`skipped`)."""
    report = await service.run_full_sync(body.mode)
    logger.info(f"Manual sync ({body.mode.value}) requested, skipped={report.skipped}")
    return report.to_dict()


@router.get("/sync/stats")
async def sync_stats(service: KnowledgeLifecycleService = Depends(get_service)) -> dict[str, Any]:
    return await service.get_stats()


@router.get("/learning-queue", response_model=LearningQueueResponse)
async def learning_queue(
    limit: int = Query(default=50, ge=1, le=500),
    days: int = Query(default=7, ge=1, le=365),
    service: KnowledgeLifecycleService = Depends(get_service),
) -> LearningQueueResponse:
    """Status counts for the last `days` plus the next pending entries."""
    counts = await service.queue.status_counts(days=days)
    pending = await service.queue.pending(limit=limit)
    return LearningQueueResponse(
        counts=counts,
        pending=[QueueEntryResponse.model_validate(entry) for entry in pending],
    )


@router.post("/learning/run")
async def run_learning(service: KnowledgeLifecycleService = Depends(get_service)) -> dict[str, Any]:
    report = await service.run_learning_pass()
    return report.to_dict()


@router.post("/decay/run")
async def run_decay(service: KnowledgeLifecycleService = Depends(get_service)) -> dict[str, Any]:
    report = await service.run_decay_pass()
    return report.to_dict()


@router.post("/knowledge/{item_id}/feedback", response_model=KnowledgeItemResponse)
async def submit_feedback(
    item_id: str,
    body: FeedbackRequest,
    service: KnowledgeLifecycleService = Depends(get_service),
) -> KnowledgeItemResponse:
    try:
        updated = await service.apply_feedback(item_id, body.to_feedback())
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {e.store}") from e

    if updated is None:
        raise HTTPException(status_code=404, detail=f"Knowledge item not found: {item_id}")
    return KnowledgeItemResponse.from_item(updated)

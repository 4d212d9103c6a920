"""Change listing, statistics and processing endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query

from ...utils.logging import get_structured_logger
from ..dependencies import get_orchestrator, get_storage_manager
from ..types import ChangeResponse, ContentAnalysisResponse, ContentDiffResponse

logger = get_structured_logger(__name__)

router = APIRouter()


@router.get("", response_model=list[ChangeResponse])
async def list_unprocessed_changes(
    storage=Depends(get_storage_manager),
) -> list[ChangeResponse]:
    changes = await storage.get_unprocessed_changes()
    return [ChangeResponse.model_validate(change) for change in changes]


@router.get("/statistics")
async def change_statistics(
    days: int = Query(30, ge=1, le=365), orchestrator=Depends(get_orchestrator)
) -> dict:
    stats = await orchestrator.detector.get_change_statistics(window_days=days)
    return stats.to_dict()


@router.post("/{change_id}/processed")
async def mark_change_processed(
    change_id: str, storage=Depends(get_storage_manager)
) -> dict:
    if not await storage.mark_change_processed(change_id):
        raise HTTPException(status_code=404, detail=f"Change not found: {change_id}")
    logger.info("Change marked processed via API", change_id=change_id)
    return {"change_id": change_id, "processed": True}


@router.post("/endpoints/{endpoint_id}/processed")
async def mark_endpoint_changes_processed(
    endpoint_id: str, orchestrator=Depends(get_orchestrator)
) -> dict:
    count = await orchestrator.detector.mark_changes_processed(endpoint_id)
    return {"endpoint_id": endpoint_id, "marked": count}


@router.get("/endpoints/{endpoint_id}/analysis", response_model=ContentAnalysisResponse)
async def endpoint_change_analysis(
    endpoint_id: str,
    days: int = Query(7, ge=1, le=365),
    orchestrator=Depends(get_orchestrator),
) -> ContentAnalysisResponse:
    analysis = await orchestrator.detector.analyze_content_changes(endpoint_id, days=days)
    return ContentAnalysisResponse(
        endpoint_id=analysis.endpoint_id,
        days=analysis.days,
        change_count=analysis.change_count,
        indicators=analysis.indicators,
        summary=analysis.summary,
    )


@router.get("/endpoints/{endpoint_id}/diff", response_model=ContentDiffResponse)
async def endpoint_content_diff(
    endpoint_id: str, orchestrator=Depends(get_orchestrator)
) -> ContentDiffResponse:
    diff = await orchestrator.detector.get_content_diff(endpoint_id)
    return ContentDiffResponse(endpoint_id=endpoint_id, diff=diff)

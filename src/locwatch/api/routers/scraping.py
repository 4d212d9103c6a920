"""Manual triggers for sweeps and single-endpoint fetches."""

from fastapi import APIRouter, Depends, HTTPException, status

from ...storage.types import StorageError
from ...utils.logging import get_structured_logger
from ..dependencies import get_orchestrator, get_storage_manager

logger = get_structured_logger(__name__)

router = APIRouter()


@router.post("/sweep")
async def trigger_content_sweep(orchestrator=Depends(get_orchestrator)) -> dict:
    """Run a content sweep now. Returns ``skipped`` if one is already running."""
    try:
        result = await orchestrator.run_content_sweep()
    except StorageError as e:
        logger.error("Content sweep aborted", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Content sweep aborted: {str(e)}",
        )
    return result.to_dict()


@router.post("/discovery-sweep")
async def trigger_discovery_sweep(orchestrator=Depends(get_orchestrator)) -> dict:
    try:
        result = await orchestrator.run_discovery_sweep()
    except StorageError as e:
        logger.error("Discovery sweep aborted", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Discovery sweep aborted: {str(e)}",
        )
    return result.to_dict()


@router.post("/endpoints/{endpoint_id}/fetch")
async def trigger_endpoint_fetch(
    endpoint_id: str,
    storage=Depends(get_storage_manager),
    orchestrator=Depends(get_orchestrator),
) -> dict:
    if await storage.get_endpoint(endpoint_id) is None:
        raise HTTPException(status_code=404, detail=f"Endpoint not found: {endpoint_id}")

    try:
        result = await orchestrator.fetch_endpoint(endpoint_id)
    except StorageError as e:
        logger.error("Endpoint fetch aborted", endpoint_id=endpoint_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Endpoint fetch aborted: {str(e)}",
        )
    return result.to_dict()


@router.get("/status")
async def scraping_status(orchestrator=Depends(get_orchestrator)) -> dict:
    return orchestrator.get_status()


@router.post("/health-check")
async def trigger_health_check(orchestrator=Depends(get_orchestrator)) -> dict:
    healthy = await orchestrator.run_health_check()
    return {"browser_healthy": healthy}

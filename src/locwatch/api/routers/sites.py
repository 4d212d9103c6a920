"""Site registration and per-site discovery endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status

from ...config.types import ConfigError, SiteConfiguration
from ...storage.types import StorageError
from ...utils.logging import get_structured_logger
from ..dependencies import get_orchestrator, get_storage_manager
from ..types import APIError, EndpointResponse, SiteCreateRequest, SiteResponse

logger = get_structured_logger(__name__)

router = APIRouter()


@router.post("", response_model=SiteResponse, status_code=status.HTTP_201_CREATED)
async def register_site(
    request: SiteCreateRequest, storage=Depends(get_storage_manager)
) -> SiteResponse:
    """Register a site for monitoring."""
    try:
        site_config = SiteConfiguration(url=request.url, domain=request.domain)
    except ConfigError as e:
        raise APIError(str(e)) from e

    if await storage.get_site_by_url(site_config.url):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Site already registered: {site_config.url}",
        )

    site = await storage.create_site(site_config.url, site_config.domain)
    logger.info("Site registered via API", site_id=site.id, url=site.url)
    return SiteResponse.model_validate(site)


@router.get("", response_model=list[SiteResponse])
async def list_sites(storage=Depends(get_storage_manager)) -> list[SiteResponse]:
    sites = await storage.list_sites()
    return [SiteResponse.model_validate(site) for site in sites]


@router.get("/{site_id}/endpoints", response_model=list[EndpointResponse])
async def list_site_endpoints(
    site_id: str, storage=Depends(get_storage_manager)
) -> list[EndpointResponse]:
    site = await storage.get_site(site_id)
    if site is None:
        raise HTTPException(status_code=404, detail=f"Site not found: {site_id}")

    endpoints = await storage.get_endpoints_for_site(site_id)
    return [EndpointResponse.model_validate(endpoint) for endpoint in endpoints]


@router.post("/{site_id}/discover")
async def discover_site(
    site_id: str,
    storage=Depends(get_storage_manager),
    orchestrator=Depends(get_orchestrator),
) -> dict:
    """Deactivate the site's endpoints and run discovery again."""
    site = await storage.get_site(site_id)
    if site is None:
        raise HTTPException(status_code=404, detail=f"Site not found: {site_id}")

    try:
        result = await orchestrator.refresh_site(site_id)
    except StorageError as e:
        logger.error("Discovery refresh failed", site_id=site_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Discovery failed: {str(e)}",
        )
    return result.to_dict()

"""Type definitions for the API module."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class APIError(Exception):
    """Rejected client input; answered as 400 with an error payload."""


class SiteCreateRequest(BaseModel):
    """Request model for registering a site."""

    url: str = Field(..., min_length=1)
    domain: Optional[str] = None


class SiteResponse(BaseModel):
    """Response model for a monitored site."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    url: str
    domain: str
    status: str
    created_at: Optional[datetime] = None
    last_checked_at: Optional[datetime] = None


class EndpointResponse(BaseModel):
    """Response model for a discovered endpoint."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    site_id: str
    url: str
    page_type: str
    status: str
    last_scraped_at: Optional[datetime] = None


class ChangeResponse(BaseModel):
    """Response model for a recorded content change."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    endpoint_id: str
    previous_hash: str
    new_hash: str
    change_type: str
    detected_at: datetime
    processed: bool


class ContentAnalysisResponse(BaseModel):
    """Response model for the new-location keyword scan of an endpoint."""

    endpoint_id: str
    days: int
    change_count: int
    indicators: list[str]
    summary: str


class ContentDiffResponse(BaseModel):
    """Response model for the diff between the two latest snapshots."""

    endpoint_id: str
    diff: Optional[str]


class HealthResponse(BaseModel):
    """Response model for the health endpoint."""

    status: str
    timestamp: datetime
    checks: dict[str, Any] = {}

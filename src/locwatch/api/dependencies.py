"""FastAPI dependencies that read the components wired up by the lifespan."""

from typing import TYPE_CHECKING, Any

from fastapi import HTTPException, Request, status

if TYPE_CHECKING:
    from ..scheduler.orchestrator import CrawlOrchestrator
    from ..storage.interface import StorageManager


def _from_state(request: Request, attribute: str, label: str) -> Any:
    component = getattr(request.app.state, attribute, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{label} not initialized",
        )
    return component


async def get_storage_manager(request: Request) -> "StorageManager":
    return _from_state(request, "storage", "Database")


async def get_orchestrator(request: Request) -> "CrawlOrchestrator":
    return _from_state(request, "orchestrator", "Orchestrator")

"""API routers."""

from .changes import router as changes_router
from .scraping import router as scraping_router
from .sites import router as sites_router

__all__ = ["sites_router", "scraping_router", "changes_router"]

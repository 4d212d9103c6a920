"""Client for the external content analysis service."""

from .client import AnalysisClient
from .types import AnalysisError, AnalysisResult

__all__ = ["AnalysisClient", "AnalysisError", "AnalysisResult"]

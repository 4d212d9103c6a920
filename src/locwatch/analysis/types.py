"""Type definitions for the content analysis client."""

from dataclasses import dataclass, field
from typing import Any, Optional


class AnalysisError(Exception):
    """Base exception for analysis-related errors."""

    pass


@dataclass
class AnalysisResult:
    """Result of asking the analysis service about a content change."""

    success: bool
    has_location_info: bool = False
    confidence: float = 0.0
    locations: list[dict[str, Any]] = field(default_factory=list)
    changes: list[str] = field(default_factory=list)
    summary: str = ""
    error: Optional[str] = None

    def is_high_confidence(self, threshold: float) -> bool:
        return self.success and self.has_location_info and self.confidence >= threshold

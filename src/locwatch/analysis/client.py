"""Async HTTP client for the external content analysis service."""

from typing import Any, Optional

import httpx

from ..config import get_settings
from ..config.settings import AnalysisSettings
from ..utils.logging import get_structured_logger
from .types import AnalysisError, AnalysisResult

logger = get_structured_logger(__name__)


class AnalysisClient:
    """Posts changed content to the analysis service.

    ``analyze`` never raises: timeouts, connection failures, non-2xx answers
    and malformed bodies all come back as ``AnalysisResult(success=False)``.
    """

    def __init__(
        self,
        settings: Optional[AnalysisSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings().analysis
        self.endpoint = self.settings.base_url.rstrip("/") + self.settings.path
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    async def analyze(
        self,
        content: str,
        previous_content: Optional[str],
        url: str,
        endpoint_id: str,
    ) -> AnalysisResult:
        if not self.enabled:
            return AnalysisResult(success=False, error="Analysis disabled")

        payload = {
            "content": content,
            "previousContent": previous_content,
            "url": url,
            "endpointId": endpoint_id,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.endpoint, json=payload)
                response.raise_for_status()
                result = self._parse_response(response)
        except httpx.TimeoutException:
            logger.error("Analysis request timed out", url=url, endpoint_id=endpoint_id)
            return AnalysisResult(
                success=False, error=f"Request timeout after {self.settings.timeout}s"
            )
        except httpx.HTTPStatusError as e:
            logger.error(
                "Analysis service returned error",
                status_code=e.response.status_code,
                endpoint_id=endpoint_id,
            )
            return AnalysisResult(
                success=False, error=f"HTTP {e.response.status_code}"
            )
        except httpx.HTTPError as e:
            logger.error("Analysis request failed", error=str(e), endpoint_id=endpoint_id)
            return AnalysisResult(success=False, error=f"Request failed: {str(e)}")
        except AnalysisError as e:
            logger.error("Malformed analysis response", error=str(e), endpoint_id=endpoint_id)
            return AnalysisResult(success=False, error=str(e))

        if not result.success:
            logger.warning(
                "Analysis service reported failure", error=result.error, endpoint_id=endpoint_id
            )
            return result

        if result.is_high_confidence(self.settings.high_confidence_threshold):
            logger.info(
                "High-confidence location information found",
                url=url,
                endpoint_id=endpoint_id,
                confidence=result.confidence,
                locations=len(result.locations),
            )
        return result

    def _parse_response(self, response: httpx.Response) -> AnalysisResult:
        try:
            data: Any = response.json()
        except ValueError as e:
            raise AnalysisError("Response body is not JSON") from e

        if not isinstance(data, dict):
            raise AnalysisError("Response body must be a JSON object")

        if data.get("success") is False:
            return AnalysisResult(
                success=False, error=str(data.get("error") or "Analysis failed")
            )

        try:
            confidence = float(data.get("confidence", 0.0) or 0.0)
        except (TypeError, ValueError) as e:
            raise AnalysisError("Confidence must be a number") from e

        locations = data.get("locations") or []
        changes = data.get("changes") or []
        return AnalysisResult(
            success=True,
            has_location_info=bool(data.get("hasLocationInfo", False)),
            confidence=min(max(confidence, 0.0), 1.0),
            locations=list(locations) if isinstance(locations, list) else [],
            changes=[str(c) for c in changes] if isinstance(changes, list) else [],
            summary=str(data.get("summary") or ""),
        )

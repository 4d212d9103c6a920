"""Type definitions for configuration system."""

from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse


class ConfigError(Exception):
    """Base exception for configuration-related errors."""

    pass


class ConfigLoadError(ConfigError):
    """Exception raised when configuration loading fails."""

    pass


@dataclass
class SiteConfiguration:
    """A site registration as it appears in the YAML config file."""

    url: str
    domain: Optional[str] = None
    tags: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigError("Site URL cannot be empty")
        parsed = urlparse(self.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"Site URL must be an absolute http(s) URL: {self.url}")
        if not self.domain:
            self.domain = parsed.netloc

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SiteConfiguration":
        return cls(
            url=data["url"],
            domain=data.get("domain"),
            tags=list(data.get("tags", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "domain": self.domain, "tags": self.tags}

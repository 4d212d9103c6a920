"""Loading of site registrations from YAML."""

from pathlib import Path
from typing import Any, Optional

import yaml

from ..utils.logging import get_structured_logger
from .types import ConfigError, ConfigLoadError, SiteConfiguration

logger = get_structured_logger(__name__)


class ConfigLoader:
    """Reads and writes the YAML file holding monitored site registrations."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else Path("config.yaml")

    def load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_file.exists():
            logger.warning("Config file not found", path=str(self.config_file))
            return {}

        try:
            with open(self.config_file, encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Failed to parse YAML config: {str(e)}") from e
        except OSError as e:
            raise ConfigLoadError(f"Failed to load config file: {str(e)}") from e

        if not isinstance(config, dict):
            raise ConfigLoadError("Config file must contain a mapping at top level")

        logger.info("Loaded configuration", path=str(self.config_file))
        return config

    def save_yaml_config(self, config: dict[str, Any]) -> None:
        """Save configuration to YAML file."""
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                yaml.safe_dump(config, f, default_flow_style=False, indent=2)
        except OSError as e:
            raise ConfigError(f"Failed to save config file: {str(e)}") from e

        logger.info("Saved configuration", path=str(self.config_file))

    def get_sites_config(self) -> list[SiteConfiguration]:
        """Get sites configuration, skipping malformed entries."""
        config = self.load_yaml_config()
        sites = []
        for site_data in config.get("sites") or []:
            try:
                sites.append(SiteConfiguration.from_dict(site_data))
            except (ConfigError, KeyError, TypeError) as e:
                logger.error("Invalid site entry", entry=site_data, error=str(e))
        return sites

    def add_site(self, site: SiteConfiguration) -> None:
        """Add a new site to configuration."""
        config = self.load_yaml_config()
        sites = config.setdefault("sites", [])

        for existing_site in sites:
            if existing_site.get("url") == site.url:
                raise ConfigError(f"Site {site.url} already exists in configuration")

        sites.append(site.to_dict())
        self.save_yaml_config(config)

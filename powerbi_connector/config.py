"""
Power BI Connector - Configuration.

============================================================
CONNECTOR CONFIGURATION
============================================================

Holds identity provider credentials, API endpoints and
export polling defaults.

Configuration can be loaded from:
- Default values
- Environment variables (optionally via a .env file)
- YAML config file

============================================================
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

from powerbi_connector.exceptions import ConfigurationError
from powerbi_connector.logging_utils import mask_value


logger = logging.getLogger(__name__)


DEFAULT_API_URL = "https://api.powerbi.com"
DEFAULT_AUTHORITY_BASE_URL = "https://login.microsoftonline.com"
DEFAULT_RESOURCE_URL = "https://analysis.windows.net/powerbi/api"

REQUIRED_KEYS = ("client_id", "client_secret", "tenant_id")


@dataclass
class PowerBIConfig:
    """
    Connector configuration.

    Credentials are required; everything else has a working default.
    """
    # Identity provider
    client_id: str = ""
    client_secret: str = ""
    tenant_id: str = ""
    authority_base_url: str = DEFAULT_AUTHORITY_BASE_URL
    resource_url: str = DEFAULT_RESOURCE_URL

    # Reporting platform
    api_url: str = DEFAULT_API_URL
    request_timeout_seconds: float = 30.0
    workspace_page_size: int = 100

    # Export polling
    default_poll_interval_seconds: float = 5.0
    min_poll_interval_seconds: float = 1.0
    default_export_timeout_minutes: float = 5.0

    @property
    def authority(self) -> str:
        """Tenant-specific authority URL."""
        return f"{self.authority_base_url.rstrip('/')}/{self.tenant_id}"

    @property
    def scope(self) -> str:
        """Client-credential scope for the reporting platform resource."""
        return f"{self.resource_url.rstrip('/')}/.default"

    @property
    def token_url(self) -> str:
        return f"{self.authority}/oauth2/v2.0/token"

    def validate(self) -> None:
        """Raise ConfigurationError naming the first missing or bad key."""
        for key in REQUIRED_KEYS:
            if not getattr(self, key):
                raise ConfigurationError(
                    message=f"Missing required setting: {key}",
                    config_key=key,
                )
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError(
                message="request_timeout_seconds must be positive",
                config_key="request_timeout_seconds",
            )
        if self.default_poll_interval_seconds <= 0:
            raise ConfigurationError(
                message="default_poll_interval_seconds must be positive",
                config_key="default_poll_interval_seconds",
            )
        if self.min_poll_interval_seconds < 0:
            raise ConfigurationError(
                message="min_poll_interval_seconds must not be negative",
                config_key="min_poll_interval_seconds",
            )
        if self.default_export_timeout_minutes <= 0:
            raise ConfigurationError(
                message="default_export_timeout_minutes must be positive",
                config_key="default_export_timeout_minutes",
            )
        if not 1 <= self.workspace_page_size <= 5000:
            raise ConfigurationError(
                message="workspace_page_size must be between 1 and 5000",
                config_key="workspace_page_size",
            )

    @classmethod
    def from_env(
        cls,
        prefix: str = "POWERBI_",
        dotenv_path: Optional[Union[str, Path]] = None,
    ) -> "PowerBIConfig":
        """
        Load configuration from environment variables.

        A .env file is loaded first (without overriding variables that are
        already set). Each field maps to PREFIX + FIELD_NAME in upper case:
        - POWERBI_CLIENT_ID
        - POWERBI_CLIENT_SECRET
        - POWERBI_TENANT_ID
        - POWERBI_AUTHORITY_BASE_URL
        - POWERBI_RESOURCE_URL
        - POWERBI_API_URL
        - POWERBI_REQUEST_TIMEOUT_SECONDS
        - POWERBI_WORKSPACE_PAGE_SIZE
        - POWERBI_DEFAULT_POLL_INTERVAL_SECONDS
        - POWERBI_MIN_POLL_INTERVAL_SECONDS
        - POWERBI_DEFAULT_EXPORT_TIMEOUT_MINUTES
        """
        if dotenv_path is not None:
            load_dotenv(dotenv_path)
        else:
            load_dotenv()

        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = os.getenv(f"{prefix}{f.name.upper()}")
            if raw is not None and raw != "":
                values[f.name] = raw
        return cls._from_mapping(values, source="environment")

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "PowerBIConfig":
        """
        Load configuration from a YAML file.

        Accepts either a top-level ``powerbi:`` section or a flat mapping.
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                message=f"Failed to load YAML config from {path}",
                original_error=e,
            )

        if not isinstance(data, dict):
            raise ConfigurationError(message=f"Config file {path} must contain a mapping")
        section = data.get("powerbi", data)
        if not isinstance(section, dict):
            raise ConfigurationError(
                message="'powerbi' section must be a mapping",
                config_key="powerbi",
            )
        return cls._from_mapping(section, source=str(path))

    @classmethod
    def _from_mapping(cls, data: Dict[str, Any], source: str) -> "PowerBIConfig":
        known = {f.name: f for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"[config] Ignoring unknown setting '{key}' from {source}")
                continue
            values[key] = cls._coerce(key, known[key].type, value)
        return cls(**values)

    @staticmethod
    def _coerce(key: str, field_type: Any, value: Any) -> Any:
        try:
            if field_type in (float, "float"):
                return float(value)
            if field_type in (int, "int"):
                return int(value)
            return str(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                message=f"Invalid value for {key}: {value!r}",
                config_key=key,
                original_error=e,
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (secret masked)."""
        return {
            "client_id": self.client_id,
            "client_secret": mask_value(self.client_secret) if self.client_secret else "",
            "tenant_id": self.tenant_id,
            "authority_base_url": self.authority_base_url,
            "resource_url": self.resource_url,
            "api_url": self.api_url,
            "request_timeout_seconds": self.request_timeout_seconds,
            "workspace_page_size": self.workspace_page_size,
            "default_poll_interval_seconds": self.default_poll_interval_seconds,
            "min_poll_interval_seconds": self.min_poll_interval_seconds,
            "default_export_timeout_minutes": self.default_export_timeout_minutes,
        }

    def __repr__(self) -> str:
        return f"PowerBIConfig({self.to_dict()})"

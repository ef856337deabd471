"""
Shared configuration management for the SharePoint Gateway.
"""

from typing import Optional
from urllib.parse import urlparse

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="development")
    log_level: str = Field(default="info")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=10000)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


class SharePointGatewayConfig(BaseConfig):
    """Gateway configuration. Platform credentials and the API key are required."""

    # Inbound authentication
    api_key: str

    # SharePoint app registration
    sharepoint_tenant_id: str
    sharepoint_client_id: str
    sharepoint_client_secret: str
    sharepoint_site_url: str
    sharepoint_tenant_name: Optional[str] = None
    token_endpoint: str

    # Folder root used for folder keyword queries, derived from the site URL when unset
    documents_folder_root: Optional[str] = None

    # Caches (seconds)
    token_cache_ttl: int = Field(default=3500, gt=0)
    data_cache_ttl: int = Field(default=300, gt=0)

    # Rate limiting
    rate_limit_window_ms: int = Field(default=900000, gt=0)
    rate_limit_max_requests: int = Field(default=100, gt=0)

    # Upstream HTTP
    upstream_timeout_seconds: float = Field(default=30.0, gt=0)

    @property
    def site_url(self) -> str:
        return self.sharepoint_site_url.rstrip("/")

    @property
    def folder_root(self) -> str:
        if self.documents_folder_root:
            return self.documents_folder_root.rstrip("/")
        site_path = urlparse(self.site_url).path.rstrip("/")
        return f"{site_path}/Documents"


def get_config(**overrides) -> SharePointGatewayConfig:
    """Load gateway configuration from the environment.

    Missing required variables raise ``pydantic.ValidationError``, which is
    fatal at startup.
    """
    return SharePointGatewayConfig(**overrides)

"""Configuration and settings"""

from typing import Dict

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Config store
    config_store_path: str = Field(default="./db.json")

    # Domain -> tenant mapping, e.g. "brand1:a.com,brand2:b.com"
    tenant_domain_map: str = Field(default="")

    # Admin API key (empty disables auth in dev)
    api_key: str = Field(default="")

    # Conversions APIs
    graph_api_version: str = Field(default="v20.0")
    meta_capi_base: str = Field(default="https://graph.facebook.com")
    ga4_collect_url: str = Field(default="https://www.google-analytics.com/mp/collect")
    tiktok_events_url: str = Field(default="https://business-api.tiktok.com/open_api/v1.3/pixel/track/")
    provider_timeout_seconds: float = Field(default=5.0)

    # Frontend
    frontend_url: str = Field(default="http://localhost:3000")

    # Environment
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # API Configuration
    api_title: str = "BioLink Multi-Pixel API"
    api_version: str = "4.6.0"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    def domain_tenants(self) -> Dict[str, str]:
        """Parse TENANT_DOMAIN_MAP into {domain: tenant}"""
        mapping: Dict[str, str] = {}
        for pair in self.tenant_domain_map.split(","):
            pair = pair.strip()
            if not pair or ":" not in pair:
                continue
            tenant, domain = (part.strip() for part in pair.split(":", 1))
            if tenant and domain:
                mapping[domain.lower()] = tenant
        return mapping


# Global settings instance
settings = Settings()

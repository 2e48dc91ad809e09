"""
Configuration management for DB Distribution.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_csv(raw: Optional[str]) -> List[str]:
    """
    Parse a comma-separated setting into a list.

    Examples:
        "a,b" -> ["a", "b"]
        "  a , ,b  " -> ["a", "b"]
        "" -> []
    """
    if not raw or not raw.strip():
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Application
    app_name: str = Field(default="DB Distribution")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080)
    api_workers: int = Field(default=1)
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed origins. Empty string = allow all.",
    )

    # Database
    database_url: str = Field(default="sqlite:///./db_distribution.db")
    auto_create_tables: bool = Field(default=True)
    database_statement_timeout_ms: int = Field(default=15000)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Identity (Azure AD / Entra ID)
    aad_tenant_id: str = Field(default="")
    aad_authority: str = Field(default="")
    aad_allowed_audiences: str = Field(default="")
    aad_allowed_groups_admins: str = Field(
        default="",
        description="Comma-separated group object ids granted the admin role.",
    )
    aad_allowed_groups_auditors: str = Field(
        default="",
        description="Comma-separated group object ids granted the auditor role.",
    )
    aad_jwks_timeout_seconds: int = Field(default=10)

    # Runners
    runner_bearer_token: str = Field(default="")

    # Storage
    azure_storage_account: str = Field(default="")
    azure_storage_container: str = Field(default="backups")
    azure_storage_backups_prefix: str = Field(
        default="raw-backups", min_length=1, max_length=256
    )
    use_managed_identity: bool = Field(default=False)
    azure_storage_connection_string: Optional[str] = Field(default=None)
    storage_timeout_seconds: int = Field(default=30)

    # Credential lifetimes
    default_sas_ttl_hours: int = Field(default=24, gt=0)
    max_sas_ttl_hours: int = Field(default=720, gt=0)
    runner_upload_sas_ttl_minutes: int = Field(default=60, gt=0)
    sas_clock_skew_minutes: int = Field(default=5, ge=0)

    @property
    def aad_authority_url(self) -> str:
        """Explicit authority, else the tenant's v2.0 endpoint."""
        if self.aad_authority:
            return self.aad_authority.rstrip("/")
        if self.aad_tenant_id:
            return f"https://login.microsoftonline.com/{self.aad_tenant_id}/v2.0"
        return ""

    @property
    def allowed_audiences(self) -> List[str]:
        return parse_csv(self.aad_allowed_audiences)

    @property
    def allowed_cors_origins(self) -> List[str]:
        return parse_csv(self.cors_origins)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings

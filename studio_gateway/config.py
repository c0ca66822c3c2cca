"""
Configuration module for the Studio Gateway.

This module uses Pydantic Settings to load environment variables for the
tenant backend, the auth provider (Supabase), link generation, timeouts,
and CORS settings.

Environment variables are loaded from .env file or system environment.
Nothing is validated beyond presence: every URL defaults to a localhost
address so the gateway starts without any configuration.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Several variables also accept a legacy alias (e.g. TENANT_ADMIN_URL for
    TENANT_BE_URL).
    """

    # =========================================================================
    # Tenant Backend Configuration
    # =========================================================================

    TENANT_BE_URL: str = Field(
        default="http://localhost:3001",
        description="Tenant backend base URL (e.g., http://tenant-be:3001)",
        validation_alias=AliasChoices("TENANT_BE_URL", "TENANT_ADMIN_URL"),
    )

    ORGANIZATION_ID: Optional[str] = Field(
        default=None,
        description="Organization (tenant) identifier forwarded to the backend",
        validation_alias=AliasChoices("ORGANIZATION_ID", "TENANT_ORGANIZATION_ID"),
    )

    MAIN_BACKEND_API_KEY: Optional[str] = Field(
        default=None,
        description="Server-to-server API key for organization lookups",
    )

    ORGANIZATION_NAME: str = Field(
        default="Spin8 Studio",
        description="Organization name returned when the backend is unavailable",
    )

    BACKEND_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Default timeout for outbound backend calls",
        gt=0,
    )

    BOOKING_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Abort timeout for booking creation",
        gt=0,
    )

    # =========================================================================
    # Auth Provider (Supabase) Configuration
    # =========================================================================

    SUPABASE_URL: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xyz.supabase.co)",
        validation_alias=AliasChoices("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
    )

    SUPABASE_ANON_KEY: Optional[str] = Field(
        default=None,
        description="Supabase anon (public) key",
        validation_alias=AliasChoices("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
    )

    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = Field(
        default=None,
        description="Supabase service role key (admin API, never exposed)",
    )

    SUPABASE_JWT_SECRET: Optional[str] = Field(
        default=None,
        description="Secret used to verify session access tokens (skip verification if unset)",
    )

    # =========================================================================
    # Site / Link Configuration
    # =========================================================================

    SITE_URL: str = Field(
        default="http://localhost:3000",
        description="Public site URL used as redirect base for generated links",
        validation_alias=AliasChoices("SITE_URL", "NEXT_PUBLIC_SITE_URL"),
    )

    TENANT_FE_URL: Optional[str] = Field(
        default=None,
        description="Tenant front-end URL, preferred for password reset links",
    )

    # =========================================================================
    # Gateway Server Configuration
    # =========================================================================

    GATEWAY_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the gateway server",
    )

    GATEWAY_PORT: int = Field(
        default=8080,
        description="Port to bind the gateway server",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        origins = [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]
        return origins

    @property
    def tenant_backend_url(self) -> str:
        """Tenant backend URL without trailing slash."""
        return self.TENANT_BE_URL.rstrip("/")

    @property
    def supabase_url(self) -> Optional[str]:
        if not self.SUPABASE_URL:
            return None
        return self.SUPABASE_URL.rstrip("/")

    @property
    def site_url(self) -> str:
        return self.SITE_URL.rstrip("/")

    @property
    def reset_link_base_url(self) -> str:
        """
        Base URL for password reset links.

        TENANT_FE_URL when set, otherwise SITE_URL.
        """
        return (self.TENANT_FE_URL or self.SITE_URL).rstrip("/")

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Validate the logging level name.

        Raises:
            ValueError: If the level is not a standard logging level
        """
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()

        if v not in allowed_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {allowed_levels}, got: {v}"
            )

        return v

    @field_validator("ORGANIZATION_ID", "TENANT_FE_URL", "SUPABASE_URL", mode="before")
    @classmethod
    def empty_string_to_none(cls, v: Optional[str]) -> Optional[str]:
        # Blank entries in .env files mean "unset"
        if isinstance(v, str) and not v.strip():
            return None
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle. Routes receive it through
    ``Depends(get_settings)``, which lets tests swap it with
    ``app.dependency_overrides``.

    Returns:
        Settings instance with all configuration loaded.

    Example:
        >>> from studio_gateway.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.tenant_backend_url)
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Optional[Settings] = None) -> dict:
    """
    Check which optional integrations are configured and return a status report.

    Called during application startup; warnings are logged.

    Returns:
        Dictionary with validation status, errors and warnings.

    Example:
        >>> status = validate_configuration()
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    settings = settings or get_settings()
    errors = []
    warnings = []

    if not settings.TENANT_BE_URL:
        errors.append("TENANT_BE_URL is empty")

    if "localhost" in settings.tenant_backend_url or "127.0.0.1" in settings.tenant_backend_url:
        warnings.append("Tenant backend URL points to localhost (may cause issues in containers)")

    if not settings.ORGANIZATION_ID:
        warnings.append("ORGANIZATION_ID is not set (backend requests are not scoped to a tenant)")

    if not settings.supabase_url or not settings.SUPABASE_SERVICE_ROLE_KEY:
        warnings.append("Supabase admin configuration missing (link generation will fail)")

    if settings.supabase_url and not settings.SUPABASE_ANON_KEY:
        warnings.append("SUPABASE_ANON_KEY is not set (bank details lookups will fail)")

    if not settings.SUPABASE_JWT_SECRET:
        warnings.append("SUPABASE_JWT_SECRET is not set (session tokens are forwarded unverified)")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "tenant_backend_url": settings.tenant_backend_url,
        "organization_id": settings.ORGANIZATION_ID,
    }

"""
Configuration module for the News Proxy service.

This module uses Pydantic Settings to load and validate environment variables
for the upstream Gemini credential, endpoint construction, retry behaviour,
logging and CORS settings.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .models import UpstreamEndpoint


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The credential is optional at load time so the service can start and
    answer health checks; each invocation rejects a missing key with 500.
    """

    # =========================================================================
    # Upstream Generative Language API
    # =========================================================================

    GEMINI_API_KEY: Optional[SecretStr] = Field(
        None,
        description="Private API key injected into outbound requests (never returned to clients)",
    )

    GEMINI_MODEL: str = Field(
        default="gemini-2.5-flash-preview-09-2025",
        description="Model name used in the generateContent endpoint",
        min_length=1,
    )

    GEMINI_API_HOST: str = Field(
        default="generativelanguage.googleapis.com",
        description="Upstream API host",
        min_length=1,
    )

    GEMINI_API_VERSION: str = Field(
        default="v1beta",
        description="Upstream API version path segment",
        min_length=1,
    )

    # =========================================================================
    # Retry / Timeout Configuration
    # =========================================================================

    MAX_RETRIES: int = Field(
        default=3,
        description="Total number of upstream attempts per invocation",
        ge=1,
        le=10,
    )

    BACKOFF_BASE_SECONDS: float = Field(
        default=1.0,
        description="Base delay; retry n (0-based) waits base * 2**n seconds",
        ge=0,
    )

    BACKOFF_MAX_SECONDS: float = Field(
        default=30.0,
        description="Upper bound for a single backoff delay",
        ge=0,
    )

    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Total timeout for one upstream attempt",
        gt=0,
    )

    UPSTREAM_CONNECT_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Connect timeout for one upstream attempt",
        gt=0,
    )

    RETRY_POLICY: Literal["uniform", "forward_status"] = Field(
        default="uniform",
        description=(
            "'uniform' retries every failure and answers 502 on exhaustion; "
            "'forward_status' returns the first upstream error status without retrying"
        ),
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    PROXY_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the proxy server",
    )

    PROXY_PORT: int = Field(
        default=8080,
        description="Port to bind the proxy server",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # =========================================================================
    # CORS Configuration
    # =========================================================================

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
        extra="ignore",  # Ignore extra env vars not defined here
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

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def has_api_key(self) -> bool:
        return bool(self.GEMINI_API_KEY and self.GEMINI_API_KEY.get_secret_value().strip())

    def upstream_endpoint(self) -> UpstreamEndpoint:
        """
        Build the upstream endpoint carrying the injected credential.

        Returns:
            UpstreamEndpoint for the configured host, version and model.

        Raises:
            ConfigurationError: If GEMINI_API_KEY is missing or blank
        """
        if not self.has_api_key:
            raise ConfigurationError("API Key is not configured on the server.")

        return UpstreamEndpoint(
            host=self.GEMINI_API_HOST,
            version=self.GEMINI_API_VERSION,
            model=self.GEMINI_MODEL,
            api_key=SecretStr(self.GEMINI_API_KEY.get_secret_value().strip()),
        )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Validate LOG_LEVEL is a standard logging level name.

        Raises:
            ValueError: If the level is not recognised
        """
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.strip().upper()

        if level not in allowed_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {allowed_levels}, got: {v}"
            )

        return level

    @field_validator("GEMINI_API_HOST")
    @classmethod
    def validate_api_host(cls, v: str) -> str:
        """Reject hosts given with a scheme or path; only the bare host is expected."""
        host = v.strip()
        if "://" in host or "/" in host:
            raise ValueError(
                f"Invalid host format: '{v}'. "
                "Expected a bare host such as 'generativelanguage.googleapis.com'"
            )
        return host


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Example:
        >>> from newsproxy.app.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.GEMINI_MODEL)
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> Dict[str, Any]:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup so operators see configuration
    problems in the logs before the first invocation fails.

    Returns:
        Dictionary with validation status and any warnings. The credential
        itself is never included.
    """
    errors = []
    warnings = []

    if not settings.has_api_key:
        errors.append("GEMINI_API_KEY is not set; every invocation will answer 500")

    if settings.BACKOFF_MAX_SECONDS < settings.BACKOFF_BASE_SECONDS:
        warnings.append("BACKOFF_MAX_SECONDS is smaller than BACKOFF_BASE_SECONDS; every delay is capped")

    if settings.RETRY_POLICY == "forward_status":
        warnings.append("RETRY_POLICY=forward_status: upstream error statuses are returned without retry")

    if settings.MAX_RETRIES == 1:
        warnings.append("MAX_RETRIES=1 disables retries")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "model": settings.GEMINI_MODEL,
        "max_retries": settings.MAX_RETRIES,
        "retry_policy": settings.RETRY_POLICY,
    }

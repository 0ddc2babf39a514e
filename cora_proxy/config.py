"""
Configuration module for the Cora mTLS Proxy.

This module uses Pydantic Settings to load and validate environment variables
for the mTLS client identity, the shared proxy secret, upstream selection
and the HTTP server.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The credential fields are optional at this level so that a partially
    configured process can still report *which* value is missing; the
    credential loader turns an absent value into a startup failure.
    """

    # =========================================================================
    # mTLS Client Identity
    # =========================================================================

    CORA_CERT_BASE64: Optional[SecretStr] = Field(
        None,
        description="Base64-encoded PEM client certificate presented to Cora",
    )

    CORA_KEY_BASE64: Optional[SecretStr] = Field(
        None,
        description="Base64-encoded PEM private key matching CORA_CERT_BASE64",
    )

    # =========================================================================
    # Caller Authentication
    # =========================================================================

    PROXY_SECRET: Optional[SecretStr] = Field(
        None,
        description="Shared secret callers must send in the x-proxy-secret header",
    )

    # =========================================================================
    # Upstream Configuration
    # =========================================================================

    CORA_STAGE_HOST: str = Field(
        default="matls-clients.api.stage.cora.com.br",
        description="Upstream hostname used unless production is requested",
        min_length=1,
    )

    CORA_PRODUCTION_HOST: str = Field(
        default="matls-clients.api.cora.com.br",
        description="Upstream hostname used when x-environment is 'production'",
        min_length=1,
    )

    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Overall deadline for a single upstream exchange, body included",
        gt=0,
    )

    UPSTREAM_CONNECT_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for establishing the TCP/TLS connection",
        gt=0,
    )

    UPSTREAM_CA_BUNDLE: Optional[str] = Field(
        None,
        description="Path to a CA bundle for verifying the upstream (defaults to certifi)",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    SERVICE_NAME: str = Field(
        default="cora-proxy",
        description="Name reported by the health check",
    )

    HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the proxy server",
    )

    PORT: int = Field(
        default=3001,
        description="Port to bind the proxy server",
        ge=1,
        le=65535,
    )

    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins ('*' for any)",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
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
        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Validate LOG_LEVEL names a standard logging level.

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

    @field_validator("CORA_STAGE_HOST", "CORA_PRODUCTION_HOST")
    @classmethod
    def validate_hostname(cls, v: str) -> str:
        """Reject values carrying a scheme, port or path; only a bare hostname is used."""
        host = v.strip()
        if "://" in host or "/" in host or ":" in host:
            raise ValueError(
                f"Invalid upstream host: '{v}'. Expected a bare hostname such as "
                "'matls-clients.api.cora.com.br'"
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
    during the process lifetime.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If an environment variable is present but invalid.
    """
    return Settings()

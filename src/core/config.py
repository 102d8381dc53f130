"""
Configuration management using Pydantic Settings.
Loads settings from environment variables and .env files.
"""

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Signing key used when PREVIEW_TOKEN_SECRET is not configured.
DEFAULT_TOKEN_SECRET = "local-preview-secret-change-in-production"


class PreviewSettings(BaseSettings):
    """Preview lifecycle and rendering settings."""

    model_config = SettingsConfigDict(env_prefix="PREVIEW_")

    token_secret: Optional[str] = Field(
        default=None,
        description="HMAC secret used to sign preview tokens",
    )
    ttl_seconds: int = Field(default=3600, description="Preview token/store lifetime in seconds")
    smart_table: bool = Field(
        default=True,
        description="Expose the mock OData service to generated previews (SmartTable mode)",
    )
    strict_filters: bool = Field(
        default=False,
        description="Reject unrecognized $filter clauses with 400 instead of ignoring them",
    )
    ui5_bootstrap_url: str = Field(
        default="https://ui5.sap.com/resources/sap-ui-core.js",
        description="UI5 bootstrap script loaded by the preview document",
    )
    runtime_script_url: str = Field(
        default="/ui5-preview-runtime.js",
        description="Preview runtime script that renders the payload",
    )

    @property
    def resolved_secret(self) -> str:
        """Configured secret or the development fallback."""
        return self.token_secret or DEFAULT_TOKEN_SECRET

    @property
    def has_secret(self) -> bool:
        return bool(self.token_secret)


class LLMSettings(BaseSettings):
    """External LLM (OpenAI Responses API) configuration."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: str = Field(default="", description="OpenAI API key; empty means mock mapping")
    model: str = Field(default="gpt-4o-mini", description="Model used for field mapping")
    base_url: str = Field(default="https://api.openai.com/v1", description="API base URL")
    timeout: float = Field(default=20.0, description="Request timeout in seconds")
    force_mock: bool = Field(
        default=False,
        validation_alias=AliasChoices("MOCK_AI", "OPENAI_FORCE_MOCK"),
        description="Always use the heuristic mock mapping",
    )


class SecuritySettings(BaseSettings):
    """Security configuration."""

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="CORS allowed origins",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="report-preview", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=True, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Sub-settings
    preview: PreviewSettings = Field(default_factory=PreviewSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"app_env must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience function for accessing settings
settings = get_settings()

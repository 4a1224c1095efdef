"""Application settings — Pydantic-based configuration with YAML and env var support.

Configuration is loaded from (in order of precedence):
  1. Environment variables (VOLUNTEERMANIAC_ prefix) and ``.env``
  2. YAML config file or constructor arguments
  3. Default values
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from volunteermaniac.backends.base.rate_limiter import RateLimitConfig
from volunteermaniac.backends.base.retry import RetryPolicy

# Path of a YAML config file for processes that build their own settings
CONFIG_ENV_VAR = "VOLUNTEERMANIAC_CONFIG_FILE"


class ServerSettings(BaseModel):
    """HTTP server configuration."""

    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=8080, description="Server port")
    workers: int = Field(default=1, description="Number of worker processes")
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")


class SearchSettings(BaseModel):
    """Default search behavior, used when a request carries no options."""

    timeout_seconds: float = Field(default=15.0, gt=0, description="Global deadline for one search")
    use_healthy_services_only: bool = Field(default=True, description="Skip backends failing their health probe")
    max_concurrent_requests: int = Field(default=5, ge=1, description="Maximum backends queried per search")
    default_result_limit: int = Field(default=50, ge=1, le=100, description="Per-backend limit for derived queries")


class CacheSettings(BaseModel):
    """Result cache configuration."""

    default_ttl_seconds: float = Field(default=1800.0, gt=0, description="Lifetime of cached results")
    max_size: int = Field(default=100, ge=1, description="Maximum number of cached searches")


class RegistrySettings(BaseModel):
    """Service registry configuration."""

    health_cache_ttl_seconds: float = Field(default=60.0, gt=0, description="Lifetime of a cached health probe")


class BackendConfig(BaseModel):
    """Configuration for a single volunteer-opportunity backend."""

    enabled: bool = Field(default=True, description="Whether this backend is active")
    base_url: str | None = Field(default=None, description="API base URL (backend default when unset)")
    api_key: str | None = Field(default=None, description="API key, sent as a bearer token")
    timeout_seconds: float = Field(default=15.0, gt=0, description="Per-request timeout")
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig, description="Outbound request budget")
    retry: RetryPolicy = Field(default_factory=RetryPolicy, description="Backoff policy for retryable failures")
    extra: dict[str, Any] = Field(default_factory=dict, description="Backend-specific options")

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return v


class ObservabilitySettings(BaseModel):
    """Observability configuration."""

    log_level: str = Field(default="info", description="Log level: debug, info, warning, error")
    log_format: str = Field(default="json", description="Log format: json, console")


def _default_backends() -> dict[str, BackendConfig]:
    return {"volunteerhub": BackendConfig(base_url="https://api.volunteerhub.com/v1")}


class Settings(BaseSettings):
    """Root application settings.

    Configuration is loaded from environment variables with the VOLUNTEERMANIAC_ prefix.
    Nested settings use double underscores: VOLUNTEERMANIAC_SERVER__PORT=9090

    Example:
        VOLUNTEERMANIAC_SERVER__PORT=9090
        VOLUNTEERMANIAC_CACHE__MAX_SIZE=500
        VOLUNTEERMANIAC_BACKENDS__VOLUNTEERHUB__API_KEY=vh-...
    """

    model_config = {
        "env_prefix": "VOLUNTEERMANIAC_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    # Application metadata
    app_name: str = Field(default="VolunteerManiac", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    # Component settings
    server: ServerSettings = Field(default_factory=ServerSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    backends: dict[str, BackendConfig] = Field(default_factory=_default_backends)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment overrides YAML, which arrives as init arguments
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, path: str | Path) -> Settings:
        """Load settings from a YAML configuration file.

        Values from the YAML file are used as defaults; environment variables
        still take precedence.

        Args:
            path: Path to the YAML config file.

        Returns:
            Populated Settings instance.
        """
        import yaml  # type: ignore[import-untyped]

        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

"""FastAPI application factory and lifecycle management."""

from __future__ import annotations

import importlib
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from volunteermaniac import __version__
from volunteermaniac.api.v1.router import router as v1_router
from volunteermaniac.backends.base.client import BackendClient
from volunteermaniac.backends.base.exceptions import ConfigurationError
from volunteermaniac.backends.base.rate_limiter import RateLimiterManager
from volunteermaniac.backends.base.registry import ServiceRegistry
from volunteermaniac.cache.manager import ResultCache
from volunteermaniac.config.settings import CONFIG_ENV_VAR, Settings
from volunteermaniac.core.engine import SearchEngine
from volunteermaniac.observability.logging import setup_logging

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_FILE = Path("volunteermaniac-config.yaml")


def create_app(settings: Settings | None = None, engine: SearchEngine | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings. If None, loads from environment.
        engine: A ready engine to serve. If None, one is built from
            ``settings`` during startup and shut down on exit.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        # Use the file named by the CLI, else auto-detect volunteermaniac-config.yaml
        config_file = Path(os.environ.get(CONFIG_ENV_VAR, _DEFAULT_CONFIG_FILE))
        if config_file.exists():
            logger.info("Loading configuration from %s", config_file)
            settings = Settings.from_yaml(config_file)
        else:
            settings = Settings()

    setup_logging(settings.observability)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Manage application lifecycle (startup/shutdown)."""
        logger.info("Starting VolunteerManiac v%s", __version__)

        owns_engine = getattr(app.state, "engine", None) is None
        if owns_engine:
            app.state.engine = await build_engine(settings)

        logger.info("VolunteerManiac is ready to serve requests on port %d", settings.server.port)
        yield

        # Shutdown
        if owns_engine:
            logger.info("Shutting down VolunteerManiac...")
            await app.state.engine.shutdown()
            app.state.engine = None
            logger.info("VolunteerManiac shutdown complete")

    app = FastAPI(
        title="VolunteerManiac",
        description=(
            "Search-aggregation engine for volunteer opportunities — fans a geographic "
            "query out to independent upstream APIs and merges their results, "
            "surfacing partial failures instead of failing the request."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register API routers
    app.include_router(v1_router, prefix="/v1")

    return app


async def build_engine(settings: Settings) -> SearchEngine:
    """Construct the registry, cache and engine, and register configured backends."""
    registry = ServiceRegistry(health_cache_ttl=settings.registry.health_cache_ttl_seconds)
    cache = ResultCache(default_ttl=settings.cache.default_ttl_seconds, max_size=settings.cache.max_size)
    limiters = RateLimiterManager()

    for client in _build_backends(settings, limiters):
        try:
            await client.initialize()
        except Exception:
            logger.warning("Failed to initialise backend '%s'", client.name, exc_info=True)
            continue
        registry.register(client)

    return SearchEngine(registry, cache, settings)


# ── Backend auto-registration ──

# Maps backend names to (module_path, class_name) for lazy import
_BACKEND_MAP: dict[str, tuple[str, str]] = {
    "volunteerhub": ("volunteermaniac.backends.volunteerhub.client", "VolunteerHubClient"),
}


def _build_backends(settings: Settings, limiters: RateLimiterManager) -> list[BackendClient]:
    """Instantiate the backends declared in settings.

    For each enabled entry in ``settings.backends`` the corresponding client
    class is imported and constructed with its own rate limiter and retry
    policy. Unknown or broken entries are logged and skipped.
    """
    clients: list[BackendClient] = []
    for backend_name, backend_cfg in settings.backends.items():
        if not backend_cfg.enabled:
            logger.info("Backend '%s' is disabled, skipping", backend_name)
            continue

        entry = _BACKEND_MAP.get(backend_name)
        if entry is None:
            logger.warning(
                "Unknown backend '%s' — no built-in client found. "
                "Register it manually via engine.registry.register().",
                backend_name,
            )
            continue

        module_path, class_name = entry
        try:
            module = importlib.import_module(module_path)
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            logger.warning("Failed to import backend '%s': %s", backend_name, e)
            continue

        kwargs: dict[str, object] = {
            "api_key": backend_cfg.api_key,
            "timeout": backend_cfg.timeout_seconds,
            "retry": backend_cfg.retry,
            "rate_limiter": limiters.get_limiter(backend_name, backend_cfg.rate_limit),
        }
        if backend_cfg.base_url:
            kwargs["base_url"] = backend_cfg.base_url
        # Pass through any extra config
        kwargs.update(backend_cfg.extra)

        try:
            clients.append(client_class(**kwargs))
        except (ConfigurationError, TypeError) as e:
            logger.warning("Invalid configuration for backend '%s': %s", backend_name, e)
    return clients

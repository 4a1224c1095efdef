"""Base backend interface — Client contract, retries, rate limiting, and the registry."""

from volunteermaniac.backends.base.client import BackendClient, HTTPBackendClient
from volunteermaniac.backends.base.rate_limiter import RateLimitConfig, RateLimiter, RateLimiterManager
from volunteermaniac.backends.base.registry import ServiceRegistry
from volunteermaniac.backends.base.retry import RetryPolicy

__all__ = [
    "BackendClient",
    "HTTPBackendClient",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimiterManager",
    "RetryPolicy",
    "ServiceRegistry",
]

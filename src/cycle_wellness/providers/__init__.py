"""HTTP API client base shared by the REST calendar and mail clients."""

from cycle_wellness.providers.base import (
    AuthenticationError,
    ProviderError,
    RateLimitError,
    RestProvider,
)

__all__ = [
    "AuthenticationError",
    "ProviderError",
    "RateLimitError",
    "RestProvider",
]

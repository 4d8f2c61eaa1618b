"""External summarization providers and the pool that meters access to them."""

from summarize_this.providers.base import (
    ProviderCallError,
    ProviderClient,
    ProviderResponse,
)
from summarize_this.providers.catalog import (
    ProviderCatalog,
    ProviderProfile,
    build_provider_pool,
    load_catalog,
)
from summarize_this.providers.pool import (
    CircuitBreaker,
    ProviderPool,
    TokenBucket,
    UsageRecord,
)

__all__ = [
    "CircuitBreaker",
    "ProviderCallError",
    "ProviderCatalog",
    "ProviderClient",
    "ProviderPool",
    "ProviderProfile",
    "ProviderResponse",
    "TokenBucket",
    "UsageRecord",
    "build_provider_pool",
    "load_catalog",
]

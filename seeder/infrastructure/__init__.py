"""
Infrastructure package for the API data seeder.

Centralizes downstream connectivity concerns: the httpx-based service clients
and the timeout/retry/circuit-breaker policies wrapped around every call. Keep
this layer focused on I/O and failure translation, decoupled from generation
and orchestration logic.
"""

from seeder.infrastructure.http_client import (
    ResilientDownstreamClient,
    account_client,
    customer_client,
    policy_from_settings,
)
from seeder.infrastructure.resilience import (
    BreakerState,
    CircuitBreaker,
    ResiliencePolicy,
    RetryPolicy,
)

__all__ = [
    "ResilientDownstreamClient",
    "account_client",
    "customer_client",
    "policy_from_settings",
    "BreakerState",
    "CircuitBreaker",
    "ResiliencePolicy",
    "RetryPolicy",
]

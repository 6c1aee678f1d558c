"""
Error taxonomy for the API data seeder.

Every failure that crosses a module boundary is one of these types. Raw
transport exceptions (httpx, asyncio timeouts) are translated at the client
boundary so that orchestrator and front-ends only ever see `SeederError`.
"""

from __future__ import annotations

from typing import Optional


class SeederError(Exception):
    """Base class for all seeder errors."""

    kind: str = "error"

    def to_payload(self) -> dict:
        """Structured error body used by the CLI and HTTP front-ends."""
        return {"error": str(self), "kind": self.kind}


class ValidationError(SeederError, ValueError):
    """Input rejected before any work started (bad counts or ranges)."""

    kind = "validation"


class GenerationAborted(SeederError):
    """A generation run could not continue (e.g. no customers were created)."""

    kind = "aborted"

    def __init__(self, message: str, failures: int = 0) -> None:
        super().__init__(message)
        self.failures = failures

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["failures"] = self.failures
        return payload


class DownstreamError(SeederError):
    """A call to a downstream service failed."""

    kind = "downstream"

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["service"] = self.service
        return payload


class DownstreamUnavailable(DownstreamError):
    """The service's circuit breaker is open; the call was not attempted."""

    kind = "unavailable"


class DownstreamTimeout(DownstreamError):
    """The call exceeded its connect/read timeout or its overall deadline."""

    kind = "timeout"


class DownstreamConnectionError(DownstreamError):
    """The transport failed before a response was received."""

    kind = "connection"


class DownstreamRejected(DownstreamError):
    """The service answered with a non-2xx status."""

    kind = "rejected"

    def __init__(self, service: str, status_code: int, body: Optional[str] = None) -> None:
        detail = f"HTTP {status_code}"
        if body:
            detail = f"{detail}: {body[:200]}"
        super().__init__(service, detail)
        self.status_code = status_code
        self.body = body

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["status_code"] = self.status_code
        return payload


__all__ = [
    "SeederError",
    "ValidationError",
    "GenerationAborted",
    "DownstreamError",
    "DownstreamUnavailable",
    "DownstreamTimeout",
    "DownstreamConnectionError",
    "DownstreamRejected",
]

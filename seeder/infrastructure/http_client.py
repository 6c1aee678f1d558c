"""
Resilient HTTP client for one downstream CRUD service.

The seeder talks to two services (customer, account) with the same contract:

    POST   /<entity>                      create, returns the record with its id
    GET    /<entity>                      full collection
    GET    /<entity>/<foreign_key>/{id}   collection filtered by a foreign key
    DELETE /<entity>/{id}                 delete one record

Every outbound call goes through the service's `ResiliencePolicy` (timeout,
retry with backoff, circuit breaker). httpx exceptions never leave this module;
they are translated into the `DownstreamError` family.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Generic, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from seeder.config import Settings, get_settings
from seeder.domain.errors import (
    DownstreamConnectionError,
    DownstreamError,
    DownstreamRejected,
    DownstreamTimeout,
)
from seeder.domain.models import AccountRecord, CustomerRecord
from seeder.infrastructure.resilience import (
    BreakerState,
    CircuitBreaker,
    ResiliencePolicy,
    RetryPolicy,
)
from seeder.utils.logging import get_logger

log = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

DEFAULT_DELETE_CONCURRENCY = 16


def policy_from_settings(service: str, settings: Settings) -> ResiliencePolicy:
    """Build the resilience stack for a service from configuration."""
    breaker = CircuitBreaker(
        name=service,
        failure_rate_threshold=settings.breaker_failure_rate_threshold,
        window_size=settings.breaker_window_size,
        minimum_calls=settings.breaker_minimum_calls,
        cooldown_seconds=settings.breaker_cooldown_seconds,
    )
    retry = RetryPolicy(
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
    )
    return ResiliencePolicy(
        service=service,
        breaker=breaker,
        retry=retry,
        call_timeout=settings.call_timeout_seconds,
    )


class ResilientDownstreamClient(Generic[RecordT]):
    """
    Async client for one downstream service.

    Parameters
    ----------
    service : str
        Short name used in logs and errors (e.g. "customer-service").
    entity : str
        Collection path segment (e.g. "customer").
    record_model : type
        Pydantic model used to parse records returned by the service.
    base_url : str
        Service root URL.
    policy : ResiliencePolicy
        Timeout/retry/breaker stack applied to every call.
    transport : httpx.AsyncBaseTransport, optional
        Custom transport; tests pass an `httpx.MockTransport`.
    """

    def __init__(
        self,
        service: str,
        entity: str,
        record_model: Type[RecordT],
        base_url: str,
        policy: ResiliencePolicy,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        max_connections: int = 200,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.service = service
        self.entity = entity
        self.record_model = record_model
        self.policy = policy
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
            limits=httpx.Limits(max_connections=max_connections),
            transport=transport,
        )

    @property
    def breaker_state(self) -> BreakerState:
        return self.policy.breaker.state

    async def create(self, request: BaseModel) -> RecordT:
        payload = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        body = await self._call("POST", f"/{self.entity}", json=payload)
        record = self._parse(body)
        log.debug(
            f"Created {self.entity} {record.id}",  # type: ignore[attr-defined]
            extra={"service": self.service},
        )
        return record

    async def list_all(self) -> AsyncIterator[RecordT]:
        """Lazily yield every record currently held by the service."""
        body = await self._call("GET", f"/{self.entity}")
        for item in self._as_list(body):
            yield self._parse(item)

    async def list_by(self, foreign_key: str, value: Any) -> List[RecordT]:
        body = await self._call("GET", f"/{self.entity}/{foreign_key}/{value}")
        return [self._parse(item) for item in self._as_list(body)]

    async def count(self) -> int:
        total = 0
        async for _ in self.list_all():
            total += 1
        return total

    async def delete(self, record_id: int) -> None:
        await self._call("DELETE", f"/{self.entity}/{record_id}")
        log.debug(f"Deleted {self.entity} {record_id}", extra={"service": self.service})

    async def delete_all(self, max_concurrency: int = DEFAULT_DELETE_CONCURRENCY) -> int:
        """
        Delete every record the service lists.

        All deletions are attempted; if any failed, the first failure is raised
        after the rest have resolved. Returns the number of deleted records.
        """
        ids = [record.id async for record in self.list_all()]  # type: ignore[attr-defined]
        semaphore = asyncio.Semaphore(max_concurrency)

        async def _delete(record_id: int) -> None:
            async with semaphore:
                await self.delete(record_id)

        results = await asyncio.gather(*(_delete(i) for i in ids), return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        deleted = len(ids) - len(errors)
        log.info(
            f"[CLEANUP] {self.service}: deleted {deleted}/{len(ids)} {self.entity} records",
            extra={"service": self.service, "deleted": deleted, "failed": len(errors)},
        )
        if errors:
            raise errors[0]
        return deleted

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ResilientDownstreamClient[RecordT]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _call(self, method: str, url: str, json: Any = None) -> Any:
        async def raw() -> Any:
            return await self._send(method, url, json)

        return await self.policy.wrap(raw)()

    async def _send(self, method: str, url: str, json: Any) -> Any:
        try:
            response = await self._http.request(method, url, json=json)
        except httpx.TimeoutException as exc:
            raise DownstreamTimeout(self.service, f"{method} {url} timed out") from exc
        except httpx.TransportError as exc:
            raise DownstreamConnectionError(self.service, f"{method} {url}: {exc}") from exc

        if not response.is_success:
            raise DownstreamRejected(self.service, response.status_code, response.text or None)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DownstreamError(self.service, f"{method} {url} returned invalid JSON") from exc

    def _parse(self, item: Any) -> RecordT:
        try:
            return self.record_model.model_validate(item)
        except PydanticValidationError as exc:
            raise DownstreamError(self.service, f"unexpected {self.entity} payload: {exc}") from exc

    def _as_list(self, body: Any) -> List[Any]:
        if body is None:
            return []
        if not isinstance(body, list):
            raise DownstreamError(self.service, f"expected a JSON array of {self.entity} records")
        return body


def customer_client(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ResilientDownstreamClient[CustomerRecord]:
    settings = settings or get_settings()
    return ResilientDownstreamClient(
        service="customer-service",
        entity="customer",
        record_model=CustomerRecord,
        base_url=settings.customer_service_url,
        policy=policy_from_settings("customer-service", settings),
        connect_timeout=settings.connect_timeout_seconds,
        read_timeout=settings.read_timeout_seconds,
        max_connections=settings.max_connections,
        transport=transport,
    )


def account_client(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ResilientDownstreamClient[AccountRecord]:
    settings = settings or get_settings()
    return ResilientDownstreamClient(
        service="account-service",
        entity="account",
        record_model=AccountRecord,
        base_url=settings.account_service_url,
        policy=policy_from_settings("account-service", settings),
        connect_timeout=settings.connect_timeout_seconds,
        read_timeout=settings.read_timeout_seconds,
        max_connections=settings.max_connections,
        transport=transport,
    )


__all__ = [
    "ResilientDownstreamClient",
    "policy_from_settings",
    "customer_client",
    "account_client",
]

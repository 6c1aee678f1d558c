"""
Pytest configuration for the API data seeder.

Provides fixtures for:
- In-memory fake customer/account services served through httpx.MockTransport
- Settings tuned for fast tests (no backoff, no pacing)
- Orchestrator construction against the fake services
"""

from __future__ import annotations

import json
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from seeder.config import Settings
from seeder.infrastructure.http_client import account_client, customer_client
from seeder.orchestrator import DatasetOrchestrator

CREATED_AT = "2024-01-01T00:00:00"


class FakeDownstream:
    """
    In-memory CRUD service speaking the downstream contract:

        POST /<entity>, GET /<entity>, GET /<entity>/<fk>/{id}, DELETE /<entity>/{id}

    `fail_status` makes every call answer with that status; `fail_post`
    decides per POST body whether to answer 500.
    """

    def __init__(self, entity: str, foreign_key: Optional[Tuple[str, str]] = None) -> None:
        self.entity = entity
        self.foreign_key = foreign_key
        self.records: Dict[int, dict] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_status: Optional[int] = None
        self.fail_post: Optional[Callable[[dict], bool]] = None
        self._next_id = 1

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(lambda request: self.handle(request))

    def seed(self, **fields) -> dict:
        record = {"id": self._next_id, "createdAt": CREATED_AT, **fields}
        self.records[self._next_id] = record
        self._next_id += 1
        return record

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, text="simulated failure")

        parts = [p for p in request.url.path.split("/") if p]
        if not parts or parts[0] != self.entity:
            return httpx.Response(404)

        if request.method == "POST" and len(parts) == 1:
            body = json.loads(request.content)
            if self.fail_post is not None and self.fail_post(body):
                return httpx.Response(500, text="simulated failure")
            return httpx.Response(201, json=self.seed(**body))

        if request.method == "GET" and len(parts) == 1:
            return httpx.Response(200, json=list(self.records.values()))

        if request.method == "GET" and len(parts) == 3 and self.foreign_key:
            path_segment, field_name = self.foreign_key
            if parts[1] == path_segment:
                value = int(parts[2])
                matches = [r for r in self.records.values() if r.get(field_name) == value]
                return httpx.Response(200, json=matches)

        if request.method == "DELETE" and len(parts) == 2:
            if self.records.pop(int(parts[1]), None) is None:
                return httpx.Response(404, text="not found")
            return httpx.Response(204)

        return httpx.Response(405)


@pytest.fixture
def fast_settings() -> Settings:
    """
    Settings with production batch/concurrency shapes but no waiting.

    The breaker needs many calls before it can trip so that partial-failure
    scenarios are not cut short.
    """
    return Settings(
        customer_service_url="http://customers.test",
        account_service_url="http://accounts.test",
        retry_attempts=3,
        retry_base_delay_seconds=0,
        retry_max_delay_seconds=0,
        breaker_minimum_calls=1000,
        breaker_window_size=1000,
        seeding_batch_size=5,
        seeding_customer_concurrency=3,
        seeding_account_concurrency=4,
        seeding_request_delay_ms=0,
        call_timeout_seconds=5,
    )


@pytest.fixture
def customer_service() -> FakeDownstream:
    return FakeDownstream("customer")


@pytest.fixture
def account_service() -> FakeDownstream:
    return FakeDownstream("account", foreign_key=("customer", "customerId"))


@pytest.fixture
def make_orchestrator(
    fast_settings: Settings,
    customer_service: FakeDownstream,
    account_service: FakeDownstream,
) -> Callable[..., DatasetOrchestrator]:
    """Factory for orchestrators bound to the fake services; call it inside the test's loop."""

    def _make(**kwargs) -> DatasetOrchestrator:
        return DatasetOrchestrator(
            customer_client(fast_settings, transport=customer_service.transport()),
            account_client(fast_settings, transport=account_service.transport()),
            settings=fast_settings,
            **kwargs,
        )

    return _make

"""
Dataset orchestrator: sequences customer and account generation.

Usage:
    from seeder.orchestrator import DatasetOrchestrator

    async with DatasetOrchestrator.from_settings() as orchestrator:
        report = await orchestrator.generate_full_dataset(1000, 1, 4)
        print(report.summary)

A full-dataset run moves through GENERATING_CUSTOMERS -> GENERATING_ACCOUNTS ->
DONE. Only customer ids returned by successful creates become foreign keys for
the account phase. The run is aborted (`GenerationAborted`) only when the
customer phase produced no usable id at all; otherwise it continues with the
subset that succeeded and reports the residual failures.
"""

from __future__ import annotations

import asyncio
import contextlib
import random
from enum import Enum
from typing import Any, Dict, Generator, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from seeder.config import Settings, get_settings
from seeder.domain.errors import GenerationAborted, ValidationError
from seeder.domain.models import (
    AccountRecord,
    AccountRequest,
    BatchOutcome,
    CustomerRecord,
    CustomerRequest,
    DatasetSummary,
    FailureRecord,
    GenerationReport,
)
from seeder.generation.factory import SyntheticRecordFactory
from seeder.generation.registry import UniquenessRegistry
from seeder.infrastructure.http_client import (
    ResilientDownstreamClient,
    account_client,
    customer_client,
)
from seeder.pipeline.batch import BoundedBatchPipeline
from seeder.reporting.exporter import ReportingExporter
from seeder.utils.logging import get_logger
from seeder.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)

MIN_CUSTOMER_COUNT = 1
MAX_CUSTOMER_COUNT = 50_000
MAX_ACCOUNTS_PER_CUSTOMER = 10


class RunPhase(str, Enum):
    IDLE = "idle"
    GENERATING_CUSTOMERS = "generating_customers"
    GENERATING_ACCOUNTS = "generating_accounts"
    DONE = "done"
    FAILED = "failed"


def validate_customer_count(count: int) -> None:
    if not MIN_CUSTOMER_COUNT <= count <= MAX_CUSTOMER_COUNT:
        raise ValidationError(
            f"Count must be between {MIN_CUSTOMER_COUNT} and {MAX_CUSTOMER_COUNT:,}"
        )


def validate_account_range(min_per_customer: int, max_per_customer: int) -> None:
    if (
        min_per_customer <= 0
        or max_per_customer <= 0
        or min_per_customer > max_per_customer
        or max_per_customer > MAX_ACCOUNTS_PER_CUSTOMER
    ):
        raise ValidationError(
            "Invalid account range. Min and max must be between "
            f"1-{MAX_ACCOUNTS_PER_CUSTOMER}, min <= max"
        )


def _failures(entity: str, outcome: BatchOutcome) -> List[FailureRecord]:
    return [FailureRecord.from_failed_item(entity, item) for item in outcome.failed]


class DatasetOrchestrator:
    """
    Owns one seeding session: the two clients, the uniqueness registries and
    the factory built on them.

    The registries live as long as the orchestrator and are cleared by
    `delete_all`; nothing is shared between orchestrator instances.
    """

    def __init__(
        self,
        customers: ResilientDownstreamClient[CustomerRecord],
        accounts: ResilientDownstreamClient[AccountRecord],
        settings: Optional[Settings] = None,
        factory: Optional[SyntheticRecordFactory] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.customers = customers
        self.accounts = accounts
        self.factory = factory or SyntheticRecordFactory(
            emails=UniquenessRegistry("emails"),
            account_numbers=UniquenessRegistry("account_numbers"),
        )
        self.exporter = ReportingExporter(
            customers,
            accounts,
            emails=self.factory.emails,
            account_numbers=self.factory.account_numbers,
        )
        self.phase = RunPhase.IDLE
        self._rng = rng or random.Random()
        self._active_runs: Set[asyncio.Event] = set()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DatasetOrchestrator":
        settings = settings or get_settings()
        return cls(customer_client(settings), account_client(settings), settings=settings)

    async def __aenter__(self) -> "DatasetOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await asyncio.gather(self.customers.aclose(), self.accounts.aclose())

    def cancel(self) -> None:
        """Stop admitting new batches in every active run; calls already in flight finish."""
        log.warning(
            "[ORCHESTRATOR] Cancellation requested",
            extra={"active_runs": len(self._active_runs)},
        )
        for stop in self._active_runs:
            stop.set()

    # ------------------------------------------------------------------ #
    # Generation
    # ------------------------------------------------------------------ #

    async def generate_customers(self, count: int) -> GenerationReport:
        validate_customer_count(count)
        with self._run("customers") as (stats, stop):
            outcome = await self._customer_phase(count, stop)
        self._set_phase(RunPhase.DONE)
        customers = self._records(outcome, CustomerRecord)
        return GenerationReport(
            summary=DatasetSummary(
                customers_requested=outcome.requested,
                customers_created=len(customers),
                failed=outcome.failed_count,
                elapsed_seconds=round(stats.duration_seconds, 3),
                peak_rss_bytes=stats.peak_rss_bytes,
            ),
            customers=customers,
            failures=_failures("customer", outcome),
            message=f"Successfully generated {len(customers)} customers via API",
            cancelled=outcome.cancelled,
        )

    async def generate_accounts_for_customers(
        self,
        customer_ids: Sequence[int],
        min_per_customer: int,
        max_per_customer: int,
    ) -> GenerationReport:
        validate_account_range(min_per_customer, max_per_customer)
        with self._run("accounts") as (stats, stop):
            outcome = await self._account_phase(
                customer_ids, min_per_customer, max_per_customer, stop
            )
        self._set_phase(RunPhase.DONE)
        return self._accounts_report(
            customer_ids, outcome, stats, "Successfully generated accounts for customers"
        )

    async def generate_accounts_for_existing_customers(
        self, min_per_customer: int, max_per_customer: int
    ) -> GenerationReport:
        """Account phase over the customer ids currently held by the customer service."""
        validate_account_range(min_per_customer, max_per_customer)
        with self._run("existing-customer accounts") as (stats, stop):
            customer_ids = [record.id async for record in self.customers.list_all()]
            if not customer_ids:
                log.warning("[ORCHESTRATOR] No existing customers found")
                self._set_phase(RunPhase.DONE)
                return GenerationReport(
                    summary=DatasetSummary(),
                    message="No existing customers found",
                )
            outcome = await self._account_phase(
                customer_ids, min_per_customer, max_per_customer, stop
            )
        self._set_phase(RunPhase.DONE)
        return self._accounts_report(
            customer_ids, outcome, stats, "Successfully generated accounts for existing customers"
        )

    async def generate_full_dataset(
        self,
        customer_count: int,
        min_per_customer: int,
        max_per_customer: int,
    ) -> GenerationReport:
        validate_customer_count(customer_count)
        validate_account_range(min_per_customer, max_per_customer)

        with self._run("full dataset") as (stats, stop):
            customer_outcome = await self._customer_phase(customer_count, stop)
            customers = self._records(customer_outcome, CustomerRecord)
            if not customers:
                self._set_phase(RunPhase.FAILED)
                raise GenerationAborted(
                    "Customer phase produced no usable customer ids; account phase skipped",
                    failures=customer_outcome.failed_count,
                )
            customer_ids = [c.id for c in customers]
            account_outcome = await self._account_phase(
                customer_ids, min_per_customer, max_per_customer, stop
            )
        self._set_phase(RunPhase.DONE)

        accounts = self._records(account_outcome, AccountRecord)
        summary = DatasetSummary(
            customers_requested=customer_outcome.requested,
            customers_created=len(customers),
            customers_processed=len(customer_ids),
            accounts_requested=account_outcome.requested,
            accounts_created=len(accounts),
            failed=customer_outcome.failed_count + account_outcome.failed_count,
            elapsed_seconds=round(stats.duration_seconds, 3),
            peak_rss_bytes=stats.peak_rss_bytes,
        )
        log.info(
            f"[ORCHESTRATOR] Full dataset: {summary.customers_created} customers, "
            f"{summary.accounts_created} accounts",
            extra={
                "customers": summary.customers_created,
                "accounts": summary.accounts_created,
                "failed": summary.failed,
                "records_per_second": summary.records_per_second,
            },
        )
        return GenerationReport(
            summary=summary,
            customers=customers,
            accounts=accounts,
            failures=_failures("customer", customer_outcome) + _failures("account", account_outcome),
            message="Successfully generated full dataset",
            cancelled=customer_outcome.cancelled or account_outcome.cancelled,
        )

    # ------------------------------------------------------------------ #
    # Reporting / maintenance
    # ------------------------------------------------------------------ #

    async def statistics(self) -> Dict[str, Any]:
        stats = await self.exporter.statistics()
        stats["phase"] = self.phase.value
        return stats

    async def delete_all(self) -> Dict[str, int]:
        """Delete accounts, then customers, then forget every reserved key."""
        log.info("[CLEANUP] Clearing all test data via APIs")
        accounts_deleted = await self.accounts.delete_all()
        customers_deleted = await self.customers.delete_all()
        self.factory.emails.clear()
        self.factory.account_numbers.clear()
        self._set_phase(RunPhase.IDLE)
        return {"accounts_deleted": accounts_deleted, "customers_deleted": customers_deleted}

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _customer_phase(self, count: int, stop: asyncio.Event) -> BatchOutcome:
        self._set_phase(RunPhase.GENERATING_CUSTOMERS)
        requests: Iterator[CustomerRequest] = (self.factory.next_customer() for _ in range(count))
        return await BoundedBatchPipeline(self.customers, name="customers").run(
            requests,
            batch_size=self.settings.seeding_batch_size,
            max_concurrency=self.settings.seeding_customer_concurrency,
            inter_batch_delay=self.settings.seeding_request_delay_ms / 1000.0,
            stop=stop,
        )

    async def _account_phase(
        self,
        customer_ids: Iterable[int],
        min_per_customer: int,
        max_per_customer: int,
        stop: asyncio.Event,
    ) -> BatchOutcome:
        self._set_phase(RunPhase.GENERATING_ACCOUNTS)
        return await BoundedBatchPipeline(self.accounts, name="accounts").run(
            self._account_requests(customer_ids, min_per_customer, max_per_customer),
            batch_size=self.settings.seeding_batch_size,
            max_concurrency=self.settings.seeding_account_concurrency,
            inter_batch_delay=self.settings.seeding_request_delay_ms / 1000.0,
            stop=stop,
        )

    def _account_requests(
        self,
        customer_ids: Iterable[int],
        min_per_customer: int,
        max_per_customer: int,
    ) -> Iterator[AccountRequest]:
        for customer_id in customer_ids:
            for _ in range(self._rng.randint(min_per_customer, max_per_customer)):
                yield self.factory.next_account(customer_id)

    def _accounts_report(
        self,
        customer_ids: Sequence[int],
        outcome: BatchOutcome,
        stats: ProfileStats,
        message: str,
    ) -> GenerationReport:
        accounts = self._records(outcome, AccountRecord)
        return GenerationReport(
            summary=DatasetSummary(
                customers_processed=len(customer_ids),
                accounts_requested=outcome.requested,
                accounts_created=len(accounts),
                failed=outcome.failed_count,
                elapsed_seconds=round(stats.duration_seconds, 3),
                peak_rss_bytes=stats.peak_rss_bytes,
            ),
            accounts=accounts,
            failures=_failures("account", outcome),
            message=message,
            cancelled=outcome.cancelled,
        )

    @staticmethod
    def _records(outcome: BatchOutcome, model: type) -> List[Any]:
        return [r for r in outcome.succeeded if isinstance(r, model)]

    def _set_phase(self, phase: RunPhase) -> None:
        if phase is not self.phase:
            log.info(f"[PHASE] {self.phase.value} -> {phase.value}", extra={"phase": phase.value})
        self.phase = phase

    @staticmethod
    def _deadline_reached(label: str, stop: asyncio.Event) -> None:
        log.warning(f"[ORCHESTRATOR] Deadline reached for {label}", extra={"run": label})
        stop.set()

    @contextlib.contextmanager
    def _run(self, label: str) -> Generator[Tuple[ProfileStats, asyncio.Event], None, None]:
        """
        Profile one operation and give it its own stop event.

        The optional run deadline sets only this run's event; `cancel()` sets
        the events of every run active at that moment.
        """
        stop = asyncio.Event()
        self._active_runs.add(stop)
        deadline: Optional[asyncio.TimerHandle] = None
        if self.settings.run_deadline_seconds:
            deadline = asyncio.get_running_loop().call_later(
                self.settings.run_deadline_seconds, self._deadline_reached, label, stop
            )
        log.info(f"[RUN START] {label}", extra={"run": label})
        try:
            with profile_block(label) as stats:
                yield stats, stop
        except Exception as exc:
            log.error(
                f"[RUN FAILED] {label}: {exc}",
                extra={"run": label, "error_type": type(exc).__name__},
            )
            raise
        finally:
            self._active_runs.discard(stop)
            if deadline is not None:
                deadline.cancel()
        log.info(
            f"[RUN COMPLETE] {label} in {stats.duration_seconds:.2f}s",
            extra={"run": label, "duration": round(stats.duration_seconds, 3)},
        )


__all__ = [
    "DatasetOrchestrator",
    "RunPhase",
    "validate_customer_count",
    "validate_account_range",
    "MAX_CUSTOMER_COUNT",
    "MAX_ACCOUNTS_PER_CUSTOMER",
]

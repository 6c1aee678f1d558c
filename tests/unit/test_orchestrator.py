from __future__ import annotations

import asyncio
import random
import time
from collections import Counter

import pytest

from seeder.domain.errors import GenerationAborted, ValidationError
from seeder.orchestrator import (
    MAX_CUSTOMER_COUNT,
    RunPhase,
    validate_account_range,
    validate_customer_count,
)

CUSTOMERS = 10
MIN_ACCOUNTS = 1
MAX_ACCOUNTS = 4


@pytest.mark.parametrize("count", [0, -1, MAX_CUSTOMER_COUNT + 1])
def test_customer_count_out_of_range_is_rejected(count: int) -> None:
    with pytest.raises(ValidationError, match="Count must be between 1 and 50,000"):
        validate_customer_count(count)


@pytest.mark.parametrize("bounds", [(0, 4), (1, 0), (5, 4), (1, 11)])
def test_invalid_account_range_is_rejected(bounds) -> None:
    with pytest.raises(ValidationError, match="Invalid account range"):
        validate_account_range(*bounds)


def test_boundary_values_are_accepted() -> None:
    validate_customer_count(1)
    validate_customer_count(MAX_CUSTOMER_COUNT)
    validate_account_range(1, 1)
    validate_account_range(10, 10)


@pytest.mark.asyncio
async def test_validation_happens_before_any_call(make_orchestrator, customer_service) -> None:
    async with make_orchestrator() as orchestrator:
        with pytest.raises(ValidationError):
            await orchestrator.generate_full_dataset(10, 3, 2)

    assert customer_service.calls == []


@pytest.mark.asyncio
async def test_generate_customers_creates_unique_customers(make_orchestrator, customer_service) -> None:
    async with make_orchestrator() as orchestrator:
        report = await orchestrator.generate_customers(CUSTOMERS)

    assert report.summary.customers_requested == CUSTOMERS
    assert report.summary.customers_created == CUSTOMERS
    assert report.message == f"Successfully generated {CUSTOMERS} customers via API"
    assert len({c.email for c in report.customers}) == CUSTOMERS
    assert len(customer_service.records) == CUSTOMERS
    assert orchestrator.phase is RunPhase.DONE


@pytest.mark.asyncio
async def test_full_dataset_binds_accounts_to_created_customers(
    make_orchestrator, account_service
) -> None:
    async with make_orchestrator(rng=random.Random(3)) as orchestrator:
        report = await orchestrator.generate_full_dataset(CUSTOMERS, MIN_ACCOUNTS, MAX_ACCOUNTS)

    customer_ids = {c.id for c in report.customers}
    per_customer = Counter(a["customerId"] for a in account_service.records.values())

    assert len(customer_ids) == CUSTOMERS
    assert CUSTOMERS * MIN_ACCOUNTS <= report.summary.accounts_created <= CUSTOMERS * MAX_ACCOUNTS
    assert set(per_customer) == customer_ids
    assert all(MIN_ACCOUNTS <= n <= MAX_ACCOUNTS for n in per_customer.values())
    assert report.summary.failed == 0
    assert report.summary.total_records == CUSTOMERS + report.summary.accounts_created
    assert len({a.account_number for a in report.accounts}) == report.summary.accounts_created


@pytest.mark.asyncio
async def test_full_dataset_continues_with_partial_customers(
    make_orchestrator, customer_service, account_service
) -> None:
    first_seen: dict = {}

    def fail_some(body: dict) -> bool:
        # Every third distinct customer is rejected on every attempt.
        index = first_seen.setdefault(body["email"], len(first_seen))
        return index % 3 == 2

    customer_service.fail_post = fail_some

    async with make_orchestrator() as orchestrator:
        report = await orchestrator.generate_full_dataset(9, 1, 1)

    created_ids = {c.id for c in report.customers}
    assert report.summary.customers_created == 6
    assert len(customer_service.records) == 6
    assert {a["customerId"] for a in account_service.records.values()} == created_ids
    assert report.summary.accounts_created == 6
    assert report.summary.failed == 3
    assert {f.entity for f in report.failures} == {"customer"}
    assert {f.kind for f in report.failures} == {"rejected"}


@pytest.mark.asyncio
async def test_full_dataset_aborts_when_no_customer_was_created(
    make_orchestrator, customer_service, account_service
) -> None:
    customer_service.fail_status = 500

    async with make_orchestrator() as orchestrator:
        with pytest.raises(GenerationAborted) as excinfo:
            await orchestrator.generate_full_dataset(3, 1, 2)
        assert orchestrator.phase is RunPhase.FAILED

    assert excinfo.value.failures == 3
    assert account_service.calls == []


@pytest.mark.asyncio
async def test_accounts_for_existing_customers(make_orchestrator, customer_service, account_service) -> None:
    for i in range(4):
        customer_service.seed(name=f"c{i}", email=f"c{i}@example.com", phone="555-555-5555")

    async with make_orchestrator() as orchestrator:
        report = await orchestrator.generate_accounts_for_existing_customers(2, 2)

    assert report.summary.customers_processed == 4
    assert report.summary.accounts_created == 8
    assert report.summary.average_accounts_per_customer == 2.0
    assert Counter(a["customerId"] for a in account_service.records.values()) == {1: 2, 2: 2, 3: 2, 4: 2}


@pytest.mark.asyncio
async def test_accounts_for_existing_customers_when_there_are_none(
    make_orchestrator, account_service
) -> None:
    async with make_orchestrator() as orchestrator:
        report = await orchestrator.generate_accounts_for_existing_customers(1, 4)

    assert report.message == "No existing customers found"
    assert report.summary.accounts_created == 0
    assert account_service.calls == []


@pytest.mark.asyncio
async def test_delete_all_empties_services_and_registries(
    make_orchestrator, customer_service, account_service
) -> None:
    async with make_orchestrator() as orchestrator:
        await orchestrator.generate_full_dataset(5, 1, 3)
        assert len(orchestrator.factory.emails) == 5

        result = await orchestrator.delete_all()
        stats = await orchestrator.statistics()

    assert result["customers_deleted"] == 5
    assert result["accounts_deleted"] >= 5
    assert customer_service.records == {}
    assert account_service.records == {}
    assert len(orchestrator.factory.emails) == 0
    assert len(orchestrator.factory.account_numbers) == 0
    assert stats["total_customers"] == 0
    assert stats["total_accounts"] == 0
    assert stats["phase"] == RunPhase.IDLE.value


@pytest.mark.asyncio
async def test_cleanup_deletes_accounts_before_customers(
    make_orchestrator, customer_service, account_service
) -> None:
    async with make_orchestrator() as orchestrator:
        await orchestrator.generate_full_dataset(2, 1, 1)

        order = []
        account_handle, customer_handle = account_service.handle, customer_service.handle

        def track_accounts(request):
            order.append("account")
            return account_handle(request)

        def track_customers(request):
            order.append("customer")
            return customer_handle(request)

        account_service.handle = track_accounts  # type: ignore[method-assign]
        customer_service.handle = track_customers  # type: ignore[method-assign]
        await orchestrator.delete_all()

    assert order.index("customer") > max(i for i, e in enumerate(order) if e == "account")


@pytest.mark.asyncio
async def test_cancel_stops_admitting_batches(make_orchestrator, customer_service) -> None:
    async with make_orchestrator() as orchestrator:
        def cancel_and_accept(body: dict) -> bool:
            orchestrator.cancel()
            return False

        customer_service.fail_post = cancel_and_accept
        report = await orchestrator.generate_customers(20)

    batch_size = orchestrator.settings.seeding_batch_size
    assert report.cancelled
    assert report.summary.customers_created == batch_size
    assert len(customer_service.records) == batch_size


@pytest.mark.asyncio
async def test_run_deadline_triggers_graceful_stop(
    fast_settings, make_orchestrator, customer_service
) -> None:
    fast_settings.run_deadline_seconds = 0.05

    def slow_accept(body: dict) -> bool:
        # Blocks the loop so the first batch alone outlives the deadline.
        time.sleep(0.02)
        return False

    customer_service.fail_post = slow_accept

    async with make_orchestrator() as orchestrator:
        report = await orchestrator.generate_customers(20)

    assert report.cancelled
    assert report.summary.customers_created == fast_settings.seeding_batch_size


@pytest.mark.asyncio
async def test_accounts_for_given_customers(make_orchestrator, account_service) -> None:
    async with make_orchestrator() as orchestrator:
        report = await orchestrator.generate_accounts_for_customers([7, 8, 9], 1, 3)

    per_customer = Counter(a["customerId"] for a in account_service.records.values())
    assert set(per_customer) == {7, 8, 9}
    assert all(1 <= n <= 3 for n in per_customer.values())
    assert report.summary.customers_processed == 3
    assert report.summary.accounts_created == sum(per_customer.values())
    assert report.failures == []


@pytest.mark.asyncio
async def test_deadline_of_one_run_does_not_stop_an_overlapping_run(
    fast_settings, make_orchestrator, customer_service
) -> None:
    def slow_accept(body: dict) -> bool:
        time.sleep(0.01)
        return False

    customer_service.fail_post = slow_accept

    async with make_orchestrator() as orchestrator:
        fast_settings.run_deadline_seconds = 0.05
        with_deadline = asyncio.create_task(orchestrator.generate_customers(20))
        # Let the first run arm its deadline before the second one starts.
        await asyncio.sleep(0)
        fast_settings.run_deadline_seconds = None
        without_deadline = asyncio.create_task(orchestrator.generate_customers(20))

        first, second = await asyncio.gather(with_deadline, without_deadline)

    assert first.cancelled
    assert first.summary.customers_created < 20
    assert not second.cancelled
    assert second.summary.customers_created == 20


@pytest.mark.asyncio
async def test_new_run_does_not_undo_cancel_of_active_run(make_orchestrator, customer_service) -> None:
    async with make_orchestrator() as orchestrator:
        cancelled_once = []

        def cancel_first_post(body: dict) -> bool:
            if not cancelled_once:
                cancelled_once.append(True)
                orchestrator.cancel()
            return False

        customer_service.fail_post = cancel_first_post
        first = asyncio.create_task(orchestrator.generate_customers(20))
        while not cancelled_once:
            await asyncio.sleep(0)
        second = asyncio.create_task(orchestrator.generate_customers(10))

        first_report, second_report = await asyncio.gather(first, second)

    assert first_report.cancelled
    assert first_report.summary.customers_created == orchestrator.settings.seeding_batch_size
    assert not second_report.cancelled
    assert second_report.summary.customers_created == 10


@pytest.mark.asyncio
async def test_cancel_stops_every_active_run(make_orchestrator) -> None:
    async with make_orchestrator() as orchestrator:
        runs = [asyncio.create_task(orchestrator.generate_customers(20)) for _ in range(2)]
        await asyncio.sleep(0)
        orchestrator.cancel()
        reports = await asyncio.gather(*runs)

    assert all(r.cancelled for r in reports)
    assert all(r.summary.customers_created == orchestrator.settings.seeding_batch_size for r in reports)

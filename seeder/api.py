"""
HTTP front-end for the seeder, mounted under `/seed`.

Endpoints:
- POST   /seed/customers/{count}
- POST   /seed/accounts?minAccountsPerCustomer=&maxAccountsPerCustomer=
- POST   /seed/full-dataset?customerCount=&minAccountsPerCustomer=&maxAccountsPerCustomer=
- GET    /seed/export/jmeter-data.csv | customers.csv | accounts.csv
- GET    /seed/stats
- GET    /seed/customers/{customer_id}/accounts
- DELETE /seed/cleanup
- GET    /seed/health

One orchestrator (one seeding session) is created by the app lifespan and
shared by every request.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from seeder import __version__
from seeder.domain.errors import (
    DownstreamUnavailable,
    SeederError,
    ValidationError,
)
from seeder.domain.models import GenerationReport
from seeder.orchestrator import DatasetOrchestrator
from seeder.reporting.exporter import ACCOUNTS_FILE, CUSTOMERS_FILE, JOINED_FILE
from seeder.utils.logging import get_logger

log = get_logger(__name__)

SERVICE_NAME = "api-first-data-seeder-service"

OrchestratorFactory = Callable[[], DatasetOrchestrator]


def status_for(exc: SeederError) -> int:
    """HTTP status for a seeder error."""
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, DownstreamUnavailable):
        return 503
    # GenerationAborted and every other downstream failure
    return 502


def get_orchestrator(request: Request) -> DatasetOrchestrator:
    return request.app.state.orchestrator


def _report_payload(report: GenerationReport) -> Dict[str, Any]:
    payload = report.model_dump(mode="json", exclude={"customers", "accounts"})
    payload["executionTimeMs"] = int(report.summary.elapsed_seconds * 1000)
    return payload


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


router = APIRouter(prefix="/seed", tags=["seed"])


@router.post("/customers/{count}")
async def generate_customers(
    count: int, orchestrator: DatasetOrchestrator = Depends(get_orchestrator)
):
    report = await orchestrator.generate_customers(count)
    payload = _report_payload(report)
    payload["count"] = report.summary.customers_created
    return payload


@router.post("/accounts")
async def generate_accounts(
    min_per_customer: int = Query(1, alias="minAccountsPerCustomer"),
    max_per_customer: int = Query(4, alias="maxAccountsPerCustomer"),
    orchestrator: DatasetOrchestrator = Depends(get_orchestrator),
):
    report = await orchestrator.generate_accounts_for_existing_customers(
        min_per_customer, max_per_customer
    )
    payload = _report_payload(report)
    payload["customersProcessed"] = report.summary.customers_processed
    payload["accountsGenerated"] = report.summary.accounts_created
    return payload


@router.post("/full-dataset")
async def generate_full_dataset(
    customer_count: int = Query(1000, alias="customerCount"),
    min_per_customer: int = Query(1, alias="minAccountsPerCustomer"),
    max_per_customer: int = Query(4, alias="maxAccountsPerCustomer"),
    orchestrator: DatasetOrchestrator = Depends(get_orchestrator),
):
    report = await orchestrator.generate_full_dataset(
        customer_count, min_per_customer, max_per_customer
    )
    return _report_payload(report)


@router.get("/export/jmeter-data.csv")
async def export_jmeter_data(orchestrator: DatasetOrchestrator = Depends(get_orchestrator)):
    return _csv_response(await orchestrator.exporter.joined_csv(), JOINED_FILE)


@router.get("/export/customers.csv")
async def export_customers(orchestrator: DatasetOrchestrator = Depends(get_orchestrator)):
    return _csv_response(await orchestrator.exporter.customers_csv(), CUSTOMERS_FILE)


@router.get("/export/accounts.csv")
async def export_accounts(orchestrator: DatasetOrchestrator = Depends(get_orchestrator)):
    return _csv_response(await orchestrator.exporter.accounts_csv(), ACCOUNTS_FILE)


@router.get("/stats")
async def statistics(orchestrator: DatasetOrchestrator = Depends(get_orchestrator)):
    return await orchestrator.statistics()


@router.get("/customers/{customer_id}/accounts")
async def accounts_for_customer(
    customer_id: int, orchestrator: DatasetOrchestrator = Depends(get_orchestrator)
) -> List[Dict[str, Any]]:
    accounts = await orchestrator.accounts.list_by("customer", customer_id)
    return [account.to_wire() for account in accounts]


@router.delete("/cleanup")
async def cleanup(orchestrator: DatasetOrchestrator = Depends(get_orchestrator)):
    result = await orchestrator.delete_all()
    return {"message": "All test data cleared successfully via APIs", **result}


@router.get("/health")
async def health(orchestrator: DatasetOrchestrator = Depends(get_orchestrator)):
    """Liveness plus the state of each downstream circuit breaker."""
    return {
        "status": "UP",
        "service": SERVICE_NAME,
        "version": __version__,
        "phase": orchestrator.phase.value,
        "breakers": {
            orchestrator.customers.service: orchestrator.customers.breaker_state.value,
            orchestrator.accounts.service: orchestrator.accounts.breaker_state.value,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def seeder_error_handler(request: Request, exc: SeederError) -> JSONResponse:
    status_code = status_for(exc)
    log.warning(
        f"[API] {request.method} {request.url.path} -> {status_code}: {exc}",
        extra={"kind": exc.kind, "status_code": status_code},
    )
    return JSONResponse(status_code=status_code, content=exc.to_payload())


def create_app(orchestrator_factory: Optional[OrchestratorFactory] = None) -> FastAPI:
    """
    Build the FastAPI application.

    `orchestrator_factory` is called once at startup; it defaults to
    `DatasetOrchestrator.from_settings`.
    """
    factory = orchestrator_factory or DatasetOrchestrator.from_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.orchestrator = factory()
        log.info("[API] Seeder session started")
        try:
            yield
        finally:
            await app.state.orchestrator.aclose()
            log.info("[API] Seeder session closed")

    application = FastAPI(
        title="API Data Seeder",
        description="Synthetic customer and account data seeded through the downstream APIs",
        version=__version__,
        lifespan=lifespan,
    )
    application.include_router(router)
    application.add_exception_handler(SeederError, seeder_error_handler)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8082)

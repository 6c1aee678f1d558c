"""
Domain models for the API data seeder.

Requests are what the seeder sends to the downstream services, records are what
the services send back once a create succeeded. Wire names follow the
downstream services' camelCase JSON; Python attributes stay snake_case.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer
from pydantic.alias_generators import to_camel


class AccountType(str, Enum):
    SAVINGS = "SAVINGS"
    CURRENT = "CURRENT"
    FIXED_DEPOSIT = "FIXED_DEPOSIT"
    SALARY = "SALARY"
    BUSINESS = "BUSINESS"


BALANCE_RANGES: Dict[str, Tuple[float, float]] = {
    AccountType.SAVINGS.value: (100.0, 75_000.0),
    AccountType.CURRENT.value: (1_000.0, 150_000.0),
    AccountType.FIXED_DEPOSIT.value: (10_000.0, 1_000_000.0),
    AccountType.SALARY.value: (500.0, 50_000.0),
    AccountType.BUSINESS.value: (5_000.0, 500_000.0),
}
DEFAULT_BALANCE_RANGE: Tuple[float, float] = (100.0, 10_000.0)


def balance_range(account_type: str) -> Tuple[float, float]:
    """Inclusive [min, max] balance range for an account type."""
    return BALANCE_RANGES.get(account_type, DEFAULT_BALANCE_RANGE)


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready payload using the downstream services' field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CustomerRequest(_WireModel):
    name: str
    email: str
    phone: str


class AccountRequest(_WireModel):
    account_number: str
    account_type: str
    balance: Decimal
    customer_id: int

    @field_serializer("balance", when_used="json")
    def _balance_as_number(self, value: Decimal) -> float:
        return float(value)


class CustomerRecord(_WireModel):
    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None


class AccountRecord(_WireModel):
    id: int
    account_number: Optional[str] = None
    account_type: Optional[str] = None
    balance: Optional[Decimal] = None
    customer_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @field_serializer("balance", when_used="json")
    def _balance_as_number(self, value: Optional[Decimal]) -> Optional[float]:
        return float(value) if value is not None else None


GenerationRequest = Union[CustomerRequest, AccountRequest]
GenerationResult = Union[CustomerRecord, AccountRecord]


@dataclass(frozen=True)
class FailedItem:
    request: GenerationRequest
    error: Exception


@dataclass
class BatchOutcome:
    """
    Result of driving a request sequence through the pipeline.

    `succeeded` and `failed` are in completion order, not input order.
    """

    requested: int = 0
    succeeded: List[GenerationResult] = field(default_factory=list)
    failed: List[FailedItem] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


class FailureRecord(BaseModel):
    """Serializable view of a failed item."""

    model_config = ConfigDict(frozen=True)

    entity: str
    kind: str
    message: str
    status_code: Optional[int] = None
    request: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_failed_item(cls, entity: str, item: FailedItem) -> "FailureRecord":
        error = item.error
        return cls(
            entity=entity,
            kind=getattr(error, "kind", "unexpected"),
            message=str(error) or type(error).__name__,
            status_code=getattr(error, "status_code", None),
            request=item.request.to_wire(),
        )


class DatasetSummary(BaseModel):
    """Aggregate counts and timings for one generation call."""

    model_config = ConfigDict(frozen=True)

    customers_requested: int = 0
    customers_created: int = 0
    customers_processed: int = 0
    accounts_requested: int = 0
    accounts_created: int = 0
    failed: int = 0
    elapsed_seconds: float = 0.0
    peak_rss_bytes: Optional[int] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_records(self) -> int:
        return self.customers_created + self.accounts_created

    @computed_field  # type: ignore[prop-decorator]
    @property
    def records_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return round(self.total_records / self.elapsed_seconds, 2)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def average_accounts_per_customer(self) -> float:
        if not self.customers_processed:
            return 0.0
        return round(self.accounts_created / self.customers_processed, 2)


class GenerationReport(BaseModel):
    """What every generation operation hands back to its caller."""

    model_config = ConfigDict(frozen=True)

    summary: DatasetSummary
    customers: List[CustomerRecord] = Field(default_factory=list)
    accounts: List[AccountRecord] = Field(default_factory=list)
    failures: List[FailureRecord] = Field(default_factory=list)
    message: Optional[str] = None
    cancelled: bool = False


__all__ = [
    "AccountType",
    "BALANCE_RANGES",
    "DEFAULT_BALANCE_RANGE",
    "balance_range",
    "CustomerRequest",
    "AccountRequest",
    "CustomerRecord",
    "AccountRecord",
    "GenerationRequest",
    "GenerationResult",
    "FailedItem",
    "BatchOutcome",
    "FailureRecord",
    "DatasetSummary",
    "GenerationReport",
]

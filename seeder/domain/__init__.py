"""
Domain package for the API data seeder.

Exports the request/record models, aggregate result types and the error
taxonomy shared by the generation, pipeline and orchestration layers.
"""

from seeder.domain.errors import (
    DownstreamConnectionError,
    DownstreamError,
    DownstreamRejected,
    DownstreamTimeout,
    DownstreamUnavailable,
    GenerationAborted,
    SeederError,
    ValidationError,
)
from seeder.domain.models import (
    AccountRecord,
    AccountRequest,
    AccountType,
    BatchOutcome,
    CustomerRecord,
    CustomerRequest,
    DatasetSummary,
    FailedItem,
    FailureRecord,
    GenerationReport,
)

__all__ = [
    "AccountRecord",
    "AccountRequest",
    "AccountType",
    "BatchOutcome",
    "CustomerRecord",
    "CustomerRequest",
    "DatasetSummary",
    "FailedItem",
    "FailureRecord",
    "GenerationReport",
    "DownstreamConnectionError",
    "DownstreamError",
    "DownstreamRejected",
    "DownstreamTimeout",
    "DownstreamUnavailable",
    "GenerationAborted",
    "SeederError",
    "ValidationError",
]

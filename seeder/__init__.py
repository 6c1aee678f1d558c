"""
API Data Seeder - synthetic customer and account data seeded through REST APIs.

The seeder never writes to a database. It drives two downstream CRUD services
(customer, account) over HTTP and provides:

- Faker-based record generation with per-session uniqueness of emails and
  account numbers
- Bounded-concurrency batch pipelines with inter-batch pacing
- Timeouts, retries with exponential backoff and circuit breakers per service
- CSV exports (customers, accounts, joined JMeter test data) and live statistics
- A Typer CLI and a FastAPI front-end
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from seeder.config import Settings, get_settings
from seeder.domain.errors import GenerationAborted, SeederError, ValidationError
from seeder.domain.models import DatasetSummary, GenerationReport
from seeder.orchestrator import DatasetOrchestrator, RunPhase
from seeder.utils.logging import configure_logging, get_logger
from seeder.utils.profiler import ProfileStats, profile_block

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Orchestration
    "DatasetOrchestrator",
    "RunPhase",
    "DatasetSummary",
    "GenerationReport",
    # Errors
    "SeederError",
    "ValidationError",
    "GenerationAborted",
    # Logging
    "configure_logging",
    "get_logger",
    # Profiling
    "ProfileStats",
    "profile_block",
]

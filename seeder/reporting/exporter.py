"""
CSV and statistics views over the downstream services' current state.

The exporter always re-reads full collections through the clients; it never
relies on what the current process generated. The joined view indexes
customers by id in memory for the duration of one export.
"""

from __future__ import annotations

import asyncio
import csv
import io
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from seeder.domain.models import AccountRecord, CustomerRecord
from seeder.generation.factory import quantize_balance
from seeder.generation.registry import UniquenessRegistry
from seeder.infrastructure.http_client import ResilientDownstreamClient
from seeder.utils.logging import get_logger

log = get_logger(__name__)

CUSTOMER_HEADER = ["id", "name", "email", "phone"]
ACCOUNT_HEADER = ["id", "accountNumber", "accountType", "balance", "customerId"]
JOINED_HEADER = [
    "customerId",
    "customerName",
    "customerEmail",
    "customerPhone",
    "accountId",
    "accountNumber",
    "accountType",
    "balance",
]

CUSTOMERS_FILE = "customers.csv"
ACCOUNTS_FILE = "accounts.csv"
JOINED_FILE = "jmeter_testdata.csv"


def _money(value: Optional[Decimal]) -> str:
    return f"{quantize_balance(value):.2f}" if value is not None else ""


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def render_csv(header: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """
    Render rows as CSV text.

    Fields containing a comma, a quote or a line break are quoted and inner
    quotes doubled (csv.QUOTE_MINIMAL); `None` renders as an empty field.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow([_text(value) for value in row])
    return buffer.getvalue()


class ReportingExporter:
    def __init__(
        self,
        customers: ResilientDownstreamClient[CustomerRecord],
        accounts: ResilientDownstreamClient[AccountRecord],
        emails: Optional[UniquenessRegistry] = None,
        account_numbers: Optional[UniquenessRegistry] = None,
    ) -> None:
        self.customers = customers
        self.accounts = accounts
        self.emails = emails
        self.account_numbers = account_numbers

    async def customers_csv(self) -> str:
        records = await self._collect(self.customers)
        log.info("Exported customers CSV", extra={"rows": len(records)})
        return render_csv(CUSTOMER_HEADER, (_customer_row(c) for c in records))

    async def accounts_csv(self) -> str:
        records = await self._collect(self.accounts)
        log.info("Exported accounts CSV", extra={"rows": len(records)})
        return render_csv(ACCOUNT_HEADER, (_account_row(a) for a in records))

    async def joined_csv(self) -> str:
        """Accounts joined to their owning customer; accounts without one are skipped."""
        customers, accounts = await asyncio.gather(
            self._collect(self.customers),
            self._collect(self.accounts),
        )
        by_id: Dict[int, CustomerRecord] = {c.id: c for c in customers}
        rows = []
        orphans = 0
        for account in accounts:
            customer = by_id.get(account.customer_id) if account.customer_id is not None else None
            if customer is None:
                orphans += 1
                continue
            rows.append(
                [
                    customer.id,
                    customer.name,
                    customer.email,
                    customer.phone,
                    account.id,
                    account.account_number,
                    account.account_type,
                    _money(account.balance),
                ]
            )
        log.info("Exported joined CSV", extra={"rows": len(rows), "orphans": orphans})
        return render_csv(JOINED_HEADER, rows)

    async def write_all(self, directory: Path | str) -> Dict[str, Path]:
        """Write the three CSV views into `directory`; return the written paths."""
        target = Path(directory)
        target.mkdir(parents=True, exist_ok=True)
        contents = {
            CUSTOMERS_FILE: await self.customers_csv(),
            ACCOUNTS_FILE: await self.accounts_csv(),
            JOINED_FILE: await self.joined_csv(),
        }
        written: Dict[str, Path] = {}
        for filename, text in contents.items():
            path = target / filename
            with path.open("w", encoding="utf-8", newline="") as f:
                f.write(text)
            written[filename] = path
        log.info("CSV exports persisted", extra={"directory": str(target)})
        return written

    async def statistics(self) -> Dict[str, Any]:
        total_customers, total_accounts = await asyncio.gather(
            self.customers.count(),
            self.accounts.count(),
        )
        return {
            "total_customers": total_customers,
            "total_accounts": total_accounts,
            "unique_emails": len(self.emails) if self.emails is not None else 0,
            "unique_account_numbers": (
                len(self.account_numbers) if self.account_numbers is not None else 0
            ),
            "email_fallbacks": self.emails.fallbacks if self.emails is not None else 0,
            "account_number_fallbacks": (
                self.account_numbers.fallbacks if self.account_numbers is not None else 0
            ),
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    async def _collect(client: ResilientDownstreamClient) -> List[Any]:
        return [record async for record in client.list_all()]


def _customer_row(customer: CustomerRecord) -> List[Any]:
    return [customer.id, customer.name, customer.email, customer.phone]


def _account_row(account: AccountRecord) -> List[Any]:
    return [
        account.id,
        account.account_number,
        account.account_type,
        _money(account.balance),
        account.customer_id,
    ]


__all__ = [
    "ReportingExporter",
    "render_csv",
    "CUSTOMER_HEADER",
    "ACCOUNT_HEADER",
    "JOINED_HEADER",
    "CUSTOMERS_FILE",
    "ACCOUNTS_FILE",
    "JOINED_FILE",
]

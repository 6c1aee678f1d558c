"""
Synthetic record factory.

Produces one customer or account request at a time from Faker and `random`
distributions. Unique keys (emails, account numbers) are claimed through the
injected registries; after a bounded number of collisions the factory falls
back to a synthesized key that is unique by construction.

Output is intentionally non-reproducible: there is no seed control. Tests and
callers that need fixed values inject their own Faker instance.
"""

from __future__ import annotations

import random
import time
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional, Union

from faker import Faker

from seeder.domain.models import AccountRequest, AccountType, CustomerRequest, balance_range
from seeder.generation.registry import UniquenessRegistry
from seeder.utils.logging import get_logger

log = get_logger(__name__)

MAX_KEY_ATTEMPTS = 10
ACCOUNT_NUMBER_PREFIX = "ACC"
ACCOUNT_NUMBER_DIGITS = 10
PHONE_FORMATS = (
    "+1-{}-{}-{}",
    "+91-{}-{}-{}",
    "+44-{}-{}-{}",
    "{}-{}-{}",
)
_CENTS = Decimal("0.01")


def quantize_balance(value: Union[float, Decimal]) -> Decimal:
    """Round to 2 fractional digits, half-up."""
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


class SyntheticRecordFactory:
    def __init__(
        self,
        emails: UniquenessRegistry,
        account_numbers: UniquenessRegistry,
        faker: Optional[Faker] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.emails = emails
        self.account_numbers = account_numbers
        self._faker = faker or Faker()
        self._rng = rng or random.Random()

    def next_customer(self) -> CustomerRequest:
        email = self._claim(
            self.emails,
            lambda: self._faker.email().lower(),
            lambda: f"{uuid.uuid4()}@{self._faker.domain_name()}",
        )
        return CustomerRequest(
            name=self._faker.name(),
            email=email,
            phone=self._phone_number(),
        )

    def next_account(self, customer_id: int) -> AccountRequest:
        account_number = self._claim(
            self.account_numbers,
            lambda: ACCOUNT_NUMBER_PREFIX + self._faker.numerify("#" * ACCOUNT_NUMBER_DIGITS),
            lambda: f"{ACCOUNT_NUMBER_PREFIX}{int(time.time() * 1000)}{self._faker.numerify('###')}",
        )
        account_type = self._rng.choice(list(AccountType)).value
        return AccountRequest(
            account_number=account_number,
            account_type=account_type,
            balance=self.balance_for(account_type),
            customer_id=customer_id,
        )

    def balance_for(self, account_type: str) -> Decimal:
        low, high = balance_range(account_type)
        return quantize_balance(self._rng.uniform(low, high))

    def _phone_number(self) -> str:
        fmt = self._rng.choice(PHONE_FORMATS)
        return fmt.format(
            self._rng.randint(100, 999),
            self._rng.randint(100, 999),
            self._rng.randint(1000, 9999),
        )

    def _claim(
        self,
        registry: UniquenessRegistry,
        candidate: Callable[[], str],
        fallback: Callable[[], str],
    ) -> str:
        for _ in range(MAX_KEY_ATTEMPTS):
            key = candidate()
            if registry.reserve(key):
                return key

        key = fallback()
        registry.force(key)
        log.warning(
            f"[UNIQUENESS] {registry.name}: {MAX_KEY_ATTEMPTS} collisions, using fallback key",
            extra={"registry": registry.name, "fallbacks": registry.fallbacks},
        )
        return key


__all__ = ["SyntheticRecordFactory", "quantize_balance", "MAX_KEY_ATTEMPTS", "PHONE_FORMATS"]

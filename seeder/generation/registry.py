"""
In-memory uniqueness registry for generated keys (emails, account numbers).

The registry is advisory: reserving a key here does not guarantee the
downstream service has not already persisted it, since the reservation and the
downstream write are not a single transaction.
"""

from __future__ import annotations

import threading
from typing import Set


class UniquenessRegistry:
    """
    Thread-safe set of claimed keys with an atomic check-and-insert.

    One lock per registry; `fallbacks` counts how many times a generator gave
    up on random candidates and used a synthesized key instead.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._keys: Set[str] = set()
        self._fallbacks = 0
        self._lock = threading.Lock()

    def reserve(self, key: str) -> bool:
        """Claim `key`; return False if it was already claimed."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def force(self, key: str) -> None:
        """Record a fallback key without checking for collisions."""
        with self._lock:
            self._keys.add(key)
            self._fallbacks += 1

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()
            self._fallbacks = 0

    @property
    def fallbacks(self) -> int:
        return self._fallbacks

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __repr__(self) -> str:
        return f"UniquenessRegistry(name={self.name!r}, size={len(self)})"


__all__ = ["UniquenessRegistry"]

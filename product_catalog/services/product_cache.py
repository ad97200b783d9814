"""In-memory read cache for the product collection.

The cache moves between three states:

    ABSENT --fill--> VALID(until) --deadline passes on get--> STALE
       ^                 |                                      |
       +---invalidate----+------------------fill----------------+

A fill always starts a new freshness window. Callers get copies of the
cached products, never the cached objects themselves.
"""

import copy
import time
from enum import Enum
from typing import Callable, List, Optional

from ..models.product import Product


class CacheState(str, Enum):
    ABSENT = "absent"
    VALID = "valid"
    STALE = "stale"


class ProductCache:
    """Holds the last loaded or written collection for a fixed lifetime."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._products: Optional[List[Product]] = None
        self._valid_until = 0.0
        self._state = CacheState.ABSENT

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def valid_until(self) -> Optional[float]:
        return self._valid_until if self._state == CacheState.VALID else None

    def get(self) -> Optional[List[Product]]:
        """Return a copy of the cached collection, or None if not fresh."""
        if self._state != CacheState.VALID:
            return None

        if self._clock() >= self._valid_until:
            self._state = CacheState.STALE
            self._products = None
            return None

        return copy.deepcopy(self._products)

    def fill(self, products: List[Product]) -> None:
        """Store a copy of ``products`` and start a new freshness window."""
        self._products = copy.deepcopy(products)
        self._valid_until = self._clock() + self.ttl_seconds
        self._state = CacheState.VALID

    def invalidate(self) -> None:
        """Drop the cached collection."""
        self._products = None
        self._valid_until = 0.0
        self._state = CacheState.ABSENT

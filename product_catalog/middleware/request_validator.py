"""Request guards for the product routes."""

import re
import threading
import time
from typing import Dict, Optional, Tuple

from ..utils.exceptions import ValidationError

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE
)


def validate_product_id(product_id: Optional[str], param_name: str = "id") -> str:
    """
    Check that a route parameter is a UUID.

    Args:
        product_id: Raw parameter value
        param_name: Parameter name used in the error message

    Returns:
        The validated id

    Raises:
        ValidationError: If the value is missing or not a UUID
    """
    if not product_id or not UUID_PATTERN.match(product_id):
        raise ValidationError(
            f"Parameter '{param_name}' must be a valid UUID",
            details={"param": param_name, "value": product_id}
        )
    return product_id


class RateLimiter:
    """Fixed-window request counter keyed by client."""

    def __init__(self, limit: int, window_seconds: float):
        self.limit = limit
        self.window_seconds = window_seconds
        self._hits: Dict[str, Tuple[int, float]] = {}
        self._next_sweep = 0.0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def hit(self, key: str, now: Optional[float] = None) -> bool:
        """
        Record a request for ``key``.

        Returns:
            True if the request is within the limit
        """
        now = time.time() if now is None else now
        with self._lock:
            if now >= self._next_sweep:
                self._prune(now)

            count, reset = self._hits.get(key, (0, now + self.window_seconds))
            if now > reset:
                count = 0
                reset = now + self.window_seconds
            count += 1
            self._hits[key] = (count, reset)
            return count <= self.limit

    def _prune(self, now: float) -> None:
        # Caller holds the lock. Sweeps at most once per window.
        expired = [key for key, (_, reset) in self._hits.items() if now > reset]
        for key in expired:
            del self._hits[key]
        self._next_sweep = now + self.window_seconds

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._next_sweep = 0.0

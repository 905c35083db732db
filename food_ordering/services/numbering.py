"""
Order Number Allocation

Order numbers look like ``ORD17607812345670001042`` :

    ORD            configured alphanumeric prefix
    1760781234567  UTC epoch milliseconds (13 digits)
    0001           process-local monotonic sequence (4 digits, wraps)
    042            random disambiguator (3 digits, zero padded)

The sequence makes numbers unique inside one process even within a single
millisecond; the random part keeps cross-process collisions unlikely, and
the unique constraint on ``orders.order_number`` rejects the rest.
"""

import itertools
import random
import threading
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Optional

from food_ordering.core.config import get_settings

SEQUENCE_MODULUS = 10_000
RANDOM_MODULUS = 1_000


class OrderNumberAllocator:
    """Thread-safe generator of order numbers."""

    def __init__(
        self,
        prefix: str = "ORD",
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.prefix = prefix
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng or random.SystemRandom()
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def allocate(self) -> str:
        """Return a fresh order number."""
        millis = int(self._clock().timestamp() * 1000)
        with self._lock:
            seq = next(self._sequence) % SEQUENCE_MODULUS
        suffix = self._rng.randrange(RANDOM_MODULUS)
        return f"{self.prefix}{millis:013d}{seq:04d}{suffix:03d}"


@lru_cache()
def get_order_number_allocator() -> OrderNumberAllocator:
    """Process-wide allocator, so the sequence is shared by every request."""
    return OrderNumberAllocator(prefix=get_settings().order_number_prefix)

"""A cache with fixed behaviour, used to measure the overhead of the serving path."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

_AVERAGE_OBJECT_SIZE = 33000


@dataclass
class StaticCache:
    """Answers lookups from the key alone: every fourth key misses, others hit."""

    def lookup(self, key: int) -> int:
        """Return the size served for ``key``, or 0 on a miss."""
        if key % 4 == 0:
            return 0
        return _AVERAGE_OBJECT_SIZE

    def admit(self, key: int, size: int, extra_features: Sequence[int] = ()) -> None:
        """Admission has no effect: the outcome of a lookup depends only on the key."""
# -*- coding: utf-8 -*-
"""Deferred force queue drained once per tick."""

# Import dataclass for structured records.
from dataclasses import dataclass

# Import typing primitives.
from typing import List, Tuple

# Import numpy for packed arrays.
import numpy as np


@dataclass(frozen=True)
class ForceRequest:
    """Vertical acceleration queued for one cell."""

    index: int
    acceleration: float


class ForceQueue:
    """Single-producer/single-consumer queue of force requests.

    Requests accumulate until the next tick drains them; several requests on
    the same cell are all applied.
    """

    def __init__(self) -> None:
        self._items: List[ForceRequest] = []

    def __len__(self) -> int:
        return len(self._items)

    def push(self, index: int, acceleration: float) -> None:
        self._items.append(ForceRequest(index=int(index), acceleration=float(acceleration)))

    def pending(self) -> List[ForceRequest]:
        """Return a copy of the queued requests (for restart/diagnostics)."""
        return list(self._items)

    def drain(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (indices, accelerations) and clear the queue."""
        items = self._items
        self._items = []
        if not items:
            return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.float64)
        idx = np.fromiter((f.index for f in items), dtype=np.int64, count=len(items))
        acc = np.fromiter((f.acceleration for f in items), dtype=np.float64, count=len(items))
        return idx, acc

    def clear(self) -> None:
        self._items = []

# -*- coding: utf-8 -*-
"""Height-field state: per-cell height and vertical speed plus neighbor links."""

from __future__ import annotations

# Import dataclass for a simple structured object.
from dataclasses import dataclass, field

# Import typing primitives.
from typing import Any

# Import numpy for arrays.
import numpy as np

# Import local topology helpers.
from .topology import Neighbors, Topology, TopologyError, check_neighbors


@dataclass
class HeightFieldState:
    """Structure-of-arrays simulation state.

    Attributes
    ----------
    height : np.ndarray (float64)
        Liquid height of each cell.
    speed : np.ndarray (float64)
        Vertical speed of each cell (unclamped).
    neighbors : Neighbors
        Immutable neighbor table from the topology builder.

    The arrays are validated once here; the execution backends never
    re-check them per tick.
    """

    height: Any
    speed: Any
    neighbors: Neighbors
    released: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        height = np.asarray(self.height)
        speed = np.asarray(self.speed)
        if height.ndim != 1 or speed.ndim != 1:
            raise TopologyError("height and speed must be one-dimensional arrays.")
        n = int(height.size)
        if n == 0:
            raise TopologyError("Height-field state needs at least one cell.")
        if speed.size != n:
            raise TopologyError(f"speed has {speed.size} cells but height has {n}.")
        check_neighbors(self.neighbors, n)
        self.height = height.astype(np.float64, copy=False)
        self.speed = speed.astype(np.float64, copy=False)

    @classmethod
    def allocate(cls, topology: Topology, initial_height: float = 0.0) -> "HeightFieldState":
        """Allocate zero-speed state sized to the topology."""
        n = int(topology.cell_count)
        return cls(
            height=np.full(n, float(initial_height), dtype=np.float64),
            speed=np.zeros(n, dtype=np.float64),
            neighbors=topology.neighbors.copy(),
        )

    @property
    def cell_count(self) -> int:
        return int(self.height.size)

    def volume(self) -> float:
        """Return the sum of all cell heights."""
        return float(self.height.sum())

    def to_array_module(self, xp: Any) -> None:
        """Move height/speed/neighbor arrays to another array module in place."""
        self.height = xp.asarray(self.height)
        self.speed = xp.asarray(self.speed)
        self.neighbors = Neighbors(
            prev_x=xp.asarray(self.neighbors.prev_x),
            next_x=xp.asarray(self.neighbors.next_x),
            prev_z=xp.asarray(self.neighbors.prev_z),
            next_z=xp.asarray(self.neighbors.next_z),
        )

    def release(self) -> None:
        """Drop every array at once; the state is unusable afterwards."""
        empty_f = np.zeros(0, dtype=np.float64)
        empty_i = np.zeros(0, dtype=np.int64)
        self.height = empty_f
        self.speed = empty_f.copy()
        self.neighbors = Neighbors(prev_x=empty_i, next_x=empty_i.copy(), prev_z=empty_i.copy(), next_z=empty_i.copy())
        self.released = True

# -*- coding: utf-8 -*-
"""Topology builder: irregular column grid -> flat cells with neighbor links.

Cells are plain integer indices. Columns (strips) run along X; inside a column
cells are contiguous along Z in a dense "local Z" index space shared by all
columns. Only the cells inside each column's boundary exist, and they are
numbered column after column.

Every cell stores four neighbor indices (prev/next along X and Z). A missing
geometric neighbor resolves to the cell itself, which gives a zero-gradient
(reflective) edge instead of wrap-around or an invalid reference.
"""

from __future__ import annotations

# Import dataclass for structured topology objects.
from dataclasses import dataclass

# Import typing primitives.
from typing import List, Optional, Sequence, Tuple

# Import stdlib helpers.
import logging
import math

# Import numpy for index arrays.
import numpy as np

# Import local surface limits.
from .surface import SurfaceLimit

logger = logging.getLogger("surfsim")


class TopologyError(ValueError):
    """Malformed topology or state arrays (fatal precondition violation)."""


@dataclass(frozen=True)
class StripData:
    """Placement of one column inside the dense local Z space.

    Attributes
    ----------
    local_offset : int
        First local Z index that exists in this column.
    global_offset : int
        Flat index of the first cell of this column.
    count : int
        Number of cells in this column.
    """

    local_offset: int
    global_offset: int
    count: int


@dataclass
class Neighbors:
    """Structure-of-arrays neighbor table (int64 cell indices)."""

    prev_x: np.ndarray
    next_x: np.ndarray
    prev_z: np.ndarray
    next_z: np.ndarray

    def __len__(self) -> int:
        return int(self.prev_x.size)

    def as_table(self) -> np.ndarray:
        """Return an (N, 4) table ordered prev_x, next_x, prev_z, next_z."""
        return np.column_stack([self.prev_x, self.next_x, self.prev_z, self.next_z])

    def copy(self) -> "Neighbors":
        return Neighbors(
            prev_x=self.prev_x.copy(),
            next_x=self.next_x.copy(),
            prev_z=self.prev_z.copy(),
            next_z=self.next_z.copy(),
        )


@dataclass
class Topology:
    """Result of the topology builder.

    The strip table is kept after construction because world-position
    lookups and dense output scattering both need it.
    """

    strips: List[StripData]
    neighbors: Neighbors
    cell_count: int
    max_column_depth: int
    grid_resolution: float
    origin_x: float
    origin_z: float

    @property
    def column_count(self) -> int:
        return len(self.strips)

    def get_cell_index(self, x: int, z: int, default: int = -1) -> int:
        """Map a ``(column, local Z)`` pair to a cell index.

        Returns ``default`` when the column is out of range or the local Z
        index lies outside that column.
        """
        if x < 0 or x >= len(self.strips):
            return default
        strip = self.strips[x]
        if z < strip.local_offset or z >= strip.local_offset + strip.count:
            return default
        return strip.global_offset + z - strip.local_offset

    def cell_index_from_position(self, world_x: float, world_z: float) -> Optional[int]:
        """Return the cell nearest to a world position, or None outside the surface."""
        res = self.grid_resolution
        half = res / 2.0
        x = int(math.floor((float(world_x) - self.origin_x + half) / res))
        z = int(math.floor((float(world_z) - self.origin_z + half) / res))
        index = self.get_cell_index(x, z)
        return index if index >= 0 else None

    def _dense_z_start(self) -> int:
        return min([0] + [s.local_offset for s in self.strips if s.count > 0])

    def to_dense(self, values: np.ndarray, fill_value: float = np.nan) -> np.ndarray:
        """Scatter per-cell values into a (columns, depth) grid."""
        values = np.asarray(values)
        if values.shape[0] != self.cell_count:
            raise ValueError(f"Expected {self.cell_count} values, got {values.shape[0]}")
        z0 = self._dense_z_start()
        grid = np.full((self.column_count, self.max_column_depth - z0), fill_value, dtype=np.float64)
        for x, strip in enumerate(self.strips):
            if strip.count <= 0:
                continue
            lo = strip.local_offset - z0
            grid[x, lo : lo + strip.count] = values[strip.global_offset : strip.global_offset + strip.count]
        return grid

    def dense_coordinates(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return world X of each column and world Z of each dense row."""
        res = self.grid_resolution
        z0 = self._dense_z_start()
        x_vals = self.origin_x + np.arange(self.column_count, dtype=np.float64) * res
        z_vals = self.origin_z + np.arange(z0, self.max_column_depth, dtype=np.float64) * res
        return x_vals, z_vals


def _lookup_column(
    strips: Sequence[StripData],
    x: int,
    z: np.ndarray,
    default: np.ndarray,
) -> np.ndarray:
    """Vectorized get_cell_index for a whole column of local Z indices."""
    if x < 0 or x >= len(strips):
        return default.copy()
    strip = strips[x]
    inside = (z >= strip.local_offset) & (z < strip.local_offset + strip.count)
    return np.where(inside, strip.global_offset + z - strip.local_offset, default).astype(np.int64)


def _effective_extent(limits: Sequence[SurfaceLimit], i: int) -> Tuple[float, float]:
    """Widen column ``i`` to the union with its immediate neighbors."""
    back = float(limits[i].back)
    front = float(limits[i].front)
    if i > 0:
        back = min(back, float(limits[i - 1].back))
        front = max(front, float(limits[i - 1].front))
    if i < len(limits) - 1:
        back = min(back, float(limits[i + 1].back))
        front = max(front, float(limits[i + 1].front))
    return back, front


def build_strips(
    limits: Sequence[SurfaceLimit],
    grid_resolution: float,
    reference_z: float,
    origin_z: float,
) -> Tuple[List[StripData], int, int]:
    """Compute per-column strip data, total cell count and max column depth."""
    res = float(grid_resolution)
    half = res / 2.0
    reference_ofs = math.ceil((reference_z - origin_z - half) / res)

    strips: List[StripData] = []
    cell_count = 0
    max_depth = 0
    for i in range(len(limits)):
        back, front = _effective_extent(limits, i)
        nb_back = math.ceil((reference_z - back - half) / res)
        nb_front = math.ceil((front - reference_z - half) / res)
        # Inverted limits shrink the column; it never goes below zero cells.
        count = max(0, nb_back + nb_front + 2)
        strip = StripData(local_offset=reference_ofs - nb_back, global_offset=cell_count, count=count)
        strips.append(strip)
        cell_count += count
        max_depth = max(max_depth, strip.local_offset + strip.count)
    return strips, cell_count, max_depth


def build_neighbors(strips: Sequence[StripData], cell_count: int, reconcile: bool = True) -> Neighbors:
    """Build the neighbor table over all existing cells.

    The first pass resolves all four directions. The optional reconcile pass
    re-derives ``prev_z`` for cells whose link is neither self-referencing
    nor equal to ``next_z`` and recomputes the other three links.
    """
    prev_x = np.zeros(cell_count, dtype=np.int64)
    next_x = np.zeros(cell_count, dtype=np.int64)
    prev_z = np.zeros(cell_count, dtype=np.int64)
    next_z = np.zeros(cell_count, dtype=np.int64)

    for x, strip in enumerate(strips):
        if strip.count <= 0:
            continue
        z = strip.local_offset + np.arange(strip.count, dtype=np.int64)
        idx = strip.global_offset + np.arange(strip.count, dtype=np.int64)
        sl = slice(strip.global_offset, strip.global_offset + strip.count)
        prev_z[sl] = _lookup_column(strips, x, z - 1, idx)
        next_z[sl] = _lookup_column(strips, x, z + 1, idx)
        prev_x[sl] = _lookup_column(strips, x - 1, z, idx)
        next_x[sl] = _lookup_column(strips, x + 1, z, idx)

    if reconcile:
        for x, strip in enumerate(strips):
            if strip.count <= 0:
                continue
            z = strip.local_offset + np.arange(strip.count, dtype=np.int64)
            idx = strip.global_offset + np.arange(strip.count, dtype=np.int64)
            sl = slice(strip.global_offset, strip.global_offset + strip.count)
            suspicious = (prev_z[sl] != idx) & (prev_z[sl] != next_z[sl])
            if np.any(suspicious):
                redo = _lookup_column(strips, x, z - 1, idx)
                prev_z[sl] = np.where(suspicious, redo, prev_z[sl])
            next_z[sl] = _lookup_column(strips, x, z + 1, idx)
            prev_x[sl] = _lookup_column(strips, x - 1, z, idx)
            next_x[sl] = _lookup_column(strips, x + 1, z, idx)

    return Neighbors(prev_x=prev_x, next_x=next_x, prev_z=prev_z, next_z=next_z)


def build_topology(
    limits: Sequence[SurfaceLimit],
    grid_resolution: float,
    reference_z: float,
    origin_x: float = 0.0,
    origin_z: Optional[float] = None,
    reconcile: bool = True,
) -> Topology:
    """Convert column boundary limits into a flat cell topology.

    Parameters
    ----------
    limits : sequence of SurfaceLimit
        One ``(back, front)`` pair per column. ``front >= back`` is the
        caller's responsibility; it is not validated.
    grid_resolution : float
        Cell spacing in world units.
    reference_z : float
        World Z of the reference row (the surface origin).
    origin_x, origin_z : float
        World position of local index ``(0, 0)``. ``origin_z`` defaults to
        the smallest back limit (the bounding-box minimum).
    reconcile : bool
        Run the second neighbor pass.
    """
    if grid_resolution <= 0.0:
        raise ValueError("grid_resolution must be positive.")
    if len(limits) == 0:
        raise TopologyError("At least one column is required to build a topology.")
    if origin_z is None:
        origin_z = min(float(lim.back) for lim in limits)

    strips, cell_count, max_depth = build_strips(limits, grid_resolution, reference_z, float(origin_z))
    neighbors = build_neighbors(strips, cell_count, reconcile=reconcile)
    logger.debug(
        "Topology built: columns=%d cells=%d max_column_depth=%d",
        len(strips),
        cell_count,
        max_depth,
    )
    return Topology(
        strips=strips,
        neighbors=neighbors,
        cell_count=cell_count,
        max_column_depth=max_depth,
        grid_resolution=float(grid_resolution),
        origin_x=float(origin_x),
        origin_z=float(origin_z),
    )


def check_neighbors(neighbors: Neighbors, cell_count: int) -> None:
    """Raise TopologyError if any link is missing or points outside [0, cell_count)."""
    for name in ("prev_x", "next_x", "prev_z", "next_z"):
        arr = np.asarray(getattr(neighbors, name))
        if arr.shape != (cell_count,):
            raise TopologyError(f"Neighbor array '{name}' has shape {arr.shape}, expected ({cell_count},)")
        if cell_count and (int(arr.min()) < 0 or int(arr.max()) >= cell_count):
            bad = int(np.count_nonzero((arr < 0) | (arr >= cell_count)))
            raise TopologyError(f"Neighbor array '{name}' has {bad} index(es) outside [0, {cell_count})")

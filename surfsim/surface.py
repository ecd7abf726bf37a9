# -*- coding: utf-8 -*-
"""Column boundary limits that describe the liquid surface outline.

The simulation grid is laid out as columns along X. Each column spans a
world-space Z interval ``[back, front]``; cells outside that interval do not
exist. Detecting those limits (raycasts, level geometry) belongs to the host,
so this module only offers a few factories plus a normalizer for explicit
limit lists coming from configuration.
"""

from __future__ import annotations

# Import dataclass for the limit record.
from dataclasses import dataclass

# Import typing primitives.
from typing import Any, Dict, List, Sequence

# Import stdlib helpers.
import math


@dataclass(frozen=True)
class SurfaceLimit:
    """World-space Z extent of one column."""

    back: float
    front: float


def rectangle_limits(columns: int, rows: int, grid_resolution: float, reference_z: float = 0.0) -> List[SurfaceLimit]:
    """Return limits producing a ``columns x rows`` rectangular grid.

    The limits are placed half a cell away from the rounding thresholds of
    the topology builder so the row count does not depend on float rounding.
    Widening against neighbors is a no-op here since every column is equal.
    """
    if columns < 1 or rows < 1:
        raise ValueError("Rectangle surface needs at least one column and one row.")
    res = float(grid_resolution)
    back = float(reference_z)
    front = float(reference_z) + (rows - 2) * res
    return [SurfaceLimit(back=back, front=front) for _ in range(int(columns))]


def ellipse_limits(columns: int, rows: int, grid_resolution: float, reference_z: float = 0.0) -> List[SurfaceLimit]:
    """Return limits for an elliptical pond inscribed in ``columns x rows`` cells.

    The reference row sits at the center of the ellipse, so columns near the
    X edges are short and the middle columns are ``rows`` deep.
    """
    if columns < 1 or rows < 1:
        raise ValueError("Ellipse surface needs at least one column and one row.")
    res = float(grid_resolution)
    half_width = max(1.0, (columns - 1) / 2.0)
    half_depth = (rows - 1) * res / 2.0
    limits: List[SurfaceLimit] = []
    for i in range(int(columns)):
        u = (i - (columns - 1) / 2.0) / half_width
        extent = half_depth * math.sqrt(max(0.0, 1.0 - u * u))
        limits.append(SurfaceLimit(back=float(reference_z) - extent, front=float(reference_z) + extent))
    return limits


def limits_from_pairs(pairs: Sequence[Sequence[float]]) -> List[SurfaceLimit]:
    """Convert ``[[back, front], ...]`` pairs into limits.

    ``front < back`` is passed through untouched; such a column simply ends
    up with fewer cells.
    """
    out: List[SurfaceLimit] = []
    for pair in pairs:
        if len(pair) != 2:
            raise ValueError(f"Surface limit must be a [back, front] pair, got {pair!r}")
        out.append(SurfaceLimit(back=float(pair[0]), front=float(pair[1])))
    if not out:
        raise ValueError("surface.limits must contain at least one [back, front] pair.")
    return out


def limits_from_config(surface_cfg: Dict[str, Any]) -> List[SurfaceLimit]:
    """Build surface limits from the ``surface`` configuration section."""
    kind = str(surface_cfg.get("kind", "rectangle") or "rectangle").lower().strip()
    res = float(surface_cfg.get("grid_resolution", 0.5))
    if res <= 0.0:
        raise ValueError("surface.grid_resolution must be positive.")
    ref_z = float(surface_cfg.get("reference_z", 0.0))
    columns = int(surface_cfg.get("columns", 64))
    rows = int(surface_cfg.get("rows", 64))
    if kind == "rectangle":
        return rectangle_limits(columns, rows, res, ref_z)
    if kind == "ellipse":
        return ellipse_limits(columns, rows, res, ref_z)
    if kind == "limits":
        return limits_from_pairs(surface_cfg.get("limits") or [])
    raise ValueError(f"Unknown surface.kind '{kind}'. Use 'rectangle', 'ellipse' or 'limits'.")

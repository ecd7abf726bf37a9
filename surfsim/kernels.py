# -*- coding: utf-8 -*-
"""Phase kernels shared by every execution backend.

One tick is:

1. force application   speed[i] += acceleration * dt        (queue drained)
2. diffusion           speed[i] += (mean(neighbor heights) - height[i]) * diffusion_speed * dt
                       speed[i] *= viscosity
3. volume measurement  sum(height) on the same pre-advection snapshot
4. correction          (target - measured) / cell_count
5. advection           height[i] = max(height[i] + correction + speed[i] * dt, 0)

Diffusion only writes ``speed`` and advection only reads ``speed``, so a cell
range can be processed independently of every other range within a phase.
"""

# Import typing primitives.
from typing import Any, List, Sequence

# Import numpy.
import numpy as np


def apply_forces(speed: Any, indices: np.ndarray, accelerations: np.ndarray, delta_t: float) -> None:
    """Add queued accelerations to speed in queue order."""
    for index, acceleration in zip(indices.tolist(), accelerations.tolist()):
        speed[index] += acceleration * delta_t


def diffuse_range(
    height: Any,
    speed: Any,
    prev_x: Any,
    next_x: Any,
    prev_z: Any,
    next_z: Any,
    start: int,
    end: int,
    transfer_rate: float,
    viscosity: float,
) -> float:
    """Vectorized diffusion of cells [start, end); returns their height sum.

    Works for NumPy and CuPy arrays alike. Only ``speed[start:end]`` is
    written, ``height`` is read-only here.
    """
    if end <= start:
        return 0.0
    h = height[start:end]
    avg = (height[prev_x[start:end]] + height[next_x[start:end]] + height[prev_z[start:end]] + height[next_z[start:end]]) / 4.0
    seg = speed[start:end]
    seg += (avg - h) * transfer_rate
    seg *= viscosity
    return float(h.sum())


def diffuse_loop(
    height: Sequence[float],
    speed: List[float],
    prev_x: Sequence[int],
    next_x: Sequence[int],
    prev_z: Sequence[int],
    next_z: Sequence[int],
    transfer_rate: float,
    viscosity: float,
) -> float:
    """Cell-by-cell diffusion over plain Python lists; returns the height sum."""
    volume = 0.0
    for i in range(len(speed)):
        s = speed[i] + ((height[prev_x[i]] + height[next_x[i]] + height[prev_z[i]] + height[next_z[i]]) / 4.0 - height[i]) * transfer_rate
        speed[i] = s * viscosity
        volume += height[i]
    return volume


def volume_correction(target_volume: float, measured_volume: float, cell_count: int) -> float:
    """Uniform per-cell height that moves the measured volume to the target."""
    return (float(target_volume) - float(measured_volume)) / float(cell_count)


def advect_range(height: Any, speed: Any, start: int, end: int, correction: float, delta_t: float, xp: Any = np) -> None:
    """Integrate speed and the correction into height for cells [start, end), floored at zero."""
    if end <= start:
        return
    h = height[start:end]
    xp.maximum(h + correction + speed[start:end] * delta_t, 0.0, out=h)


def advect_loop(height: List[float], speed: Sequence[float], correction: float, delta_t: float) -> None:
    """Cell-by-cell advection over plain Python lists."""
    for i in range(len(height)):
        height[i] = max(height[i] + correction + speed[i] * delta_t, 0.0)

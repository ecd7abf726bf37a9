# -*- coding: utf-8 -*-
"""External collaborators driving the engine: pushes, rain and displacers.

These mirror what a host application does around the engine each frame:
timed pushes go through the force queue, raindrops displace volume directly,
and submerged objects shift the target volume.
"""

from __future__ import annotations

# Import dataclass for structured records.
from dataclasses import dataclass

# Import typing primitives.
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

# Import logging.
import logging

# Import numpy for random sampling.
import numpy as np

# Import local modules.
from .backends import FluidSimulation
from .topology import Topology

logger = logging.getLogger("surfsim")


@dataclass(frozen=True)
class Push:
    """Force applied at a world position at a given simulation time."""

    time_s: float
    x: float
    z: float
    force: float
    mass: float = 1.0


@dataclass(frozen=True)
class Displacer:
    """Submerged volume present during [start_s, end_s)."""

    start_s: float
    end_s: float
    volume: float

    def active(self, time_s: float) -> bool:
        return self.start_s <= time_s < self.end_s


def pushes_from_config(items: Iterable[Dict[str, Any]]) -> List[Push]:
    """Parse and time-sort the ``forces`` config list."""
    out = [
        Push(
            time_s=float(it.get("time_s", 0.0)),
            x=float(it["x"]),
            z=float(it["z"]),
            force=float(it["force"]),
            mass=float(it.get("mass", 1.0)),
        )
        for it in (items or [])
    ]
    return sorted(out, key=lambda p: p.time_s)


def displacers_from_config(items: Iterable[Dict[str, Any]]) -> List[Displacer]:
    """Parse the ``displacers`` config list."""
    out: List[Displacer] = []
    for it in items or []:
        start = float(it.get("start_s", 0.0))
        end = float(it.get("end_s", float("inf")))
        if end < start:
            raise ValueError(f"Displacer end_s={end} precedes start_s={start}.")
        out.append(Displacer(start_s=start, end_s=end, volume=float(it["volume"])))
    return out


def submerged_volume(displacers: Sequence[Displacer], time_s: float) -> float:
    """Sum the world-space volume of every active displacer."""
    return float(sum(d.volume for d in displacers if d.active(time_s)))


def target_volume(baseline: float, submerged: float, grid_resolution: float) -> float:
    """Convert a world-space submerged volume into height units and add it to the baseline."""
    return float(baseline) + float(submerged) / (float(grid_resolution) ** 2)


def apply_due_pushes(sim: FluidSimulation, topology: Topology, pushes: Sequence[Push], t0: float, t1: float) -> int:
    """Queue every push with ``t0 <= time_s < t1``; return how many landed on a cell."""
    applied = 0
    for push in pushes:
        if push.time_s < t0:
            continue
        if push.time_s >= t1:
            break
        index = topology.cell_index_from_position(push.x, push.z)
        if index is None:
            logger.warning("Push at (%.3f, %.3f) misses the surface; ignored.", push.x, push.z)
            continue
        if sim.apply_force(index, push.force, push.mass):
            applied += 1
    return applied


def surface_bounds(topology: Topology) -> Tuple[float, float, float, float]:
    """Return (x_min, x_max, z_min, z_max) of the dense grid in world units."""
    half = topology.grid_resolution / 2.0
    x_vals, z_vals = topology.dense_coordinates()
    return (
        float(x_vals[0] - half),
        float(x_vals[-1] + half),
        float(z_vals[0] - half),
        float(z_vals[-1] + half),
    )


class RainEffect:
    """Random drops that each displace ``-strength`` at a random surface position.

    The expected drop count per frame is ``area * count_per_m2_per_s * dt``;
    the fractional remainder is carried to the next frame.
    """

    def __init__(
        self,
        topology: Topology,
        count_per_m2_per_s: float,
        strength: float,
        seed: Optional[int] = None,
    ) -> None:
        if count_per_m2_per_s < 0.0:
            raise ValueError("rain.count_per_m2_per_s must be non-negative.")
        self.topology = topology
        self.rate = float(count_per_m2_per_s)
        self.strength = float(strength)
        self.rng = np.random.default_rng(seed)
        self.bounds = surface_bounds(topology)
        x0, x1, z0, z1 = self.bounds
        self.area = (x1 - x0) * (z1 - z0)
        self._carry = 0.0

    def drop_count(self, delta_t: float) -> int:
        expected = self.area * self.rate * float(delta_t) + self._carry
        count = int(np.floor(expected))
        self._carry = expected - count
        return count

    def apply(self, sim: FluidSimulation, delta_t: float) -> int:
        """Drop rain for one frame; return the number of drops that hit a cell."""
        count = self.drop_count(delta_t)
        if count == 0:
            return 0
        x0, x1, z0, z1 = self.bounds
        xs = self.rng.uniform(x0, x1, size=count)
        zs = self.rng.uniform(z0, z1, size=count)
        hits = 0
        for x, z in zip(xs.tolist(), zs.tolist()):
            index = self.topology.cell_index_from_position(x, z)
            # Drops over absent cells of an irregular surface are lost.
            if index is not None and sim.displace_volume(index, -self.strength):
                hits += 1
        return hits

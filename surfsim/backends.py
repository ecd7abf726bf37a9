# -*- coding: utf-8 -*-
"""Execution backends for the height-field engine.

All backends run the same five-phase tick (see ``kernels``) and differ only in
scheduling:

- ``sequential``: one thread, cell-by-cell loops in index order.
- ``chunked``: K contiguous chunks; diffusion and advection run per chunk on a
  thread pool, with a join between diffusion and the volume reduction and
  another join after advection.
- ``vectorized``: whole-array NumPy (or CuPy) operations.

For identical inputs they produce the same speeds bit for bit and heights
equal up to the summation order of the measured volume.
"""

from __future__ import annotations

# Import abstract base class helpers.
from abc import ABC, abstractmethod

# Import thread pool for the chunk-parallel backend.
from concurrent.futures import ThreadPoolExecutor

# Import typing primitives.
from typing import Any, Dict, List, Optional, Tuple

# Import stdlib helpers.
import logging
import operator

# Import numpy.
import numpy as np

# Import local modules.
from .compute_backend import host_copy, resolve_device
from .forces import ForceQueue
from .kernels import advect_loop, advect_range, apply_forces, diffuse_loop, diffuse_range, volume_correction
from .shared_memory import SharedMemoryConfig, should_parallelize, split_into_chunks
from .state import HeightFieldState

logger = logging.getLogger("surfsim")


class FluidSimulation(ABC):
    """Common tick pipeline and interaction API.

    Callers must not touch the state or the force queue while ``simulate``
    runs; nothing here locks against that.
    """

    name = "base"

    def __init__(self, state: HeightFieldState) -> None:
        if state.released:
            raise RuntimeError("Cannot build a simulation on a released state.")
        self.state = state
        self.forces = ForceQueue()
        self.last_measured_volume = 0.0
        self.last_correction = 0.0
        self._closed = False

    # ------------------------------
    # Interaction API
    # ------------------------------
    @property
    def cell_count(self) -> int:
        return self.state.cell_count

    def _checked_index(self, index: Any) -> Optional[int]:
        """Return ``index`` as an int, or None when it is not an in-range integer."""
        if isinstance(index, (bool, np.bool_)):
            return None
        try:
            value = operator.index(index)
        except TypeError:
            return None
        return value if 0 <= value < self.state.cell_count else None

    def apply_force(self, index: int, force: float, mass: float) -> bool:
        """Queue ``force / mass`` on a cell for the next tick.

        Returns False (and leaves the queue untouched) unless ``index`` is an
        in-range integer; floats are never truncated onto a cell.
        """
        self._ensure_open()
        cell = self._checked_index(index)
        if cell is None:
            logger.warning("Rejected force on cell %r (cell_count=%d)", index, self.state.cell_count)
            return False
        if mass == 0.0:
            raise ValueError("apply_force requires a non-zero mass.")
        self.forces.push(cell, float(force) / float(mass))
        return True

    def displace_volume(self, index: int, volume: float) -> bool:
        """Add ``volume`` straight to a cell height, bypassing the queue.

        No floor is applied; negative results are the caller's business.
        """
        self._ensure_open()
        cell = self._checked_index(index)
        if cell is None:
            logger.warning("Rejected volume displacement on cell %r (cell_count=%d)", index, self.state.cell_count)
            return False
        self.state.height[cell] += float(volume)
        return True

    def height_at(self, index: int) -> float:
        self._ensure_open()
        cell = self._checked_index(index)
        if cell is None:
            raise IndexError(f"Cell index {index!r} outside [0, {self.state.cell_count})")
        return float(self.state.height[cell])

    def heights(self) -> np.ndarray:
        """Return a NumPy copy of all heights."""
        self._ensure_open()
        return host_copy(self.state.height)

    def speeds(self) -> np.ndarray:
        """Return a NumPy copy of all speeds."""
        self._ensure_open()
        return host_copy(self.state.speed)

    def volume(self) -> float:
        self._ensure_open()
        return self.state.volume()

    # ------------------------------
    # Tick
    # ------------------------------
    def simulate(self, target_volume: float, diffusion_speed: float, viscosity: float, delta_t: float) -> float:
        """Advance one tick and return the per-cell volume correction applied."""
        self._ensure_open()
        indices, accelerations = self.forces.drain()
        apply_forces(self.state.speed, indices, accelerations, delta_t)

        measured = self._diffuse(diffusion_speed * delta_t, viscosity)
        correction = volume_correction(target_volume, measured, self.state.cell_count)
        self._advect(correction, delta_t)

        self.last_measured_volume = measured
        self.last_correction = correction
        logger.debug(
            "%s tick: forces=%d measured=%.6e target=%.6e correction=%.3e",
            self.name,
            int(indices.size),
            measured,
            target_volume,
            correction,
        )
        return correction

    @abstractmethod
    def _diffuse(self, transfer_rate: float, viscosity: float) -> float:
        """Update speeds from the current heights and return their sum."""

    @abstractmethod
    def _advect(self, correction: float, delta_t: float) -> None:
        """Integrate speeds and the correction into heights."""

    # ------------------------------
    # Lifetime
    # ------------------------------
    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"{self.name} simulation has been closed.")

    def close(self) -> None:
        """Release the state arrays and pending forces."""
        if self._closed:
            return
        self.forces.clear()
        self.state.release()
        self._closed = True

    def __enter__(self) -> "FluidSimulation":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class SequentialSimulation(FluidSimulation):
    """Reference backend: straightforward per-cell loops."""

    name = "sequential"

    def __init__(self, state: HeightFieldState) -> None:
        super().__init__(state)
        nb = state.neighbors
        self._links = (nb.prev_x.tolist(), nb.next_x.tolist(), nb.prev_z.tolist(), nb.next_z.tolist())
        self._height: List[float] = []
        self._speed: List[float] = []

    def _diffuse(self, transfer_rate: float, viscosity: float) -> float:
        self._height = self.state.height.tolist()
        self._speed = self.state.speed.tolist()
        volume = diffuse_loop(self._height, self._speed, *self._links, transfer_rate, viscosity)
        self.state.speed[:] = self._speed
        return volume

    def _advect(self, correction: float, delta_t: float) -> None:
        advect_loop(self._height, self._speed, correction, delta_t)
        self.state.height[:] = self._height


class ChunkedSimulation(FluidSimulation):
    """Chunk-parallel backend.

    Cells are split into K contiguous chunks. Each diffusion task writes only
    its own speed slice and returns a private partial volume; the partials are
    reduced after all tasks joined. Advection is then dispatched per chunk.
    """

    name = "chunked"

    def __init__(
        self,
        state: HeightFieldState,
        shared_cfg: Optional[SharedMemoryConfig] = None,
        chunks: Optional[int] = None,
    ) -> None:
        super().__init__(state)
        self.shared_cfg = shared_cfg if shared_cfg is not None else SharedMemoryConfig.from_dict({})
        nchunks = int(chunks) if chunks is not None else self.shared_cfg.chunks
        self.chunks: List[Tuple[int, int]] = split_into_chunks(state.cell_count, nchunks)
        self._partials = np.zeros(len(self.chunks), dtype=np.float64)
        self._parallel = should_parallelize(state.cell_count, self.shared_cfg)
        self._executor: Optional[ThreadPoolExecutor] = None
        if self._parallel:
            self._executor = ThreadPoolExecutor(
                max_workers=min(self.shared_cfg.workers, len(self.chunks)),
                thread_name_prefix="surfsim",
            )
        logger.debug(
            "Chunked backend: cells=%d chunks=%d threaded=%s",
            state.cell_count,
            len(self.chunks),
            self._parallel,
        )

    def _diffuse_chunk(self, start: int, end: int, transfer_rate: float, viscosity: float) -> float:
        st = self.state
        nb = st.neighbors
        return diffuse_range(st.height, st.speed, nb.prev_x, nb.next_x, nb.prev_z, nb.next_z, start, end, transfer_rate, viscosity)

    def _diffuse(self, transfer_rate: float, viscosity: float) -> float:
        if self._executor is not None:
            futures = [self._executor.submit(self._diffuse_chunk, s, e, transfer_rate, viscosity) for s, e in self.chunks]
            for k, fut in enumerate(futures):
                self._partials[k] = fut.result()
        else:
            for k, (s, e) in enumerate(self.chunks):
                self._partials[k] = self._diffuse_chunk(s, e, transfer_rate, viscosity)
        # Reduce in chunk order so the result does not depend on thread timing.
        total = 0.0
        for partial in self._partials.tolist():
            total += partial
        return total

    def _advect(self, correction: float, delta_t: float) -> None:
        st = self.state
        if self._executor is not None:
            futures = [self._executor.submit(advect_range, st.height, st.speed, s, e, correction, delta_t) for s, e in self.chunks]
            for fut in futures:
                fut.result()
        else:
            for s, e in self.chunks:
                advect_range(st.height, st.speed, s, e, correction, delta_t)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        super().close()


class VectorizedSimulation(FluidSimulation):
    """Whole-array backend on NumPy or, with ``device='gpu'``, CuPy."""

    name = "vectorized"

    def __init__(self, state: HeightFieldState, device: Optional[str] = "cpu") -> None:
        super().__init__(state)
        self.device, self.xp = resolve_device(device)
        if self.xp is not np:
            state.to_array_module(self.xp)

    def _diffuse(self, transfer_rate: float, viscosity: float) -> float:
        st = self.state
        nb = st.neighbors
        return diffuse_range(st.height, st.speed, nb.prev_x, nb.next_x, nb.prev_z, nb.next_z, 0, st.cell_count, transfer_rate, viscosity)

    def _advect(self, correction: float, delta_t: float) -> None:
        st = self.state
        advect_range(st.height, st.speed, 0, st.cell_count, correction, delta_t, xp=self.xp)


BACKENDS = {
    "sequential": SequentialSimulation,
    "chunked": ChunkedSimulation,
    "vectorized": VectorizedSimulation,
}


def create_backend(name: str, state: HeightFieldState, compute_cfg: Optional[Dict[str, Any]] = None) -> FluidSimulation:
    """Instantiate a backend by name from the ``compute`` config section."""
    compute_cfg = compute_cfg or {}
    key = str(name or "sequential").lower().strip()
    if key not in BACKENDS:
        raise ValueError(f"Unknown compute.backend '{name}'. Use one of: {', '.join(sorted(BACKENDS))}.")
    if key == "chunked":
        shared_cfg = SharedMemoryConfig.from_dict(compute_cfg.get("shared_memory", {}) or {})
        return ChunkedSimulation(state, shared_cfg=shared_cfg)
    if key == "vectorized":
        return VectorizedSimulation(state, device=compute_cfg.get("device", "cpu"))
    return SequentialSimulation(state)

# -*- coding: utf-8 -*-
"""Tick driver: builds the surface, runs frames and writes outputs."""

from __future__ import annotations

# Import typing primitives.
from typing import Any, Dict, List, Optional

# Import stdlib helpers.
import logging
import math
from time import perf_counter

# Import numpy.
import numpy as np

# Import tqdm for the frame progress bar.
from tqdm import tqdm

# Import local modules.
from .backends import create_backend
from .effects import (
    RainEffect,
    apply_due_pushes,
    displacers_from_config,
    pushes_from_config,
    submerged_volume,
    target_volume,
)
from .io_netcdf import load_restart_netcdf, save_restart_netcdf, write_results_netcdf
from .state import HeightFieldState
from .surface import limits_from_config
from .topology import Topology, build_topology

# Create a logger for this module.
logger = logging.getLogger("surfsim")


def build_surface_topology(cfg: Dict[str, Any]) -> Topology:
    """Build the cell topology from the ``surface`` config section."""
    scfg = cfg.get("surface", {})
    limits = limits_from_config(scfg)
    origin_z = scfg.get("origin_z", None)
    return build_topology(
        limits,
        grid_resolution=float(scfg.get("grid_resolution", 0.5)),
        reference_z=float(scfg.get("reference_z", 0.0)),
        origin_x=float(scfg.get("origin_x", 0.0)),
        origin_z=float(origin_z) if origin_z is not None else None,
        reconcile=bool(scfg.get("reconcile_pass", True)),
    )


def apply_seeds(state: HeightFieldState, topology: Topology, seeds: List[Dict[str, Any]]) -> int:
    """Set initial disturbance heights; return how many were placed."""
    placed = 0
    for seed in seeds or []:
        if "cell" in seed:
            index: Optional[int] = int(seed["cell"])
            if not 0 <= index < state.cell_count:
                index = None
        else:
            index = topology.cell_index_from_position(float(seed["x"]), float(seed["z"]))
        if index is None:
            logger.warning("Seed %s does not map to a cell; ignored.", seed)
            continue
        state.height[index] = float(seed["height"])
        placed += 1
    return placed


def run_simulation(cfg: Dict[str, Any], show_progress: bool = False) -> Dict[str, Any]:
    """Run the full simulation described by ``cfg`` and return a summary."""

    # ------------------------------
    # Model parameters
    # ------------------------------
    mcfg = cfg["model"]
    T_s = float(mcfg["T_s"])                                  # Total simulated time.
    dt_s = float(mcfg["dt_s"])                                # Frame time step.
    substeps = int(mcfg.get("substeps", 1))                   # Engine ticks per frame.
    diffusion_speed = float(mcfg["diffusion_speed"])
    viscosity = float(mcfg["viscosity"])
    log_every = int(mcfg.get("log_every", 50))
    if dt_s <= 0.0:
        raise ValueError("model.dt_s must be positive.")
    if substeps < 1:
        raise ValueError("model.substeps must be at least 1.")
    if not 0.0 < viscosity <= 1.0:
        raise ValueError("model.viscosity must be in (0, 1].")

    compute_cfg = cfg.get("compute", {})
    backend_name = str(compute_cfg.get("backend", "sequential"))

    # ------------------------------
    # Topology and state
    # ------------------------------
    topology = build_surface_topology(cfg)
    logger.info(
        "Surface built: columns=%d cells=%d max_column_depth=%d grid_resolution=%.3f",
        topology.column_count,
        topology.cell_count,
        topology.max_column_depth,
        topology.grid_resolution,
    )
    state = HeightFieldState.allocate(topology, initial_height=float(mcfg.get("initial_height", 0.0)))

    rst_cfg = cfg.get("restart", {})
    restart_in = rst_cfg.get("in", None)
    pending_restart_forces = None
    if restart_in:
        r = load_restart_netcdf(restart_in)
        if r["height"].size != topology.cell_count or r["speed"].size != topology.cell_count:
            raise ValueError(
                f"Restart has {r['height'].size} cells but the surface has {topology.cell_count}."
            )
        if bool(rst_cfg.get("strict_grid_check", True)) and r["columns"] not in (-1, topology.column_count):
            raise ValueError(f"Restart grid mismatch: columns={r['columns']} vs {topology.column_count}")
        state.height[:] = r["height"]
        state.speed[:] = r["speed"]
        elapsed_s0 = r["elapsed_s"]
        baseline_volume = r["baseline_volume"]
        pending_restart_forces = (r["force_index"], r["force_acceleration"])
        logger.info("Restart loaded from %s (elapsed_s=%.3f)", restart_in, elapsed_s0)
    else:
        placed = apply_seeds(state, topology, cfg.get("seed", []))
        if placed:
            logger.info("Placed %d initial disturbance(s).", placed)
        elapsed_s0 = 0.0
        baseline_volume = state.volume()

    with create_backend(backend_name, state, compute_cfg) as backend:
        logger.info("Execution backend: %s", backend.name)
        if pending_restart_forces is not None:
            for index, acc in zip(pending_restart_forces[0].tolist(), pending_restart_forces[1].tolist()):
                backend.forces.push(index, acc)

        # ------------------------------
        # Effects
        # ------------------------------
        pushes = pushes_from_config(cfg.get("forces", []))
        displacers = displacers_from_config(cfg.get("displacers", []))
        rain_cfg = cfg.get("rain", {})
        rain: Optional[RainEffect] = None
        if bool(rain_cfg.get("enabled", False)):
            rain = RainEffect(
                topology,
                count_per_m2_per_s=float(rain_cfg.get("count_per_m2_per_s", 1.0)),
                strength=float(rain_cfg.get("strength", 1.0)),
                seed=rain_cfg.get("seed", None),
            )

        # ------------------------------
        # Output bookkeeping
        # ------------------------------
        output_cfg = cfg.get("output", {})
        out_nc = output_cfg.get("out_netcdf", None)
        every_s = float(output_cfg.get("every_s", 0.0) or 0.0)
        if every_s < 0.0:
            raise ValueError("output.every_s must be non-negative.")
        snap_times: List[float] = []
        snap_heights: List[np.ndarray] = []
        snap_volumes: List[float] = []
        snap_targets: List[float] = []

        def _snapshot(time_s: float, target: float) -> None:
            snap_times.append(float(time_s))
            snap_heights.append(backend.heights())
            snap_volumes.append(backend.volume())
            snap_targets.append(float(target))

        if elapsed_s0 > T_s + 1e-9:
            raise ValueError(f"Restart elapsed_s={elapsed_s0} exceeds total T_s={T_s}.")
        remaining_s = max(0.0, T_s - elapsed_s0)
        steps = int(math.ceil(remaining_s / dt_s - 1e-9)) if remaining_s > 0.0 else 0
        next_output_s = elapsed_s0 + every_s if every_s > 0.0 else None

        initial_target = target_volume(baseline_volume, submerged_volume(displacers, elapsed_s0), topology.grid_resolution)
        if out_nc:
            _snapshot(elapsed_s0, initial_target)

        logger.info(
            "surfsim start: T_s=%.3f dt_s=%.4f substeps=%d steps=%d diffusion_speed=%.3f viscosity=%.4f baseline_volume=%.6e",
            T_s,
            dt_s,
            substeps,
            steps,
            diffusion_speed,
            viscosity,
            baseline_volume,
        )

        # ------------------------------
        # Frame loop
        # ------------------------------
        wall_t0 = perf_counter()
        max_abs_drift = 0.0
        total_pushes = 0
        total_drops = 0
        step_time_s = elapsed_s0
        target = initial_target
        for k in tqdm(range(steps), desc="Simulating", unit="frame", disable=not show_progress):
            t0 = elapsed_s0 + k * dt_s
            step_time_s = elapsed_s0 + min((k + 1) * dt_s, remaining_s)
            frame_dt = step_time_s - t0

            total_pushes += apply_due_pushes(backend, topology, pushes, t0, step_time_s)
            if rain is not None:
                total_drops += rain.apply(backend, frame_dt)

            target = target_volume(baseline_volume, submerged_volume(displacers, t0), topology.grid_resolution)
            sub_dt = frame_dt / substeps
            for _ in range(substeps):
                backend.simulate(target, diffusion_speed, viscosity, sub_dt)

            volume = backend.volume()
            drift = volume - target
            max_abs_drift = max(max_abs_drift, abs(drift))

            if log_every > 0 and ((k + 1) % log_every == 0 or (k + 1) == steps):
                heights = backend.heights()
                logger.info(
                    "volume step=%d time_s=%.3f target=%.6e measured=%.6e drift=%.3e h_min=%.4f h_max=%.4f",
                    k + 1,
                    step_time_s,
                    target,
                    volume,
                    drift,
                    float(heights.min()),
                    float(heights.max()),
                )

            if out_nc and next_output_s is not None and step_time_s + 1e-9 >= next_output_s:
                _snapshot(step_time_s, target)
                while next_output_s is not None and step_time_s + 1e-9 >= next_output_s:
                    next_output_s += every_s

        wall_s = perf_counter() - wall_t0

        # ------------------------------
        # Outputs
        # ------------------------------
        if out_nc:
            if not snap_times or snap_times[-1] < step_time_s - 1e-9:
                _snapshot(step_time_s, target)
            write_results_netcdf(str(out_nc), cfg, topology, snap_times, snap_heights, snap_volumes, snap_targets)
            logger.info("Height snapshots written to %s (frames=%d)", out_nc, len(snap_times))
        else:
            logger.info("No output.out_netcdf configured; skipping snapshot output.")

        rst_out = rst_cfg.get("out", None)
        if rst_out:
            save_restart_netcdf(
                str(rst_out),
                cfg,
                topology,
                elapsed_s=step_time_s,
                baseline_volume=baseline_volume,
                height=backend.heights(),
                speed=backend.speeds(),
                pending_forces=backend.forces.pending(),
            )
            logger.info("Restart written to %s", rst_out)

        heights = backend.heights()
        summary = {
            "backend": backend.name,
            "cell_count": int(topology.cell_count),
            "steps": int(steps),
            "elapsed_s": float(step_time_s),
            "baseline_volume": float(baseline_volume),
            "target_volume": float(target),
            "final_volume": float(heights.sum()),
            "max_abs_drift": float(max_abs_drift),
            "min_height": float(heights.min()),
            "max_height": float(heights.max()),
            "pushes": int(total_pushes),
            "rain_drops": int(total_drops),
            "wall_s": float(wall_s),
        }
        _log_quality_report(summary)
    return summary


def _log_quality_report(summary: Dict[str, Any]) -> None:
    """Emit a human-readable run summary."""
    logger.info("Simulation report:")
    logger.info(
        "  Volume: baseline=%.6e target=%.6e final=%.6e max|drift|=%.3e",
        summary["baseline_volume"],
        summary["target_volume"],
        summary["final_volume"],
        summary["max_abs_drift"],
    )
    logger.info("  Height range: [%.4f, %.4f]", summary["min_height"], summary["max_height"])
    logger.info(
        "  Effects: pushes=%d rain_drops=%d",
        summary["pushes"],
        summary["rain_drops"],
    )
    steps = max(1, summary["steps"])
    logger.info(
        "  Runtime: backend=%s steps=%d wall=%.3fs (%.3f ms/frame)",
        summary["backend"],
        summary["steps"],
        summary["wall_s"],
        1000.0 * summary["wall_s"] / steps,
    )

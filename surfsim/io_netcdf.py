# -*- coding: utf-8 -*-
"""NetCDF I/O for height snapshots and restart state."""

# Import JSON for embedding config as provenance attribute.
import json

# Import datetime utilities for history stamps.
from datetime import datetime, timezone

# Import typing primitives.
from typing import Any, Dict, Sequence

# Import numpy.
import numpy as np

# Import xarray.
import xarray as xr

# Import local modules.
from .forces import ForceRequest
from .topology import Topology


def utc_now_iso() -> str:
    """Return current UTC time as an ISO-8601 string with 'Z'."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _dense_coords(topology: Topology) -> Dict[str, xr.DataArray]:
    """Return world-coordinate axes of the dense (x, z) grid."""
    x_vals, z_vals = topology.dense_coordinates()
    return {
        "x": xr.DataArray(x_vals, dims=("x",), attrs={"long_name": "column world x", "units": "m"}),
        "z": xr.DataArray(z_vals, dims=("z",), attrs={"long_name": "row world z", "units": "m"}),
    }


def write_results_netcdf(
    out_path: str,
    cfg: Dict[str, Any],
    topology: Topology,
    times_s: Sequence[float],
    heights: Sequence[np.ndarray],
    volumes: Sequence[float],
    targets: Sequence[float],
) -> None:
    """Write height snapshots on the dense grid (absent cells are filled)."""
    if len(times_s) != len(heights):
        raise ValueError("times_s and heights must have the same length.")
    out_cfg = cfg.get("output", {})
    fill_value = float(out_cfg.get("fill_value", -9999.0))

    dense = np.stack([topology.to_dense(h) for h in heights]) if heights else np.zeros((0, topology.column_count, 0))

    ds = xr.Dataset()
    ds = ds.assign_coords({
        "time": xr.DataArray(np.asarray(times_s, dtype=np.float64), dims=("time",), attrs={"long_name": "simulation time", "units": "s"}),
        **_dense_coords(topology),
    })
    ds["height"] = xr.DataArray(
        dense.astype(np.float32),
        dims=("time", "x", "z"),
        attrs={"long_name": "liquid_surface_height", "units": "m"},
    )
    ds["volume"] = xr.DataArray(
        np.asarray(volumes, dtype=np.float64),
        dims=("time",),
        attrs={"long_name": "sum_of_cell_heights", "units": "m"},
    )
    ds["target_volume"] = xr.DataArray(
        np.asarray(targets, dtype=np.float64),
        dims=("time",),
        attrs={"long_name": "target_sum_of_cell_heights", "units": "m"},
    )

    ds.attrs["title"] = out_cfg.get("title", "surfsim liquid surface height")
    ds.attrs["institution"] = out_cfg.get("institution", "")
    ds.attrs["source"] = "surfsim"
    ds.attrs["history"] = f"{utc_now_iso()}: results written by surfsim"
    ds.attrs["cell_count"] = int(topology.cell_count)
    ds.attrs["grid_resolution"] = float(topology.grid_resolution)
    ds.attrs["surfsim_config_json"] = json.dumps(cfg, separators=(",", ":"), sort_keys=True)

    ds.to_netcdf(out_path, encoding={"height": {"_FillValue": fill_value}})


def save_restart_netcdf(
    out_path: str,
    cfg: Dict[str, Any],
    topology: Topology,
    elapsed_s: float,
    baseline_volume: float,
    height: np.ndarray,
    speed: np.ndarray,
    pending_forces: Sequence[ForceRequest] = (),
) -> None:
    """Save per-cell state to NetCDF."""
    ds = xr.Dataset()
    ds = ds.assign_coords({
        "cell": xr.DataArray(np.arange(topology.cell_count, dtype=np.int64), dims=("cell",)),
    })

    ds["height"] = xr.DataArray(np.asarray(height, dtype=np.float64), dims=("cell",), attrs={"units": "m"})
    ds["speed"] = xr.DataArray(np.asarray(speed, dtype=np.float64), dims=("cell",), attrs={"units": "m s-1"})
    # Zero-length dimensions are not portable across NetCDF backends.
    if pending_forces:
        ds["force_index"] = xr.DataArray(np.array([f.index for f in pending_forces], dtype=np.int64), dims=("force",))
        ds["force_acceleration"] = xr.DataArray(
            np.array([f.acceleration for f in pending_forces], dtype=np.float64), dims=("force",), attrs={"units": "m s-2"}
        )
    ds["elapsed_s"] = xr.DataArray(np.array(elapsed_s, dtype=np.float64), attrs={"units": "s"})
    ds["baseline_volume"] = xr.DataArray(np.array(baseline_volume, dtype=np.float64), attrs={"units": "m"})

    ds.attrs["title"] = "surfsim restart"
    ds.attrs["source"] = "surfsim"
    ds.attrs["history"] = f"{utc_now_iso()}: restart written by surfsim"
    ds.attrs["columns"] = int(topology.column_count)
    ds.attrs["grid_resolution"] = float(topology.grid_resolution)
    ds.attrs["surfsim_config_json"] = json.dumps(cfg, separators=(",", ":"), sort_keys=True)

    ds.to_netcdf(out_path)


def load_restart_netcdf(path: str) -> Dict[str, Any]:
    """Load restart NetCDF and return state dict."""
    with xr.open_dataset(path) as ds:
        has_forces = "force_index" in ds
        out = {
            "height": np.asarray(ds["height"].values).astype(np.float64),
            "speed": np.asarray(ds["speed"].values).astype(np.float64),
            "force_index": np.asarray(ds["force_index"].values).astype(np.int64) if has_forces else np.zeros(0, dtype=np.int64),
            "force_acceleration": (
                np.asarray(ds["force_acceleration"].values).astype(np.float64) if has_forces else np.zeros(0, dtype=np.float64)
            ),
            "elapsed_s": float(ds["elapsed_s"].values),
            "baseline_volume": float(ds["baseline_volume"].values),
            "columns": int(ds.attrs.get("columns", -1)),
        }
    return out

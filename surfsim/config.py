# -*- coding: utf-8 -*-
"""Configuration handling for surfsim.

The simulation is configured via:
1) A JSON configuration file (config.json).
2) Optional CLI overrides (handled in cli.py).
"""

# Import JSON for reading configuration files.
import json

# Import typing primitives.
from typing import Any, Dict


def default_config() -> Dict[str, Any]:
    """Return a complete default configuration dictionary."""
    return {
        "surface": {
            "kind": "rectangle",
            "columns": 64,
            "rows": 64,
            "grid_resolution": 0.5,
            "reference_z": 0.0,
            "origin_x": 0.0,
            "origin_z": None,
            "limits": None,
            "reconcile_pass": True,
        },
        "model": {
            "T_s": 10.0,
            "dt_s": 0.02,
            "substeps": 1,
            "diffusion_speed": 20.0,
            "viscosity": 0.998,
            "initial_height": 1.0,
            "log_every": 50,
        },
        # Initial disturbances: {"x", "z", "height"} or {"cell", "height"}.
        "seed": [],
        # Timed pushes: {"time_s", "x", "z", "force", "mass"}.
        "forces": [],
        # Submerged volumes: {"start_s", "end_s", "volume"}.
        "displacers": [],
        "rain": {
            "enabled": False,
            "count_per_m2_per_s": 1.0,
            "strength": 1.0,
            "seed": 0,
        },
        "output": {
            "out_netcdf": "surface_height.nc",
            "every_s": 0.5,
            "title": "surfsim liquid surface height",
            "institution": "",
            "fill_value": -9999.0,
        },
        "restart": {
            "in": None,
            "out": None,
            "strict_grid_check": True,
        },
        "compute": {
            "backend": "sequential",
            "device": "cpu",
            "shared_memory": {
                "enabled": True,
                "workers": None,
                "chunks": 16,
                "min_cells_per_worker": 4096,
            },
        },
    }


def load_json(path: str) -> Dict[str, Any]:
    """Load a JSON file into a Python dictionary."""
    # Open the file with UTF-8 encoding.
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def deep_update(base: Dict[str, Any], other: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge dict `other` into dict `base` (non-destructive)."""
    # Start from a shallow copy of base.
    out = dict(base)
    for k, v in other.items():
        # If both sides are dicts, merge recursively.
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_update(out[k], v)  # type: ignore[arg-type]
        else:
            # Otherwise override.
            out[k] = v
    return out

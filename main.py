#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""surfsim entry point.

This file is intentionally small:
- parse CLI
- load+merge configuration
- run the simulation

All real logic lives in the `surfsim/` package.
"""

# Import logging (for module-level logger).
import logging

# Import stdlib helpers.
import importlib.util
import sys
from typing import Any, Dict

# Import lightweight config helpers early for shared utilities.
from surfsim.config import deep_update, default_config, load_json


def _require_numpy() -> None:
    """Validate that NumPy is available before importing surfsim modules."""
    if importlib.util.find_spec("numpy") is None:
        raise ModuleNotFoundError(
            "NumPy is required to run surfsim. Activate your virtual environment "
            f"or install it with '{sys.executable} -m pip install numpy'."
        )


def apply_cli_overrides(cfg: Dict[str, Any], args: Any) -> Dict[str, Any]:
    """Apply CLI overrides (only for options that were explicitly supplied)."""
    compute = cfg.setdefault("compute", {})
    if args.backend is not None:
        compute["backend"] = args.backend
    if args.device is not None:
        compute["device"] = args.device
    if args.workers is not None:
        compute.setdefault("shared_memory", {})["workers"] = args.workers
    if args.chunks is not None:
        compute.setdefault("shared_memory", {})["chunks"] = args.chunks
    if args.duration is not None:
        cfg["model"]["T_s"] = args.duration
    if args.dt is not None:
        cfg["model"]["dt_s"] = args.dt
    if args.substeps is not None:
        cfg["model"]["substeps"] = args.substeps
    if args.out_nc is not None:
        cfg["output"]["out_netcdf"] = args.out_nc
    if args.restart_in is not None:
        cfg["restart"]["in"] = args.restart_in
    if args.restart_out is not None:
        cfg["restart"]["out"] = args.restart_out
    if args.rain:
        cfg.setdefault("rain", {})["enabled"] = True
    return cfg


def main(argv=None) -> None:
    """Program entry point."""
    _require_numpy()

    # Import CLI parser.
    from surfsim.cli import parse_args

    # Import logging configuration.
    from surfsim.logging_utils import setup_logging

    # Import simulation driver.
    from surfsim.simulation import run_simulation

    args = parse_args(argv)

    # Load the built-in defaults and merge the user config file on top.
    cfg = default_config()
    if args.config:
        cfg = deep_update(cfg, load_json(args.config))
    cfg = apply_cli_overrides(cfg, args)

    setup_logging(args.log_level)
    logger = logging.getLogger("surfsim")

    summary = run_simulation(cfg, show_progress=not args.no_progress)
    logger.info(
        "surfsim finished: %d frame(s), final volume %.6e (target %.6e).",
        summary["steps"],
        summary["final_volume"],
        summary["target_volume"],
    )


if __name__ == "__main__":
    main()

# -*- coding: utf-8 -*-
"""Command line interface for surfsim."""

# Import argparse for CLI parsing.
import argparse


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    ap = argparse.ArgumentParser(prog="surfsim")
    # Configuration file path (optional: defaults apply when omitted).
    ap.add_argument("--config", default=None, help="Path to configuration JSON file.")
    # Logging level.
    ap.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    # Common operational overrides.
    ap.add_argument(
        "--backend",
        default=None,
        choices=["sequential", "chunked", "vectorized"],
        help="Execution backend override.",
    )
    ap.add_argument("--device", default=None, choices=["cpu", "gpu"], help="Compute device override (vectorized backend).")
    ap.add_argument("--workers", default=None, type=int, help="Worker threads for the chunked backend.")
    ap.add_argument("--chunks", default=None, type=int, help="Number of chunks for the chunked backend.")
    ap.add_argument("--duration", default=None, type=float, help="Total simulated time in seconds (model.T_s).")
    ap.add_argument("--dt", default=None, type=float, help="Frame time step in seconds (model.dt_s).")
    ap.add_argument("--substeps", default=None, type=int, help="Simulation iterations per frame.")
    ap.add_argument("--out-nc", default=None, help="Output NetCDF path.")
    ap.add_argument("--restart-in", default=None, help="Restart NetCDF to resume from.")
    ap.add_argument("--restart-out", default=None, help="Restart NetCDF path to write.")
    ap.add_argument("--rain", action="store_true", help="Enable the rain effect (overrides rain.enabled).")
    ap.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    return ap.parse_args(argv)

#!/usr/bin/env python3
"""
utils/plot_height.py

Plot surfsim height snapshots (height(time, x, z)) from the NetCDF output.

- Renders one time index, or one PNG per time index with --all-times.
- Masks FillValue/NaN cells (outside the irregular surface).
- Optional colour limits; defaults to the min/max over the rendered frame.
- Adds the volume / target volume of the frame to the title.

Dependencies:
- Required: matplotlib, numpy, xarray
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

import numpy as np
import xarray as xr
import matplotlib.pyplot as plt

LOG = logging.getLogger("plot_height")


def _frame_limits(data: np.ndarray, vmin: Optional[float], vmax: Optional[float]) -> tuple[float, float]:
    """Return colour limits from finite values unless both are given."""
    flat = data[np.isfinite(data)]
    lo = float(flat.min()) if vmin is None and flat.size else (vmin if vmin is not None else 0.0)
    hi = float(flat.max()) if vmax is None and flat.size else (vmax if vmax is not None else 1.0)
    if hi <= lo:
        hi = lo + 1e-6
    return lo, hi


def plot_one(ds: xr.Dataset, ti: int, out: Optional[str], cmap: str, vmin: Optional[float], vmax: Optional[float], dpi: int) -> None:
    """Render a single time index."""
    height = ds["height"].isel(time=ti)
    data = np.asarray(height.values, dtype=np.float64)
    lo, hi = _frame_limits(data, vmin, vmax)

    fig, ax = plt.subplots(figsize=(8, 6))
    x = ds["x"].values
    z = ds["z"].values
    mesh = ax.pcolormesh(x, z, np.ma.masked_invalid(data).T, cmap=cmap, vmin=lo, vmax=hi, shading="nearest")
    fig.colorbar(mesh, ax=ax, label="height (m)")
    ax.set_xlabel("x (m)")
    ax.set_ylabel("z (m)")
    ax.set_aspect("equal")
    t = float(ds["time"].values[ti])
    vol = float(ds["volume"].values[ti]) if "volume" in ds else float("nan")
    tgt = float(ds["target_volume"].values[ti]) if "target_volume" in ds else float("nan")
    ax.set_title(f"t = {t:.3f} s  volume = {vol:.4e}  target = {tgt:.4e}")

    if out:
        fig.savefig(out, dpi=dpi, bbox_inches="tight")
        LOG.info("Saved %s", out)
        plt.close(fig)
    else:
        plt.show()


def main() -> int:
    ap = argparse.ArgumentParser(description="Plot surfsim height snapshots.")
    ap.add_argument("--input", required=True, help="surfsim output NetCDF path.")
    ap.add_argument("--out", default=None, help="Output PNG path. If omitted, show interactive window.")
    ap.add_argument("--out-dir", default=None, help="If set with --all-times, save frames here.")
    ap.add_argument("--all-times", action="store_true", help="Render one PNG per time index.")
    ap.add_argument("--time-index", type=int, default=-1, help="Time index (when not using --all-times).")
    ap.add_argument("--cmap", default="Blues", help="Colormap for height.")
    ap.add_argument("--vmin", type=float, default=None)
    ap.add_argument("--vmax", type=float, default=None)
    ap.add_argument("--dpi", type=int, default=150, help="PNG DPI when saving.")
    ap.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = ap.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(levelname)s %(message)s")

    with xr.open_dataset(args.input) as ds:
        ntimes = int(ds.sizes["time"])
        if args.all_times:
            out_dir = Path(args.out_dir or ".")
            out_dir.mkdir(parents=True, exist_ok=True)
            for ti in range(ntimes):
                plot_one(ds, ti, str(out_dir / f"height_{ti:04d}.png"), args.cmap, args.vmin, args.vmax, args.dpi)
        else:
            ti = args.time_index if args.time_index >= 0 else ntimes + args.time_index
            if not 0 <= ti < ntimes:
                raise IndexError(f"time index {args.time_index} outside dataset with {ntimes} frame(s)")
            plot_one(ds, ti, args.out, args.cmap, args.vmin, args.vmax, args.dpi)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

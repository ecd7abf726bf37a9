# -*- coding: utf-8 -*-
"""Device policy of the vectorized engine: which array module holds the state.

The height field lives on NumPy by default. With ``compute.device = "gpu"``
and CuPy importable it is moved to CuPy; without CuPy the request degrades to
NumPy with a warning instead of failing the run.
"""

# Import importlib for the optional CuPy check.
import importlib
import importlib.util

# Import typing primitives.
from typing import Any, Optional, Tuple

# Import logging.
import logging

# Import numpy.
import numpy as np

logger = logging.getLogger("surfsim")

_CUPY_SPEC = importlib.util.find_spec("cupy")
if _CUPY_SPEC is not None:
    cupy = importlib.import_module("cupy")
else:
    cupy = None

DEVICES = ("cpu", "gpu")


def gpu_available() -> bool:
    """Return True if CuPy can hold the height field."""
    return cupy is not None


def normalize_device(device: Optional[str]) -> str:
    """Map a ``compute.device`` value to 'cpu' or 'gpu' (None means 'cpu')."""
    if device is None:
        return "cpu"
    dev = str(device).lower().strip()
    if dev not in DEVICES:
        raise ValueError(f"Unknown compute.device '{device}'. Use one of: {', '.join(DEVICES)}.")
    return dev


def resolve_device(device: Optional[str]) -> Tuple[str, Any]:
    """Return the device actually used and its array module.

    A GPU request without CuPy falls back to ``('cpu', numpy)``.
    """
    dev = normalize_device(device)
    if dev == "gpu":
        if cupy is not None:
            return "gpu", cupy
        logger.warning("GPU requested but CuPy not available; falling back to CPU.")
    return "cpu", np


def host_copy(arr: Any) -> np.ndarray:
    """Return a float64 NumPy copy of a per-cell array, wherever it lives."""
    if cupy is not None and isinstance(arr, cupy.ndarray):
        return cupy.asnumpy(arr).astype(np.float64, copy=False)
    return np.array(arr, dtype=np.float64, copy=True)

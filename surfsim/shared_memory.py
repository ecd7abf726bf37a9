# -*- coding: utf-8 -*-
"""Shared-memory parallel helpers (thread-based)."""

from __future__ import annotations

# Import dataclass for structured config.
from dataclasses import dataclass

# Import typing primitives.
from typing import List, Tuple

# Import stdlib helpers.
import os


@dataclass(frozen=True)
class SharedMemoryConfig:
    """Configuration for the chunk-parallel backend."""

    enabled: bool
    workers: int
    chunks: int
    min_cells_per_worker: int

    @classmethod
    def from_dict(cls, cfg: dict) -> "SharedMemoryConfig":
        """Build config from raw dictionary."""
        enabled = bool(cfg.get("enabled", True))
        raw_workers = cfg.get("workers", None)
        # Default: use hardware concurrency if available.
        workers = int(raw_workers) if raw_workers not in (None, "") else max(1, os.cpu_count() or 1)
        workers = max(1, workers)
        chunks = int(cfg.get("chunks", 16) or 16)
        min_cells = int(cfg.get("min_cells_per_worker", 4096))
        return cls(
            enabled=enabled,
            workers=workers,
            chunks=max(1, chunks),
            min_cells_per_worker=max(1, min_cells),
        )


def should_parallelize(n_items: int, cfg: SharedMemoryConfig | None) -> bool:
    """Return True when chunks should be dispatched to worker threads."""
    return (
        cfg is not None
        and cfg.enabled
        and cfg.workers > 1
        and n_items >= cfg.min_cells_per_worker
    )


def split_into_chunks(n_items: int, nchunks: int) -> List[Tuple[int, int]]:
    """Split [0, n_items) into exactly ``min(nchunks, n_items)`` contiguous chunks.

    Sizes differ by at most one; the first ``n_items % nchunks`` chunks take
    the extra cell, as ``np.array_split`` does.
    """
    if n_items <= 0:
        return []
    nchunks = min(max(1, int(nchunks)), n_items)
    base, extra = divmod(n_items, nchunks)
    out: List[Tuple[int, int]] = []
    start = 0
    for i in range(nchunks):
        end = start + base + (1 if i < extra else 0)
        out.append((start, end))
        start = end
    return out

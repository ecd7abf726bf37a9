from __future__ import annotations

import numpy as np
import pytest

from surfsim.state import HeightFieldState
from surfsim.surface import SurfaceLimit, ellipse_limits, limits_from_pairs, rectangle_limits
from surfsim.topology import Neighbors, TopologyError, build_topology, check_neighbors


def _grid(columns: int, rows: int, reconcile: bool = True):
    return build_topology(rectangle_limits(columns, rows, 1.0), grid_resolution=1.0, reference_z=0.0, reconcile=reconcile)


def test_rectangle_cell_counts() -> None:
    for columns, rows in [(1, 1), (1, 2), (1, 17), (3, 3), (100, 100)]:
        topo = _grid(columns, rows)
        assert topo.cell_count == columns * rows
        assert topo.max_column_depth == rows
        assert [s.count for s in topo.strips] == [rows] * columns
        assert [s.global_offset for s in topo.strips] == [i * rows for i in range(columns)]


def test_three_by_three_links() -> None:
    nb = _grid(3, 3).neighbors
    # Corner cell (x=0, z=0): missing prev X and prev Z point at itself.
    assert (nb.prev_x[0], nb.next_x[0], nb.prev_z[0], nb.next_z[0]) == (0, 3, 0, 1)
    # Center cell.
    assert (nb.prev_x[4], nb.next_x[4], nb.prev_z[4], nb.next_z[4]) == (1, 7, 3, 5)
    # Opposite corner.
    assert (nb.prev_x[8], nb.next_x[8], nb.prev_z[8], nb.next_z[8]) == (5, 8, 7, 8)


def test_edges_reflect_onto_themselves() -> None:
    topo = _grid(5, 4)
    nb = topo.neighbors
    first_col = np.arange(0, 4)
    last_col = np.arange(16, 20)
    assert np.array_equal(nb.prev_x[first_col], first_col)
    assert np.array_equal(nb.next_x[last_col], last_col)
    bottom = np.array([s.global_offset for s in topo.strips])
    top = bottom + 3
    assert np.array_equal(nb.prev_z[bottom], bottom)
    assert np.array_equal(nb.next_z[top], top)
    check_neighbors(nb, topo.cell_count)


def test_single_column_spikes_are_widened() -> None:
    limits = limits_from_pairs([[0, 0], [0, 0], [0, 3], [0, 0], [0, 0]])
    topo = build_topology(limits, grid_resolution=1.0, reference_z=0.0)
    assert [s.count for s in topo.strips] == [2, 5, 5, 5, 2]
    assert topo.cell_count == 19
    assert topo.max_column_depth == 5


def test_irregular_columns_link_across_offsets() -> None:
    limits = [SurfaceLimit(-2.0, 0.0), SurfaceLimit(0.0, 0.0), SurfaceLimit(0.0, 0.0)]
    topo = build_topology(limits, grid_resolution=1.0, reference_z=0.0)
    assert [(s.local_offset, s.global_offset, s.count) for s in topo.strips] == [(0, 0, 4), (0, 4, 4), (2, 8, 2)]
    nb = topo.neighbors
    # Column 2 starts at local z=2, so its first cell borders column 1's third cell.
    assert nb.prev_x[8] == 6
    assert nb.prev_z[8] == 8
    assert nb.next_z[8] == 9
    assert nb.next_x[8] == 8
    # Column 1 at z=0 has no counterpart in column 2.
    assert nb.next_x[4] == 4
    assert nb.next_x[6] == 8


def test_get_cell_index_defaults() -> None:
    limits = [SurfaceLimit(-2.0, 0.0), SurfaceLimit(0.0, 0.0), SurfaceLimit(0.0, 0.0)]
    topo = build_topology(limits, grid_resolution=1.0, reference_z=0.0)
    assert topo.get_cell_index(2, 3) == 9
    assert topo.get_cell_index(2, 1) == -1
    assert topo.get_cell_index(2, 1, default=42) == 42
    assert topo.get_cell_index(-1, 0) == -1
    assert topo.get_cell_index(3, 0) == -1


def test_world_position_lookup() -> None:
    topo = _grid(3, 3)
    assert topo.cell_index_from_position(1.0, 0.5) == 4
    assert topo.cell_index_from_position(1.2, 0.3) == 3
    assert topo.cell_index_from_position(-0.6, 0.0) is None
    assert topo.cell_index_from_position(0.0, 2.6) is None


def test_reconcile_pass_keeps_links() -> None:
    limits = ellipse_limits(9, 7, 0.5)
    a = build_topology(limits, grid_resolution=0.5, reference_z=0.0, reconcile=True)
    b = build_topology(limits, grid_resolution=0.5, reference_z=0.0, reconcile=False)
    assert a.cell_count == b.cell_count
    assert np.array_equal(a.neighbors.as_table(), b.neighbors.as_table())
    assert a.strips[0].count < a.strips[4].count
    check_neighbors(a.neighbors, a.cell_count)


def test_to_dense_marks_absent_cells() -> None:
    limits = [SurfaceLimit(-2.0, 0.0), SurfaceLimit(0.0, 0.0), SurfaceLimit(0.0, 0.0)]
    topo = build_topology(limits, grid_resolution=1.0, reference_z=0.0)
    grid = topo.to_dense(np.arange(topo.cell_count, dtype=np.float64))
    assert grid.shape == (3, 4)
    assert np.isnan(grid[2, 0]) and np.isnan(grid[2, 1])
    assert grid[2, 2] == 8.0 and grid[2, 3] == 9.0
    assert np.array_equal(grid[0], [0.0, 1.0, 2.0, 3.0])
    x_vals, z_vals = topo.dense_coordinates()
    assert np.allclose(x_vals, [0.0, 1.0, 2.0])
    assert np.allclose(z_vals, [-2.0, -1.0, 0.0, 1.0])


def test_inverted_limits_shrink_instead_of_failing() -> None:
    topo = build_topology([SurfaceLimit(0.0, -3.0)], grid_resolution=1.0, reference_z=0.0)
    assert topo.cell_count == 0
    with pytest.raises(TopologyError):
        HeightFieldState.allocate(topo)


def test_check_neighbors_rejects_dangling_index() -> None:
    nb = _grid(2, 2).neighbors.copy()
    nb.next_z[1] = 4
    with pytest.raises(TopologyError):
        check_neighbors(nb, 4)
    short = Neighbors(prev_x=nb.prev_x[:3], next_x=nb.next_x, prev_z=nb.prev_z, next_z=nb.next_z)
    with pytest.raises(TopologyError):
        check_neighbors(short, 4)

from __future__ import annotations

import logging

import numpy as np
import pytest

from surfsim import compute_backend
from surfsim.backends import ChunkedSimulation, SequentialSimulation, VectorizedSimulation, create_backend
from surfsim.shared_memory import SharedMemoryConfig
from surfsim.state import HeightFieldState
from surfsim.surface import ellipse_limits, rectangle_limits
from surfsim.topology import build_topology

DIFFUSION = 20.0
VISCOSITY = 0.998
DT = 0.02


def _topology(columns: int, rows: int):
    return build_topology(rectangle_limits(columns, rows, 1.0), grid_resolution=1.0, reference_z=0.0)


def _random_state(topology, seed: int) -> HeightFieldState:
    rng = np.random.default_rng(seed)
    state = HeightFieldState.allocate(topology)
    state.height[:] = rng.uniform(0.5, 1.5, size=state.cell_count)
    state.speed[:] = rng.normal(0.0, 0.1, size=state.cell_count)
    return state


def _threaded(chunks: int) -> SharedMemoryConfig:
    return SharedMemoryConfig(enabled=True, workers=4, chunks=chunks, min_cells_per_worker=1)


def _all_backends(topology, seed: int, chunks: int):
    return [
        SequentialSimulation(_random_state(topology, seed)),
        ChunkedSimulation(_random_state(topology, seed), shared_cfg=_threaded(chunks)),
        ChunkedSimulation(_random_state(topology, seed), chunks=chunks),
        VectorizedSimulation(_random_state(topology, seed)),
    ]


@pytest.mark.parametrize(
    "columns, rows, chunks",
    [(1, 1, 3), (1, 2, 3), (1, 17, 3), (3, 3, 2), (100, 100, 7)],
)
def test_backends_agree(columns: int, rows: int, chunks: int) -> None:
    topology = _topology(columns, rows)
    sims = _all_backends(topology, seed=columns * 1000 + rows, chunks=chunks)
    target = sims[0].volume() + 0.3
    last = topology.cell_count - 1
    for _ in range(5):
        for sim in sims:
            assert sim.apply_force(0, 2.0, 1.0)
            assert sim.apply_force(last, -3.0, 2.0)
            sim.simulate(target, DIFFUSION, VISCOSITY, DT)

    ref = sims[0]
    for sim in sims[1:]:
        np.testing.assert_allclose(sim.speeds(), ref.speeds(), rtol=1e-12, atol=1e-12)
        np.testing.assert_allclose(sim.heights(), ref.heights(), rtol=1e-9, atol=1e-12)
        assert sim.last_correction == pytest.approx(ref.last_correction, rel=1e-6, abs=1e-12)
    for sim in sims:
        sim.close()


def test_backends_agree_on_irregular_surface() -> None:
    topology = build_topology(ellipse_limits(21, 13, 0.5), grid_resolution=0.5, reference_z=0.0)
    sims = _all_backends(topology, seed=7, chunks=5)
    target = sims[0].volume()
    for _ in range(10):
        for sim in sims:
            sim.simulate(target, DIFFUSION, VISCOSITY, DT)
    for sim in sims[1:]:
        np.testing.assert_allclose(sim.heights(), sims[0].heights(), rtol=1e-9, atol=1e-12)


@pytest.mark.parametrize("backend", ["sequential", "chunked", "vectorized"])
def test_volume_matches_target_without_clamping(backend: str) -> None:
    topology = _topology(12, 9)
    rng = np.random.default_rng(3)
    state = HeightFieldState.allocate(topology)
    state.height[:] = rng.uniform(1.0, 2.0, size=state.cell_count)
    target = state.volume()
    sim = create_backend(backend, state, {"shared_memory": {"chunks": 4}})
    sim.simulate(target, DIFFUSION, VISCOSITY, DT)
    assert sim.volume() == pytest.approx(target, rel=1e-12)
    # A raised target is reached in a single tick.
    sim.simulate(target + 5.0, DIFFUSION, VISCOSITY, DT)
    assert sim.volume() == pytest.approx(target + 5.0, rel=1e-12)


def test_floor_clamp_only_adds_volume() -> None:
    # One column of five cells with a single spike; a large time step drives
    # the spike below zero, and the clamp returns the deficit as extra volume.
    topology = _topology(1, 5)
    state = HeightFieldState.allocate(topology)
    state.height[2] = 1.0
    sim = SequentialSimulation(state)
    sim.simulate(1.0, DIFFUSION, 1.0, 0.5)
    np.testing.assert_allclose(sim.speeds(), [0.0, 2.5, -5.0, 2.5, 0.0])
    np.testing.assert_allclose(sim.heights(), [0.0, 1.25, 0.0, 1.25, 0.0])
    assert sim.volume() == pytest.approx(2.5)
    assert sim.volume() >= 1.0


@pytest.mark.parametrize("backend", ["sequential", "chunked", "vectorized"])
def test_heights_never_negative(backend: str) -> None:
    topology = _topology(10, 10)
    state = HeightFieldState.allocate(topology, initial_height=0.1)
    sim = create_backend(backend, state, {"shared_memory": {"chunks": 3}})
    rng = np.random.default_rng(11)
    target = sim.volume()
    for _ in range(20):
        for index in rng.integers(0, topology.cell_count, size=5).tolist():
            sim.apply_force(index, -1.0e6, 1.0)
        sim.simulate(target, DIFFUSION, VISCOSITY, DT)
        assert sim.heights().min() >= 0.0


def test_center_disturbance_spreads_to_neighbors() -> None:
    topology = _topology(3, 3)
    state = HeightFieldState.allocate(topology, initial_height=0.0)
    state.height[4] = 1.0
    sim = SequentialSimulation(state)
    correction = sim.simulate(1.0, DIFFUSION, VISCOSITY, DT)

    speeds = sim.speeds()
    heights = sim.heights()
    assert correction == 0.0
    assert speeds[4] == pytest.approx(-0.4 * VISCOSITY)
    for index in (1, 3, 5, 7):
        assert speeds[index] == pytest.approx(0.1 * VISCOSITY)
        assert heights[index] > 0.0
    for index in (0, 2, 6, 8):
        assert speeds[index] == 0.0
    assert heights[4] == pytest.approx(1.0 - 0.4 * VISCOSITY * DT)
    assert sim.volume() == pytest.approx(1.0)


def test_queued_forces_accumulate_per_cell() -> None:
    topology = _topology(4, 4)
    a = SequentialSimulation(HeightFieldState.allocate(topology, initial_height=1.0))
    b = SequentialSimulation(HeightFieldState.allocate(topology, initial_height=1.0))
    assert a.apply_force(5, 3.0, 2.0)
    assert a.apply_force(5, -5.0, 4.0)
    assert b.apply_force(5, 0.25, 1.0)
    assert len(a.forces) == 2
    a.simulate(16.0, DIFFUSION, VISCOSITY, DT)
    b.simulate(16.0, DIFFUSION, VISCOSITY, DT)
    assert len(a.forces) == 0
    np.testing.assert_allclose(a.speeds(), b.speeds(), rtol=1e-12, atol=1e-15)

    # Drained forces are not applied twice.
    before = a.speeds()
    a.simulate(16.0, 0.0, 1.0, DT)
    np.testing.assert_allclose(a.speeds(), before)


def test_out_of_range_interaction_is_rejected() -> None:
    topology = _topology(2, 2)
    sim = SequentialSimulation(HeightFieldState.allocate(topology, initial_height=1.0))
    assert not sim.apply_force(-1, 1.0, 1.0)
    assert not sim.apply_force(4, 1.0, 1.0)
    assert len(sim.forces) == 0
    assert not sim.displace_volume(4, 1.0)
    assert not sim.displace_volume(-1, 1.0)
    np.testing.assert_array_equal(sim.heights(), np.ones(4))
    with pytest.raises(ValueError):
        sim.apply_force(0, 1.0, 0.0)
    with pytest.raises(IndexError):
        sim.height_at(4)
    with pytest.raises(IndexError):
        sim.height_at(1.0)


@pytest.mark.parametrize("index", [1.7, 1.0, True, "1", None, np.float64(2.0)])
def test_non_integer_index_is_rejected(index) -> None:
    topology = _topology(2, 2)
    sim = VectorizedSimulation(HeightFieldState.allocate(topology, initial_height=1.0))
    assert not sim.displace_volume(index, 1.0)
    assert not sim.apply_force(index, 1.0, 1.0)
    assert len(sim.forces) == 0
    np.testing.assert_array_equal(sim.heights(), np.ones(4))


def test_numpy_integer_index_is_accepted() -> None:
    topology = _topology(2, 2)
    sim = SequentialSimulation(HeightFieldState.allocate(topology, initial_height=1.0))
    assert sim.displace_volume(np.int64(1), 1.0)
    assert sim.apply_force(np.int32(3), 2.0, 1.0)
    assert sim.forces.pending()[0].index == 3
    assert sim.height_at(np.int64(1)) == pytest.approx(2.0)


def test_displace_volume_is_immediate_and_unclamped() -> None:
    topology = _topology(2, 2)
    sim = VectorizedSimulation(HeightFieldState.allocate(topology, initial_height=1.0))
    assert sim.displace_volume(2, 0.5)
    assert sim.height_at(2) == pytest.approx(1.5)
    assert sim.displace_volume(3, -5.0)
    assert sim.height_at(3) == pytest.approx(-4.0)
    assert sim.volume() == pytest.approx(-0.5)


def test_closed_backend_refuses_work() -> None:
    topology = _topology(8, 8)
    state = HeightFieldState.allocate(topology, initial_height=1.0)
    with ChunkedSimulation(state, shared_cfg=_threaded(4)) as sim:
        sim.apply_force(0, 1.0, 1.0)
        sim.simulate(64.0, DIFFUSION, VISCOSITY, DT)
    assert state.released
    with pytest.raises(RuntimeError):
        sim.simulate(64.0, DIFFUSION, VISCOSITY, DT)
    with pytest.raises(RuntimeError):
        sim.apply_force(0, 1.0, 1.0)
    with pytest.raises(RuntimeError):
        sim.displace_volume(0, 1.0)
    with pytest.raises(RuntimeError):
        sim.heights()
    with pytest.raises(RuntimeError):
        sim.speeds()
    with pytest.raises(RuntimeError):
        sim.volume()
    with pytest.raises(RuntimeError):
        sim.height_at(0)
    with pytest.raises(RuntimeError):
        SequentialSimulation(state)


def test_chunked_uses_threads_only_when_worthwhile() -> None:
    topology = _topology(4, 4)
    small = ChunkedSimulation(HeightFieldState.allocate(topology), chunks=3)
    assert small._executor is None
    assert small.chunks == [(0, 6), (6, 11), (11, 16)]
    threaded = ChunkedSimulation(HeightFieldState.allocate(topology), shared_cfg=_threaded(3))
    assert threaded._executor is not None
    threaded.close()
    assert threaded._executor is None


def test_unknown_backend_name() -> None:
    state = HeightFieldState.allocate(_topology(2, 2))
    with pytest.raises(ValueError):
        create_backend("turbo", state)
    sim = create_backend("vectorized", state, {"device": "gpu"})
    assert sim.name == "vectorized"


def test_gpu_request_without_cupy_falls_back(monkeypatch, caplog) -> None:
    monkeypatch.setattr(compute_backend, "cupy", None)
    assert compute_backend.resolve_device(None) == ("cpu", np)
    with caplog.at_level(logging.WARNING, logger="surfsim"):
        assert compute_backend.resolve_device(" GPU ") == ("cpu", np)
    assert "falling back to CPU" in caplog.text
    with pytest.raises(ValueError):
        compute_backend.resolve_device("tpu")

    sim = VectorizedSimulation(HeightFieldState.allocate(_topology(2, 2), initial_height=1.0), device="gpu")
    assert sim.device == "cpu"
    assert sim.xp is np


def test_host_copy_detaches_from_state() -> None:
    state = HeightFieldState.allocate(_topology(2, 2), initial_height=1.0)
    copy = compute_backend.host_copy(state.height)
    copy[0] = 5.0
    assert state.height[0] == 1.0
    assert copy.dtype == np.float64

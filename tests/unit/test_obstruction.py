from __future__ import annotations

import numpy as np
import pytest

from viewray.core.errors import DegenerateInput, InvalidArgument
from viewray.core.intersector import CallableIntersector, NumpyIntersector
from viewray.core.obstruction import NUDGE_DISTANCE, ObstructionSampler, compute_clear_distances
from viewray.core.scene import ObstacleMesh
from viewray.examples.synthetic import synthetic_obstacles

POINT = np.array([0.0, 2.5, 1.0])


class RecordingOracle:
    """Single-ray oracle stub returning a fixed parameter per call."""

    def __init__(self, results) -> None:
        self._results = list(results)
        self.calls: list[tuple[np.ndarray, np.ndarray]] = []

    def __call__(self, origin, direction, scene):
        self.calls.append((origin, direction))
        return self._results[len(self.calls) - 1]


def test_wall_ahead_is_measured(wall_mesh: ObstacleMesh) -> None:
    dirs = [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [-1.0, 0.0, 0.0]]
    dists = compute_clear_distances(POINT, dirs, wall_mesh, 50.0, intersector=NumpyIntersector())
    assert dists.shape == (3,)
    assert dists[0] == pytest.approx(5.0 - NUDGE_DISTANCE, abs=1e-9)
    assert dists[1] == 50.0
    assert dists[2] == 50.0


def test_non_unit_direction_uses_euclidean_distance(wall_mesh: ObstacleMesh) -> None:
    dists = compute_clear_distances(POINT, [[4.0, 0.0, 0.0]], wall_mesh, 50.0, intersector=NumpyIntersector())
    assert dists[0] == pytest.approx(5.0 - NUDGE_DISTANCE, abs=1e-9)


def test_oblique_ray_distance(wall_mesh: ObstacleMesh) -> None:
    d = np.array([1.0, 1.0, 0.0])
    dists = compute_clear_distances(POINT, [d], wall_mesh, 50.0, intersector=NumpyIntersector())
    travel = 5.0 - NUDGE_DISTANCE / np.sqrt(2.0)
    assert dists[0] == pytest.approx(travel * np.sqrt(2.0), abs=1e-9)


def test_nudge_follows_first_direction_only(wall_mesh: ObstacleMesh) -> None:
    # The first ray points away from the wall, so the shared origin moves back
    dirs = [[-1.0, 0.0, 0.0], [1.0, 0.0, 0.0]]
    dists = compute_clear_distances(POINT, dirs, wall_mesh, 50.0, intersector=NumpyIntersector())
    assert dists[0] == 50.0
    assert dists[1] == pytest.approx(5.0 + NUDGE_DISTANCE, abs=1e-9)


def test_hits_beyond_max_distance_are_capped(wall_mesh: ObstacleMesh) -> None:
    dists = compute_clear_distances(POINT, [[1.0, 0.0, 0.0]], wall_mesh, 3.0, intersector=NumpyIntersector())
    assert dists[0] == 3.0


def test_no_obstacle_in_view_returns_max(wall_mesh: ObstacleMesh) -> None:
    dirs = [[-1.0, 0.2, 0.1], [0.0, 0.0, 1.0], [-0.3, -1.0, 0.0]]
    dists = compute_clear_distances(POINT, dirs, wall_mesh, 75.5, intersector=NumpyIntersector())
    np.testing.assert_array_equal(dists, [75.5, 75.5, 75.5])


def test_oracle_sees_shared_nudged_origin(wall_mesh: ObstacleMesh) -> None:
    oracle = RecordingOracle([2.0, -1.0, None])
    dirs = np.array([[0.0, 0.0, 3.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
    dists = compute_clear_distances(POINT, dirs, wall_mesh, 10.0, intersector=CallableIntersector(oracle))

    expected_origin = POINT + np.array([0.0, 0.0, NUDGE_DISTANCE])
    assert len(oracle.calls) == 3
    for (origin, direction), d in zip(oracle.calls, dirs):
        np.testing.assert_allclose(origin, expected_origin)
        np.testing.assert_array_equal(direction, d)
    # t = 2 along a direction of length 3
    assert dists[0] == pytest.approx(6.0)
    assert dists[1] == 10.0
    assert dists[2] == 10.0


def test_first_hits_reports_points(wall_mesh: ObstacleMesh) -> None:
    sampler = ObstructionSampler(NumpyIntersector())
    dists, hits = sampler.first_hits(POINT, [[1.0, 0.0, 0.0], [-1.0, 0.0, 0.0]], wall_mesh, 20.0)
    np.testing.assert_allclose(hits.points[0], [5.0, 2.5, 1.0])
    assert np.all(np.isnan(hits.points[1]))
    assert hits.hit_mask.tolist() == [True, False]
    assert dists[1] == 20.0


def test_distances_stay_within_bounds() -> None:
    mesh = synthetic_obstacles("demo", size=20.0)
    rng = np.random.default_rng(7)
    sampler = ObstructionSampler(NumpyIntersector())
    for _ in range(5):
        point = rng.uniform([-8.0, -8.0, 0.5], [8.0, 8.0, 6.0])
        dirs = rng.normal(size=(24, 3)) * rng.uniform(0.2, 3.0, size=(24, 1))
        dists = sampler.clear_distances(point, dirs, mesh, 12.0)
        assert np.all(dists >= 0.0)
        assert np.all(dists <= 12.0)


def test_repeated_calls_are_identical(wall_mesh: ObstacleMesh) -> None:
    dirs = np.array([[1.0, 0.1, 0.0], [1.0, -0.2, 0.3], [-1.0, 0.0, 0.0]])
    sampler = ObstructionSampler(NumpyIntersector())
    a = sampler.clear_distances(POINT, dirs, wall_mesh, 30.0)
    b = sampler.clear_distances(POINT, dirs, wall_mesh, 30.0)
    np.testing.assert_array_equal(a, b)


@pytest.mark.parametrize(
    "point,dirs,max_distance",
    [
        ([np.nan, 0.0, 0.0], [[1.0, 0.0, 0.0]], 10.0),
        ([0.0, 0.0], [[1.0, 0.0, 0.0]], 10.0),
        ([0.0, 0.0, 0.0], [], 10.0),
        ([0.0, 0.0, 0.0], [[1.0, 0.0, 0.0]], 0.0),
        ([0.0, 0.0, 0.0], [[1.0, 0.0, 0.0]], -1.0),
        ([0.0, 0.0, 0.0], [[1.0, 0.0, 0.0]], "far"),
        ([0.0, 0.0, 0.0], [[1.0, 0.0, 0.0]], None),
        ([0.0, 0.0, 0.0], [[1.0, 0.0, 0.0]], float("inf")),
    ],
)
def test_invalid_arguments(wall_mesh: ObstacleMesh, point, dirs, max_distance) -> None:
    with pytest.raises(InvalidArgument):
        compute_clear_distances(point, dirs, wall_mesh, max_distance, intersector=NumpyIntersector())


@pytest.mark.parametrize(
    "vertices,faces",
    [
        (np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int64)),
        ([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]], [[0, 1, 2]]),
        ([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]], [[0, 1, 5]]),
    ],
)
def test_invalid_mesh_rejected(vertices, faces) -> None:
    mesh = ObstacleMesh(vertices=vertices, faces=faces)
    assert not mesh.is_valid()
    with pytest.raises(InvalidArgument):
        compute_clear_distances([0.0, 0.0, 1.0], [[0.0, 0.0, -1.0]], mesh, 10.0, intersector=NumpyIntersector())


def test_zero_first_direction_is_degenerate(wall_mesh: ObstacleMesh) -> None:
    with pytest.raises(DegenerateInput):
        compute_clear_distances(POINT, [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]], wall_mesh, 10.0, intersector=NumpyIntersector())


def test_oracle_errors_propagate(wall_mesh: ObstacleMesh) -> None:
    def broken(origin, direction, scene):
        raise RuntimeError("kernel failure")

    with pytest.raises(RuntimeError, match="kernel failure"):
        compute_clear_distances(POINT, [[1.0, 0.0, 0.0]], wall_mesh, 10.0, intersector=CallableIntersector(broken))


@pytest.mark.parametrize("surface", [None, "wall.ply", np.zeros((3, 3))])
def test_non_mesh_surface_rejected(surface) -> None:
    with pytest.raises(InvalidArgument, match="No valid mesh obstacles"):
        compute_clear_distances(POINT, [[1.0, 0.0, 0.0]], surface, 10.0, intersector=NumpyIntersector())


@pytest.mark.parametrize("nudge", [0.0, -0.001, float("nan"), "tiny"])
def test_invalid_nudge_rejected(nudge) -> None:
    with pytest.raises(InvalidArgument):
        ObstructionSampler(NumpyIntersector(), nudge=nudge)


def test_custom_nudge(wall_mesh: ObstacleMesh) -> None:
    sampler = ObstructionSampler(NumpyIntersector(), nudge=0.5)
    dists = sampler.clear_distances(POINT, [[1.0, 0.0, 0.0]], wall_mesh, 50.0)
    assert dists[0] == pytest.approx(4.5)

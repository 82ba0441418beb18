import numpy as np
import pytest

from viewray.core.bunch import AXIS_TOLERANCE, RayBunchGenerator, generate_ray_bunch, perpendicular_vector
from viewray.core.errors import DegenerateInput, InvalidArgument


def _angle_deg(a: np.ndarray, b: np.ndarray) -> float:
    cos = np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b))
    return float(np.degrees(np.arccos(np.clip(cos, -1.0, 1.0))))


@pytest.mark.parametrize(
    "v",
    [
        (0.0, 0.0, 1.0),
        (0.0, 0.0, -1.0),
        (1e-7, -1e-7, 1.0),
        (1.0, 2.0, 3.0),
        (3.0, 1.0, 2.0),
        (0.0, 1.0, 0.0),
        (-0.6, 0.0, 0.8),
    ],
)
def test_perpendicular_vector_is_orthogonal(v) -> None:
    u = perpendicular_vector(np.asarray(v))
    assert np.linalg.norm(u) > 0
    # Near-vertical inputs fall back to the X axis, orthogonal only to within the axis tolerance
    assert abs(np.dot(u, v)) <= AXIS_TOLERANCE


def test_perpendicular_vector_branches() -> None:
    np.testing.assert_allclose(perpendicular_vector(np.array([0.0, 0.0, 1.0])), [1.0, 0.0, 0.0])
    np.testing.assert_allclose(perpendicular_vector(np.array([5e-7, 5e-7, 2.0])), [1.0, 0.0, 0.0])
    # |x| < |y|: x is zeroed and y solved
    np.testing.assert_allclose(perpendicular_vector(np.array([1.0, 2.0, 3.0])), [0.0, -1.5, 1.0])
    # |x| >= |y|: y is zeroed and x solved
    np.testing.assert_allclose(perpendicular_vector(np.array([3.0, 1.0, 2.0])), [-2.0 / 3.0, 0.0, 1.0])


def test_single_ring_returns_normal() -> None:
    normal = np.array([0.6, 0.0, 0.8])
    tree = generate_ray_bunch([normal], 15.0, 1, 8)
    assert list(tree.keys()) == [0]
    assert tree[0].shape == (1, 3)
    np.testing.assert_allclose(tree[0][0], normal)


@pytest.mark.parametrize("n1,n2", [(1, 1), (2, 4), (3, 6), (5, 1)])
def test_group_size(n1: int, n2: int) -> None:
    tree = generate_ray_bunch([[0.0, 1.0, 0.0]], 7.5, n1, n2)
    assert tree[0].shape == (1 + (n1 - 1) * n2, 3)


def test_cone_around_up_axis() -> None:
    v = np.array([0.0, 0.0, 1.0])
    dirs = generate_ray_bunch([v], 10.0, 2, 4)[0]
    assert dirs.shape == (5, 3)
    np.testing.assert_allclose(np.linalg.norm(dirs, axis=1), 1.0)
    np.testing.assert_allclose(dirs[0], v)
    # First ring direction: v rotated about (1, 0, 0)
    s, c = np.sin(np.radians(10.0)), np.cos(np.radians(10.0))
    np.testing.assert_allclose(dirs[1], [0.0, -s, c], atol=1e-12)
    for d in dirs[1:]:
        assert _angle_deg(d, v) == pytest.approx(10.0)
    az = np.degrees(np.arctan2(dirs[1:, 1], dirs[1:, 0]))
    steps = np.mod(np.diff(az), 360.0)
    np.testing.assert_allclose(steps, 90.0, atol=1e-9)


def test_ring_major_order() -> None:
    v = np.array([1.0, 0.0, 0.0])
    gen = RayBunchGenerator(angle_step_deg=10.0, ring_count=3, division_count=2)
    dirs = gen.generate([v])[0]
    angles = [_angle_deg(d, v) for d in dirs]
    np.testing.assert_allclose(angles, [0.0, 10.0, 10.0, 20.0, 20.0], atol=1e-9)
    np.testing.assert_allclose(gen.ring_angles_deg(), [0.0, 10.0, 20.0])


def test_lengths_follow_input_normal() -> None:
    dirs = generate_ray_bunch([[0.0, 0.0, 2.0]], 30.0, 3, 5)[0]
    np.testing.assert_allclose(np.linalg.norm(dirs, axis=1), 2.0)


def test_groups_keyed_by_input_index() -> None:
    normals = np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 0.0], [0.0, -1.0, 0.0]])
    tree = generate_ray_bunch(normals, 20.0, 2, 3)
    assert list(tree.keys()) == [0, 1, 2]
    for i, n in enumerate(normals):
        np.testing.assert_allclose(tree[i][0], n)
        for d in tree[i][1:]:
            assert _angle_deg(d, n) == pytest.approx(20.0)


def test_generate_array_stacks_groups() -> None:
    gen = RayBunchGenerator(12.0, 3, 4)
    arr = gen.generate_array([[0.0, 0.0, 1.0], [0.0, 1.0, 0.0]])
    assert arr.shape == (2, gen.rays_per_normal, 3)
    assert gen.rays_per_normal == 9


def test_repeated_calls_are_identical() -> None:
    normals = [[0.3, 0.4, 0.866], [0.0, 0.0, 1.0]]
    a = generate_ray_bunch(normals, 11.0, 4, 7)
    b = generate_ray_bunch(normals, 11.0, 4, 7)
    for k in a:
        np.testing.assert_array_equal(a[k], b[k])


@pytest.mark.parametrize(
    "normals,angle,n1,n2",
    [
        ([], 10.0, 2, 4),
        ([[0.0, 0.0, 1.0]], 0.0, 2, 4),
        ([[0.0, 0.0, 1.0]], -5.0, 2, 4),
        ([[0.0, 0.0, 1.0]], 10.0, 0, 4),
        ([[0.0, 0.0, 1.0]], 10.0, 2, -1),
        ([[0.0, 0.0, 1.0]], 10.0, 2.5, 4),
        ([[0.0, 0.0, 1.0]], "wide", 2, 4),
        ([[0.0, 0.0, 1.0]], None, 2, 4),
        ([[0.0, 0.0]], 10.0, 2, 4),
    ],
)
def test_invalid_arguments(normals, angle, n1, n2) -> None:
    with pytest.raises(InvalidArgument):
        generate_ray_bunch(normals, angle, n1, n2)


def test_numpy_integer_counts_accepted() -> None:
    tree = generate_ray_bunch([[0.0, 0.0, 1.0]], 10.0, np.int64(2), np.int32(3))
    assert tree[0].shape == (4, 3)


def test_zero_normal_is_degenerate() -> None:
    with pytest.raises(DegenerateInput):
        generate_ray_bunch([[0.0, 0.0, 1.0], [0.0, 0.0, 0.0]], 10.0, 2, 4)

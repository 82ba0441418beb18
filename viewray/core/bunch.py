from __future__ import annotations

from dataclasses import dataclass
from numbers import Integral
from typing import Dict, Sequence, Union

import numpy as np

from .errors import DegenerateInput, InvalidArgument
from .utils import get_logger, radians, rotate_about_axis

_log = get_logger()

AXIS_TOLERANCE = 1e-6
DEGENERATE_NORM = 1e-12

VectorsLike = Union[np.ndarray, Sequence[Sequence[float]]]


def perpendicular_vector(v: np.ndarray) -> np.ndarray:
    """Return an arbitrary (non-normalized) vector ``u`` with ``dot(u, v) == 0``.

    Solves ``x*vx + y*vy + z*vz = 0`` by fixing ``z = 1`` and one of x/y to 0,
    dividing by whichever of ``vx``/``vy`` is larger in magnitude. Vectors
    aligned with the global Z axis get ``(1, 0, 0)``.
    """
    x0, y0, z0 = (float(c) for c in v)
    if abs(x0) < AXIS_TOLERANCE and abs(y0) < AXIS_TOLERANCE:
        return np.array([1.0, 0.0, 0.0])
    z = 1.0
    if abs(x0) < abs(y0):
        return np.array([0.0, -z * z0 / y0, z])
    return np.array([-z * z0 / x0, 0.0, z])


def _as_normals(normals: VectorsLike) -> np.ndarray:
    arr = np.asarray(normals, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.size == 0:
        raise InvalidArgument("No valid normal vectors.")
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise InvalidArgument(f"Normals must have shape (N, 3), got {arr.shape}.")
    if not np.all(np.isfinite(arr)):
        raise InvalidArgument("Normal vectors must be finite.")
    norms = np.linalg.norm(arr, axis=1)
    bad = np.flatnonzero(norms < DEGENERATE_NORM)
    if bad.size:
        raise DegenerateInput(f"Normal vector at index {int(bad[0])} has near-zero length.")
    return arr


def _check_count(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise InvalidArgument(f"{name} must be an integer, got {value!r}.")
    if value <= 0:
        raise InvalidArgument(f"{name} should be greater than 0.")
    return int(value)


@dataclass(frozen=True)
class RayBunchGenerator:
    """Samples view directions in concentric rings around surface normals.

    Ring 0 is the normal itself. Ring ``j`` is tilted ``j * angle_step_deg``
    away from the normal and split into ``division_count`` azimuthal samples.
    Inputs are used as-is (no renormalization), so every output direction
    has the length of its normal.
    """

    angle_step_deg: float
    ring_count: int
    division_count: int

    def __post_init__(self) -> None:
        try:
            angle = float(self.angle_step_deg)
        except (TypeError, ValueError) as exc:
            raise InvalidArgument(f"angle_step_deg must be a number, got {self.angle_step_deg!r}.") from exc
        if not np.isfinite(angle) or angle <= 0.0:
            raise InvalidArgument("angle_step_deg should be greater than 0.")
        object.__setattr__(self, "angle_step_deg", angle)
        object.__setattr__(self, "ring_count", _check_count("ring_count", self.ring_count))
        object.__setattr__(self, "division_count", _check_count("division_count", self.division_count))

    @property
    def rays_per_normal(self) -> int:
        return 1 + (self.ring_count - 1) * self.division_count

    def ring_angles_deg(self) -> np.ndarray:
        """Polar angle of every ring measured from the normal."""
        return np.arange(self.ring_count, dtype=np.float64) * self.angle_step_deg

    def bunch_for(self, v: np.ndarray) -> np.ndarray:
        """Directions for a single normal, ring-major then division-minor."""
        a1 = radians(self.angle_step_deg)
        a2 = 2.0 * np.pi / self.division_count
        u = perpendicular_vector(v)

        out = np.empty((self.rays_per_normal, 3), dtype=np.float64)
        out[0] = v
        row = 1
        for j in range(1, self.ring_count):
            w0 = rotate_about_axis(v, j * a1, u)
            for k in range(self.division_count):
                out[row] = rotate_about_axis(w0, k * a2, v)
                row += 1
        return out

    def generate(self, normals: VectorsLike) -> Dict[int, np.ndarray]:
        """One ``(rays_per_normal, 3)`` array per normal, keyed by input index."""
        arr = _as_normals(normals)
        tree: Dict[int, np.ndarray] = {}
        for i, v in enumerate(arr):
            tree[i] = self.bunch_for(v)
        _log.debug(
            "Generated %d ray bunches of %d directions each.", len(tree), self.rays_per_normal
        )
        return tree

    def generate_array(self, normals: VectorsLike) -> np.ndarray:
        """Stacked ``(N, rays_per_normal, 3)`` form of :meth:`generate`."""
        tree = self.generate(normals)
        return np.stack([tree[i] for i in range(len(tree))], axis=0)


def generate_ray_bunch(
    normals: VectorsLike,
    angle_step_deg: float,
    ring_count: int,
    division_count: int,
) -> Dict[int, np.ndarray]:
    """Generate a ray bunch for every normal.

    Parameters
    ----------
    normals:
        ``(N, 3)`` normals (a single ``(3,)`` vector is accepted). Each must
        be non-degenerate; unit normals give a geometrically meaningful cone.
    angle_step_deg:
        Angle in degrees between successive rings, ``> 0``.
    ring_count:
        Number of rings including the normal itself, ``>= 1``.
    division_count:
        Number of azimuthal samples per non-zero ring, ``>= 1``.

    Returns
    -------
    dict[int, numpy.ndarray]
        Ordered mapping from normal index to its ``(1 + (ring_count-1) *
        division_count, 3)`` directions.

    Raises
    ------
    InvalidArgument
        Empty normals, non-positive angle or counts.
    DegenerateInput
        A normal with near-zero length.
    """
    generator = RayBunchGenerator(angle_step_deg, ring_count, division_count)
    return generator.generate(normals)

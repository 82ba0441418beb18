from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .errors import DegenerateInput, InvalidArgument
from .intersector import AutoIntersector, Intersector, RayBundle, RayHits
from .scene import ObstacleMesh
from .utils import get_logger

_log = get_logger()

NUDGE_DISTANCE = 0.001
DEGENERATE_NORM = 1e-12

VectorsLike = Union[np.ndarray, Sequence[Sequence[float]]]


def _as_point(point) -> np.ndarray:
    try:
        p = np.asarray(point, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidArgument(f"No valid sample point: {exc}") from exc
    if p.shape != (3,) or not np.all(np.isfinite(p)):
        raise InvalidArgument("No valid sample point.")
    return p


def _as_directions(directions: VectorsLike) -> np.ndarray:
    d = np.asarray(directions, dtype=np.float64)
    if d.ndim == 1 and d.size == 3:
        d = d.reshape(1, 3)
    if d.size == 0:
        raise InvalidArgument("No valid view rays.")
    if d.ndim != 2 or d.shape[1] != 3:
        raise InvalidArgument(f"View rays must have shape (N, 3), got {d.shape}.")
    if not np.all(np.isfinite(d)):
        raise InvalidArgument("View rays must be finite.")
    return d


def _positive(name: str, value) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidArgument(f"{name} must be a number, got {value!r}.") from exc
    if not np.isfinite(v) or v <= 0.0:
        raise InvalidArgument(f"{name} should be greater than 0.")
    return v


class ObstructionSampler:
    """Measures clear viewing distance from a point along a set of view rays.

    The ray origin is pushed ``nudge`` units along the first direction before
    casting so that it does not sit exactly on a mesh vertex or edge. The
    same nudged origin is shared by every ray of the call.
    """

    def __init__(self, intersector: Optional[Intersector] = None, nudge: float = NUDGE_DISTANCE) -> None:
        self.intersector = intersector if intersector is not None else AutoIntersector()
        self.nudge = _positive("nudge", nudge)

    def nudged_origin(self, point: np.ndarray, directions: np.ndarray) -> np.ndarray:
        ref = directions[0]
        ref_len = float(np.linalg.norm(ref))
        if ref_len < DEGENERATE_NORM:
            raise DegenerateInput("First view ray has near-zero length; cannot offset the sample point.")
        return point + ref / ref_len * self.nudge

    def first_hits(
        self,
        point,
        directions: VectorsLike,
        mesh: ObstacleMesh,
        max_distance: float,
    ) -> Tuple[np.ndarray, RayHits]:
        """Clear distances plus the raw hits (points are NaN where a ray misses)."""
        p = _as_point(point)
        dirs = _as_directions(directions)
        if not isinstance(mesh, ObstacleMesh):
            raise InvalidArgument(f"No valid mesh obstacles: expected an ObstacleMesh, got {type(mesh).__name__}.")
        mesh.validate()
        max_distance = _positive("max_distance", max_distance)

        origin = self.nudged_origin(p, dirs)
        bundle = RayBundle(origins=np.tile(origin, (len(dirs), 1)), directions=dirs)
        hits = self.intersector.intersect(mesh, bundle)

        dists = np.full((len(dirs),), max_distance, dtype=np.float64)
        hit = hits.hit_mask
        if np.any(hit):
            # Euclidean distance, not the ray parameter: directions may be non-unit
            dists[hit] = np.linalg.norm(hits.points[hit] - origin, axis=1)
        np.minimum(dists, max_distance, out=dists)
        _log.debug("Cast %d view rays: %d obstructed.", len(dirs), int(np.count_nonzero(hit)))
        return dists, hits

    def clear_distances(
        self,
        point,
        directions: VectorsLike,
        mesh: ObstacleMesh,
        max_distance: float,
    ) -> np.ndarray:
        dists, _ = self.first_hits(point, directions, mesh, max_distance)
        return dists


def compute_clear_distances(
    point,
    directions: VectorsLike,
    surface: ObstacleMesh,
    max_distance: float,
    intersector: Optional[Intersector] = None,
) -> np.ndarray:
    """Clear (unobstructed) distance from ``point`` along each direction.

    Parameters
    ----------
    point:
        Finite sample point ``(3,)``.
    directions:
        ``(N, 3)`` view rays; not required to be unit length.
    surface:
        Obstacle mesh; must be valid.
    max_distance:
        Value reported for rays that hit nothing, and upper bound of every
        result. Must be ``> 0``.
    intersector:
        Ray/mesh oracle. Defaults to :class:`~viewray.core.intersector.AutoIntersector`.

    Returns
    -------
    numpy.ndarray
        ``(N,)`` distances in ``[0, max_distance]`` in input order.
    """
    return ObstructionSampler(intersector).clear_distances(point, directions, surface, max_distance)

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Tuple
import numpy as np
from .scene import ObstacleMesh
from .utils import get_logger, ensure_unit_vectors

_log = get_logger()

try:
    import vtk  # type: ignore
    _HAVE_VTK = True
except Exception:
    vtk = None  # type: ignore
    _HAVE_VTK = False

try:
    import embreex  # type: ignore  # noqa: F401
    from trimesh.ray import ray_pyembree  # type: ignore
    _HAVE_EMBREE = True
except Exception:
    ray_pyembree = None  # type: ignore
    _HAVE_EMBREE = False

MISS = -1.0


@dataclass
class RayBundle:
    origins: np.ndarray          # (M, 3)
    directions: np.ndarray       # (M, 3) not normalized; ray parameters are in units of |d|

    def __post_init__(self) -> None:
        self.origins = np.asarray(self.origins, dtype=np.float64).reshape(-1, 3)
        self.directions = np.asarray(self.directions, dtype=np.float64).reshape(-1, 3)
        if self.origins.shape != self.directions.shape:
            raise ValueError(
                f"origins {self.origins.shape} and directions {self.directions.shape} must match"
            )

    def __len__(self) -> int:
        return len(self.origins)

    def point_at(self, parameters: np.ndarray) -> np.ndarray:
        return self.origins + self.directions * np.asarray(parameters, dtype=np.float64)[:, None]


@dataclass
class RayHits:
    parameters: np.ndarray             # (M,) first-hit ray parameter, MISS when none
    points: np.ndarray                 # (M, 3) hit location, NaN when missed
    cell_ids: np.ndarray               # (M,) triangle ids (or -1 if unknown / missed)

    @property
    def hit_mask(self) -> np.ndarray:
        return self.parameters >= 0.0

    @classmethod
    def from_parameters(
        cls, bundle: RayBundle, parameters: np.ndarray, cell_ids: Optional[np.ndarray] = None
    ) -> "RayHits":
        params = np.asarray(parameters, dtype=np.float64)
        params = np.where(np.isfinite(params) & (params >= 0.0), params, MISS)
        hit = params >= 0.0
        points = np.full((len(bundle), 3), np.nan, dtype=np.float64)
        points[hit] = bundle.point_at(params)[hit]
        if cell_ids is None:
            cell_ids = np.full((len(bundle),), -1, dtype=np.int64)
        return cls(parameters=params, points=points, cell_ids=np.asarray(cell_ids, dtype=np.int64))


class Intersector(Protocol):
    def intersect(self, scene: ObstacleMesh, bundle: RayBundle) -> RayHits: ...


class NumpyIntersector:
    """Pure NumPy intersector: Moller-Trumbore against every triangle, one ray at a time."""

    def __init__(self, epsilon: float = 1e-12) -> None:
        self.epsilon = float(epsilon)

    def _first_hit(
        self,
        origin: np.ndarray,
        direction: np.ndarray,
        v0: np.ndarray,
        edge1: np.ndarray,
        edge2: np.ndarray,
    ) -> Tuple[float, int]:
        pvec = np.cross(direction, edge2)
        det = np.einsum("ij,ij->i", edge1, pvec)
        valid = np.abs(det) > self.epsilon
        inv_det = np.zeros_like(det)
        inv_det[valid] = 1.0 / det[valid]
        tvec = origin - v0
        u = np.einsum("ij,ij->i", tvec, pvec) * inv_det
        qvec = np.cross(tvec, edge1)
        v = (qvec @ direction) * inv_det
        t = np.einsum("ij,ij->i", edge2, qvec) * inv_det
        valid &= (u >= 0.0) & (u <= 1.0) & (v >= 0.0) & (u + v <= 1.0) & (t >= 0.0)
        if not np.any(valid):
            return MISS, -1
        candidates = np.flatnonzero(valid)
        best = int(candidates[np.argmin(t[candidates])])
        return float(t[best]), best

    def intersect(self, scene: ObstacleMesh, bundle: RayBundle) -> RayHits:
        tris = scene.triangles().astype(np.float64, copy=False)
        v0 = tris[:, 0]
        edge1 = tris[:, 1] - v0
        edge2 = tris[:, 2] - v0

        params = np.full((len(bundle),), MISS, dtype=np.float64)
        cell_ids = np.full((len(bundle),), -1, dtype=np.int64)
        for i in range(len(bundle)):
            params[i], cell_ids[i] = self._first_hit(
                bundle.origins[i], bundle.directions[i], v0, edge1, edge2
            )
        return RayHits.from_parameters(bundle, params, cell_ids)


class VTKIntersector:
    """VTK OBBTree (or cell locator) intersector."""
    def __init__(self, obb_tree: bool = True) -> None:
        if not _HAVE_VTK:
            raise RuntimeError("VTK is not available.")
        self._obb_tree = obb_tree
        self._locator = None
        self._cached_scene_id: Optional[int] = None

    def _ensure_locator(self, scene: ObstacleMesh):
        if self._locator is not None and self._cached_scene_id == id(scene):
            return self._locator
        poly = scene.vtk_polydata()
        locator = vtk.vtkOBBTree() if self._obb_tree else vtk.vtkCellLocator()
        locator.SetDataSet(poly)
        locator.BuildLocator()
        self._locator = locator
        self._cached_scene_id = id(scene)
        return locator

    def intersect(self, scene: ObstacleMesh, bundle: RayBundle) -> RayHits:
        locator = self._ensure_locator(scene)
        b = np.asarray(scene.bounds(), dtype=np.float64)
        center = 0.5 * (b[0::2] + b[1::2])
        diag = float(np.linalg.norm(b[1::2] - b[0::2]))

        params = np.full((len(bundle),), MISS, dtype=np.float64)
        cell_ids = np.full((len(bundle),), -1, dtype=np.int64)
        isect_pts = vtk.vtkPoints()
        ids = vtk.vtkIdList()

        for i in range(len(bundle)):
            o = bundle.origins[i]
            d = bundle.directions[i]
            d_len = float(np.linalg.norm(d))
            if d_len == 0.0:
                continue
            # Segment long enough to cross the whole mesh from this origin
            reach = float(np.linalg.norm(o - center)) + diag + 1.0
            p1 = o + d / d_len * reach

            if self._obb_tree:
                isect_pts.Reset()
                ids.Reset()
                if locator.IntersectWithLine(o, p1, isect_pts, ids) == 0:
                    continue
                m = isect_pts.GetNumberOfPoints()
                if m == 0:
                    continue
                dists = [float(np.linalg.norm(np.asarray(isect_pts.GetPoint(j)) - o)) for j in range(m)]
                j = int(np.argmin(dists))
                params[i] = dists[j] / d_len
                if j < ids.GetNumberOfIds():
                    cell_ids[i] = ids.GetId(j)
            else:
                t = vtk.reference(0.0)
                pt = [0.0, 0.0, 0.0]
                pcoords = [0.0, 0.0, 0.0]
                sub_id = vtk.reference(0)
                cell_id = vtk.reference(0)
                if locator.IntersectWithLine(o, p1, 1e-9, t, pt, pcoords, sub_id, cell_id) == 0:
                    continue
                params[i] = float(np.linalg.norm(np.asarray(pt) - o)) / d_len
                cell_ids[i] = int(cell_id.get())

        return RayHits.from_parameters(bundle, params, cell_ids)


class EmbreeIntersector:
    """Embree via trimesh.ray.ray_pyembree (optional dependency)."""
    def __init__(self) -> None:
        if not _HAVE_EMBREE:
            raise RuntimeError("Embree not available. pip install embreex.")
        self._inter = None
        self._cached_scene_id: Optional[int] = None

    def _ensure_intersector(self, scene: ObstacleMesh) -> None:
        if self._inter is not None and self._cached_scene_id == id(scene):
            return
        self._inter = ray_pyembree.RayMeshIntersector(scene.to_trimesh())
        self._cached_scene_id = id(scene)

    def intersect(self, scene: ObstacleMesh, bundle: RayBundle) -> RayHits:
        self._ensure_intersector(scene)
        d_len = np.linalg.norm(bundle.directions, axis=1)
        params = np.full((len(bundle),), MISS, dtype=np.float64)
        cell_ids = np.full((len(bundle),), -1, dtype=np.int64)
        usable = np.flatnonzero(d_len > 0.0)
        if usable.size == 0:
            return RayHits.from_parameters(bundle, params, cell_ids)

        origins = bundle.origins[usable]
        dirs = ensure_unit_vectors(bundle.directions[usable])
        locs, idx_ray, tri_ids = self._inter.intersects_location(
            origins, dirs, multiple_hits=False, return_id=True
        )
        if len(idx_ray):
            dists = np.linalg.norm(locs - origins[idx_ray], axis=1)
            rays = usable[idx_ray]
            params[rays] = dists / d_len[rays]
            cell_ids[rays] = tri_ids
        return RayHits.from_parameters(bundle, params, cell_ids)


class CallableIntersector:
    """Adapts a single-ray oracle ``fn(origin, direction, scene) -> t`` to the batch API.

    ``fn`` returns the ray parameter of the first hit, or a negative value /
    ``None`` when the ray misses.
    """

    def __init__(self, fn: Callable[[np.ndarray, np.ndarray, ObstacleMesh], Optional[float]]) -> None:
        self._fn = fn

    def intersect(self, scene: ObstacleMesh, bundle: RayBundle) -> RayHits:
        params = np.full((len(bundle),), MISS, dtype=np.float64)
        for i in range(len(bundle)):
            t = self._fn(bundle.origins[i].copy(), bundle.directions[i].copy(), scene)
            if t is not None:
                params[i] = float(t)
        return RayHits.from_parameters(bundle, params)


class AutoIntersector:
    """Picks the fastest available backend: Embree if present, else VTK, else NumPy."""
    def __init__(self) -> None:
        self._impl: Optional[Intersector] = None

    def intersect(self, scene: ObstacleMesh, bundle: RayBundle) -> RayHits:
        if self._impl is None:
            self._impl = self._choose()
        return self._impl.intersect(scene, bundle)

    def _choose(self) -> Intersector:
        if _HAVE_EMBREE:
            _log.info("AutoIntersector: using Embree.")
            return EmbreeIntersector()
        if _HAVE_VTK:
            _log.info("AutoIntersector: using VTK OBBTree.")
            return VTKIntersector(obb_tree=True)
        _log.info("AutoIntersector: using NumPy fallback intersector.")
        return NumpyIntersector()


def make_intersector(name: str = "auto") -> Intersector:
    key = (name or "auto").lower()
    if key == "auto":
        return AutoIntersector()
    if key == "numpy":
        return NumpyIntersector()
    if key == "vtk":
        return VTKIntersector(obb_tree=True)
    if key == "embree":
        return EmbreeIntersector()
    raise ValueError(f"Unsupported intersector '{name}'. Choose auto, numpy, vtk or embree.")

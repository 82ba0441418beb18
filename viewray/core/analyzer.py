from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple
import numpy as np

from .scene import ObstacleMesh
from .bunch import RayBunchGenerator, _as_normals
from .errors import InvalidArgument
from .intersector import Intersector, make_intersector
from .obstruction import ObstructionSampler
from .viewbatch import ViewBatch
from .metrics import (
    MetricComputer, MeanDistanceComputer, MinDistanceComputer, MaxDistanceComputer,
    OpenFractionComputer, NormalDistanceComputer, RingMeanComputer, ViewScoreComputer,
)
from .utils import get_logger

_log = get_logger()

DEFAULT_METRICS = ["mean_distance", "min_distance", "open_fraction", "view_score"]

@dataclass
class AnalyzerConfig:
    intersector: str = "auto"
    batch_size_points: int = 256
    max_distance: float = 100.0
    metrics: List[str] = field(default_factory=lambda: list(DEFAULT_METRICS))

_METRIC_FACTORY: Dict[str, Any] = {
    "mean_distance": MeanDistanceComputer,
    "min_distance": MinDistanceComputer,
    "max_distance": MaxDistanceComputer,
    "open_fraction": OpenFractionComputer,
    "normal_distance": NormalDistanceComputer,
    "ring_mean": RingMeanComputer,
    "view_score": ViewScoreComputer,
}

class ViewAnalyzer:
    """High-level orchestrator.

    For every sample point: generate a ray bunch around its normal, measure
    clear distances against the obstacle mesh, run the metric chain and
    stream the resulting ViewBatch to a writer.
    """
    def __init__(
        self,
        mesh: ObstacleMesh,
        generator: RayBunchGenerator,
        intersector: Optional[Intersector] = None,
        cfg: Optional[AnalyzerConfig] = None,
    ) -> None:
        self.mesh = mesh
        self.generator = generator
        self.cfg = cfg or AnalyzerConfig()
        if self.cfg.max_distance <= 0:
            raise InvalidArgument("max_distance should be greater than 0.")
        self.intersector = intersector if intersector is not None else make_intersector(self.cfg.intersector)
        self.sampler = ObstructionSampler(self.intersector)

    def _build_metric_chain(self) -> List[MetricComputer]:
        chain: List[MetricComputer] = []
        seen = set()
        for name in self.cfg.metrics:
            if name in seen:
                continue
            if name not in _METRIC_FACTORY:
                _log.warning("Unknown metric '%s' – skipping.", name)
                continue
            seen.add(name)
            chain.append(_METRIC_FACTORY[name]())
        return chain

    def _point_chunks(self, points: np.ndarray, normals: np.ndarray) -> Iterable[Tuple[np.ndarray, np.ndarray]]:
        limit = int(self.cfg.batch_size_points or 0)
        n = len(points)
        if limit <= 0 or n <= limit:
            yield points, normals
            return
        for start in range(0, n, limit):
            stop = min(start + limit, n)
            yield points[start:stop], normals[start:stop]

    def _analyze_chunk(self, points: np.ndarray, normals: np.ndarray, chain: List[MetricComputer]) -> ViewBatch:
        directions = self.generator.generate_array(normals)
        distances = np.empty(directions.shape[:2], dtype=np.float64)
        for i, p in enumerate(points):
            distances[i] = self.sampler.clear_distances(p, directions[i], self.mesh, self.cfg.max_distance)

        batch = ViewBatch(
            points=points,
            normals=normals,
            directions=directions,
            distances=distances,
            max_distance=float(self.cfg.max_distance),
            ring_count=self.generator.ring_count,
            division_count=self.generator.division_count,
        )
        for comp in chain:
            comp.compute(batch)
        return batch

    def _prepare(self, points, normals) -> Tuple[np.ndarray, np.ndarray]:
        # Every input is checked before the first batch reaches a writer
        pts = np.asarray(points, dtype=np.float64)
        if pts.ndim == 1 and pts.size == 3:
            pts = pts.reshape(1, 3)
        if pts.size == 0:
            raise InvalidArgument("No sample points.")
        if pts.ndim != 2 or pts.shape[1] != 3:
            raise InvalidArgument(f"Sample points must have shape (N, 3), got {pts.shape}.")
        if not np.all(np.isfinite(pts)):
            raise InvalidArgument("Sample points must be finite.")
        nrm = _as_normals(normals)
        if len(pts) != len(nrm):
            raise InvalidArgument(f"Got {len(pts)} sample points but {len(nrm)} normals.")
        self.mesh.validate()
        return pts, nrm

    def iter_batches(self, points, normals) -> Iterable[ViewBatch]:
        pts, nrm = self._prepare(points, normals)
        chain = self._build_metric_chain()
        for chunk_pts, chunk_nrm in self._point_chunks(pts, nrm):
            batch = self._analyze_chunk(chunk_pts, chunk_nrm, chain)
            _log.debug("Analyzed %d sample points (%d rays each).", len(batch), batch.rays_per_point)
            yield batch

    def analyze(self, points, normals) -> ViewBatch:
        """Run the whole analysis in memory and return a single ViewBatch."""
        batches = list(self.iter_batches(points, normals))
        attrs = {k: np.concatenate([b.attrs[k] for b in batches], axis=0) for k in batches[0].attrs}
        return ViewBatch(
            points=np.vstack([b.points for b in batches]),
            normals=np.vstack([b.normals for b in batches]),
            directions=np.concatenate([b.directions for b in batches], axis=0),
            distances=np.concatenate([b.distances for b in batches], axis=0),
            max_distance=float(self.cfg.max_distance),
            ring_count=self.generator.ring_count,
            division_count=self.generator.division_count,
            attrs=attrs,
        )

    def run_to_writer(self, writer, points, normals) -> Dict[str, Any]:
        """Stream: for each chunk of points → ray bunches → clear distances → metrics → write.

        Returns run statistics.
        """
        total_points = 0
        total_rays = 0
        for batch in self.iter_batches(points, normals):
            writer.write_batch(batch)
            total_points += len(batch)
            total_rays += batch.distances.size

        writer.close()
        stats = {"points": total_points, "rays": total_rays}
        _log.info("Analyzer finished: %d points, %d rays", total_points, total_rays)
        return stats

from __future__ import annotations
from typing import Set
import numpy as np
from .viewbatch import ViewBatch
from .utils import ensure_unit_vectors


class MetricComputer:
    name: str = "base"
    produces: Set[str] = set()

    def compute(self, batch: ViewBatch) -> None:  # pragma: no cover - abstract
        raise NotImplementedError


class MeanDistanceComputer(MetricComputer):
    name = "mean_distance"
    produces = {"mean_distance_m"}
    def compute(self, batch: ViewBatch) -> None:
        batch.attrs["mean_distance_m"] = batch.distances.mean(axis=1)


class MinDistanceComputer(MetricComputer):
    name = "min_distance"
    produces = {"min_distance_m"}
    def compute(self, batch: ViewBatch) -> None:
        batch.attrs["min_distance_m"] = batch.distances.min(axis=1)


class MaxDistanceComputer(MetricComputer):
    name = "max_distance"
    produces = {"max_distance_m"}
    def compute(self, batch: ViewBatch) -> None:
        batch.attrs["max_distance_m"] = batch.distances.max(axis=1)


class OpenFractionComputer(MetricComputer):
    """Share of view rays that reach the maximum distance unobstructed."""
    name = "open_fraction"
    produces = {"open_fraction"}
    def compute(self, batch: ViewBatch) -> None:
        open_rays = batch.distances >= batch.max_distance
        batch.attrs["open_fraction"] = open_rays.mean(axis=1)


class NormalDistanceComputer(MetricComputer):
    name = "normal_distance"
    produces = {"normal_distance_m"}
    def compute(self, batch: ViewBatch) -> None:
        # Ring 0 is always the normal itself
        batch.attrs["normal_distance_m"] = batch.distances[:, 0].copy()


class RingMeanComputer(MetricComputer):
    """Mean clear distance per ring, shape (N, ring_count)."""
    name = "ring_mean"
    produces = {"ring_mean_distance_m"}
    def compute(self, batch: ViewBatch) -> None:
        n = len(batch)
        out = np.empty((n, batch.ring_count), dtype=np.float64)
        out[:, 0] = batch.distances[:, 0]
        if batch.ring_count > 1:
            rings = batch.distances[:, 1:].reshape(n, batch.ring_count - 1, batch.division_count)
            out[:, 1:] = rings.mean(axis=2)
        batch.attrs["ring_mean_distance_m"] = out


class ViewScoreComputer(MetricComputer):
    """Cosine-weighted mean clear distance normalized to [0, 1].

    Rays close to the normal weigh more; rays at or beyond 90 degrees get
    no weight.
    """
    name = "view_score"
    produces = {"view_score"}
    def compute(self, batch: ViewBatch) -> None:
        n, r = batch.distances.shape
        normals = ensure_unit_vectors(batch.normals)
        dirs = ensure_unit_vectors(batch.directions.reshape(-1, 3)).reshape(n, r, 3)
        weights = np.clip(np.einsum("nrk,nk->nr", dirs, normals), 0.0, None)
        total = weights.sum(axis=1)
        weighted = (weights * batch.distances).sum(axis=1)
        score = np.divide(weighted, total, out=np.zeros(n), where=total > 0) / batch.max_distance
        batch.attrs["view_score"] = np.clip(score, 0.0, 1.0)

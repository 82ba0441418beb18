from __future__ import annotations
from dataclasses import dataclass, field
import numpy as np
from typing import Dict

@dataclass
class ViewBatch:
    """View-ray results for a batch of sample points."""
    points: np.ndarray                    # (N, 3)
    normals: np.ndarray                   # (N, 3)
    directions: np.ndarray                # (N, R, 3)
    distances: np.ndarray                 # (N, R)
    max_distance: float
    ring_count: int = 1
    division_count: int = 1
    attrs: Dict[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.points = np.asarray(self.points, dtype=np.float64).reshape(-1, 3)
        self.normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
        self.directions = np.asarray(self.directions, dtype=np.float64)
        self.distances = np.asarray(self.distances, dtype=np.float64)
        n = len(self.points)
        if len(self.normals) != n:
            raise ValueError(f"normals length {len(self.normals)} != {n}")
        if self.directions.shape[:1] != (n,) or self.distances.shape != self.directions.shape[:2]:
            raise ValueError(
                f"directions {self.directions.shape} / distances {self.distances.shape} do not match {n} points"
            )
        for k, v in self.attrs.items():
            if v.shape[0] != n:
                raise ValueError(f"Attribute '{k}' first dim {v.shape[0]} != {n}")

    def __len__(self) -> int:
        return len(self.points)

    @property
    def rays_per_point(self) -> int:
        return int(self.distances.shape[1])

    def scalar_attrs(self) -> Dict[str, np.ndarray]:
        return {k: v for k, v in self.attrs.items() if v.ndim == 1}

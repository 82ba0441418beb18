from __future__ import annotations
from typing import Dict, List
import csv
import numpy as np
import pathlib

from .viewbatch import ViewBatch
from .utils import get_logger

_log = get_logger()

_POSITION_COLUMNS = ["x", "y", "z", "nx", "ny", "nz"]


def _scalar_keys(batches: List[ViewBatch]) -> List[str]:
    return sorted({k for b in batches for k, v in b.attrs.items() if v.ndim == 1})


def _scalar_column(batch: ViewBatch, key: str) -> np.ndarray:
    if key in batch.attrs:
        return batch.attrs[key].astype(np.float64, copy=False)
    return np.full((len(batch),), np.nan, dtype=np.float64)


class NpzWriter:
    """Buffers batches and writes one compressed .npz on close."""
    def __init__(self, path: str) -> None:
        self.path = path
        self._batches: List[ViewBatch] = []

    def write_batch(self, batch: ViewBatch) -> None:
        self._batches.append(batch)

    def close(self) -> None:
        if not self._batches:
            return
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        first = self._batches[0]
        out: Dict[str, np.ndarray] = {
            "points": np.vstack([b.points for b in self._batches]),
            "normals": np.vstack([b.normals for b in self._batches]),
            "directions": np.concatenate([b.directions for b in self._batches], axis=0),
            "distances": np.concatenate([b.distances for b in self._batches], axis=0),
            "max_distance": np.asarray(first.max_distance),
            "ring_count": np.asarray(first.ring_count),
            "division_count": np.asarray(first.division_count),
        }
        all_keys = sorted({k for b in self._batches for k in b.attrs.keys()})
        for k in all_keys:
            vals: List[np.ndarray] = []
            for b in self._batches:
                if k in b.attrs:
                    vals.append(b.attrs[k])
                else:
                    tail = next(x.attrs[k].shape[1:] for x in self._batches if k in x.attrs)
                    vals.append(np.full((len(b),) + tail, np.nan))
            out[k] = np.concatenate(vals, axis=0)
        np.savez_compressed(path, **out)
        _log.debug("Wrote %d sample points to %s", len(out["points"]), path)
        self._batches.clear()


class CsvWriter:
    """One row per sample point: position, normal and every scalar metric."""
    def __init__(self, path: str) -> None:
        self.path = path
        self._batches: List[ViewBatch] = []

    def write_batch(self, batch: ViewBatch) -> None:
        self._batches.append(batch)

    def close(self) -> None:
        if not self._batches:
            return
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        keys = _scalar_keys(self._batches)
        with open(path, "w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(_POSITION_COLUMNS + keys)
            for b in self._batches:
                cols = [_scalar_column(b, k) for k in keys]
                for i in range(len(b)):
                    row = [float(c) for c in b.points[i]] + [float(c) for c in b.normals[i]]
                    row += [float(col[i]) for col in cols]
                    writer.writerow(row)
        self._batches.clear()


class PlyWriter:
    """ASCII PLY point cloud of sample points with scalar metrics as vertex properties."""
    def __init__(self, path: str) -> None:
        self.path = path
        self._batches: List[ViewBatch] = []

    def write_batch(self, batch: ViewBatch) -> None:
        self._batches.append(batch)

    def close(self) -> None:
        if not self._batches:
            return
        # Buffered, written once on close
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        keys = _scalar_keys(self._batches)
        points = np.vstack([b.points for b in self._batches])
        normals = np.vstack([b.normals for b in self._batches])
        extra = np.column_stack(
            [np.concatenate([_scalar_column(b, k) for b in self._batches]) for k in keys]
        ) if keys else np.zeros((len(points), 0))
        with open(path, "w", encoding="utf-8") as f:
            f.write("ply\nformat ascii 1.0\n")
            f.write(f"element vertex {len(points)}\n")
            f.write("property float x\nproperty float y\nproperty float z\n")
            f.write("property float nx\nproperty float ny\nproperty float nz\n")
            for k in keys:
                f.write(f"property float {k}\n")
            f.write("end_header\n")
            for p, n, e in zip(points, normals, extra):
                values = list(p) + list(n) + list(e)
                f.write(" ".join(f"{float(v):.6f}" for v in values) + "\n")
        self._batches.clear()

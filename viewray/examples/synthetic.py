from __future__ import annotations

from pathlib import Path
from typing import Iterable, Tuple

import numpy as np

from ..core.scene import ObstacleMesh

Part = Tuple[np.ndarray, np.ndarray, np.ndarray]

PRESETS = ("plane", "canyon", "courtyard", "demo")


def _grid_plane(size: float, divisions: int, z: float, color: Tuple[int, int, int]) -> Part:
    lin = np.linspace(-size / 2.0, size / 2.0, divisions + 1, dtype=np.float64)
    xv, yv = np.meshgrid(lin, lin, indexing="ij")
    vertices = np.column_stack([xv.ravel(), yv.ravel(), np.full_like(xv.ravel(), z)])

    faces = []
    for i in range(divisions):
        for j in range(divisions):
            idx0 = i * (divisions + 1) + j
            idx1 = idx0 + 1
            idx2 = idx0 + (divisions + 1)
            idx3 = idx2 + 1
            faces.append([idx0, idx2, idx3])
            faces.append([idx0, idx3, idx1])
    faces_arr = np.asarray(faces, dtype=np.int64)
    colors = np.tile(np.asarray(color, dtype=np.uint8), (vertices.shape[0], 1))
    return vertices, faces_arr, colors


def _box(center: Tuple[float, float, float], size: Tuple[float, float, float], color: Tuple[int, int, int]) -> Part:
    """Closed box with outward-facing triangles."""
    cx, cy, cz = center
    hx, hy, hz = size[0] / 2.0, size[1] / 2.0, size[2] / 2.0
    vertices = np.array([
        [cx - hx, cy - hy, cz - hz],
        [cx + hx, cy - hy, cz - hz],
        [cx + hx, cy + hy, cz - hz],
        [cx - hx, cy + hy, cz - hz],
        [cx - hx, cy - hy, cz + hz],
        [cx + hx, cy - hy, cz + hz],
        [cx + hx, cy + hy, cz + hz],
        [cx - hx, cy + hy, cz + hz],
    ], dtype=np.float64)

    faces = np.array([
        [0, 2, 1], [0, 3, 2],  # bottom
        [4, 5, 6], [4, 6, 7],  # top
        [0, 1, 5], [0, 5, 4],  # front
        [1, 2, 6], [1, 6, 5],  # right
        [2, 3, 7], [2, 7, 6],  # back
        [3, 0, 4], [3, 4, 7],  # left
    ], dtype=np.int64)
    colors = np.tile(np.asarray(color, dtype=np.uint8), (vertices.shape[0], 1))
    return vertices, faces, colors


def _building(x: float, y: float, footprint: Tuple[float, float], height: float, color: Tuple[int, int, int]) -> Part:
    return _box(center=(x, y, height / 2.0), size=(footprint[0], footprint[1], height), color=color)


def _merge_parts(parts: Iterable[Part]) -> Part:
    vertices: list[np.ndarray] = []
    faces: list[np.ndarray] = []
    colors: list[np.ndarray] = []
    offset = 0
    for verts, tri, col in parts:
        vertices.append(verts)
        colors.append(col)
        faces.append(tri + offset)
        offset += verts.shape[0]
    return (
        np.vstack(vertices).astype(np.float64, copy=False),
        np.vstack(faces).astype(np.int64, copy=False),
        np.vstack(colors).astype(np.uint8, copy=False),
    )


def _write_ascii_ply(path: Path, vertices: np.ndarray, faces: np.ndarray, colors: np.ndarray) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("ply\n")
        f.write("format ascii 1.0\n")
        f.write(f"element vertex {len(vertices)}\n")
        f.write("property float x\nproperty float y\nproperty float z\n")
        f.write("property uchar red\nproperty uchar green\nproperty uchar blue\n")
        f.write(f"element face {len(faces)}\n")
        f.write("property list uchar int vertex_indices\n")
        f.write("end_header\n")
        for (x, y, z), (r, g, b) in zip(vertices, colors):
            f.write(f"{x:.6f} {y:.6f} {z:.6f} {int(r)} {int(g)} {int(b)}\n")
        for tri in faces:
            f.write(f"3 {tri[0]} {tri[1]} {tri[2]}\n")


def build_parts(preset: str, size: float) -> Part:
    """Vertices, faces and colors for a synthetic urban scene of extent ``size``."""
    preset = preset.lower()
    ground = _grid_plane(size=size, divisions=10, z=0.0, color=(180, 200, 180))
    if preset == "plane":
        return ground

    if preset == "canyon":
        # Street canyon along Y: two slab blocks either side of a street of width size/5
        street = size * 0.2
        depth = size * 0.2
        height = size * 0.4
        offset = street / 2.0 + depth / 2.0
        left = _building(-offset, 0.0, (depth, size * 0.9, height), height, (200, 190, 170))
        right = _building(offset, 0.0, (depth, size * 0.9, height), height, (170, 190, 200))
        return _merge_parts([ground, left, right])

    if preset == "courtyard":
        ring = size * 0.3
        thick = size * 0.1
        height = size * 0.25
        length = 2 * ring + thick
        parts = [
            ground,
            _building(0.0, ring, (length, thick, height), height, (200, 200, 220)),
            _building(0.0, -ring, (length, thick, height), height, (200, 200, 220)),
            _building(ring, 0.0, (thick, length - 2 * thick, height), height, (220, 200, 200)),
            _building(-ring, 0.0, (thick, length - 2 * thick, height), height, (220, 200, 200)),
        ]
        return _merge_parts(parts)

    if preset == "demo":
        parts = [
            ground,
            _building(size * 0.25, size * 0.2, (size * 0.15, size * 0.15), size * 0.6, (180, 180, 240)),
            _building(-size * 0.3, -size * 0.1, (size * 0.2, size * 0.2), size * 0.3, (240, 180, 180)),
            _building(size * 0.05, -size * 0.3, (size * 0.3, size * 0.1), size * 0.2, (200, 220, 200)),
        ]
        return _merge_parts(parts)

    raise ValueError(f"Unknown synthetic mesh preset '{preset}'. Choose from {', '.join(PRESETS)}.")


def synthetic_obstacles(preset: str = "demo", size: float = 100.0) -> ObstacleMesh:
    vertices, faces, _ = build_parts(preset, size)
    return ObstacleMesh(vertices=vertices, faces=faces)


def generate_mesh(preset: str, size: float, path: Path) -> None:
    vertices, faces, colors = build_parts(preset, size)
    _write_ascii_ply(Path(path), vertices, faces, colors)

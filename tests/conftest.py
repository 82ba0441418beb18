from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from viewray.core.scene import ObstacleMesh

# 20 x 20 wall in the plane x = 5, winding facing +x
WALL_VERTICES = np.array(
    [
        (5.0, -10.0, -10.0),
        (5.0, 10.0, -10.0),
        (5.0, 10.0, 10.0),
        (5.0, -10.0, 10.0),
    ],
    dtype=np.float64,
)
WALL_FACES = np.array([(0, 1, 2), (0, 2, 3)], dtype=np.int64)


def write_ascii_ply(path: Path, vertices: np.ndarray, faces: np.ndarray) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write("ply\n")
        f.write("format ascii 1.0\n")
        f.write(f"element vertex {len(vertices)}\n")
        f.write("property float x\nproperty float y\nproperty float z\n")
        f.write(f"element face {len(faces)}\n")
        f.write("property list uchar int vertex_indices\n")
        f.write("end_header\n")
        for v in vertices:
            f.write(f"{v[0]} {v[1]} {v[2]}\n")
        for face in faces:
            f.write(f"3 {face[0]} {face[1]} {face[2]}\n")


@pytest.fixture
def wall_mesh() -> ObstacleMesh:
    return ObstacleMesh(vertices=WALL_VERTICES, faces=WALL_FACES)


@pytest.fixture
def wall_ply(tmp_path: Path) -> Path:
    path = tmp_path / "wall.ply"
    write_ascii_ply(path, WALL_VERTICES, WALL_FACES)
    return path

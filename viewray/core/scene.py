from __future__ import annotations
from pathlib import Path
from typing import Optional, Sequence
import numpy as np
from .errors import InvalidArgument
from .utils import get_logger

_log = get_logger()

try:
    import vtk  # type: ignore
    from vtk.util.numpy_support import vtk_to_numpy, numpy_to_vtk, numpy_to_vtkIdTypeArray
    _HAVE_VTK = True
except Exception:
    vtk = None  # type: ignore
    _HAVE_VTK = False

try:
    import trimesh  # type: ignore
    _HAVE_TRIMESH = True
except Exception:
    trimesh = None  # type: ignore
    _HAVE_TRIMESH = False

_AREA_EPS = 1e-12


class ObstacleMesh:
    """Triangulated obstacle surface used as the target of view rays.

    Build it from a file (VTK readers when available, trimesh otherwise,
    ASCII PLY as a last resort), from vertex/face arrays, or from an
    existing vtkPolyData. Only validity is checked here; the actual ray
    casting belongs to the intersector backends.
    """
    def __init__(
        self,
        mesh_path: str | Path | None = None,
        vertices: Optional[np.ndarray | Sequence[Sequence[float]]] = None,
        faces: Optional[np.ndarray | Sequence[Sequence[int]]] = None,
        mesh_data: Optional["vtk.vtkPolyData"] = None,
    ) -> None:
        self.mesh_path = Path(mesh_path) if mesh_path is not None else None
        self._vtk_poly: Optional["vtk.vtkPolyData"] = None
        self._trimesh: Optional["trimesh.Trimesh"] = None
        self._vertices: Optional[np.ndarray] = None
        self._faces: Optional[np.ndarray] = None

        if vertices is not None or faces is not None:
            if vertices is None or faces is None:
                raise ValueError("Provide both vertices and faces.")
            self._vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
            self._faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        elif mesh_data is not None:
            if not _HAVE_VTK:
                raise RuntimeError("VTK is required to pass in vtkPolyData.")
            self._vtk_poly = mesh_data
            self._store_numpy_mesh_from_vtk(mesh_data)
        elif self.mesh_path is not None:
            self._load_from_path(self.mesh_path)
        else:
            raise ValueError("Provide either mesh_path, vertices/faces or mesh_data.")

    @classmethod
    def from_trimesh(cls, tm: "trimesh.Trimesh") -> "ObstacleMesh":
        mesh = cls(vertices=np.asarray(tm.vertices), faces=np.asarray(tm.faces))
        mesh._trimesh = tm
        return mesh

    # -- IO helpers --
    def _load_from_path(self, path: Path) -> None:
        suffix = path.suffix.lower()
        if _HAVE_VTK:
            if suffix == ".ply":
                reader = vtk.vtkPLYReader()
            elif suffix == ".vtp":
                reader = vtk.vtkXMLPolyDataReader()
            elif suffix == ".obj":
                reader = vtk.vtkOBJReader()
            else:
                _log.warning("Unknown mesh extension '%s'; trying VTK's generic reader.", suffix)
                reader = vtk.vtkGenericDataObjectReader()
            reader.SetFileName(str(path))
            reader.Update()
            # Ensure triangulated
            tri = vtk.vtkTriangleFilter()
            tri.SetInputData(reader.GetOutput())
            tri.PassLinesOff()
            tri.PassVertsOff()
            tri.Update()
            poly = tri.GetOutput()
            self._vtk_poly = poly
            self._store_numpy_mesh_from_vtk(poly)
            return

        if _HAVE_TRIMESH:
            self._trimesh = trimesh.load_mesh(str(path), process=False)
            self._vertices = np.asarray(self._trimesh.vertices, dtype=np.float64)
            self._faces = np.asarray(self._trimesh.faces, dtype=np.int64)
            return

        if suffix == ".ply":
            self._load_ascii_ply(path)
            return

        raise RuntimeError("Install VTK/trimesh or provide ASCII PLY mesh.")

    # -- API --
    def is_valid(self) -> bool:
        return self._validity_problem() is None

    def validate(self) -> None:
        problem = self._validity_problem()
        if problem is not None:
            raise InvalidArgument(f"No valid mesh obstacles: {problem}.")

    def _validity_problem(self) -> Optional[str]:
        verts, faces = self._vertices, self._faces
        if verts is None or faces is None:
            return "mesh not loaded"
        if len(verts) == 0 or len(faces) == 0:
            return "mesh is empty"
        if not np.all(np.isfinite(verts)):
            return "vertices contain non-finite coordinates"
        if faces.min() < 0 or faces.max() >= len(verts):
            return "face indices out of range"
        areas = np.linalg.norm(self._face_cross(), axis=1)
        if not np.any(areas > _AREA_EPS):
            return "all triangles are degenerate"
        return None

    @property
    def n_vertices(self) -> int:
        return 0 if self._vertices is None else len(self._vertices)

    @property
    def n_faces(self) -> int:
        return 0 if self._faces is None else len(self._faces)

    def bounds(self) -> tuple[float, float, float, float, float, float]:
        if self._vertices is not None and len(self._vertices):
            mn = self._vertices.min(axis=0)
            mx = self._vertices.max(axis=0)
            return (float(mn[0]), float(mx[0]), float(mn[1]), float(mx[1]), float(mn[2]), float(mx[2]))
        raise RuntimeError("Scene not loaded.")

    def triangle_arrays(self) -> tuple[np.ndarray, np.ndarray]:
        if self._vertices is None or self._faces is None:
            raise RuntimeError("Mesh does not expose triangle arrays.")
        return self._vertices, self._faces

    def triangles(self) -> np.ndarray:
        """``(F, 3, 3)`` corner coordinates per triangle."""
        verts, faces = self.triangle_arrays()
        return verts[faces]

    def face_centroids(self) -> np.ndarray:
        return self.triangles().mean(axis=1)

    def face_normals(self) -> np.ndarray:
        """Unit face normals following right-hand winding; zero for degenerate faces."""
        n = self._face_cross()
        lens = np.linalg.norm(n, axis=1, keepdims=True)
        return np.divide(n, lens, out=np.zeros_like(n), where=lens > _AREA_EPS)

    def _face_cross(self) -> np.ndarray:
        tris = self.triangles().astype(np.float64, copy=False)
        return np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])

    def vtk_polydata(self) -> "vtk.vtkPolyData":
        if self._vtk_poly is not None:
            return self._vtk_poly
        if not _HAVE_VTK:
            raise RuntimeError("VTK not available.")
        verts, faces = self.triangle_arrays()
        pts = vtk.vtkPoints()
        pts.SetData(numpy_to_vtk(np.ascontiguousarray(verts, dtype=np.float64), deep=True))
        cells = np.hstack([np.full((len(faces), 1), 3, dtype=np.int64), faces]).ravel()
        polys = vtk.vtkCellArray()
        polys.SetCells(len(faces), numpy_to_vtkIdTypeArray(cells, deep=True))
        poly = vtk.vtkPolyData()
        poly.SetPoints(pts)
        poly.SetPolys(polys)
        self._vtk_poly = poly
        return poly

    def to_trimesh(self) -> "trimesh.Trimesh":
        if self._trimesh is not None:
            return self._trimesh
        if not _HAVE_TRIMESH:
            raise RuntimeError("trimesh not available.")
        verts, faces = self.triangle_arrays()
        self._trimesh = trimesh.Trimesh(vertices=verts, faces=faces, process=False)
        return self._trimesh

    def _store_numpy_mesh_from_vtk(self, poly: "vtk.vtkPolyData") -> None:
        pts = vtk_to_numpy(poly.GetPoints().GetData()).astype(np.float64, copy=False)
        polys = vtk_to_numpy(poly.GetPolys().GetData())
        self._vertices = pts
        self._faces = polys.reshape(-1, 4)[:, 1:4].astype(np.int64, copy=False)

    def _load_ascii_ply(self, path: Path) -> None:
        with open(path, "r", encoding="utf-8") as f:
            header: list[str] = []
            while True:
                line = f.readline()
                if not line:
                    raise RuntimeError("Unexpected EOF while reading PLY header.")
                line = line.strip()
                header.append(line)
                if line == "end_header":
                    break

            if header[0] != "ply":
                raise RuntimeError("Only ASCII PLY files are supported.")
            if "format ascii" not in header[1]:
                raise RuntimeError("Only ASCII PLY format is supported.")

            n_vertices = 0
            n_faces = 0
            for line in header[2:]:
                parts = line.split()
                if len(parts) >= 3 and parts[0] == "element":
                    if parts[1] == "vertex":
                        n_vertices = int(parts[2])
                    elif parts[1] == "face":
                        n_faces = int(parts[2])

            vertices = []
            for _ in range(n_vertices):
                parts = f.readline().strip().split()
                if len(parts) < 3:
                    raise RuntimeError("Vertex line must contain at least xyz.")
                vertices.append(tuple(map(float, parts[:3])))

            faces = []
            for _ in range(n_faces):
                parts = f.readline().strip().split()
                if not parts:
                    continue
                count = int(parts[0])
                idx = [int(v) for v in parts[1:1 + count]]
                # Fan-triangulate polygons
                for k in range(1, count - 1):
                    faces.append((idx[0], idx[k], idx[k + 1]))

        self._vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
        self._faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)

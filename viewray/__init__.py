"""viewray – view-ray visibility analysis for architectural and urban meshes.

Core components:
- RayBunchGenerator / generate_ray_bunch (core.bunch): concentric rings of
  view directions around surface normals
- ObstructionSampler / compute_clear_distances (core.obstruction): clear
  viewing distance along each ray against an obstacle mesh
- ObstacleMesh (core.scene) and the ray/mesh intersector backends
  (core.intersector) [NumPy, VTK & Embree]
- ViewAnalyzer (core.analyzer): batch orchestration plus per-point metrics
- NPZ / CSV / PLY result writers (core.exporter)
"""

from .core.errors import ViewRayError, InvalidArgument, DegenerateInput
from .core.scene import ObstacleMesh
from .core.bunch import RayBunchGenerator, generate_ray_bunch, perpendicular_vector
from .core.obstruction import ObstructionSampler, compute_clear_distances, NUDGE_DISTANCE
from .core.intersector import (RayBundle, RayHits, Intersector, NumpyIntersector,
                               VTKIntersector, EmbreeIntersector, CallableIntersector,
                               AutoIntersector, make_intersector, MISS)
from .core.viewbatch import ViewBatch
from .core.analyzer import ViewAnalyzer, AnalyzerConfig
from .core.exporter import NpzWriter, CsvWriter, PlyWriter

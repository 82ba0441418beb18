from __future__ import annotations

from typing import Tuple

import numpy as np

from ..config import AnalysisConfig
from ..config.schema import MeshFaceSamplesConfig, PointSamplesConfig
from ..core.analyzer import AnalyzerConfig
from ..core.bunch import RayBunchGenerator
from ..core.exporter import CsvWriter, NpzWriter, PlyWriter
from ..core.intersector import Intersector, make_intersector
from ..core.scene import ObstacleMesh


def build_obstacles(cfg: AnalysisConfig) -> ObstacleMesh:
    mesh = ObstacleMesh(cfg.obstacles.path)
    mesh.validate()
    return mesh


def build_samples(cfg: AnalysisConfig) -> Tuple[np.ndarray, np.ndarray]:
    samples_cfg = cfg.samples
    if isinstance(samples_cfg, PointSamplesConfig):
        points = np.asarray(samples_cfg.points, dtype=np.float64)
        normals = np.asarray(samples_cfg.normals, dtype=np.float64)
        return points, normals
    if isinstance(samples_cfg, MeshFaceSamplesConfig):
        mesh = ObstacleMesh(samples_cfg.path)
        mesh.validate()
        normals = mesh.face_normals()
        centroids = mesh.face_centroids()
        # Degenerate faces have no usable normal
        keep = np.linalg.norm(normals, axis=1) > 0
        normals = normals[keep][:: samples_cfg.stride]
        centroids = centroids[keep][:: samples_cfg.stride]
        points = centroids + normals * samples_cfg.offset_m
        return points, normals
    raise ValueError(f"Unsupported samples kind: {samples_cfg.kind}")


def build_generator(cfg: AnalysisConfig) -> RayBunchGenerator:
    rays = cfg.rays
    return RayBunchGenerator(
        angle_step_deg=rays.angle_step_deg,
        ring_count=rays.ring_count,
        division_count=rays.division_count,
    )


def build_intersector(cfg: AnalysisConfig) -> Intersector:
    return make_intersector(cfg.analyzer.intersector)


def build_analyzer_config(cfg: AnalysisConfig) -> AnalyzerConfig:
    return AnalyzerConfig(
        intersector=cfg.analyzer.intersector,
        batch_size_points=cfg.analyzer.batch_size_points,
        max_distance=cfg.analyzer.max_distance_m,
        metrics=list(cfg.metrics),
    )


def build_writer(cfg: AnalysisConfig):
    out_cfg = cfg.output
    format_lower = out_cfg.format.lower()
    if format_lower == "npz":
        return NpzWriter(str(out_cfg.path))
    if format_lower == "csv":
        return CsvWriter(str(out_cfg.path))
    if format_lower == "ply":
        return PlyWriter(str(out_cfg.path))
    raise ValueError(f"Unsupported output format: {out_cfg.format}")

from __future__ import annotations

from pathlib import Path
from typing import Annotated, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, model_validator

Vec3 = tuple[float, float, float]


class MeshConfig(BaseModel):
    path: Path


class PointSamplesConfig(BaseModel):
    kind: Literal["points"]
    points: List[Vec3] = Field(min_length=1)
    normals: List[Vec3] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_lengths(self) -> "PointSamplesConfig":
        if len(self.points) != len(self.normals):
            raise ValueError(
                f"points ({len(self.points)}) and normals ({len(self.normals)}) must have the same length"
            )
        return self


class MeshFaceSamplesConfig(BaseModel):
    kind: Literal["mesh_faces"]
    path: Path
    offset_m: float = 0.0
    stride: int = Field(default=1, ge=1)


SamplesConfig = Annotated[
    Union[PointSamplesConfig, MeshFaceSamplesConfig],
    Field(discriminator="kind"),
]


class RayBunchConfig(BaseModel):
    angle_step_deg: float = Field(default=10.0, gt=0.0)
    ring_count: int = Field(default=4, ge=1)
    division_count: int = Field(default=12, ge=1)


class AnalyzerConfigModel(BaseModel):
    intersector: str = "auto"
    batch_size_points: int = 256
    max_distance_m: float = Field(default=100.0, gt=0.0)


class OutputConfig(BaseModel):
    path: Path
    format: Literal["npz", "csv", "ply"] = "npz"

    @model_validator(mode="after")
    def _infer_format(self) -> "OutputConfig":
        if "format" not in self.model_fields_set:
            ext = self.path.suffix.lower().lstrip(".")
            if ext in {"npz", "csv", "ply"}:
                self.format = ext  # type: ignore[assignment]
        return self


class AnalysisConfig(BaseModel):
    obstacles: MeshConfig
    samples: SamplesConfig
    rays: RayBunchConfig = RayBunchConfig()
    analyzer: AnalyzerConfigModel = AnalyzerConfigModel()
    metrics: List[str] = Field(
        default_factory=lambda: ["mean_distance", "min_distance", "open_fraction", "view_score"]
    )
    output: OutputConfig


def load_config(path: str | Path) -> AnalysisConfig:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping.")
    cfg = AnalysisConfig.model_validate(data)
    base = path.parent
    cfg.output.path = (base / cfg.output.path).resolve()
    if not cfg.obstacles.path.is_absolute():
        cfg.obstacles.path = (base / cfg.obstacles.path).resolve()
    if isinstance(cfg.samples, MeshFaceSamplesConfig) and not cfg.samples.path.is_absolute():
        cfg.samples.path = (base / cfg.samples.path).resolve()
    return cfg

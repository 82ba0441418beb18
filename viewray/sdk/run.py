from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

from ..config import AnalysisConfig, load_config
from ..core.analyzer import ViewAnalyzer
from ..runtime.builders import (
    build_analyzer_config,
    build_generator,
    build_intersector,
    build_obstacles,
    build_samples,
    build_writer,
)

_OUTPUT_EXTENSIONS = {".npz", ".csv", ".ply"}


@dataclass(frozen=True)
class AnalysisRunResult:
    """Summary of a view analysis driven by a configuration file."""

    stats: Dict[str, int]
    output_path: Path
    config: AnalysisConfig


def analyze_from_config(
    config: Union[str, Path, AnalysisConfig],
    *,
    output: Optional[Path] = None,
    engine: Optional[str] = None,
    metrics: Optional[Sequence[str]] = None,
) -> AnalysisRunResult:
    """Run a view analysis described by a configuration file or object.

    Parameters
    ----------
    config:
        Path to a YAML file or a pre-loaded :class:`~viewray.config.schema.AnalysisConfig`.
    output:
        Optional override for the result file. The extension drives the
        format (``.npz``, ``.csv`` or ``.ply``).
    engine:
        Optional override for the intersector backend.
    metrics:
        Optional metric names to compute instead of the configured ones.

    Returns
    -------
    AnalysisRunResult
        Run statistics (points, rays), the resolved output path and the
        configuration object actually used.
    """

    cfg = load_config(config) if not isinstance(config, AnalysisConfig) else config.model_copy(deep=True)

    if engine:
        cfg.analyzer.intersector = engine
    if metrics is not None:
        cfg.metrics = list(metrics)

    if output is not None:
        out_path = Path(output).resolve()
        ext = out_path.suffix.lower()
        if ext not in _OUTPUT_EXTENSIONS:
            raise ValueError(f"Unsupported output extension '{ext}'")
        cfg.output.path = out_path
        cfg.output.format = ext.lstrip(".")
    else:
        cfg.output.path = Path(cfg.output.path).resolve()
    cfg.output.path.parent.mkdir(parents=True, exist_ok=True)

    mesh = build_obstacles(cfg)
    points, normals = build_samples(cfg)
    analyzer = ViewAnalyzer(
        mesh,
        build_generator(cfg),
        intersector=build_intersector(cfg),
        cfg=build_analyzer_config(cfg),
    )
    writer = build_writer(cfg)

    # Writers buffer until close; a failed run leaves no output file behind
    stats = analyzer.run_to_writer(writer, points, normals)

    return AnalysisRunResult(stats=stats, output_path=Path(cfg.output.path), config=cfg)

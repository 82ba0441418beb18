from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import typer

from ..core.bunch import generate_ray_bunch
from ..core.errors import ViewRayError
from ..core.intersector import make_intersector
from ..core.obstruction import compute_clear_distances
from ..core.scene import ObstacleMesh
from ..examples.synthetic import PRESETS, generate_mesh
from ..sdk.run import analyze_from_config

app = typer.Typer(help="View-ray visibility analysis utilities")
mesh_app = typer.Typer(help="Synthetic obstacle mesh helpers")
app.add_typer(mesh_app, name="mesh")


def _configure_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="[%(levelname)s] %(message)s")
    logging.getLogger("viewray").setLevel(numeric)


def _execute_analyze(
    config: Path,
    output: Optional[Path],
    engine: Optional[str],
    metric: Optional[List[str]],
    log_level: str,
) -> None:
    _configure_logging(log_level)
    if output is not None and output.suffix.lower() not in {".npz", ".csv", ".ply"}:
        raise typer.BadParameter(f"Unsupported output extension '{output.suffix}'", param_hint="--output")
    metrics = list(metric) if metric else None
    try:
        result = analyze_from_config(config, output=output, engine=engine, metrics=metrics)
    except ViewRayError as exc:
        raise typer.BadParameter(str(exc), param_hint="CONFIG") from exc
    stats = result.stats
    typer.echo(f"Analyzed {stats['points']} points with {stats['rays']} rays → {result.output_path}")


@app.command("analyze")
def analyze(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Override output path (extension sets format)."),
    engine: Optional[str] = typer.Option(None, "--engine", help="Override intersector backend (auto, numpy, vtk, embree)."),
    metric: Optional[List[str]] = typer.Option(None, "--metric", "-m", help="Override metric list."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Run a view analysis specified by a YAML config."""

    _execute_analyze(config, output, engine, metric, log_level)


@app.command("run")
def run(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Override output path (extension sets format)."),
    engine: Optional[str] = typer.Option(None, "--engine", help="Override intersector backend (auto, numpy, vtk, embree)."),
    metric: Optional[List[str]] = typer.Option(None, "--metric", "-m", help="Override metric list."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Alias for `analyze`"""

    _execute_analyze(config, output, engine, metric, log_level)


@app.command("bunch")
def bunch(
    normal: Tuple[float, float, float] = typer.Option(..., "--normal", help="Normal vector X Y Z."),
    angle_step: float = typer.Option(10.0, "--angle-step", help="Angle in degrees between successive rings."),
    rings: int = typer.Option(4, "--rings", help="Number of rings including the normal itself."),
    divisions: int = typer.Option(12, "--divisions", help="Directions per ring."),
) -> None:
    """Print the ray bunch around a normal, one direction per line."""

    try:
        tree = generate_ray_bunch([normal], angle_step, rings, divisions)
    except ViewRayError as exc:
        raise typer.BadParameter(str(exc)) from exc
    for x, y, z in tree[0]:
        typer.echo(f"{x:.6f} {y:.6f} {z:.6f}")


@app.command("clear-distance")
def clear_distance(
    mesh: Path = typer.Argument(..., exists=True, readable=True, help="Obstacle mesh path."),
    point: Tuple[float, float, float] = typer.Option(..., "--point", help="Sample point X Y Z."),
    direction: List[str] = typer.Option(..., "--direction", "-d", help="View ray 'X,Y,Z' (repeatable)."),
    max_distance: float = typer.Option(100.0, "--max-distance", help="Distance reported for unobstructed rays."),
    engine: str = typer.Option("auto", "--engine", help="Intersector backend (auto, numpy, vtk, embree)."),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Print the clear distance along each view ray, one per line."""

    _configure_logging(log_level)
    try:
        dirs = np.array([[float(c) for c in d.split(",")] for d in direction], dtype=np.float64)
    except ValueError as exc:
        raise typer.BadParameter(f"Directions must look like 'X,Y,Z': {exc}", param_hint="--direction") from exc
    if dirs.ndim != 2 or dirs.shape[1] != 3:
        raise typer.BadParameter("Directions must have three components.", param_hint="--direction")

    obstacles = ObstacleMesh(mesh.resolve())
    try:
        dists = compute_clear_distances(point, dirs, obstacles, max_distance, intersector=make_intersector(engine))
    except ViewRayError as exc:
        raise typer.BadParameter(str(exc)) from exc
    for d in dists:
        typer.echo(f"{d:.6f}")


@mesh_app.command("generate")
def mesh_generate(
    output: Path = typer.Argument(..., help="Output mesh path (.ply)."),
    preset: str = typer.Option("demo", "--preset", help=f"Synthetic scene preset ({', '.join(PRESETS)})."),
    size: float = typer.Option(100.0, "--size", help="Scene extent in metres."),
) -> None:
    """Generate a synthetic urban obstacle mesh."""

    if size <= 0:
        raise typer.BadParameter("size must be positive.", param_hint="--size")
    out = output.resolve()
    try:
        generate_mesh(preset=preset, size=size, path=out)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--preset") from exc
    typer.echo(f"Wrote synthetic mesh to {out}")


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()

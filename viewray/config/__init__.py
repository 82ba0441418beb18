"""Configuration loading utilities for viewray."""

from .schema import (
    AnalysisConfig,
    load_config,
)

__all__ = ["AnalysisConfig", "load_config"]

from __future__ import annotations
import numpy as np
import logging

def get_logger(name: str = "viewray") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(levelname)s] %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger

def ensure_unit_vectors(v: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    norms = np.linalg.norm(v, axis=1, keepdims=True)
    norms = np.clip(norms, eps, None)
    return v / norms

def radians(deg: float | np.ndarray) -> float | np.ndarray:
    return np.deg2rad(deg)

def degrees(rad: float | np.ndarray) -> float | np.ndarray:
    return np.rad2deg(rad)

def rotate_about_axis(v: np.ndarray, angle_rad: float, axis: np.ndarray) -> np.ndarray:
    """Rotate vector(s) ``v`` counter-clockwise by ``angle_rad`` about ``axis``.

    Rodrigues' formula; the axis is normalized here so callers may pass any
    non-zero axis. Vector length is preserved.
    """
    k = np.asarray(axis, dtype=np.float64)
    k = k / np.linalg.norm(k)
    v = np.asarray(v, dtype=np.float64)
    c = np.cos(angle_rad)
    s = np.sin(angle_rad)
    return v * c + np.cross(k, v) * s + np.outer(v @ k, k).reshape(v.shape) * (1.0 - c)

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from camgeom.errors import _require

RESAMPLE_BACKENDS = ("auto", "opencv", "scipy")
ENV_RESAMPLE_BACKEND = "CAMGEOM_RESAMPLE_BACKEND"


@dataclass(frozen=True)
class GeometryConfig:
    """
    Numerical knobs shared by the models.

    resample_backend:
      "auto" uses OpenCV when it is importable, "opencv" and "scipy" force a backend.
    valid_edge_tolerance_px:
      distance (distorted pixels) within which a traced boundary pixel counts as lying
      on an image edge when computing the "valid" undistorted view.
    mask_growth_trials:
      consecutive non-improving growth steps allowed while covering the distorted image.
    p3p_collinear_sine:
      P3P returns no pose when the sine of the world-triangle angle at A,
      |AB x AC| / (|AB| |AC|), is below this value.
    p3p_coplanar_rays_tol:
      P3P returns no pose when the determinant of the three unit viewing rays is below
      this value.
    """

    resample_backend: str = "auto"
    valid_edge_tolerance_px: float = 7.0
    mask_growth_trials: int = 5
    undistort_iterations: int = 20
    undistort_tolerance: float = 1e-12
    fisheye_max_error_px: float = 0.1
    fisheye_min_degree: int = 2
    fisheye_max_degree: int = 20
    fisheye_angle_step_rad: float = 0.01
    fisheye_min_samples: int = 150
    root_imag_tol: float = 1e-8
    p3p_degeneracy_tol: float = 1e-10
    p3p_collinear_sine: float = 1e-6
    p3p_coplanar_rays_tol: float = 1e-6


_ACTIVE = GeometryConfig()


def parse_config(data: dict[str, Any]) -> GeometryConfig:
    known = {f.name for f in fields(GeometryConfig)}
    unknown = sorted(set(data) - known)
    _require(not unknown, f"unknown config keys: {unknown}")

    cfg = replace(GeometryConfig(), **data)
    _require(cfg.resample_backend in RESAMPLE_BACKENDS, f"resample_backend must be one of {RESAMPLE_BACKENDS}")
    _require(float(cfg.valid_edge_tolerance_px) > 0.0, "valid_edge_tolerance_px must be > 0")
    _require(int(cfg.mask_growth_trials) >= 1, "mask_growth_trials must be >= 1")
    _require(int(cfg.undistort_iterations) >= 1, "undistort_iterations must be >= 1")
    _require(float(cfg.fisheye_max_error_px) > 0.0, "fisheye_max_error_px must be > 0")
    _require(
        2 <= int(cfg.fisheye_min_degree) <= int(cfg.fisheye_max_degree),
        "fisheye degree range must satisfy 2 <= min <= max",
    )
    _require(float(cfg.fisheye_angle_step_rad) > 0.0, "fisheye_angle_step_rad must be > 0")
    _require(int(cfg.fisheye_min_samples) >= 2, "fisheye_min_samples must be >= 2")
    _require(float(cfg.root_imag_tol) >= 0.0, "root_imag_tol must be >= 0")
    _require(float(cfg.p3p_collinear_sine) > 0.0, "p3p_collinear_sine must be > 0")
    _require(float(cfg.p3p_coplanar_rays_tol) > 0.0, "p3p_coplanar_rays_tol must be > 0")
    return cfg


def load_config(path: Path) -> GeometryConfig:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_config(data)


def get_config() -> GeometryConfig:
    """Active configuration, with the backend optionally overridden from the environment."""
    backend = os.environ.get(ENV_RESAMPLE_BACKEND)
    if backend:
        _require(backend in RESAMPLE_BACKENDS, f"{ENV_RESAMPLE_BACKEND} must be one of {RESAMPLE_BACKENDS}")
        return replace(_ACTIVE, resample_backend=backend)
    return _ACTIVE


def set_config(cfg: GeometryConfig) -> GeometryConfig:
    """Install `cfg` process-wide and return the previous configuration."""
    global _ACTIVE
    previous = _ACTIVE
    _ACTIVE = cfg
    return previous

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from camgeom.core.rotation import rotation_vectors_to_matrices
from camgeom.errors import _require


def check_intrinsic_matrix(K: np.ndarray) -> np.ndarray:
    K = np.asarray(K, dtype=np.float64)
    _require(K.shape == (3, 3), "intrinsic matrix must be 3x3")
    _require(bool(np.all(np.isfinite(K))), "intrinsic matrix must be finite")
    _require(K[1, 0] == 0.0 and K[2, 0] == 0.0 and K[2, 1] == 0.0, "intrinsic matrix must be upper triangular")
    _require(K[2, 2] == 1.0, "intrinsic matrix must have K[2,2] == 1")
    _require(K[0, 0] > 0.0 and K[1, 1] > 0.0, "focal lengths must be > 0")
    return K


def check_image_size(image_size) -> tuple[int, int] | None:
    if image_size is None:
        return None
    size = np.asarray(image_size).reshape(-1)
    _require(size.size == 2, "image_size must be (rows, cols)")
    _require(bool(np.all(np.isfinite(size))), "image_size must be finite")
    rows, cols = (int(v) for v in size)
    _require(rows == float(size[0]) and cols == float(size[1]), "image_size must hold integers")
    _require(rows > 0 and cols > 0, "image_size values must be > 0")
    return rows, cols


def check_world_points(world_points) -> np.ndarray:
    if world_points is None:
        return np.zeros((0, 2), dtype=np.float64)
    wp = np.asarray(world_points, dtype=np.float64)
    if wp.size == 0:
        return np.zeros((0, 2), dtype=np.float64)
    _require(wp.ndim == 2 and wp.shape[1] == 2, "world_points must be an (P,2) array")
    _require(bool(np.all(np.isfinite(wp))), "world_points must be finite")
    return wp


def check_world_units(world_units) -> str:
    _require(isinstance(world_units, str) and len(world_units) > 0, "world_units must be a non-empty string")
    return world_units


def _as_vector_array(x, name: str) -> np.ndarray:
    if x is None:
        return np.zeros((0, 3), dtype=np.float64)
    a = np.asarray(x, dtype=np.float64)
    if a.size == 0:
        return np.zeros((0, 3), dtype=np.float64)
    if a.ndim == 1:
        a = a.reshape(1, -1)
    _require(a.ndim == 2 and a.shape[1] == 3, f"{name} must be an (M,3) array")
    _require(bool(np.all(np.isfinite(a))), f"{name} must be finite")
    return a


@dataclass(frozen=True)
class PatternExtrinsics:
    """
    Per-pattern poses of a planar calibration target (world Z = 0) plus the
    reprojection errors measured on each pattern.

    rotation_vectors, translation_vectors: (M,3), X_cam = R X_world + t
    reprojection_errors: (P,2,M), reprojected minus detected points
    """

    rotation_vectors: np.ndarray
    translation_vectors: np.ndarray
    reprojection_errors: np.ndarray

    @classmethod
    def build(cls, rotation_vectors=None, translation_vectors=None, reprojection_errors=None, num_points: int = 0):
        r = _as_vector_array(rotation_vectors, "rotation_vectors")
        t = _as_vector_array(translation_vectors, "translation_vectors")
        _require(r.shape == t.shape, "rotation_vectors and translation_vectors must have the same size")

        if reprojection_errors is None or np.asarray(reprojection_errors).size == 0:
            errors = np.zeros((num_points, 2, 0), dtype=np.float64)
        else:
            errors = np.asarray(reprojection_errors, dtype=np.float64)
            if errors.ndim == 2 and r.shape[0] == 1:
                errors = errors[:, :, None]
            _require(errors.ndim == 3 and errors.shape[1] == 2, "reprojection_errors must be a (P,2,M) array")
            _require(errors.shape[2] == r.shape[0], "reprojection_errors must have one slice per pattern")
            if num_points:
                _require(errors.shape[0] == num_points, "reprojection_errors must have one row per world point")
        return cls(rotation_vectors=r, translation_vectors=t, reprojection_errors=errors)

    @property
    def num_patterns(self) -> int:
        return int(self.rotation_vectors.shape[0])

    @property
    def has_errors(self) -> bool:
        return self.reprojection_errors.shape[2] > 0

    @property
    def rotation_matrices(self) -> np.ndarray:
        return rotation_vectors_to_matrices(self.rotation_vectors)

    def compute_mean_error(self) -> tuple[float, np.ndarray]:
        """
        Returns (overall mean, per-pattern means) of the Euclidean reprojection error.
        """
        if not self.has_errors:
            return float("nan"), np.zeros((0,), dtype=np.float64)
        dist = np.hypot(self.reprojection_errors[:, 0, :], self.reprojection_errors[:, 1, :])
        return float(np.mean(dist)), np.mean(dist, axis=0)

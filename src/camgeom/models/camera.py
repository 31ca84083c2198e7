from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from camgeom.config import get_config
from camgeom.core.distortion import BrownDistortion, brown_to_dict, distort_pixels, undistort_pixels
from camgeom.errors import SingularProjectionError, _require
from camgeom.models.distortion_map import DistortionMapCache
from camgeom.models.extrinsics import (
    PatternExtrinsics,
    check_image_size,
    check_intrinsic_matrix,
    check_world_points,
    check_world_units,
)
from camgeom.models.undistort_bounds import Bounds, check_output_view, compute_undistort_bounds

CAMERA_SCHEMA = "camgeom.camera.v0"


def output_dtype(points: np.ndarray) -> np.dtype:
    """float64 in, float64 out; any other input class yields float32."""
    return np.dtype(np.float64) if np.asarray(points).dtype == np.float64 else np.dtype(np.float32)


@dataclass(frozen=True)
class CameraIntrinsics:
    fx: float
    fy: float
    cx: float
    cy: float
    skew: float = 0.0
    image_size: tuple[int, int] | None = None

    @property
    def K(self) -> np.ndarray:
        return np.array(
            [[self.fx, self.skew, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    @property
    def focal_length(self) -> tuple[float, float]:
        return self.fx, self.fy

    @property
    def principal_point(self) -> tuple[float, float]:
        return self.cx, self.cy

    @classmethod
    def from_matrix(cls, K: np.ndarray, image_size: tuple[int, int] | None = None) -> "CameraIntrinsics":
        K = check_intrinsic_matrix(K)
        return cls(
            fx=float(K[0, 0]),
            fy=float(K[1, 1]),
            cx=float(K[0, 2]),
            cy=float(K[1, 2]),
            skew=float(K[0, 1]),
            image_size=check_image_size(image_size),
        )


def _plane_homography(K: np.ndarray, R: np.ndarray, t: np.ndarray) -> np.ndarray:
    R = np.asarray(R, dtype=np.float64).reshape(3, 3)
    t = np.asarray(t, dtype=np.float64).reshape(3)
    return K @ np.column_stack([R[:, 0], R[:, 1], t])


class CameraModel:
    """
    Calibrated pinhole camera with Brown-Conrady lens distortion.

    Intrinsics and distortion never change after construction. Per-pattern
    extrinsics and reprojection errors can only be replaced by building a new
    model (`with_extrinsics`, `with_reprojection_errors_from`).

    Conventions
    -----------
    - K = [[fx, skew, cx], [0, fy, cy], [0, 0, 1]], 0-based pixel centers.
    - Extrinsics map world to camera: X_cam = R @ X_world + t.
    - The calibration pattern lies on the world plane Z = 0.
    """

    def __init__(
        self,
        intrinsic_matrix: np.ndarray | CameraIntrinsics | None = None,
        *,
        radial_distortion: Sequence[float] = (0.0, 0.0),
        tangential_distortion: Sequence[float] = (0.0, 0.0),
        image_size: tuple[int, int] | None = None,
        world_points: np.ndarray | None = None,
        world_units: str = "mm",
        rotation_vectors: np.ndarray | None = None,
        translation_vectors: np.ndarray | None = None,
        reprojection_errors: np.ndarray | None = None,
        estimate_skew: bool = False,
        num_radial_coefficients: int | None = None,
        estimate_tangential_distortion: bool = False,
    ) -> None:
        if intrinsic_matrix is None:
            intrinsic_matrix = np.eye(3)
        if isinstance(intrinsic_matrix, CameraIntrinsics):
            image_size = image_size if image_size is not None else intrinsic_matrix.image_size
            intrinsic_matrix = intrinsic_matrix.K
        self._K = check_intrinsic_matrix(intrinsic_matrix).copy()

        radial = np.asarray(radial_distortion, dtype=np.float64).reshape(-1)
        _require(radial.size in (2, 3), "radial_distortion must have 2 or 3 elements")
        _require(bool(np.all(np.isfinite(radial))), "radial_distortion must be finite")
        tangential = np.asarray(tangential_distortion, dtype=np.float64).reshape(-1)
        _require(tangential.size == 2, "tangential_distortion must have 2 elements")
        _require(bool(np.all(np.isfinite(tangential))), "tangential_distortion must be finite")
        self._radial = radial
        self._tangential = tangential
        self._distortion = BrownDistortion.from_coefficients(radial, tangential)

        if num_radial_coefficients is None:
            num_radial_coefficients = int(radial.size)
        _require(int(num_radial_coefficients) in (2, 3), "num_radial_coefficients must be 2 or 3")
        self._num_radial = int(num_radial_coefficients)
        self._estimate_skew = bool(estimate_skew)
        self._estimate_tangential = bool(estimate_tangential_distortion)

        self._image_size = check_image_size(image_size)
        self._world_points = check_world_points(world_points)
        self._world_units = check_world_units(world_units)
        self._extrinsics = PatternExtrinsics.build(
            rotation_vectors,
            translation_vectors,
            reprojection_errors,
            num_points=int(self._world_points.shape[0]),
        )
        self._undistort_map = DistortionMapCache()

    # -- parameters ------------------------------------------------------------------
    @property
    def intrinsic_matrix(self) -> np.ndarray:
        return self._K.copy()

    @property
    def intrinsics(self) -> CameraIntrinsics:
        return CameraIntrinsics.from_matrix(self._K, self._image_size)

    @property
    def focal_length(self) -> tuple[float, float]:
        return float(self._K[0, 0]), float(self._K[1, 1])

    @property
    def principal_point(self) -> tuple[float, float]:
        return float(self._K[0, 2]), float(self._K[1, 2])

    @property
    def skew(self) -> float:
        return float(self._K[0, 1])

    @property
    def radial_distortion(self) -> np.ndarray:
        return self._radial.copy()

    @property
    def tangential_distortion(self) -> np.ndarray:
        return self._tangential.copy()

    @property
    def distortion(self) -> BrownDistortion:
        return self._distortion

    @property
    def image_size(self) -> tuple[int, int] | None:
        return self._image_size

    @property
    def world_points(self) -> np.ndarray:
        return self._world_points.copy()

    @property
    def world_units(self) -> str:
        return self._world_units

    @property
    def estimate_skew(self) -> bool:
        return self._estimate_skew

    @property
    def num_radial_coefficients(self) -> int:
        return self._num_radial

    @property
    def estimate_tangential_distortion(self) -> bool:
        return self._estimate_tangential

    @property
    def extrinsics(self) -> PatternExtrinsics:
        return self._extrinsics

    @property
    def rotation_vectors(self) -> np.ndarray:
        return self._extrinsics.rotation_vectors.copy()

    @property
    def translation_vectors(self) -> np.ndarray:
        return self._extrinsics.translation_vectors.copy()

    @property
    def rotation_matrices(self) -> np.ndarray:
        return self._extrinsics.rotation_matrices

    @property
    def reprojection_errors(self) -> np.ndarray:
        return self._extrinsics.reprojection_errors.copy()

    @property
    def num_patterns(self) -> int:
        return self._extrinsics.num_patterns

    # -- geometry --------------------------------------------------------------------
    def distort_points(self, points: np.ndarray) -> np.ndarray:
        """Undistorted pixel coordinates (N,2) -> distorted pixel coordinates (N,2)."""
        out = distort_pixels(points, self._K, self._distortion)
        return out.astype(output_dtype(points))

    def undistort_points(self, points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Distorted pixel coordinates (N,2) -> (undistorted points, per-point residual in pixels).

        The residual is the distance between the re-distorted estimate and the input.
        """
        cfg = get_config()
        xy = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        und = undistort_pixels(
            xy, self._K, self._distortion, iterations=cfg.undistort_iterations, tol=cfg.undistort_tolerance
        )
        redist = distort_pixels(und, self._K, self._distortion)
        errors = np.hypot(redist[:, 0] - xy[:, 0], redist[:, 1] - xy[:, 1])
        dtype = output_dtype(points)
        return und.astype(dtype), errors.astype(dtype)

    def world_to_image(
        self, R: np.ndarray, t: np.ndarray, world_points: np.ndarray, apply_distortion: bool = False
    ) -> np.ndarray:
        """
        Project world points (N,3), or pattern points (N,2) on Z = 0, to pixels.
        """
        wp = np.asarray(world_points, dtype=np.float64)
        _require(wp.ndim == 2 and wp.shape[1] in (2, 3), "world_points must be (N,2) or (N,3)")
        if wp.shape[1] == 2:
            wp = np.column_stack([wp, np.zeros(wp.shape[0])])
        R = np.asarray(R, dtype=np.float64).reshape(3, 3)
        t = np.asarray(t, dtype=np.float64).reshape(3)
        cam = wp @ R.T + t
        hom = cam @ self._K.T
        uv = hom[:, :2] / hom[:, 2:3]
        if apply_distortion:
            uv = distort_pixels(uv, self._K, self._distortion)
        return uv.astype(output_dtype(world_points))

    def points_to_world(self, R: np.ndarray, t: np.ndarray, image_points: np.ndarray) -> np.ndarray:
        """
        Back-project undistorted image points (N,2) onto the world plane Z = 0.
        """
        H = _plane_homography(self._K, R, t)
        scale = float(np.linalg.norm(H))
        if scale == 0.0 or abs(float(np.linalg.det(H))) <= np.finfo(np.float64).eps * scale**3:
            raise SingularProjectionError("world plane is seen edge-on; image to plane mapping is singular")
        xy = np.asarray(image_points, dtype=np.float64).reshape(-1, 2)
        hom = np.column_stack([xy, np.ones(xy.shape[0])]) @ np.linalg.inv(H).T
        world = hom[:, :2] / hom[:, 2:3]
        return world.astype(output_dtype(image_points))

    @property
    def reprojected_points(self) -> np.ndarray:
        """(P,2,M) world points projected with each pattern pose, distortion applied."""
        P = self._world_points.shape[0]
        M = self.num_patterns
        out = np.zeros((P, 2, M), dtype=np.float64)
        if P == 0:
            return out
        hom_world = np.column_stack([self._world_points, np.ones(P)])
        for i, R in enumerate(self.rotation_matrices):
            H = _plane_homography(self._K, R, self._extrinsics.translation_vectors[i])
            hom = hom_world @ H.T
            uv = hom[:, :2] / hom[:, 2:3]
            out[:, :, i] = distort_pixels(uv, self._K, self._distortion)
        return out

    @property
    def mean_reprojection_error(self) -> float:
        return self._extrinsics.compute_mean_error()[0]

    def compute_mean_error(self) -> tuple[float, np.ndarray]:
        return self._extrinsics.compute_mean_error()

    # -- wholesale replacement -------------------------------------------------------
    def _replace(self, **changes: Any) -> "CameraModel":
        kwargs: dict[str, Any] = {
            "radial_distortion": self._radial,
            "tangential_distortion": self._tangential,
            "image_size": self._image_size,
            "world_points": self._world_points,
            "world_units": self._world_units,
            "rotation_vectors": self._extrinsics.rotation_vectors,
            "translation_vectors": self._extrinsics.translation_vectors,
            "reprojection_errors": self._extrinsics.reprojection_errors,
            "estimate_skew": self._estimate_skew,
            "num_radial_coefficients": self._num_radial,
            "estimate_tangential_distortion": self._estimate_tangential,
        }
        kwargs.update(changes)
        return CameraModel(self._K, **kwargs)

    def with_extrinsics(
        self,
        rotation_vectors: np.ndarray,
        translation_vectors: np.ndarray,
        reprojection_errors: np.ndarray | None = None,
    ) -> "CameraModel":
        return self._replace(
            rotation_vectors=rotation_vectors,
            translation_vectors=translation_vectors,
            reprojection_errors=reprojection_errors,
        )

    def with_reprojection_errors_from(self, image_points: np.ndarray) -> "CameraModel":
        """New model whose errors are reprojected minus detected points (P,2,M)."""
        detected = np.asarray(image_points, dtype=np.float64)
        if detected.ndim == 2:
            detected = detected[:, :, None]
        expected = self.reprojected_points
        _require(detected.shape == expected.shape, "image_points must match (P,2,M) of the pattern set")
        return self._replace(reprojection_errors=expected - detected)

    # -- images ----------------------------------------------------------------------
    def compute_undistort_bounds(self, image_size: tuple[int, int], output_view: str = "same") -> Bounds:
        return compute_undistort_bounds(
            image_size,
            output_view,
            lambda pts: distort_pixels(pts, self._K, self._distortion),
        )

    def undistort_image(
        self,
        image: np.ndarray,
        interpolation: str = "bilinear",
        output_view: str = "same",
        fill_value: float | Sequence[float] = 0.0,
    ) -> tuple[np.ndarray, tuple[int, int]]:
        """
        Remove lens distortion from an image.

        Returns (undistorted image, new_origin) where new_origin is the undistorted
        pixel coordinate of output pixel (0, 0).
        """
        image = np.asarray(image)
        _require(image.ndim in (2, 3) and image.size > 0, "image must be a non-empty (H,W) or (H,W,C) array")
        view = check_output_view(output_view)
        cache = self._undistort_map
        if cache.needs_update(image, view):
            x_bounds, y_bounds = self.compute_undistort_bounds(image.shape[:2], view)
            cache.update_pinhole(image, self._K, self._distortion, view, x_bounds, y_bounds)
        undistorted = cache.transform_image(image, interpolation, fill_value)
        return undistorted, cache.map.new_origin

    # -- records ---------------------------------------------------------------------
    def to_record(self) -> dict[str, Any]:
        from camgeom import __version__

        return {
            "schema_version": CAMERA_SCHEMA,
            "intrinsic_matrix": self._K.copy(),
            "radial_distortion": self._radial.copy(),
            "tangential_distortion": self._tangential.copy(),
            "image_size": None if self._image_size is None else list(self._image_size),
            "world_points": self._world_points.copy(),
            "world_units": self._world_units,
            "estimate_skew": self._estimate_skew,
            "num_radial_coefficients": self._num_radial,
            "estimate_tangential_distortion": self._estimate_tangential,
            "rotation_vectors": self.rotation_vectors,
            "translation_vectors": self.translation_vectors,
            "reprojection_errors": self.reprojection_errors,
            "version": __version__,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "CameraModel":
        _require(record.get("schema_version") == CAMERA_SCHEMA, f"schema_version must be {CAMERA_SCHEMA}")
        return cls(
            record["intrinsic_matrix"],
            radial_distortion=record["radial_distortion"],
            tangential_distortion=record["tangential_distortion"],
            image_size=record.get("image_size"),
            world_points=record.get("world_points"),
            world_units=record.get("world_units", "mm"),
            rotation_vectors=record.get("rotation_vectors"),
            translation_vectors=record.get("translation_vectors"),
            reprojection_errors=record.get("reprojection_errors"),
            estimate_skew=bool(record.get("estimate_skew", False)),
            num_radial_coefficients=record.get("num_radial_coefficients"),
            estimate_tangential_distortion=bool(record.get("estimate_tangential_distortion", False)),
        )

    def summary(self) -> dict[str, Any]:
        fx, fy = self.focal_length
        cx, cy = self.principal_point
        return {
            "type": "pinhole",
            "focal_length": [fx, fy],
            "principal_point": [cx, cy],
            "skew": self.skew,
            "distortion": brown_to_dict(self._distortion),
            "image_size": None if self._image_size is None else list(self._image_size),
            "num_patterns": self.num_patterns,
            "world_units": self._world_units,
            "mean_reprojection_error_px": self.mean_reprojection_error,
        }

    def __repr__(self) -> str:
        fx, fy = self.focal_length
        cx, cy = self.principal_point
        return f"CameraModel(f=({fx:.3f}, {fy:.3f}), c=({cx:.3f}, {cy:.3f}), patterns={self.num_patterns})"

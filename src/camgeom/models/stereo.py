"""
Calibrated stereo pair: relative pose, epipolar geometry, rectification and
disparity-to-depth reconstruction.

Conventions
-----------
- X_cam2 = R @ X_cam1 + t.
- Rectification rotates both cameras by half of R (in opposite directions) and then
  aligns the baseline with the image rows; both rectified views share one pinhole
  camera `K_new` (min focal length, mean cy, camera-1 cx, zero skew).
- Rectified output pixel (0, 0) sits at rectified coordinate (x_bounds[0], y_bounds[0]).
"""
from __future__ import annotations

import logging
import warnings
from typing import Any, Sequence

import numpy as np

from camgeom.core.geometry import transform_points_forward, transform_points_inverse
from camgeom.core.rotation import rodrigues_matrix_to_vector, rodrigues_vector_to_matrix
from camgeom.errors import (
    InvalidBoundsError,
    RectificationRequiredError,
    ValidViewFallbackWarning,
    _require,
)
from camgeom.models.camera import CameraModel, output_dtype
from camgeom.models.distortion_map import DistortionMapCache
from camgeom.models.rectification import RECTIFY_VIEWS, RectificationState
from camgeom.models.undistort_bounds import check_output_view
from camgeom.pose.essential import essential_from_pose

logger = logging.getLogger(__name__)

STEREO_SCHEMA = "camgeom.stereo.v0"
INVALID_DISPARITY = -float(np.finfo(np.float32).max)


def _round(x: np.ndarray) -> np.ndarray:
    """Round half away from zero."""
    x = np.asarray(x, dtype=np.float64)
    return np.sign(x) * np.floor(np.abs(x) + 0.5)


def _check_rotation(R) -> np.ndarray:
    R = np.asarray(R, dtype=np.float64)
    _require(R.shape == (3, 3), "rotation_of_camera2 must be 3x3")
    _require(bool(np.all(np.isfinite(R))), "rotation_of_camera2 must be finite")
    return R


def _check_translation(t) -> np.ndarray:
    t = np.asarray(t, dtype=np.float64).reshape(-1)
    _require(t.size == 3, "translation_of_camera2 must have 3 elements")
    _require(bool(np.all(np.isfinite(t))), "translation_of_camera2 must be finite")
    return t


def row_alignment_rotation(t: np.ndarray) -> np.ndarray:
    """Rotation taking the baseline direction `t` onto the +/- x axis."""
    t = np.asarray(t, dtype=np.float64).reshape(3)
    x_unit = np.array([1.0, 0.0, 0.0])
    if float(np.dot(x_unit, t)) < 0.0:
        x_unit = -x_unit
    axis = np.cross(t, x_unit)
    n = float(np.linalg.norm(axis))
    if n == 0.0:
        return np.eye(3)
    angle = np.arccos(np.clip(abs(float(np.dot(t, x_unit))) / float(np.linalg.norm(t)), -1.0, 1.0))
    return rodrigues_vector_to_matrix(axis / n * angle)[0]


def _corners(x_bounds: tuple[int, int], y_bounds: tuple[int, int]) -> np.ndarray:
    return np.array(
        [
            [x_bounds[0], y_bounds[0]],
            [x_bounds[1], y_bounds[0]],
            [x_bounds[1], y_bounds[1]],
            [x_bounds[0], y_bounds[1]],
        ],
        dtype=np.float64,
    )


def output_bounds_full(out1: np.ndarray, out2: np.ndarray) -> tuple[tuple[int, int], tuple[int, int], bool]:
    """Union of the bounding boxes of both transformed image outlines."""
    lo = _round(np.minimum(out1.min(axis=0), out2.min(axis=0)))
    hi = _round(np.maximum(out1.max(axis=0), out2.max(axis=0)))
    ok = bool(lo[0] < hi[0] and lo[1] < hi[1])
    return (int(lo[0]), int(hi[0])), (int(lo[1]), int(hi[1])), ok


def output_bounds_valid(out1: np.ndarray, out2: np.ndarray) -> tuple[tuple[int, int], tuple[int, int], bool]:
    """Common rectangle of both outlines: middle two of the eight sorted corner coordinates."""
    pts = np.concatenate([out1, out2])
    xs = np.sort(pts[:, 0])
    ys = np.sort(pts[:, 1])
    r1 = _round(out1)
    r2 = _round(out2)
    if r1[:, 0].min() >= r2[:, 0].max() or r1[:, 0].max() <= r2[:, 0].min():
        return (0, 0), (0, 0), False
    x_bounds = (int(_round(xs[3])), int(_round(xs[4])))
    y_bounds = (int(_round(ys[3])), int(_round(ys[4])))
    return x_bounds, y_bounds, True


class StereoModel:
    """
    Two calibrated cameras and the pose of camera 2 relative to camera 1.

    Rectification parameters and per-camera rectification maps are computed on
    demand and cached; they are recomputed whenever the image size or output view
    changes.
    """

    def __init__(
        self,
        camera1: CameraModel,
        camera2: CameraModel,
        rotation_of_camera2: np.ndarray,
        translation_of_camera2: np.ndarray,
        rectification: RectificationState | None = None,
    ) -> None:
        _require(isinstance(camera1, CameraModel), "camera1 must be a CameraModel")
        _require(isinstance(camera2, CameraModel), "camera2 must be a CameraModel")
        _require(camera1.num_patterns == camera2.num_patterns, "cameras must have the same number of patterns")
        _require(
            camera1.world_units.lower() == camera2.world_units.lower(),
            "cameras must use the same world units",
        )
        wp1, wp2 = camera1.world_points, camera2.world_points
        if wp1.size and wp2.size:
            _require(
                wp1.shape == wp2.shape and bool(np.allclose(wp1, wp2)),
                "cameras must share the same world points",
            )
        self._camera1 = camera1
        self._camera2 = camera2
        self._R = _check_rotation(rotation_of_camera2).copy()
        self._t = _check_translation(translation_of_camera2).copy()
        self._rectification = rectification if rectification is not None else RectificationState.uninitialized()
        self._rectify_map1 = DistortionMapCache()
        self._rectify_map2 = DistortionMapCache()

    @property
    def camera1(self) -> CameraModel:
        return self._camera1

    @property
    def camera2(self) -> CameraModel:
        return self._camera2

    @property
    def rotation_of_camera2(self) -> np.ndarray:
        return self._R.copy()

    @property
    def translation_of_camera2(self) -> np.ndarray:
        return self._t.copy()

    @property
    def rectification(self) -> RectificationState:
        return self._rectification

    @property
    def essential_matrix(self) -> np.ndarray:
        return essential_from_pose(self._R, self._t)

    @property
    def fundamental_matrix(self) -> np.ndarray:
        """F with x2^T F x1 = 0 for pixel coordinates."""
        K1 = self._camera1.intrinsic_matrix
        K2 = self._camera2.intrinsic_matrix
        return np.linalg.inv(K2).T @ self.essential_matrix @ np.linalg.inv(K1)

    @property
    def mean_reprojection_error(self) -> float:
        return float(np.mean([self._camera1.mean_reprojection_error, self._camera2.mean_reprojection_error]))

    @property
    def num_patterns(self) -> int:
        return self._camera1.num_patterns

    @property
    def world_points(self) -> np.ndarray:
        return self._camera1.world_points

    @property
    def world_units(self) -> str:
        return self._camera1.world_units

    # -- rectification -----------------------------------------------------------------
    def _half_rotations(self) -> tuple[np.ndarray, np.ndarray]:
        r, _ = rodrigues_matrix_to_vector(self._R)
        Rr, _ = rodrigues_vector_to_matrix(r / -2.0)
        return Rr.T, Rr

    def _new_intrinsics(self) -> np.ndarray:
        K1 = self._camera1.intrinsic_matrix
        K2 = self._camera2.intrinsic_matrix
        K = K1.copy()
        f = min(K1[0, 0], K2[0, 0])
        K[0, 0] = f
        K[1, 1] = f
        K[1, 2] = (K1[1, 2] + K2[1, 2]) / 2.0
        K[0, 1] = 0.0
        return K

    def compute_rectification_parameters(
        self, image_size: tuple[int, int], output_view: str = "valid"
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, tuple[int, int], tuple[int, int], bool]:
        """
        Returns (H1, H2, Q, x_bounds, y_bounds, success) without touching the cache.
        """
        view = check_output_view(output_view, RECTIFY_VIEWS)
        Rl, Rr = self._half_rotations()
        t = Rr @ self._t
        row_align = row_alignment_rotation(t)
        K_new = self._new_intrinsics()
        H1 = K_new @ row_align @ Rl @ np.linalg.inv(self._camera1.intrinsic_matrix)
        H2 = K_new @ row_align @ Rr @ np.linalg.inv(self._camera2.intrinsic_matrix)
        t = row_align @ t

        out = []
        for cam, H in ((self._camera1, H1), (self._camera2, H2)):
            xb, yb = cam.compute_undistort_bounds(image_size, view)
            out.append(transform_points_forward(H, _corners(xb, yb)))
        if view == "full":
            x_bounds, y_bounds, success = output_bounds_full(out[0], out[1])
        else:
            x_bounds, y_bounds, success = output_bounds_valid(out[0], out[1])

        cx = K_new[0, 2] - x_bounds[0]
        cy = K_new[1, 2] - y_bounds[0]
        f = K_new[1, 1]
        Q = np.array(
            [
                [1.0, 0.0, 0.0, -cx],
                [0.0, 1.0, 0.0, -cy],
                [0.0, 0.0, 0.0, f],
                [0.0, 0.0, -1.0 / t[0], 0.0],
            ],
            dtype=np.float64,
        )
        return H1, H2, Q, x_bounds, y_bounds, success

    def ensure_rectification(self, image_size: tuple[int, int], output_view: str = "valid") -> RectificationState:
        """
        Recompute the rectification state when it does not match `image_size` and
        `output_view`. A "valid" view without a common rectangle falls back to "full".
        """
        view = check_output_view(output_view, RECTIFY_VIEWS)
        size = (int(image_size[0]), int(image_size[1]))
        if not self._rectification.needs_update(size, view):
            return self._rectification

        H1, H2, Q, xb, yb, success = self.compute_rectification_parameters(size, view)
        if not success and view == "valid":
            warnings.warn(
                "no common valid region for the rectified images; using the 'full' output view",
                ValidViewFallbackWarning,
                stacklevel=2,
            )
            H1, H2, Q, xb, yb, success = self.compute_rectification_parameters(size, "full")
        if not success:
            raise InvalidBoundsError("rectified images have no valid output bounds")

        logger.debug("rectification recomputed for size=%s view=%s: x=%s y=%s", size, view, xb, yb)
        self._rectification = RectificationState(
            h1=H1,
            h2=H2,
            q=Q,
            x_bounds=xb,
            y_bounds=yb,
            original_image_size=size,
            output_view=view,
            initialized=True,
        )
        self._rectify_map1.clear()
        self._rectify_map2.clear()
        return self._rectification

    def rectify_stereo_images(
        self,
        image1: np.ndarray,
        image2: np.ndarray,
        interpolation: str = "bilinear",
        fill_value: float | Sequence[float] = 0.0,
        output_view: str = "valid",
    ) -> tuple[np.ndarray, np.ndarray]:
        image1 = np.asarray(image1)
        image2 = np.asarray(image2)
        _require(image1.ndim in (2, 3) and image1.size > 0, "image1 must be a non-empty (H,W) or (H,W,C) array")
        _require(image1.shape == image2.shape, "image1 and image2 must have the same shape")
        _require(image1.dtype == image2.dtype, "image1 and image2 must have the same dtype")
        view = check_output_view(output_view, RECTIFY_VIEWS)

        state = self.ensure_rectification(image1.shape[:2], view)
        for cache, cam, H, img in (
            (self._rectify_map1, self._camera1, state.h1, image1),
            (self._rectify_map2, self._camera2, state.h2, image2),
        ):
            if cache.needs_update(img, view):
                cache.update_pinhole(
                    img, cam.intrinsic_matrix, cam.distortion, view, state.x_bounds, state.y_bounds, homography=H
                )
        out1 = self._rectify_map1.transform_image(image1, interpolation, fill_value)
        out2 = self._rectify_map2.transform_image(image2, interpolation, fill_value)
        return out1, out2

    def _require_rectification(self) -> RectificationState:
        if not self._rectification.initialized:
            raise RectificationRequiredError("rectify the stereo images before using rectified coordinates")
        return self._rectification

    def _unrectify(self, points: np.ndarray, H: np.ndarray, camera: CameraModel) -> np.ndarray:
        state = self._require_rectification()
        xy = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        xy = xy + np.array([state.x_bounds[0], state.y_bounds[0]], dtype=np.float64)
        und = transform_points_inverse(H, xy)
        return camera.distort_points(und).astype(output_dtype(points))

    def unrectify_points1(self, points: np.ndarray) -> np.ndarray:
        """Rectified output pixels of image 1 -> distorted pixels of the original image 1."""
        return self._unrectify(points, self._require_rectification().h1, self._camera1)

    def unrectify_points2(self, points: np.ndarray) -> np.ndarray:
        return self._unrectify(points, self._require_rectification().h2, self._camera2)

    def reconstruct_scene(self, disparity: np.ndarray) -> np.ndarray:
        """
        (H,W) disparity map of the rectified pair -> (H,W,3) points in the rectified
        camera-1 frame. Pixels equal to INVALID_DISPARITY become NaN.
        """
        state = self._require_rectification()
        d = np.asarray(disparity)
        if d.shape != state.rectified_image_size:
            raise RectificationRequiredError(
                f"disparity map must be {state.rectified_image_size[0]}x{state.rectified_image_size[1]}, "
                f"the size of the rectified images"
            )
        dtype = np.float64 if d.dtype == np.float64 else np.float32
        d = d.astype(dtype, copy=False)
        Q = state.q.astype(dtype)
        rows, cols = d.shape
        xx, yy = np.meshgrid(np.arange(cols, dtype=dtype), np.arange(rows, dtype=dtype))
        hom = np.stack([xx, yy, d, np.ones_like(d)], axis=-1) @ Q.T
        with np.errstate(divide="ignore", invalid="ignore"):
            pts = hom[..., :3] / hom[..., 3:4]
        pts[d == dtype(INVALID_DISPARITY)] = np.nan
        return pts

    # -- records ---------------------------------------------------------------------
    def to_record(self) -> dict[str, Any]:
        from camgeom import __version__

        return {
            "schema_version": STEREO_SCHEMA,
            "camera1": self._camera1.to_record(),
            "camera2": self._camera2.to_record(),
            "rotation_of_camera2": self._R.copy(),
            "translation_of_camera2": self._t.copy(),
            "rectification": self._rectification.to_record(),
            "version": __version__,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "StereoModel":
        _require(record.get("schema_version") == STEREO_SCHEMA, f"schema_version must be {STEREO_SCHEMA}")
        rect = record.get("rectification")
        return cls(
            CameraModel.from_record(record["camera1"]),
            CameraModel.from_record(record["camera2"]),
            record["rotation_of_camera2"],
            record["translation_of_camera2"],
            rectification=None if rect is None else RectificationState.from_record(rect),
        )

    def summary(self) -> dict[str, Any]:
        state = self._rectification
        return {
            "type": "stereo",
            "camera1": self._camera1.summary(),
            "camera2": self._camera2.summary(),
            "rotation_of_camera2": self._R.tolist(),
            "translation_of_camera2": self._t.tolist(),
            "baseline": float(np.linalg.norm(self._t)),
            "rectified_image_size": list(state.rectified_image_size) if state.initialized else None,
        }

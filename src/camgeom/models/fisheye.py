"""
Omnidirectional (fisheye) camera model.

A scene direction (x, y, z) in the camera frame is imaged at sensor radius rho where

    z / |(x, y)| * rho = f(rho) = a0 + a2 rho^2 + a3 rho^3 + a4 rho^4

(the linear term of f is fixed to zero). Sensor coordinates are then mapped to
pixels through the stretch matrix [[c, d], [e, 1]] and the distortion center:

    [u', v'] = stretch @ [u, v] + center

Notes
-----
- The exact projection solves one polynomial per distinct z/rho ratio.
- The approximate projection fits an inverse polynomial rho(theta) over the range
  of elevation angles present in the input and evaluates it; it is what image
  undistortion uses by default.
"""
from __future__ import annotations

import logging
import warnings
from typing import Any, Sequence

import numpy as np

from camgeom.config import GeometryConfig, get_config
from camgeom.core.polyroots import smallest_positive_real_roots
from camgeom.errors import FisheyeUndistortWarning, SingularProjectionError, UndistortBoundsError, _require
from camgeom.models.camera import CameraIntrinsics, output_dtype
from camgeom.models.distortion_map import DistortionMapCache
from camgeom.models.extrinsics import PatternExtrinsics, check_image_size, check_world_points, check_world_units
from camgeom.models.undistort_bounds import check_output_view

logger = logging.getLogger(__name__)

FISHEYE_INTRINSICS_SCHEMA = "camgeom.fisheye_intrinsics.v0"
FISHEYE_SCHEMA = "camgeom.fisheye.v0"
PROJECTION_METHODS = ("exact", "approximate")


def _stretch_to_pixels(u: np.ndarray, v: np.ndarray, stretch: np.ndarray, center: np.ndarray) -> np.ndarray:
    up = u * stretch[0, 0] + v * stretch[0, 1] + center[0]
    vp = u * stretch[1, 0] + v + center[1]
    return np.column_stack([up, vp])


def _split_radius(points3d: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    p = np.asarray(points3d, dtype=np.float64).reshape(-1, 3)
    lam_rho = np.hypot(p[:, 0], p[:, 1])
    lam_rho[lam_rho == 0.0] = np.finfo(np.float64).eps
    return p, lam_rho


def find_rho(coeffs: np.ndarray, m: np.ndarray, imag_tol: float = 1e-8) -> np.ndarray:
    """
    Smallest positive rho with f(rho) - m * rho = 0 for each slope m (NaN if none).

    coeffs: full mapping polynomial [a0, a1, a2, a3, a4], lowest degree first.
    """
    coeffs = np.asarray(coeffs, dtype=np.float64).reshape(-1)
    m = np.asarray(m, dtype=np.float64).reshape(-1)
    table = np.tile(coeffs, (m.size, 1))
    table[:, 1] = coeffs[1] - m
    return smallest_positive_real_roots(table, imag_tol=imag_tol)


def compute_image_projection(
    points3d: np.ndarray,
    coeffs: np.ndarray,
    stretch: np.ndarray,
    center: np.ndarray,
    imag_tol: float | None = None,
) -> np.ndarray:
    """
    Exact fisheye projection of (N,3) camera-frame points to (N,2) pixels.

    Points without a positive real solution are returned as NaN.
    """
    if imag_tol is None:
        imag_tol = get_config().root_imag_tol
    p, lam_rho = _split_radius(points3d)
    if p.shape[0] == 0:
        return np.zeros((0, 2), dtype=np.float64)
    m = p[:, 2] / lam_rho
    unique_m, inverse = np.unique(m, return_inverse=True)
    rho = find_rho(coeffs, unique_m, imag_tol=imag_tol)[inverse.reshape(-1)]
    # points on the optical axis image at the distortion center
    rho[(p[:, 0] == 0.0) & (p[:, 1] == 0.0)] = 0.0
    u = p[:, 0] / lam_rho * rho
    v = p[:, 1] / lam_rho * rho
    return _stretch_to_pixels(u, v, np.asarray(stretch, dtype=np.float64), np.asarray(center, dtype=np.float64))


def _fit_inverse_polynomial(
    coeffs: np.ndarray, theta_range: tuple[float, float], degree: int, cfg: GeometryConfig
) -> tuple[np.ndarray | None, float]:
    lo, hi = theta_range
    step = float(cfg.fisheye_angle_step_rad)
    theta = np.arange(lo, hi + 0.5 * step, step) if hi > lo else np.array([lo])
    if 10 < theta.size < int(cfg.fisheye_min_samples):
        theta = np.linspace(lo, hi, int(cfg.fisheye_min_samples) + 1)
    elif theta.size <= 10:
        theta = np.append(np.arange(-np.pi / 2, np.pi / 2, step), np.pi / 2)

    rho = find_rho(coeffs, np.tan(theta), imag_tol=cfg.root_imag_tol)
    ok = ~np.isnan(rho)
    theta, rho = theta[ok], rho[ok]
    if rho.size <= degree:
        return None, float("inf")
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", np.exceptions.RankWarning)
        p = np.polyfit(theta, rho, degree)
    err = np.abs(rho - np.polyval(p, theta))
    return p, float(err.max())


def compute_approx_image_projection(
    points3d: np.ndarray,
    coeffs: np.ndarray,
    stretch: np.ndarray,
    center: np.ndarray,
    config: GeometryConfig | None = None,
) -> tuple[np.ndarray, float]:
    """
    Approximate fisheye projection through a fitted inverse polynomial rho(theta).

    Returns (pixels (N,2), max sampled fit error in pixels). Falls back to the exact
    projection when no polynomial of the configured degrees can be fitted.
    """
    cfg = config or get_config()
    p, lam_rho = _split_radius(points3d)
    if p.shape[0] == 0:
        return np.zeros((0, 2), dtype=np.float64), 0.0
    theta = np.arctan(p[:, 2] / lam_rho)
    theta_range = (float(theta.min()), float(theta.max()))

    poly, max_error = None, float("inf")
    degree = int(cfg.fisheye_min_degree)
    while max_error > cfg.fisheye_max_error_px and degree <= int(cfg.fisheye_max_degree):
        poly, max_error = _fit_inverse_polynomial(coeffs, theta_range, degree, cfg)
        degree += 1

    if poly is None:
        logger.debug("no inverse polynomial could be fitted; using exact fisheye projection")
        return compute_image_projection(points3d, coeffs, stretch, center, imag_tol=cfg.root_imag_tol), 0.0

    rho = np.polyval(poly, theta)
    u = p[:, 0] / lam_rho * rho
    v = p[:, 1] / lam_rho * rho
    pts = _stretch_to_pixels(u, v, np.asarray(stretch, dtype=np.float64), np.asarray(center, dtype=np.float64))
    return pts, max_error


def _check_scale_factor(scale_factor) -> np.ndarray:
    s = np.asarray(scale_factor, dtype=np.float64).reshape(-1)
    _require(s.size in (1, 2), "scale_factor must be a scalar or a pair")
    _require(bool(np.all(np.isfinite(s)) and np.all(s > 0.0)), "scale_factor must be positive")
    return np.broadcast_to(s, (2,)).copy()


def _check_rigid(R: np.ndarray, t: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    R = np.asarray(R, dtype=np.float64)
    t = np.asarray(t, dtype=np.float64).reshape(-1)
    _require(R.shape == (3, 3) and bool(np.all(np.isfinite(R))), "rotation must be a finite 3x3 matrix")
    _require(t.size == 3 and bool(np.all(np.isfinite(t))), "translation must be a finite 3-vector")
    return R, t


class FisheyeIntrinsics:
    """
    Intrinsic parameters of a fisheye camera (polynomial mapping model).

    mapping_coefficients: [a0, a2, a3, a4]
    distortion_center: (cx, cy) in 0-based pixels
    stretch_matrix: 2x2, bottom-right entry forced to 1
    """

    def __init__(
        self,
        mapping_coefficients: Sequence[float],
        image_size: tuple[int, int],
        distortion_center: Sequence[float],
        stretch_matrix: np.ndarray | None = None,
    ) -> None:
        coeffs = np.asarray(mapping_coefficients, dtype=np.float64).reshape(-1)
        _require(coeffs.size == 4, "mapping_coefficients must have 4 elements [a0, a2, a3, a4]")
        _require(bool(np.all(np.isfinite(coeffs))), "mapping_coefficients must be finite")
        center = np.asarray(distortion_center, dtype=np.float64).reshape(-1)
        _require(center.size == 2 and bool(np.all(np.isfinite(center))), "distortion_center must be a finite pair")
        stretch = np.eye(2) if stretch_matrix is None else np.array(stretch_matrix, dtype=np.float64)
        _require(stretch.shape == (2, 2) and bool(np.all(np.isfinite(stretch))), "stretch_matrix must be a finite 2x2")
        stretch[1, 1] = 1.0
        _require(abs(float(np.linalg.det(stretch))) > 0.0, "stretch_matrix must be invertible")
        size = check_image_size(image_size)
        _require(size is not None, "image_size is required")

        self._coeffs = coeffs
        self._center = center
        self._stretch = stretch
        self._image_size = size
        self._undistort_map = DistortionMapCache()

    @property
    def mapping_coefficients(self) -> np.ndarray:
        return self._coeffs.copy()

    @property
    def mapping_polynomial(self) -> np.ndarray:
        """[a0, 0, a2, a3, a4], lowest degree first."""
        a0, a2, a3, a4 = self._coeffs
        return np.array([a0, 0.0, a2, a3, a4], dtype=np.float64)

    @property
    def distortion_center(self) -> np.ndarray:
        return self._center.copy()

    @property
    def stretch_matrix(self) -> np.ndarray:
        return self._stretch.copy()

    @property
    def image_size(self) -> tuple[int, int]:
        return self._image_size

    def project(self, points3d: np.ndarray, method: str = "exact") -> np.ndarray:
        """Camera-frame directions (N,3) -> distorted pixels (N,2)."""
        if method == "exact":
            return compute_image_projection(points3d, self.mapping_polynomial, self._stretch, self._center)
        if method == "approximate":
            return compute_approx_image_projection(points3d, self.mapping_polynomial, self._stretch, self._center)[0]
        raise ValueError(f"method must be one of {PROJECTION_METHODS}")

    def world_to_image(self, R: np.ndarray, t: np.ndarray, world_points: np.ndarray) -> np.ndarray:
        wp = np.asarray(world_points, dtype=np.float64)
        _require(wp.ndim == 2 and wp.shape[1] == 3 and wp.shape[0] > 0, "world_points must be a non-empty (N,3) array")
        R, t = _check_rigid(R, t)
        cam = wp @ R.T + t
        return self.project(cam, "exact").astype(output_dtype(world_points))

    def image_to_normalized_vector(self, image_points: np.ndarray) -> np.ndarray:
        """Pixels (N,2) -> unit viewing directions (N,3) in the camera frame."""
        xy = np.asarray(image_points, dtype=np.float64).reshape(-1, 2)
        sensor = np.linalg.solve(self._stretch, (xy - self._center).T).T
        rho = np.hypot(sensor[:, 0], sensor[:, 1])
        f = np.polyval(self.mapping_polynomial[::-1], rho)
        vec = np.column_stack([sensor, f])
        norm = np.linalg.norm(vec, axis=1)
        norm[norm == 0.0] = np.finfo(np.float64).eps
        return (vec / norm[:, None]).astype(output_dtype(image_points))

    def points_to_world(self, R: np.ndarray, t: np.ndarray, image_points: np.ndarray) -> np.ndarray:
        """Intersect the viewing rays of (N,2) pixels with the world plane Z = 0."""
        R, t = _check_rigid(R, t)
        X = self.image_to_normalized_vector(np.asarray(image_points, dtype=np.float64))
        if X.shape[0] == 0:
            return np.zeros((0, 2), dtype=output_dtype(image_points))
        T = np.column_stack([R[:, 0], R[:, 1], t])
        if abs(float(np.linalg.det(T))) <= np.finfo(np.float64).eps * max(float(np.linalg.norm(T)), 1.0) ** 3:
            raise SingularProjectionError("world plane contains the camera center")
        U = np.linalg.solve(T, X.T).T
        world = U[:, :2] / U[:, 2:3]
        return world.astype(output_dtype(image_points))

    # -- virtual pinhole camera ----------------------------------------------------------
    def virtual_camera(self, scale_factor: float | Sequence[float] = 1.0) -> CameraIntrinsics:
        """Pinhole camera used by point undistortion, centered on the image."""
        s = _check_scale_factor(scale_factor)
        rows, cols = self._image_size
        f = min(rows, cols) / 2.0
        return CameraIntrinsics(
            fx=f * s[0], fy=f * s[1], cx=(cols - 1) / 2.0, cy=(rows - 1) / 2.0, image_size=self._image_size
        )

    def undistort_points(self, points: np.ndarray, camera: CameraIntrinsics) -> np.ndarray:
        """Distorted pixels -> pixels of the virtual pinhole `camera`; rays behind the camera become NaN."""
        vec = self.image_to_normalized_vector(np.asarray(points, dtype=np.float64))
        behind = vec[:, 2] < 0.0
        with np.errstate(divide="ignore", invalid="ignore"):
            u = vec[:, 0] / vec[:, 2]
            v = vec[:, 1] / vec[:, 2]
        out = np.column_stack([camera.fx * u + camera.skew * v + camera.cx, camera.fy * v + camera.cy])
        if np.any(behind):
            out[behind] = np.nan
            warnings.warn(
                "some points map behind the virtual camera and cannot be undistorted",
                FisheyeUndistortWarning,
                stacklevel=2,
            )
        return out

    def distort_points(self, points: np.ndarray, camera: CameraIntrinsics) -> np.ndarray:
        """Pixels of the virtual pinhole `camera` -> distorted fisheye pixels (exact)."""
        xy = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        v = (xy[:, 1] - camera.cy) / camera.fy
        u = (xy[:, 0] - camera.cx - camera.skew * v) / camera.fx
        return self.project(np.column_stack([u, v, np.ones_like(u)]), "exact")

    def compute_undistort_bounds(
        self, image_size: tuple[int, int], output_view: str, focal_length: tuple[float, float]
    ) -> tuple[tuple[int, int], tuple[int, int], tuple[float, float]]:
        """
        Returns (x_bounds, y_bounds, principal_point) of the virtual undistorted image.
        """
        rows, cols = int(image_size[0]), int(image_size[1])
        view = check_output_view(output_view)
        if view == "same":
            return (0, cols - 1), (0, rows - 1), ((cols - 1) / 2.0, (rows - 1) / 2.0)

        xs = np.arange(cols, dtype=np.float64)
        ys = np.arange(rows, dtype=np.float64)
        top = np.column_stack([xs, np.zeros(cols)])
        bottom = np.column_stack([xs, np.full(cols, rows - 1.0)])
        left = np.column_stack([np.zeros(rows), ys])
        right = np.column_stack([np.full(rows, cols - 1.0), ys])
        vec = self.image_to_normalized_vector(np.concatenate([top, bottom, left, right]))
        if np.any(vec[:, 2] < 0.0):
            raise UndistortBoundsError("image border views behind the camera; cannot undistort the full image")
        x = vec[:, 0] / vec[:, 2] * focal_length[0]
        y = vec[:, 1] / vec[:, 2] * focal_length[1]

        if view == "full":
            xmin, xmax, ymin, ymax = x.min(), x.max(), y.min(), y.max()
        else:
            xmin = x[2 * cols : 2 * cols + rows].max()
            xmax = x[2 * cols + rows :].min()
            ymin = y[:cols].max()
            ymax = y[cols : 2 * cols].min()

        width = int(np.ceil(xmax - xmin))
        height = int(np.ceil(ymax - ymin))
        if width >= 5 * cols or height >= 5 * rows or width <= 0 or height <= 0:
            raise UndistortBoundsError(f"undistorted image size {width}x{height} is degenerate")
        return (0, width - 1), (0, height - 1), (float(-xmin), float(-ymin))

    def undistort_image(
        self,
        image: np.ndarray,
        interpolation: str = "bilinear",
        output_view: str = "same",
        focal_length: tuple[float, float] = (1.0, 1.0),
        fill_value: float | Sequence[float] = 0.0,
        method: str = "approximate",
    ) -> tuple[np.ndarray, CameraIntrinsics]:
        image = np.asarray(image)
        _require(image.ndim in (2, 3) and image.size > 0, "image must be a non-empty (H,W) or (H,W,C) array")
        _require(method in PROJECTION_METHODS, f"method must be one of {PROJECTION_METHODS}")
        view = check_output_view(output_view)
        cache = self._undistort_map
        if cache.needs_update(image, view, focal_length, method):
            x_bounds, y_bounds, pp = self.compute_undistort_bounds(image.shape[:2], view, focal_length)
            cache.update_fisheye(image, self.project, view, x_bounds, y_bounds, focal_length, pp, method)
        out = cache.transform_image(image, interpolation, fill_value)
        pp = cache.map.principal_point
        camera = CameraIntrinsics(
            fx=float(focal_length[0]),
            fy=float(focal_length[1]),
            cx=pp[0],
            cy=pp[1],
            image_size=(int(out.shape[0]), int(out.shape[1])),
        )
        return out, camera

    # -- records ---------------------------------------------------------------------
    def to_record(self) -> dict[str, Any]:
        return {
            "schema_version": FISHEYE_INTRINSICS_SCHEMA,
            "mapping_coefficients": self._coeffs.copy(),
            "distortion_center": self._center.copy(),
            "stretch_matrix": self._stretch.copy(),
            "image_size": list(self._image_size),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "FisheyeIntrinsics":
        _require(
            record.get("schema_version") == FISHEYE_INTRINSICS_SCHEMA,
            f"schema_version must be {FISHEYE_INTRINSICS_SCHEMA}",
        )
        return cls(
            record["mapping_coefficients"],
            record["image_size"],
            record["distortion_center"],
            record.get("stretch_matrix"),
        )

    def __repr__(self) -> str:
        return f"FisheyeIntrinsics(coeffs={self._coeffs.tolist()}, center={self._center.tolist()})"


def undistort_fisheye_image(
    image: np.ndarray,
    intrinsics: FisheyeIntrinsics,
    interpolation: str = "bilinear",
    output_view: str = "same",
    scale_factor: float | Sequence[float] = 1.0,
    fill_value: float | Sequence[float] = 0.0,
    method: str = "approximate",
) -> tuple[np.ndarray, CameraIntrinsics]:
    """
    Resample a fisheye image onto a virtual pinhole camera.

    The virtual focal length is min(rows, cols) / 2 * scale_factor. Returns the
    undistorted image and the virtual camera intrinsics.
    """
    image = np.asarray(image)
    s = _check_scale_factor(scale_factor)
    f = min(image.shape[0], image.shape[1]) / 2.0
    return intrinsics.undistort_image(
        image,
        interpolation=interpolation,
        output_view=output_view,
        focal_length=(f * s[0], f * s[1]),
        fill_value=fill_value,
        method=method,
    )


def undistort_fisheye_points(
    points: np.ndarray, intrinsics: FisheyeIntrinsics, scale_factor: float | Sequence[float] = 1.0
) -> tuple[np.ndarray, CameraIntrinsics, np.ndarray]:
    """
    Returns (undistorted points, virtual camera, per-point reprojection error in pixels).
    """
    pts = np.asarray(points)
    _require(pts.ndim == 2 and pts.shape[1] == 2, "points must be an (N,2) array")
    camera = intrinsics.virtual_camera(scale_factor)
    xy = pts.astype(np.float64)
    und = intrinsics.undistort_points(xy, camera)
    redist = intrinsics.distort_points(und, camera)
    errors = np.sqrt(np.sum((xy - redist) ** 2, axis=1))
    dtype = output_dtype(pts)
    return und.astype(dtype), camera, errors.astype(dtype)


class FisheyeModel:
    """
    Calibrated fisheye camera: intrinsics plus per-pattern extrinsics.
    """

    def __init__(
        self,
        intrinsics: FisheyeIntrinsics,
        *,
        world_points: np.ndarray | None = None,
        world_units: str = "mm",
        rotation_vectors: np.ndarray | None = None,
        translation_vectors: np.ndarray | None = None,
        reprojection_errors: np.ndarray | None = None,
        estimate_alignment: bool = False,
    ) -> None:
        _require(isinstance(intrinsics, FisheyeIntrinsics), "intrinsics must be a FisheyeIntrinsics")
        self._intrinsics = intrinsics
        self._world_points = check_world_points(world_points)
        self._world_units = check_world_units(world_units)
        self._estimate_alignment = bool(estimate_alignment)
        self._extrinsics = PatternExtrinsics.build(
            rotation_vectors,
            translation_vectors,
            reprojection_errors,
            num_points=int(self._world_points.shape[0]),
        )

    @property
    def intrinsics(self) -> FisheyeIntrinsics:
        return self._intrinsics

    @property
    def world_points(self) -> np.ndarray:
        return self._world_points.copy()

    @property
    def world_units(self) -> str:
        return self._world_units

    @property
    def estimate_alignment(self) -> bool:
        return self._estimate_alignment

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

    @property
    def reprojected_points(self) -> np.ndarray:
        """(P,2,M) pattern points imaged with each pose; only the in-plane rotation axes act on Z = 0 points."""
        P = self._world_points.shape[0]
        out = np.zeros((P, 2, self.num_patterns), dtype=np.float64)
        if P == 0:
            return out
        for i, R in enumerate(self.rotation_matrices):
            cam = self._world_points @ R[:, :2].T + self._extrinsics.translation_vectors[i]
            out[:, :, i] = self._intrinsics.project(cam, "exact")
        return out

    @property
    def mean_reprojection_error(self) -> float:
        return self._extrinsics.compute_mean_error()[0]

    def compute_mean_error(self) -> tuple[float, np.ndarray]:
        return self._extrinsics.compute_mean_error()

    def with_extrinsics(
        self,
        rotation_vectors: np.ndarray,
        translation_vectors: np.ndarray,
        reprojection_errors: np.ndarray | None = None,
    ) -> "FisheyeModel":
        return FisheyeModel(
            self._intrinsics,
            world_points=self._world_points,
            world_units=self._world_units,
            rotation_vectors=rotation_vectors,
            translation_vectors=translation_vectors,
            reprojection_errors=reprojection_errors,
            estimate_alignment=self._estimate_alignment,
        )

    def with_reprojection_errors_from(self, image_points: np.ndarray) -> "FisheyeModel":
        detected = np.asarray(image_points, dtype=np.float64)
        if detected.ndim == 2:
            detected = detected[:, :, None]
        expected = self.reprojected_points
        _require(detected.shape == expected.shape, "image_points must match (P,2,M) of the pattern set")
        return self.with_extrinsics(
            self._extrinsics.rotation_vectors, self._extrinsics.translation_vectors, expected - detected
        )

    def to_record(self) -> dict[str, Any]:
        from camgeom import __version__

        return {
            "schema_version": FISHEYE_SCHEMA,
            "intrinsics": self._intrinsics.to_record(),
            "world_points": self._world_points.copy(),
            "world_units": self._world_units,
            "estimate_alignment": self._estimate_alignment,
            "rotation_vectors": self.rotation_vectors,
            "translation_vectors": self.translation_vectors,
            "reprojection_errors": self.reprojection_errors,
            "version": __version__,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "FisheyeModel":
        _require(record.get("schema_version") == FISHEYE_SCHEMA, f"schema_version must be {FISHEYE_SCHEMA}")
        return cls(
            FisheyeIntrinsics.from_record(record["intrinsics"]),
            world_points=record.get("world_points"),
            world_units=record.get("world_units", "mm"),
            rotation_vectors=record.get("rotation_vectors"),
            translation_vectors=record.get("translation_vectors"),
            reprojection_errors=record.get("reprojection_errors"),
            estimate_alignment=bool(record.get("estimate_alignment", False)),
        )

    def summary(self) -> dict[str, Any]:
        return {
            "type": "fisheye",
            "mapping_coefficients": self._intrinsics.mapping_coefficients.tolist(),
            "distortion_center": self._intrinsics.distortion_center.tolist(),
            "stretch_matrix": self._intrinsics.stretch_matrix.tolist(),
            "image_size": list(self._intrinsics.image_size),
            "num_patterns": self.num_patterns,
            "world_units": self._world_units,
            "mean_reprojection_error_px": self.mean_reprojection_error,
        }

"""
Camera pose from known intrinsics and world/image correspondences.

Planar targets (world points (N,2) on Z = 0, or (N,3) with Z == 0 everywhere) go
through the plane-induced homography H ~ K [r1 r2 t]. Non-planar points go through
a normalized direct linear transform of the 3x4 projection matrix. Fisheye
intrinsics are handled by mapping pixels to normalized image coordinates first and
decomposing with K = I.

All poses are world-to-camera: X_cam = R X_world + t.
"""
from __future__ import annotations

import numpy as np

from camgeom.errors import GeometryDegeneracyError, _require
from camgeom.models.camera import CameraIntrinsics, CameraModel, output_dtype
from camgeom.models.extrinsics import check_intrinsic_matrix
from camgeom.models.fisheye import FisheyeIntrinsics, FisheyeModel

MIN_PLANAR_POINTS = 4
MIN_NONPLANAR_POINTS = 6


def _pinhole_matrix(intrinsics) -> np.ndarray:
    if isinstance(intrinsics, CameraModel):
        return intrinsics.intrinsic_matrix
    if isinstance(intrinsics, CameraIntrinsics):
        return intrinsics.K
    _require(
        not isinstance(intrinsics, (FisheyeIntrinsics, FisheyeModel)),
        "a fisheye camera has no 3x4 projection matrix",
    )
    return check_intrinsic_matrix(intrinsics)


def _orthonormalize(M: np.ndarray) -> np.ndarray:
    U, _, Vt = np.linalg.svd(M)
    R = U @ Vt
    if np.linalg.det(R) < 0:
        U[:, -1] *= -1
        R = U @ Vt
    return R


def _pose_from_homography(H: np.ndarray, K: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    Hn = np.linalg.solve(K, H)
    h1, h2, h3 = Hn[:, 0], Hn[:, 1], Hn[:, 2]
    scale = 0.5 * (float(np.linalg.norm(h1)) + float(np.linalg.norm(h2)))
    if scale <= 0.0:
        raise GeometryDegeneracyError("homography has a vanishing rotation part")
    s = 1.0 / scale
    if s * h3[2] < 0:
        s = -s
    r1 = s * h1
    r2 = s * h2
    R = _orthonormalize(np.column_stack([r1, r2, np.cross(r1, r2)]))
    return R, s * h3


def _planar_pose(world_xy: np.ndarray, image_uv: np.ndarray, K: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    import cv2

    H, _mask = cv2.findHomography(world_xy, image_uv, method=0)
    if H is None:
        raise GeometryDegeneracyError("could not fit a homography to the planar correspondences")
    return _pose_from_homography(np.asarray(H, dtype=np.float64), K)


def _similarity(points: np.ndarray) -> np.ndarray:
    """Translate to the centroid and scale to a mean distance of sqrt(dim)."""
    dim = points.shape[1]
    center = points.mean(axis=0)
    mean_dist = float(np.mean(np.linalg.norm(points - center, axis=1)))
    if mean_dist <= 0.0:
        raise GeometryDegeneracyError("points are coincident")
    s = np.sqrt(dim) / mean_dist
    T = np.eye(dim + 1)
    T[:dim, :dim] *= s
    T[:dim, dim] = -s * center
    return T


def projection_matrix_dlt(world_points: np.ndarray, image_points: np.ndarray) -> np.ndarray:
    """
    3x4 P with image ~ P [X; 1], from at least six non-coplanar correspondences.
    """
    X = np.asarray(world_points, dtype=np.float64).reshape(-1, 3)
    x = np.asarray(image_points, dtype=np.float64).reshape(-1, 2)
    T = _similarity(x)
    U = _similarity(X)
    Xn = np.column_stack([X, np.ones(len(X))]) @ U.T
    xn = np.column_stack([x, np.ones(len(x))]) @ T.T

    n = len(X)
    A = np.zeros((2 * n, 12))
    A[0::2, 0:4] = Xn
    A[0::2, 8:12] = -xn[:, 0:1] * Xn
    A[1::2, 4:8] = Xn
    A[1::2, 8:12] = -xn[:, 1:2] * Xn
    _, S, Vt = np.linalg.svd(A)
    if S[-2] <= 1e-10 * S[0]:
        raise GeometryDegeneracyError("world points do not constrain a unique projection matrix")
    Pn = Vt[-1].reshape(3, 4)
    return np.linalg.solve(T, Pn) @ U


def _nonplanar_pose(world: np.ndarray, image_uv: np.ndarray, K: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    M = np.linalg.solve(K, projection_matrix_dlt(world, image_uv))
    if np.linalg.det(M[:, :3]) < 0:
        M = -M
    S = np.linalg.svd(M[:, :3], compute_uv=False)
    R = _orthonormalize(M[:, :3])
    return R, M[:, 3] / float(np.mean(S))


def estimate_extrinsics(image_points: np.ndarray, world_points: np.ndarray, intrinsics) -> tuple[np.ndarray, np.ndarray]:
    """
    Rotation (3,3) and translation (3,) of the camera relative to the world frame.

    image_points: (N,2) undistorted pixels (distorted pixels for fisheye intrinsics).
    world_points: (N,2) on a planar target, or (N,3).
    intrinsics: 3x3 K, `CameraIntrinsics`, `CameraModel`, `FisheyeIntrinsics` or `FisheyeModel`.

    Planar targets need at least 4 points, non-planar ones at least 6. Fisheye
    cameras support planar targets only.
    """
    img = np.asarray(image_points, dtype=np.float64)
    wp = np.asarray(world_points, dtype=np.float64)
    _require(img.ndim == 2 and img.shape[1] == 2, "image_points must be (N,2)")
    _require(wp.ndim == 2 and wp.shape[1] in (2, 3), "world_points must be (N,2) or (N,3)")
    _require(img.shape[0] == wp.shape[0], "image_points and world_points must have the same number of points")
    _require(bool(np.all(np.isfinite(img))) and bool(np.all(np.isfinite(wp))), "points must be finite")

    planar = wp.shape[1] == 2 or bool(np.all(wp[:, 2] == 0.0))
    dtype = output_dtype(image_points)

    if isinstance(intrinsics, FisheyeModel):
        intrinsics = intrinsics.intrinsics
    if isinstance(intrinsics, FisheyeIntrinsics):
        _require(planar, "fisheye extrinsics need a planar target")
        _require(img.shape[0] >= MIN_PLANAR_POINTS, f"at least {MIN_PLANAR_POINTS} planar points are required")
        rays = np.asarray(intrinsics.image_to_normalized_vector(img), dtype=np.float64)
        _require(bool(np.all(rays[:, 2] > 0.0)), "fisheye image points must view the front hemisphere")
        R, t = _planar_pose(wp[:, :2], rays[:, :2] / rays[:, 2:3], np.eye(3))
        return R.astype(dtype), t.astype(dtype)

    K = _pinhole_matrix(intrinsics)
    if planar:
        _require(img.shape[0] >= MIN_PLANAR_POINTS, f"at least {MIN_PLANAR_POINTS} planar points are required")
        R, t = _planar_pose(wp[:, :2], img, K)
    else:
        _require(img.shape[0] >= MIN_NONPLANAR_POINTS, f"at least {MIN_NONPLANAR_POINTS} non-planar points are required")
        R, t = _nonplanar_pose(wp, img, K)
    return R.astype(dtype), t.astype(dtype)


def camera_matrix(intrinsics, R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """3x4 projection matrix K [R | t] mapping homogeneous world points to pixels."""
    K = _pinhole_matrix(intrinsics)
    Rm = np.asarray(R)
    tv = np.asarray(t).reshape(-1)
    _require(Rm.shape == (3, 3) and bool(np.all(np.isfinite(Rm))), "rotation must be a finite 3x3 matrix")
    _require(tv.size == 3 and bool(np.all(np.isfinite(tv))), "translation must be a finite 3-vector")
    P = K @ np.column_stack([Rm.astype(np.float64), tv.astype(np.float64)])
    return P.astype(output_dtype(Rm))

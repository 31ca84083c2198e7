from __future__ import annotations

import numpy as np


def transform_points_forward(H: np.ndarray, points: np.ndarray) -> np.ndarray:
    """
    Apply a 3x3 homography to (N,2) pixel coordinates (column-vector convention).
    """
    H = np.asarray(H, dtype=np.float64).reshape(3, 3)
    xy = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    hom = np.column_stack([xy, np.ones(xy.shape[0])]) @ H.T
    return hom[:, :2] / hom[:, 2:3]


def transform_points_inverse(H: np.ndarray, points: np.ndarray) -> np.ndarray:
    H = np.asarray(H, dtype=np.float64).reshape(3, 3)
    return transform_points_forward(np.linalg.inv(H), points)


def rigid_transform_3d(src: np.ndarray, dst: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Least-squares rigid transform with dst ~= R @ src + t (Kabsch).

    src, dst: (N,3) with N >= 3. Returns (R, t) with det(R) = +1.
    """
    src = np.asarray(src, dtype=np.float64).reshape(-1, 3)
    dst = np.asarray(dst, dtype=np.float64).reshape(-1, 3)
    if src.shape != dst.shape or src.shape[0] < 3:
        raise ValueError("src and dst must be matching (N,3) arrays with N >= 3")

    c_src = src.mean(axis=0)
    c_dst = dst.mean(axis=0)
    H = (src - c_src).T @ (dst - c_dst)
    U, _S, Vt = np.linalg.svd(H)
    D = np.diag([1.0, 1.0, np.sign(np.linalg.det(Vt.T @ U.T)) or 1.0])
    R = Vt.T @ D @ U.T
    t = c_dst - R @ c_src
    return R, t


def pixel_grid(x_bounds: tuple[int, int], y_bounds: tuple[int, int]) -> tuple[np.ndarray, np.ndarray]:
    """Integer pixel grid (rows, cols) covering the inclusive bounds."""
    xs = np.arange(int(x_bounds[0]), int(x_bounds[1]) + 1, dtype=np.float64)
    ys = np.arange(int(y_bounds[0]), int(y_bounds[1]) + 1, dtype=np.float64)
    return np.meshgrid(xs, ys)

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class BrownDistortion:
    """
    Brown-Conrady distortion on normalized camera coordinates (x=X/Z, y=Y/Z).

    Parameters follow common OpenCV naming:
      radial: k1, k2, k3
      tangential: p1, p2
    """

    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    k3: float = 0.0

    @classmethod
    def from_coefficients(cls, radial: np.ndarray, tangential: np.ndarray) -> "BrownDistortion":
        radial = np.asarray(radial, dtype=np.float64).reshape(-1)
        tangential = np.asarray(tangential, dtype=np.float64).reshape(-1)
        k3 = float(radial[2]) if radial.size > 2 else 0.0
        return cls(k1=float(radial[0]), k2=float(radial[1]), p1=float(tangential[0]), p2=float(tangential[1]), k3=k3)

    @property
    def is_identity(self) -> bool:
        return self.k1 == 0.0 and self.k2 == 0.0 and self.k3 == 0.0 and self.p1 == 0.0 and self.p2 == 0.0

    def distort(self, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        r2 = x * x + y * y
        r4 = r2 * r2
        r6 = r4 * r2
        radial = 1.0 + self.k1 * r2 + self.k2 * r4 + self.k3 * r6
        xy = x * y
        x_tan = 2.0 * self.p1 * xy + self.p2 * (r2 + 2.0 * x * x)
        y_tan = self.p1 * (r2 + 2.0 * y * y) + 2.0 * self.p2 * xy
        return x * radial + x_tan, y * radial + y_tan

    def undistort(
        self, xd: np.ndarray, yd: np.ndarray, iterations: int = 20, tol: float = 1e-12
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Iterative inverse of distort() for small/moderate distortion.

        Stops early once the largest update is below `tol` (normalized units).
        """
        xd = np.asarray(xd, dtype=np.float64)
        yd = np.asarray(yd, dtype=np.float64)
        x = xd.copy()
        y = yd.copy()
        if self.is_identity or x.size == 0:
            return x, y
        for _ in range(int(iterations)):
            x_est, y_est = self.distort(x, y)
            dx = xd - x_est
            dy = yd - y_est
            x += dx
            y += dy
            step = np.nan_to_num(np.abs(np.concatenate([dx.ravel(), dy.ravel()])))
            if float(step.max()) < tol:
                break
        return x, y


def pixels_to_normalized(K: np.ndarray, u: np.ndarray, v: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Inverse of the (skewed) intrinsic matrix applied to pixel coordinates."""
    K = np.asarray(K, dtype=np.float64)
    fx, s, cx = K[0, 0], K[0, 1], K[0, 2]
    fy, cy = K[1, 1], K[1, 2]
    y = (np.asarray(v, dtype=np.float64) - cy) / fy
    x = (np.asarray(u, dtype=np.float64) - cx - s * y) / fx
    return x, y


def normalized_to_pixels(K: np.ndarray, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    K = np.asarray(K, dtype=np.float64)
    u = K[0, 0] * x + K[0, 1] * y + K[0, 2]
    v = K[1, 1] * y + K[1, 2]
    return u, v


def distort_pixels(points: np.ndarray, K: np.ndarray, distortion: BrownDistortion) -> np.ndarray:
    """
    Distort undistorted pixel coordinates (N,2) -> distorted pixel coordinates (N,2).
    """
    xy = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    x, y = pixels_to_normalized(K, xy[:, 0], xy[:, 1])
    xd, yd = distortion.distort(x, y)
    u, v = normalized_to_pixels(K, xd, yd)
    return np.column_stack([u, v])


def undistort_pixels(
    points: np.ndarray, K: np.ndarray, distortion: BrownDistortion, iterations: int = 20, tol: float = 1e-12
) -> np.ndarray:
    xy = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    xd, yd = pixels_to_normalized(K, xy[:, 0], xy[:, 1])
    x, y = distortion.undistort(xd, yd, iterations=iterations, tol=tol)
    u, v = normalized_to_pixels(K, x, y)
    return np.column_stack([u, v])


def brown_to_dict(m: BrownDistortion) -> dict:
    return {"k1": m.k1, "k2": m.k2, "p1": m.p1, "p2": m.p2, "k3": m.k3}

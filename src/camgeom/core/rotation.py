"""
Rotation-vector algebra with analytic first-order derivatives.

All matrix derivatives use the column-major vectorization: vec(R)[i + 3 j] = R[i, j],
so a (9, 3) Jacobian stacks d vec(R) / d r_k as its columns.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

_SERIES_ANGLE = 1e-2
_SMALL_SINE = 1e-6


def skew(v: np.ndarray) -> np.ndarray:
    v = np.asarray(v, dtype=np.float64).reshape(3)
    return np.array(
        [
            [0.0, -v[2], v[1]],
            [v[2], 0.0, -v[0]],
            [-v[1], v[0], 0.0],
        ],
        dtype=np.float64,
    )


def _vec(M: np.ndarray) -> np.ndarray:
    return np.asarray(M, dtype=np.float64).reshape(-1, order="F")


def _rodrigues_coefficients(theta: float) -> tuple[float, float, float, float]:
    """
    a = sin(t)/t, b = (1-cos(t))/t^2 and their derivatives divided by t.
    """
    if theta < _SERIES_ANGLE:
        t2 = theta * theta
        t4 = t2 * t2
        a = 1.0 - t2 / 6.0 + t4 / 120.0
        b = 0.5 - t2 / 24.0 + t4 / 720.0
        da = -1.0 / 3.0 + t2 / 30.0 - t4 / 840.0
        db = -1.0 / 12.0 + t2 / 180.0 - t4 / 6720.0
        return a, b, da, db
    s = np.sin(theta)
    c = np.cos(theta)
    a = s / theta
    b = (1.0 - c) / theta**2
    da = (theta * c - s) / theta**3
    db = (theta * s - 2.0 * (1.0 - c)) / theta**4
    return float(a), float(b), float(da), float(db)


def rodrigues_vector_to_matrix(r: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Exponential map R = I + a [r]x + b [r]x^2.

    Returns (R, dR_dr) with dR_dr shaped (9, 3).
    """
    r = np.asarray(r, dtype=np.float64).reshape(3)
    theta = float(np.linalg.norm(r))
    a, b, da, db = _rodrigues_coefficients(theta)

    K = skew(r)
    K2 = K @ K
    R = np.eye(3) + a * K + b * K2

    dR = np.zeros((9, 3), dtype=np.float64)
    for k in range(3):
        e = np.zeros(3)
        e[k] = 1.0
        dK = skew(e)
        d = da * r[k] * K + a * dK + db * r[k] * K2 + b * (dK @ K + K @ dK)
        dR[:, k] = _vec(d)
    return R, dR


def _axial(R: np.ndarray) -> np.ndarray:
    return 0.5 * np.array([R[2, 1] - R[1, 2], R[0, 2] - R[2, 0], R[1, 0] - R[0, 1]], dtype=np.float64)


def _axial_jacobian() -> np.ndarray:
    dv = np.zeros((3, 9), dtype=np.float64)
    dv[0, 5], dv[0, 7] = 0.5, -0.5
    dv[1, 6], dv[1, 2] = 0.5, -0.5
    dv[2, 1], dv[2, 3] = 0.5, -0.5
    return dv


def rodrigues_matrix_to_vector(R: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Logarithm map of a rotation matrix.

    Returns (r, dr_dR) with dr_dR shaped (3, 9). Near pi the axis comes from the
    symmetric part of R; the derivative at exactly pi is not defined and is NaN.
    """
    R = np.asarray(R, dtype=np.float64).reshape(3, 3)
    v = _axial(R)
    s = float(np.linalg.norm(v))
    c = float(np.clip((np.trace(R) - 1.0) / 2.0, -1.0, 1.0))
    theta = float(np.arctan2(s, c))
    dv = _axial_jacobian()

    if c < 0.0 and s < 0.5:
        S = 0.5 * (R + R.T)
        M = (S - c * np.eye(3)) / (1.0 - c)
        i = int(np.argmax(np.diag(M)))
        n = M[:, i] / np.sqrt(max(M[i, i], np.finfo(np.float64).tiny))
        n /= np.linalg.norm(n)
        if float(np.dot(n, v)) < 0.0:
            n = -n
        r = theta * n
    elif s < _SMALL_SINE:
        r = v * (1.0 + theta * theta / 6.0)
    else:
        r = v * (theta / s)

    if s < _SMALL_SINE:
        if c > 0.0:
            return r, (1.0 + theta * theta / 6.0) * dv
        return r, np.full((3, 9), np.nan)

    dc = np.zeros(9, dtype=np.float64)
    dc[[0, 4, 8]] = 0.5
    ds = (v @ dv) / s
    dtheta = (c * ds - s * dc) / (s * s + c * c)
    f = theta / s
    df = (dtheta * s - theta * ds) / (s * s)
    return r, f * dv + np.outer(v, df)


def matrix_product_derivative(A: np.ndarray, B: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Product AB with d vec(AB)/d vec(A) and d vec(AB)/d vec(B).

    Built from Kronecker products, so only meant for small matrices.
    """
    A = np.atleast_2d(np.asarray(A, dtype=np.float64))
    B = np.atleast_2d(np.asarray(B, dtype=np.float64))
    if A.shape[1] != B.shape[0]:
        raise ValueError("inner dimensions must agree")
    p = A.shape[0]
    r = B.shape[1]
    dA = np.kron(B.T, np.eye(p))
    dB = np.kron(np.eye(r), A)
    return A @ B, dA, dB


@dataclass(frozen=True)
class MotionComposition:
    """Result of composing (r1, t1) followed by (r2, t2)."""

    r3: np.ndarray
    t3: np.ndarray
    dr3_dr1: np.ndarray
    dr3_dt1: np.ndarray
    dr3_dr2: np.ndarray
    dr3_dt2: np.ndarray
    dt3_dr1: np.ndarray
    dt3_dt1: np.ndarray
    dt3_dr2: np.ndarray
    dt3_dt2: np.ndarray


def compose_motion(r1: np.ndarray, t1: np.ndarray, r2: np.ndarray, t2: np.ndarray) -> MotionComposition:
    """R3 = R2 R1, t3 = R2 t1 + t2, with all first-order Jacobians (each 3x3)."""
    t1 = np.asarray(t1, dtype=np.float64).reshape(3)
    t2 = np.asarray(t2, dtype=np.float64).reshape(3)
    R1, dR1_dr1 = rodrigues_vector_to_matrix(r1)
    R2, dR2_dr2 = rodrigues_vector_to_matrix(r2)

    R3, dR3_dR2, dR3_dR1 = matrix_product_derivative(R2, R1)
    r3, dr3_dR3 = rodrigues_matrix_to_vector(R3)

    t3 = R2 @ t1 + t2
    dt3_dR2 = np.kron(t1.reshape(1, 3), np.eye(3))
    zeros = np.zeros((3, 3), dtype=np.float64)
    return MotionComposition(
        r3=r3,
        t3=t3,
        dr3_dr1=dr3_dR3 @ dR3_dR1 @ dR1_dr1,
        dr3_dt1=zeros.copy(),
        dr3_dr2=dr3_dR3 @ dR3_dR2 @ dR2_dr2,
        dr3_dt2=zeros.copy(),
        dt3_dr1=zeros.copy(),
        dt3_dt1=R2.copy(),
        dt3_dr2=dt3_dR2 @ dR2_dr2,
        dt3_dt2=np.eye(3),
    )


def rotation_vectors_to_matrices(rvecs: np.ndarray) -> np.ndarray:
    """(M,3) rotation vectors -> (M,3,3) matrices."""
    from scipy.spatial.transform import Rotation

    rvecs = np.asarray(rvecs, dtype=np.float64).reshape(-1, 3)
    if rvecs.shape[0] == 0:
        return np.zeros((0, 3, 3), dtype=np.float64)
    return Rotation.from_rotvec(rvecs).as_matrix().reshape(-1, 3, 3)

from __future__ import annotations

import numpy as np

from camgeom.core.rotation import skew
from camgeom.errors import DegenerateEssentialMatrixError
from camgeom.pose.hypothesis import PoseHypothesis

_W = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]], dtype=np.float64)


def essential_from_pose(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """E = [t]x R for X2 = R X1 + t."""
    return skew(t) @ np.asarray(R, dtype=np.float64).reshape(3, 3)


def project_to_essential(E: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Nearest essential matrix (equal two largest singular values, third zero).

    Returns (E_projected, U, Vt) with det(U) = det(Vt) = +1.
    """
    E = np.asarray(E, dtype=np.float64)
    if E.shape != (3, 3) or not np.all(np.isfinite(E)):
        raise DegenerateEssentialMatrixError("essential matrix must be a finite 3x3 matrix")
    U, S, Vt = np.linalg.svd(E)
    scale = S[0] + S[1]
    if scale <= np.finfo(np.float64).eps * max(1.0, float(np.abs(E).max())):
        raise DegenerateEssentialMatrixError("essential matrix has no rank-2 part")
    if np.linalg.det(U) < 0.0:
        U = -U
    if np.linalg.det(Vt) < 0.0:
        Vt = -Vt
    s = scale / 2.0
    return U @ np.diag([s, s, 0.0]) @ Vt, U, Vt


def decompose_essential_matrix(E: np.ndarray) -> list[PoseHypothesis]:
    """
    The four (R, t) candidates {(R1, t), (R1, -t), (R2, t), (R2, -t)} of an essential
    matrix, t of unit length. The physical one is the candidate placing triangulated
    points in front of both cameras.
    """
    _E, U, Vt = project_to_essential(E)
    R1 = U @ _W @ Vt
    R2 = U @ _W.T @ Vt
    t = U[:, 2] / np.linalg.norm(U[:, 2])
    return [
        PoseHypothesis(rotation=R1, translation=t.copy()),
        PoseHypothesis(rotation=R1, translation=-t),
        PoseHypothesis(rotation=R2, translation=t.copy()),
        PoseHypothesis(rotation=R2, translation=-t),
    ]

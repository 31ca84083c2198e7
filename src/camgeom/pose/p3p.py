"""
Perspective-3-point pose estimation (Gao, Hou, Tang, Cheng, 2003).

The three viewing rays u, v, w (towards world points A, B, C) and the triangle
side lengths give a quartic in x = PA / PC; each admissible root yields the
three depths and a rigid world-to-camera transform.
"""
from __future__ import annotations

import logging

import numpy as np

from camgeom.config import get_config
from camgeom.core.geometry import rigid_transform_3d
from camgeom.core.polyroots import real_roots
from camgeom.pose.hypothesis import PoseHypothesis

logger = logging.getLogger(__name__)


def _zero(x: float, tol: float) -> bool:
    return abs(x) <= tol


def _ts2(a, b, r, tol):
    return _zero(a**2 + (-2 + 2 * b - b * r**2) * a - 2 * b + b**2 + 1, tol)


def _ts3(a, b, p, q, r, tol):
    pqr = p * q * r
    F = -4 * p**2 + 4 * pqr + r**2 * p**2 + r**2 * q**2 - r**3 * p * q - 4 * q**2
    return _zero(F * a + r**2 * p**2 - 4 * pqr + 4 * q**2, tol) and _zero(F * b + r**2 * q**2 + 4 * p**2 - 4 * pqr, tol)


def _ts4(a, b, r, tol):
    return _zero(a + b - 1, tol) and _zero(r, tol)


def _ts5(a, b, p, q, r, tol):
    F = p**2 + q**2
    return _zero(F * a - q**2, tol) and _zero(F * b - p**2, tol) and _zero(r, tol)


def _ts6(a, b, p, q, r, tol):
    p2, q2 = p**2, q**2
    F = p2**2 - 2 * p2 * q2 + q2**2
    return (
        _zero(F * a - p2 * q2 - q2**2, tol)
        and _zero(F * b - p2 * q2 - p2**2, tol)
        and _zero((p2 + q2) * r - 4 * p * q, tol)
    )


def _ts7(b, p, q, r, tol):
    expr = (
        (4 * r**2 + p**2 * q**2 + p**4 - r**4 - p**3 * q * r + p * r**3 * q - 4 * q * p * r) * b
        + 2 * p * r**3
        - 2 * p**2 * r**2
        + 2 * p**3 * q * r
        - p**2 * q**2 * r**2
        - p**4
        - r**4
    )
    return _zero(expr, tol)


def classify_configuration(a: float, b: float, p: float, q: float, r: float, tol: float = 1e-10) -> int:
    """
    Component of the P3P solution variety: 1 for the generic case, 2..9 for the
    special components on which the quartic formulation breaks down.
    """
    if _ts2(a, b, r, tol):
        return 2
    if _ts3(a, b, p, q, r, tol):
        return 3
    if _ts4(a, b, r, tol):
        return 4
    # Components 5 to 7 are evaluated with q and r exchanged.
    if _ts5(a, b, p, r, q, tol):
        return 5
    if _ts6(a, b, p, r, q, tol):
        return 6
    if _ts7(b, p, r, q, tol):
        return 7
    if _zero(p, tol) and _zero(r, tol):
        return 9
    return 1


def _quartic(a: float, b: float, p: float, q: float, r: float) -> np.ndarray:
    pbr = p * b * r
    a4 = -2 * b + b**2 + a**2 + 1 - b * r**2 * a + 2 * b * a - 2 * a
    a3 = (
        -2 * b * q * a - 2 * a**2 * q + b * r**2 * q * a - 2 * q + 2 * b * q + 4 * a * q + pbr + pbr * a - b**2 * r * p
    )
    a2 = (
        q**2
        + b**2 * r**2
        - b * p**2
        - q * pbr
        + b**2 * p**2
        - b * r**2 * a
        + 2
        - 2 * b**2
        - a * pbr * q
        + 2 * a**2
        - 4 * a
        - 2 * q**2 * a
        + q**2 * a**2
    )
    a1 = -(b**2) * r * p + pbr * a - 2 * a**2 * q + q * p**2 * b + 2 * b * q * a + 4 * a * q + pbr - 2 * b * q - 2 * q
    a0 = 1 - 2 * a + 2 * b + b**2 - b * p**2 + a**2 - 2 * b * a
    return np.array([a4, a3, a2, a1, a0], dtype=np.float64)


def _y_numerator(x: float, a: float, b: float, p: float, q: float, r: float) -> float:
    return ((1 - a - b) * x**2 + (a - 1) * q * x - a + b + 1) * (
        (r**3 * (a**2 + b**2 - 2 * a - 2 * b + (2 - r**2) * a * b + 1)) * x**3
        + r**2
        * (
            p
            + p * a**2
            - 2 * r * q * a * b
            + 2 * r * q * b
            - 2 * r * q
            - 2 * p * a
            - 2 * p * b
            + p * r**2 * b
            + 4 * r * q * a
            + q * r**3 * a * b
            - 2 * r * q * a**2
            + 2 * p * a * b
            + p * b**2
            - r**2 * p * b**2
        )
        * x**2
        + (
            r**5 * (b**2 - a * b)
            - r**4 * p * q * b
            + r**3 * (q**2 - 4 * a - 2 * q**2 * a + q**2 * a**2 + 2 * a**2 - 2 * b**2 + 2)
            + r**2 * (4 * p * q * a - 2 * p * q * a * b + 2 * p * q * b - 2 * p * q - 2 * p * q * a**2)
            + r * (p**2 * b**2 - 2 * p**2 * b + 2 * p**2 * a * b - 2 * p**2 * a + p**2 + p**2 * a**2)
        )
        * x
        + (2 * p * r**2 - 2 * r**3 * q + p**3 - 2 * p**2 * q * r + p * q**2 * r**2) * a**2
        + (p**3 - 2 * p * r**2) * b**2
        + (4 * q * r**3 - 4 * p * r**2 - 2 * p**3 + 4 * p**2 * q * r - 2 * p * q**2 * r**2) * a
        + (-2 * q * r**3 + p * r**4 + 2 * p**2 * q * r - 2 * p**3) * b
        + (2 * p**3 + 2 * q * r**3 - 2 * p**2 * q * r) * a * b
        + p * q**2 * r**2
        - 2 * p**2 * q * r
        + 2 * p * r**2
        + p**3
        - 2 * r**3 * q
    )


def solve_p3p(image_points: np.ndarray, world_points: np.ndarray, K: np.ndarray) -> list[PoseHypothesis]:
    """
    Camera poses consistent with three image/world correspondences.

    image_points: (3,2) undistorted pixels; world_points: (3,3); K: 3x3 intrinsics.
    Returns up to four hypotheses with X_cam = R X_world + t and all three points
    in front of the camera. Degenerate configurations return an empty list.
    """
    cfg = get_config()
    img = np.asarray(image_points, dtype=np.float64).reshape(-1, 2)
    wp = np.asarray(world_points, dtype=np.float64).reshape(-1, 3)
    if img.shape[0] != 3 or wp.shape[0] != 3:
        raise ValueError("P3P needs exactly 3 image points and 3 world points")
    K = np.asarray(K, dtype=np.float64).reshape(3, 3)

    rays = np.linalg.solve(K, np.column_stack([img, np.ones(3)]).T).T
    rays /= np.linalg.norm(rays, axis=1, keepdims=True)
    u, v, w = rays

    A, B, C = wp
    AB2 = float(np.sum((A - B) ** 2))
    BC2 = float(np.sum((B - C) ** 2))
    AC2 = float(np.sum((A - C) ** 2))
    if AB2 == 0.0 or AC2 == 0.0:
        return []
    sine = np.linalg.norm(np.cross(B - A, C - A)) / np.sqrt(AB2 * AC2)
    if sine < cfg.p3p_collinear_sine:
        logger.debug("P3P world triangle is collinear")
        return []
    if abs(float(np.linalg.det(rays))) < cfg.p3p_coplanar_rays_tol:
        logger.debug("P3P viewing rays are coplanar")
        return []

    cos_uv = float(u @ v)
    cos_uw = float(u @ w)
    cos_vw = float(v @ w)
    a = BC2 / AB2
    b = AC2 / AB2
    p = 2.0 * cos_vw
    q = 2.0 * cos_uw
    r = 2.0 * cos_uv

    component = classify_configuration(a, b, p, q, r, tol=cfg.p3p_degeneracy_tol)
    if component != 1:
        logger.debug("P3P configuration lies on special component %d", component)
        return []

    coeffs = _quartic(a, b, p, q, r)
    if not np.all(np.isfinite(coeffs)):
        return []
    xs = real_roots(coeffs, imag_tol=cfg.root_imag_tol)

    b1 = b * ((p**2 - p * q * r + r**2) * a + (p**2 - r**2) * b - p**2 + p * q * r - r**2) ** 2
    if b1 == 0.0:
        return []

    out: list[PoseHypothesis] = []
    for x in xs:
        if x <= 0.0:
            continue
        y = _y_numerator(float(x), a, b, p, q, r) / b1
        cv = x * x + y * y - 2.0 * x * y * cos_uv
        if cv <= 0.0:
            continue
        PC = np.sqrt(AB2 / cv)
        PB = y * PC
        PA = x * PC
        if not (PC > 0.0 and PB > 0.0 and PA > 0.0):
            continue
        cam = np.stack([u * PA, v * PB, w * PC])
        R, t = rigid_transform_3d(wp, cam)
        out.append(PoseHypothesis(rotation=R, translation=t))
    return out

from __future__ import annotations

import numpy as np


def real_roots(coeffs_high_first: np.ndarray, imag_tol: float = 1e-8) -> np.ndarray:
    """
    Real roots of a polynomial given highest-degree coefficient first (numpy.roots order).

    Roots whose imaginary part exceeds `imag_tol` are discarded. Non-finite
    coefficients yield no roots.
    """
    c = np.asarray(coeffs_high_first, dtype=np.float64).reshape(-1)
    if c.size == 0 or not np.all(np.isfinite(c)):
        return np.zeros((0,), dtype=np.float64)
    nz = np.flatnonzero(c)
    if nz.size == 0:
        return np.zeros((0,), dtype=np.float64)
    roots = np.roots(c[nz[0] :])
    keep = np.abs(roots.imag) < float(imag_tol)
    return np.sort(roots.real[keep])


def smallest_positive_real_roots(coeffs_low_first: np.ndarray, imag_tol: float = 1e-8) -> np.ndarray:
    """
    Smallest positive real root of each row of an (N, d+1) coefficient table,
    lowest degree first, or NaN where a row has none.

    Uses stacked companion matrices, so all rows are solved in one eigenvalue call.
    Leading coefficients that are zero in every row lower the degree; rows whose
    own leading coefficient is zero or non-finite yield NaN. The imaginary-part
    test is relative to max(1, |root|).
    """
    c = np.atleast_2d(np.asarray(coeffs_low_first, dtype=np.float64))
    n = c.shape[0]
    out = np.full((n,), np.nan)
    while c.shape[1] > 1 and np.all(c[:, -1] == 0.0):
        c = c[:, :-1]
    deg = c.shape[1] - 1
    if deg == 0 or n == 0:
        return out

    lead = c[:, -1]
    ok = (lead != 0.0) & np.all(np.isfinite(c), axis=1)
    if not np.any(ok):
        return out
    cc = c[ok]
    comp = np.zeros((cc.shape[0], deg, deg), dtype=np.float64)
    comp[:, 0, :] = -cc[:, -2::-1] / cc[:, -1:]
    if deg > 1:
        comp[:, 1:, :-1] = np.eye(deg - 1)
    roots = np.linalg.eigvals(comp)
    real = roots.real
    keep = (np.abs(roots.imag) <= float(imag_tol) * np.maximum(1.0, np.abs(real))) & (real > 0.0)
    best = np.min(np.where(keep, real, np.inf), axis=1)
    out[ok] = np.where(np.isfinite(best), best, np.nan)
    return out

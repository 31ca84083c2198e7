"""
Parameter uncertainty of a nonlinear least-squares fit.

Given the Jacobian J (n_residuals x n_parameters) at the optimum and the residual
vector, the parameter covariance is sigma^2 (J^T J)^-1 with
sigma^2 = sum(residuals^2) / (n_residuals - n_parameters).

Sparse Jacobians are never densified: J^T J is formed as a sparse product and
only the (p, p) normal matrix becomes dense.
"""
from __future__ import annotations

import numpy as np

COVARIANCE_METHODS = ("qr", "pinv")


def residual_variance(residuals: np.ndarray, num_parameters: int) -> float:
    r = np.asarray(residuals, dtype=np.float64).reshape(-1)
    dof = r.size - int(num_parameters)
    if dof <= 0:
        raise ValueError("more residuals than parameters are required")
    return float(r @ r) / dof


def _normal_matrix(J) -> np.ndarray:
    return np.asarray((J.T @ J).toarray(), dtype=np.float64)


def estimate_covariance(jacobian, residuals: np.ndarray, method: str = "qr") -> np.ndarray:
    """
    (p, p) covariance of the fitted parameters.

    method="qr": inverse of the triangular factor of J (fast, needs full column rank).
      For sparse J the triangular factor is the Cholesky factor of J^T J.
    method="pinv": pseudo-inverse of J^T J (tolerates rank deficiency).
    """
    from scipy import linalg, sparse

    if method not in COVARIANCE_METHODS:
        raise ValueError(f"method must be one of {COVARIANCE_METHODS}")
    is_sparse = sparse.issparse(jacobian)
    J = sparse.csr_matrix(jacobian, dtype=np.float64) if is_sparse else np.asarray(jacobian, dtype=np.float64)
    if J.ndim != 2:
        raise ValueError("jacobian must be 2-D")
    r = np.asarray(residuals, dtype=np.float64).reshape(-1)
    if r.size != J.shape[0]:
        raise ValueError("residuals must have one entry per jacobian row")
    p = J.shape[1]
    sigma2 = residual_variance(r, p)

    if method == "qr":
        if is_sparse:
            R = linalg.cholesky(_normal_matrix(J), lower=False)
        else:
            R = linalg.qr(J, mode="r")[0][:p, :]
        R_inv = linalg.solve_triangular(R, np.eye(p))
        cov = R_inv @ R_inv.T
    else:
        cov = np.linalg.pinv(_normal_matrix(J) if is_sparse else J.T @ J)
    return sigma2 * cov


def compute_standard_errors(jacobian, residuals: np.ndarray, method: str = "qr") -> np.ndarray:
    """Standard error of each parameter: sqrt of the covariance diagonal."""
    cov = estimate_covariance(jacobian, residuals, method=method)
    return np.sqrt(np.clip(np.diag(cov), 0.0, None))

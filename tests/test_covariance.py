from __future__ import annotations

import numpy as np
import pytest
from scipy import sparse

from camgeom.estimation.covariance import compute_standard_errors, estimate_covariance, residual_variance


def _line_fit(n: int = 40) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(0)
    x = np.linspace(0.0, 10.0, n)
    y = 2.0 * x + 1.0 + rng.normal(scale=0.3, size=n)
    J = np.column_stack([x, np.ones(n)])
    beta, *_ = np.linalg.lstsq(J, y, rcond=None)
    return J, y - J @ beta


def test_matches_the_ordinary_least_squares_formula() -> None:
    J, r = _line_fit()
    expected = (r @ r) / (len(r) - 2) * np.linalg.inv(J.T @ J)
    assert np.allclose(estimate_covariance(J, r), expected)
    assert np.allclose(estimate_covariance(J, r, method="pinv"), expected)
    assert np.allclose(compute_standard_errors(J, r), np.sqrt(np.diag(expected)))


def test_sparse_jacobian() -> None:
    J, r = _line_fit()
    assert np.allclose(estimate_covariance(sparse.csr_matrix(J), r), estimate_covariance(J, r))


class _UndensifiableJacobian(sparse.coo_matrix):
    def toarray(self, *args, **kwargs):
        raise AssertionError("the full jacobian must stay sparse")


def test_tall_sparse_jacobian_is_not_densified() -> None:
    J = _UndensifiableJacobian(sparse.random(50_000, 4, density=0.2, random_state=0, format="coo"))
    r = np.random.default_rng(1).normal(size=50_000)
    JtJ = (sparse.csr_matrix(J).T @ sparse.csr_matrix(J)).toarray()
    expected = (r @ r) / (50_000 - 4) * np.linalg.inv(JtJ)
    assert np.allclose(estimate_covariance(J, r), expected)
    assert np.allclose(estimate_covariance(J, r, method="pinv"), expected)


def test_sparse_and_dense_rank_deficient_pinv_agree() -> None:
    J, r = _line_fit()
    J = np.column_stack([J, J[:, 0]])
    dense = estimate_covariance(J, r, method="pinv")
    assert np.allclose(estimate_covariance(sparse.csc_matrix(J), r, method="pinv"), dense)


def test_rank_deficient_jacobian_with_pinv() -> None:
    J, r = _line_fit()
    J = np.column_stack([J, J[:, 0]])
    std = compute_standard_errors(J, r, method="pinv")
    assert std.shape == (3,)
    assert np.all(np.isfinite(std))


def test_invalid_inputs() -> None:
    J, r = _line_fit(n=2)
    with pytest.raises(ValueError):
        estimate_covariance(J, r)
    with pytest.raises(ValueError):
        residual_variance(np.ones(3), 3)
    J, r = _line_fit()
    with pytest.raises(ValueError):
        estimate_covariance(J, r[:-1])
    with pytest.raises(ValueError):
        estimate_covariance(J, r, method="svd")

from __future__ import annotations

import numpy as np
import pytest

from camgeom.config import parse_config, set_config
from camgeom.core.rotation import rodrigues_vector_to_matrix
from camgeom.errors import DegenerateEssentialMatrixError
from camgeom.pose.essential import decompose_essential_matrix, essential_from_pose, project_to_essential
from camgeom.pose.p3p import classify_configuration, solve_p3p

K = np.array([[800.0, 0.0, 320.0], [0.0, 800.0, 240.0], [0.0, 0.0, 1.0]])


def _pose() -> tuple[np.ndarray, np.ndarray]:
    R, _ = rodrigues_vector_to_matrix(np.array([0.2, -0.1, 0.3]))
    return R, np.array([10.0, -20.0, 500.0])


def _image(R: np.ndarray, t: np.ndarray, world: np.ndarray) -> np.ndarray:
    cam = world @ R.T + t
    hom = cam @ K.T
    return hom[:, :2] / hom[:, 2:3]


def test_p3p_recovers_the_true_pose() -> None:
    R, t = _pose()
    world = np.array([[0.0, 0.0, 0.0], [100.0, 10.0, 0.0], [20.0, 90.0, 30.0]])
    hyps = solve_p3p(_image(R, t, world), world, K)
    assert 1 <= len(hyps) <= 4
    errors = [np.abs(h.rotation - R).max() + np.abs(h.translation - t).max() / 500.0 for h in hyps]
    best = hyps[int(np.argmin(errors))]
    assert np.allclose(best.rotation, R, atol=1e-6)
    assert np.allclose(best.translation, t, atol=1e-4)
    assert np.allclose(best.rotation_vector, [0.2, -0.1, 0.3], atol=1e-6)
    for h in hyps:
        assert np.isclose(np.linalg.det(h.rotation), 1.0)
        assert np.all((world @ h.rotation.T + h.translation)[:, 2] > 0.0)


def test_p3p_collinear_world_points_have_no_solution() -> None:
    R, t = _pose()
    world = np.array([[0.0, 0.0, 0.0], [100.0, 0.0, 0.0], [200.0, 0.0, 0.0]])
    assert solve_p3p(_image(R, t, world), world, K) == []


def _near_collinear(offset: float) -> np.ndarray:
    return np.array([[0.0, 0.0, 0.0], [100.0, 0.0, 0.0], [200.0, offset, 0.0]])


def test_p3p_near_collinear_below_threshold_has_no_solution() -> None:
    R, t = _pose()
    # sine at A = offset / 200 = 5e-7
    world = _near_collinear(1e-4)
    assert solve_p3p(_image(R, t, world), world, K) == []


def test_p3p_collinear_threshold_comes_from_config() -> None:
    R, t = _pose()
    world = np.array([[0.0, 0.0, 0.0], [100.0, 10.0, 0.0], [20.0, 90.0, 30.0]])
    img = _image(R, t, world)
    assert solve_p3p(img, world, K)

    # sine at A is about 0.955 for this triangle
    previous = set_config(parse_config({"p3p_collinear_sine": 0.99}))
    try:
        assert solve_p3p(img, world, K) == []
    finally:
        set_config(previous)

    skewed = _near_collinear(0.5)
    previous = set_config(parse_config({"p3p_collinear_sine": 1e-2}))
    try:
        assert solve_p3p(_image(R, t, skewed), skewed, K) == []
    finally:
        set_config(previous)
    assert solve_p3p(img, world, K)


def test_p3p_coplanar_ray_threshold_comes_from_config() -> None:
    R, t = _pose()
    world = np.array([[0.0, 0.0, 0.0], [100.0, 10.0, 0.0], [20.0, 90.0, 30.0]])
    previous = set_config(parse_config({"p3p_coplanar_rays_tol": 0.5}))
    try:
        assert solve_p3p(_image(R, t, world), world, K) == []
    finally:
        set_config(previous)


def test_p3p_needs_three_points() -> None:
    with pytest.raises(ValueError):
        solve_p3p(np.zeros((4, 2)), np.zeros((4, 3)), K)


def test_generic_configuration_is_component_one() -> None:
    assert classify_configuration(1.3, 0.7, 1.8, 1.7, 1.9) == 1
    # r = 0 with a + b = 1
    assert classify_configuration(0.4, 0.6, 1.8, 1.7, 0.0) == 2


def test_essential_decomposition_contains_the_true_pose() -> None:
    R, t = _pose()
    E = essential_from_pose(R, t)
    hyps = decompose_essential_matrix(3.0 * E)
    assert len(hyps) == 4
    t_unit = t / np.linalg.norm(t)
    matches = [
        h
        for h in hyps
        if np.allclose(h.rotation, R, atol=1e-9) and np.allclose(h.translation, t_unit, atol=1e-9)
    ]
    assert len(matches) == 1
    for h in hyps:
        assert np.isclose(np.linalg.det(h.rotation), 1.0)
        assert np.isclose(np.linalg.norm(h.translation), 1.0)


def test_projection_equalizes_singular_values() -> None:
    rng = np.random.default_rng(0)
    E, U, Vt = project_to_essential(rng.normal(size=(3, 3)))
    s = np.linalg.svd(E, compute_uv=False)
    assert np.isclose(s[0], s[1])
    assert s[2] < 1e-12
    assert np.isclose(np.linalg.det(U), 1.0) and np.isclose(np.linalg.det(Vt), 1.0)


@pytest.mark.parametrize("E", [np.zeros((3, 3)), np.full((3, 3), np.nan), np.eye(2)])
def test_degenerate_essential_matrix(E) -> None:
    with pytest.raises(DegenerateEssentialMatrixError):
        decompose_essential_matrix(E)

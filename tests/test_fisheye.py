from __future__ import annotations

import numpy as np
import pytest

from camgeom.config import ENV_RESAMPLE_BACKEND
from camgeom.core.rotation import rodrigues_vector_to_matrix
from camgeom.errors import CalibrationConfigError, FisheyeUndistortWarning
from camgeom.models.fisheye import (
    FisheyeIntrinsics,
    FisheyeModel,
    compute_approx_image_projection,
    compute_image_projection,
    undistort_fisheye_image,
    undistort_fisheye_points,
)


@pytest.fixture(autouse=True)
def _scipy_backend(monkeypatch):
    monkeypatch.setenv(ENV_RESAMPLE_BACKEND, "scipy")


def _intrinsics() -> FisheyeIntrinsics:
    return FisheyeIntrinsics([880.0, -3e-4, 0.0, 0.0], (1000, 1200), (599.5, 499.5))


def _small_intrinsics() -> FisheyeIntrinsics:
    return FisheyeIntrinsics([44.0, -6e-3, 0.0, 0.0], (60, 80), (39.5, 29.5))


def _directions(n: int, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    xy = rng.uniform(-0.8, 0.8, size=(n, 2))
    return np.column_stack([xy, np.ones(n)])


def test_exact_projection_of_a_known_point() -> None:
    uv = _intrinsics().project(np.array([[300.0, 0.0, 853.0]]))
    # f(300) = 880 - 3e-4 * 300^2 = 853, so the image radius is exactly 300
    assert np.allclose(uv, [[899.5, 499.5]], atol=1e-6)


def test_point_on_the_optical_axis_projects_to_the_center() -> None:
    uv = _intrinsics().project(np.array([[0.0, 0.0, 5.0]]))
    assert np.allclose(uv, [[599.5, 499.5]], atol=1e-6)


def test_back_projection_recovers_directions() -> None:
    intr = _intrinsics()
    d = _directions(200)
    uv = intr.project(d)
    vec = intr.image_to_normalized_vector(uv)
    ref = d / np.linalg.norm(d, axis=1, keepdims=True)
    assert np.allclose(vec, ref, atol=1e-8)


def test_stretch_matrix_is_applied() -> None:
    stretch = np.array([[1.01, 0.002], [0.001, 5.0]])
    intr = FisheyeIntrinsics([880.0, -3e-4, 0.0, 0.0], (1000, 1200), (599.5, 499.5), stretch)
    assert intr.stretch_matrix[1, 1] == 1.0
    d = _directions(20, seed=1)
    vec = intr.image_to_normalized_vector(intr.project(d))
    assert np.allclose(vec, d / np.linalg.norm(d, axis=1, keepdims=True), atol=1e-8)


def test_approximate_projection_is_close_to_exact() -> None:
    intr = _intrinsics()
    d = _directions(500, seed=2)
    exact = compute_image_projection(d, intr.mapping_polynomial, intr.stretch_matrix, intr.distortion_center)
    approx, max_error = compute_approx_image_projection(
        d, intr.mapping_polynomial, intr.stretch_matrix, intr.distortion_center
    )
    assert max_error <= 0.1
    assert np.max(np.linalg.norm(approx - exact, axis=1)) < 0.5


def test_world_plane_roundtrip() -> None:
    intr = _intrinsics()
    R, _ = rodrigues_vector_to_matrix(np.array([0.1, -0.2, 0.05]))
    t = np.array([-100.0, -50.0, 400.0])
    world = np.column_stack([np.arange(10) * 20.0, np.arange(10) * 10.0])
    uv = intr.world_to_image(R, t, np.column_stack([world, np.zeros(10)]))
    back = intr.points_to_world(R, t, uv)
    assert np.allclose(back, world, atol=1e-6)


def test_undistort_points_roundtrip_and_virtual_camera() -> None:
    intr = _intrinsics()
    pts = np.array([[700.0, 400.0], [599.5, 499.5], [300.0, 800.0]])
    und, camera, errors = undistort_fisheye_points(pts, intr, scale_factor=0.5)
    assert camera.principal_point == (599.5, 499.5)
    assert camera.focal_length == (250.0, 250.0)
    assert np.all(errors < 1e-6)
    assert np.allclose(und[1], [599.5, 499.5])
    assert np.allclose(intr.distort_points(und, camera), pts, atol=1e-6)


def test_points_behind_the_virtual_camera_become_nan() -> None:
    intr = _intrinsics()
    camera = intr.virtual_camera()
    # f(1800) < 0: the ray points away from the scene
    pts = np.array([[599.5 + 1800.0, 499.5], [650.0, 520.0]])
    with pytest.warns(FisheyeUndistortWarning):
        out = intr.undistort_points(pts, camera)
    assert np.all(np.isnan(out[0]))
    assert np.all(np.isfinite(out[1]))


def test_undistort_image_same_view_and_cache() -> None:
    intr = _small_intrinsics()
    img = np.full((60, 80), 200, dtype=np.uint8)
    out, camera = undistort_fisheye_image(img, intr, output_view="same")
    assert out.shape == (60, 80)
    assert out.dtype == np.uint8
    assert camera.principal_point == (39.5, 29.5)
    assert camera.focal_length == (30.0, 30.0)
    assert out[30, 40] == 200

    first = intr._undistort_map.map
    undistort_fisheye_image(img, intr, output_view="same")
    assert intr._undistort_map.map is first
    undistort_fisheye_image(img, intr, output_view="same", scale_factor=0.5)
    assert intr._undistort_map.map is not first


def test_undistort_image_full_is_wider_than_valid() -> None:
    intr = _small_intrinsics()
    img = np.full((60, 80), 200, dtype=np.uint8)
    full, cam_full = undistort_fisheye_image(img, intr, output_view="full", method="exact")
    valid, cam_valid = undistort_fisheye_image(img, intr, output_view="valid", method="exact")
    assert full.shape[1] > valid.shape[1]
    assert full.shape[0] > valid.shape[0]
    assert cam_full.image_size == full.shape[:2]
    assert cam_valid.cx > 0.0 and cam_valid.cy > 0.0


def test_invalid_intrinsics() -> None:
    with pytest.raises(CalibrationConfigError):
        FisheyeIntrinsics([880.0, -3e-4, 0.0], (1000, 1200), (599.5, 499.5))
    with pytest.raises(CalibrationConfigError):
        FisheyeIntrinsics([880.0, -3e-4, 0.0, 0.0], (1000, 1200), (599.5,))
    with pytest.raises(CalibrationConfigError):
        undistort_fisheye_points(np.zeros((2, 2)), _intrinsics(), scale_factor=-1.0)


def test_fisheye_model_reprojection_and_record() -> None:
    intr = _intrinsics()
    xx, yy = np.meshgrid(np.arange(5) * 30.0, np.arange(4) * 30.0)
    world = np.column_stack([xx.ravel(), yy.ravel()])
    rvecs = np.array([[0.1, 0.0, 0.0], [0.0, -0.1, 0.2]])
    tvecs = np.array([[-60.0, -45.0, 300.0], [-50.0, -40.0, 350.0]])
    model = FisheyeModel(intr, world_points=world, rotation_vectors=rvecs, translation_vectors=tvecs)

    proj = model.reprojected_points
    assert proj.shape == (20, 2, 2)
    R1, _ = rodrigues_vector_to_matrix(rvecs[1])
    direct = intr.world_to_image(R1, tvecs[1], np.column_stack([world, np.zeros(20)]))
    assert np.allclose(proj[:, :, 1], direct, atol=1e-9)

    updated = model.with_reprojection_errors_from(proj - 0.25)
    assert np.isclose(updated.mean_reprojection_error, 0.25 * np.sqrt(2))

    back = FisheyeModel.from_record(updated.to_record())
    assert np.array_equal(back.intrinsics.mapping_coefficients, intr.mapping_coefficients)
    assert np.array_equal(back.reprojection_errors, updated.reprojection_errors)
    assert back.num_patterns == 2

from __future__ import annotations

import numpy as np
import pytest

from camgeom.core.rotation import rodrigues_vector_to_matrix
from camgeom.errors import CalibrationConfigError, SingularProjectionError
from camgeom.models.camera import CameraIntrinsics, CameraModel


def _K(f: float = 1000.0, cx: float = 320.0, cy: float = 240.0) -> np.ndarray:
    return np.array([[f, 0.0, cx], [0.0, f, cy], [0.0, 0.0, 1.0]])


def _board(nx: int = 6, ny: int = 4, pitch: float = 25.0) -> np.ndarray:
    xx, yy = np.meshgrid(np.arange(nx) * pitch, np.arange(ny) * pitch)
    return np.column_stack([xx.ravel(), yy.ravel()])


def _camera_with_patterns() -> CameraModel:
    rvecs = np.array([[0.1, -0.2, 0.05], [-0.15, 0.1, 0.0], [0.0, 0.25, -0.1]])
    tvecs = np.array([[-60.0, -40.0, 600.0], [-50.0, -30.0, 700.0], [-70.0, -35.0, 650.0]])
    return CameraModel(
        _K(),
        radial_distortion=(-0.1, 0.02),
        tangential_distortion=(1e-3, -1e-3),
        image_size=(480, 640),
        world_points=_board(),
        rotation_vectors=rvecs,
        translation_vectors=tvecs,
        estimate_tangential_distortion=True,
    )


def test_principal_point_projection() -> None:
    cam = CameraModel(_K())
    uv = cam.world_to_image(np.eye(3), [0.0, 0.0, 1000.0], np.array([[0.0, 0.0, 0.0]]))
    assert np.allclose(uv, [[320.0, 240.0]])
    assert uv.dtype == np.float64


def test_float32_points_give_float32_output() -> None:
    cam = CameraModel(_K(), radial_distortion=(0.1, 0.0))
    pts = np.array([[100.0, 200.0], [300.0, 50.0]], dtype=np.float32)
    assert cam.distort_points(pts).dtype == np.float32
    und, err = cam.undistort_points(pts)
    assert und.dtype == np.float32 and err.dtype == np.float32


def test_undistort_points_reports_small_residuals() -> None:
    cam = CameraModel(_K(), radial_distortion=(-0.2, 0.05), tangential_distortion=(1e-3, 2e-4))
    rng = np.random.default_rng(0)
    und = np.column_stack([rng.uniform(50, 590, 50), rng.uniform(50, 430, 50)])
    dist = cam.distort_points(und)
    back, err = cam.undistort_points(dist)
    assert np.max(np.abs(back - und)) < 1e-6
    assert np.all(err < 1e-6)


def test_points_to_world_inverts_world_to_image() -> None:
    cam = CameraModel(_K())
    R, _ = rodrigues_vector_to_matrix(np.array([0.2, -0.1, 0.05]))
    t = np.array([-50.0, -20.0, 800.0])
    world = _board()
    uv = cam.world_to_image(R, t, world)
    back = cam.points_to_world(R, t, uv)
    assert np.allclose(back, world, atol=1e-8)


def test_points_to_world_rejects_edge_on_plane() -> None:
    cam = CameraModel(_K())
    # the world plane Z = 0 contains the optical center
    R, _ = rodrigues_vector_to_matrix(np.array([np.pi / 2, 0.0, 0.0]))
    with pytest.raises(SingularProjectionError):
        cam.points_to_world(R, np.zeros(3), np.array([[320.0, 240.0]]))


def test_reprojected_points_and_mean_error() -> None:
    cam = _camera_with_patterns()
    proj = cam.reprojected_points
    assert proj.shape == (24, 2, 3)
    R0, _ = rodrigues_vector_to_matrix(cam.rotation_vectors[0])
    direct = cam.world_to_image(R0, cam.translation_vectors[0], cam.world_points, apply_distortion=True)
    assert np.allclose(proj[:, :, 0], direct)

    noisy = proj + 0.5 * np.array([1.0, 0.0])[None, :, None]
    updated = cam.with_reprojection_errors_from(noisy)
    mean, per_pattern = updated.compute_mean_error()
    assert np.isclose(mean, 0.5)
    assert np.allclose(per_pattern, [0.5, 0.5, 0.5])
    assert np.isclose(updated.mean_reprojection_error, 0.5)
    assert np.isnan(cam.mean_reprojection_error)


def test_intrinsics_object() -> None:
    intr = CameraIntrinsics.from_matrix(np.array([[900.0, 1.5, 300.0], [0.0, 910.0, 200.0], [0.0, 0.0, 1.0]]))
    assert intr.focal_length == (900.0, 910.0)
    assert intr.principal_point == (300.0, 200.0)
    cam = CameraModel(intr)
    assert cam.skew == 1.5
    assert np.allclose(cam.intrinsic_matrix, intr.K)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"intrinsic_matrix": np.eye(2)},
        {"intrinsic_matrix": np.array([[1.0, 0, 0], [0, 1.0, 0], [0, 0, np.nan]])},
        {"radial_distortion": (0.1,)},
        {"radial_distortion": (0.1, 0.2, 0.3, 0.4)},
        {"tangential_distortion": (0.1, 0.2, 0.3)},
        {"world_points": np.zeros((4, 3))},
        {"rotation_vectors": np.zeros((2, 3)), "translation_vectors": np.zeros((3, 3))},
        {"image_size": (480, 640, 3)},
    ],
)
def test_invalid_construction(kwargs) -> None:
    K = kwargs.pop("intrinsic_matrix", _K())
    with pytest.raises(CalibrationConfigError):
        CameraModel(K, **kwargs)


def test_wrong_reprojection_error_shape() -> None:
    with pytest.raises(CalibrationConfigError):
        CameraModel(
            _K(),
            world_points=_board(),
            rotation_vectors=np.zeros((2, 3)),
            translation_vectors=np.ones((2, 3)),
            reprojection_errors=np.zeros((24, 2, 3)),
        )


def test_record_roundtrip() -> None:
    cam = _camera_with_patterns()
    rec = cam.to_record()
    assert rec["schema_version"] == "camgeom.camera.v0"
    back = CameraModel.from_record(rec)
    assert np.array_equal(back.intrinsic_matrix, cam.intrinsic_matrix)
    assert np.array_equal(back.radial_distortion, cam.radial_distortion)
    assert np.array_equal(back.rotation_vectors, cam.rotation_vectors)
    assert back.image_size == (480, 640)
    assert back.estimate_tangential_distortion
    pts = np.array([[10.0, 20.0], [600.0, 400.0]])
    assert np.array_equal(back.distort_points(pts), cam.distort_points(pts))


def test_record_with_wrong_schema_is_rejected() -> None:
    rec = _camera_with_patterns().to_record()
    rec["schema_version"] = "camgeom.fisheye.v0"
    with pytest.raises(CalibrationConfigError):
        CameraModel.from_record(rec)

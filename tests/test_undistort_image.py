from __future__ import annotations

import logging

import numpy as np
import pytest

from camgeom.config import ENV_RESAMPLE_BACKEND
from camgeom.core.resample import ScipyResampler, get_resampler
from camgeom.errors import PreconditionError
from camgeom.models.camera import CameraModel
from camgeom.models.distortion_map import DistortionMapCache, map_dtype_for


@pytest.fixture(autouse=True)
def _scipy_backend(monkeypatch):
    monkeypatch.setenv(ENV_RESAMPLE_BACKEND, "scipy")


def _camera(k1: float = 0.0) -> CameraModel:
    K = np.array([[100.0, 0.0, 39.5], [0.0, 100.0, 29.5], [0.0, 0.0, 1.0]])
    return CameraModel(K, radial_distortion=(k1, 0.0), image_size=(60, 80))


def _image(dtype=np.uint8) -> np.ndarray:
    rng = np.random.default_rng(0)
    return rng.integers(0, 255, size=(60, 80)).astype(dtype)


def test_zero_distortion_same_view_is_identity() -> None:
    img = _image()
    out, origin = _camera().undistort_image(img, interpolation="nearest")
    assert origin == (0, 0)
    assert out.dtype == np.uint8
    assert np.array_equal(out, img)


def test_map_is_reused_until_the_signature_changes() -> None:
    cam = _camera(-0.5)
    img = _image()
    cam.undistort_image(img)
    first = cam._undistort_map.map
    assert first.map_x.dtype == np.float64
    assert first.narrow_x.dtype == np.float32

    cam.undistort_image(img.copy())
    assert cam._undistort_map.map is first

    cam.undistort_image(img.astype(np.float64))
    second = cam._undistort_map.map
    assert second is not first

    cam.undistort_image(img.astype(np.float64), output_view="full")
    assert cam._undistort_map.map is not second


def test_map_keeps_both_precisions() -> None:
    cam = _camera(-0.5)
    cam.undistort_image(_image())
    m = cam._undistort_map.map
    wide_x, wide_y = m.maps_for(np.float64)
    narrow_x, narrow_y = m.maps_for(np.uint8)
    assert wide_x.dtype == wide_y.dtype == np.float64
    assert narrow_x.dtype == narrow_y.dtype == np.float32
    assert m.maps_for(np.float32)[0] is narrow_x
    assert np.allclose(narrow_x, wide_x, atol=1e-4)
    assert np.allclose(narrow_y, wide_y, atol=1e-4)


def test_map_rebuild_is_logged_with_deferred_arguments(caplog) -> None:
    with caplog.at_level(logging.DEBUG, logger="camgeom.models.distortion_map"):
        _camera(-0.5).undistort_image(_image())
    records = [r for r in caplog.records if r.name == "camgeom.models.distortion_map"]
    assert records
    assert records[0].args == (80, 60, "same")
    assert records[0].getMessage() == "rebuilt 80x60 map for view 'same'"


def test_full_and_valid_views_of_barrel_distortion() -> None:
    cam = _camera(-0.5)
    (fx0, fx1), (fy0, fy1) = cam.compute_undistort_bounds((60, 80), "full")
    assert fx0 < 0 and fx1 > 79
    assert fy0 < 0 and fy1 > 59

    (vx0, vx1), (vy0, vy1) = cam.compute_undistort_bounds((60, 80), "valid")
    assert fx0 <= vx0 < vx1 <= fx1
    assert fy0 <= vy0 < vy1 <= fy1

    img = np.full((60, 80), 255, dtype=np.uint8)
    full, origin = cam.undistort_image(img, interpolation="nearest", output_view="full", fill_value=0)
    assert full.shape == (fy1 - fy0 + 1, fx1 - fx0 + 1)
    assert origin == (fx0, fy0)
    assert np.any(full == 0)

    valid, origin = cam.undistort_image(img, interpolation="nearest", output_view="valid", fill_value=0)
    assert valid.shape == (vy1 - vy0 + 1, vx1 - vx0 + 1)
    assert origin == (vx0, vy0)
    assert np.all(valid == 255)


def test_color_image_with_per_channel_fill() -> None:
    cam = _camera(-0.5)
    img = np.full((60, 80, 3), 100, dtype=np.uint8)
    out, _ = cam.undistort_image(img, interpolation="bicubic", output_view="full", fill_value=(1, 2, 3))
    assert out.ndim == 3 and out.shape[2] == 3
    assert np.any(np.all(out == (1, 2, 3), axis=-1))
    assert np.any(np.all(out == 100, axis=-1))


def test_invalid_view_and_interpolation() -> None:
    cam = _camera()
    with pytest.raises(ValueError):
        cam.undistort_image(_image(), output_view="crop")
    with pytest.raises(ValueError):
        cam.undistort_image(_image(), interpolation="lanczos")


def test_transform_before_update_is_a_precondition_error() -> None:
    cache = DistortionMapCache(resampler=ScipyResampler())
    with pytest.raises(PreconditionError):
        cache.transform_image(_image())


def test_map_dtype_follows_image_precision() -> None:
    assert map_dtype_for(np.float64) == np.float64
    assert map_dtype_for(np.uint8) == np.float32
    assert map_dtype_for(np.float32) == np.float32


def test_backend_selection() -> None:
    assert get_resampler().name == "scipy"
    assert get_resampler("scipy").name == "scipy"
    with pytest.raises(ValueError):
        get_resampler("pillow")


def test_opencv_and_scipy_agree_for_nearest() -> None:
    pytest.importorskip("cv2")
    from camgeom.core.resample import OpenCVResampler

    rng = np.random.default_rng(3)
    img = rng.integers(0, 255, size=(40, 50)).astype(np.uint8)
    map_x = rng.uniform(1.0, 48.0, size=(30, 35))
    map_y = rng.uniform(1.0, 38.0, size=(30, 35))
    a = OpenCVResampler().remap(img, map_x, map_y, "nearest")
    b = ScipyResampler().remap(img, map_x, map_y, "nearest")

    no_tie = (np.abs(map_x % 1.0 - 0.5) > 0.05) & (np.abs(map_y % 1.0 - 0.5) > 0.05)
    assert a.shape == b.shape == (30, 35)
    assert np.array_equal(a[no_tie], b[no_tie])


def _regions(map_x: np.ndarray, map_y: np.ndarray, shape: tuple[int, int]):
    rows, cols = shape
    outside = (map_x < -1.0) | (map_x > cols) | (map_y < -1.0) | (map_y > rows)
    inside = (map_x >= 1.0) & (map_x <= cols - 2.0) & (map_y >= 1.0) & (map_y <= rows - 2.0)
    no_tie = (np.abs(map_x % 1.0 - 0.5) > 1.0 / 16) & (np.abs(map_y % 1.0 - 0.5) > 1.0 / 16)
    return outside, inside & no_tie


def _both_backends(monkeypatch, cam: CameraModel, img: np.ndarray, **kwargs):
    monkeypatch.setenv(ENV_RESAMPLE_BACKEND, "opencv")
    a, origin_a = cam.undistort_image(img, **kwargs)
    assert cam._undistort_map.map.signature.backend == "opencv"
    monkeypatch.setenv(ENV_RESAMPLE_BACKEND, "scipy")
    b, origin_b = cam.undistort_image(img, **kwargs)
    assert cam._undistort_map.map.signature.backend == "scipy"
    return a, b, origin_a, origin_b


def _gradient_rgb() -> np.ndarray:
    rows, cols = np.mgrid[0:60, 0:80]
    base = 2 * cols + rows
    return np.stack([base, base + 10, base + 20], axis=-1).astype(np.uint8)


def test_backends_agree_on_rgb_nearest_with_fill(monkeypatch) -> None:
    pytest.importorskip("cv2")
    cam = _camera(-0.5)
    img = _gradient_rgb()
    a, b, origin_a, origin_b = _both_backends(
        monkeypatch, cam, img, interpolation="nearest", output_view="full", fill_value=(1, 2, 3)
    )
    assert a.shape == b.shape and a.dtype == b.dtype == np.uint8
    assert origin_a == origin_b

    m = cam._undistort_map.map
    outside, inside = _regions(m.map_x, m.map_y, (60, 80))
    assert outside.any() and inside.any()
    assert np.all(a[outside] == (1, 2, 3))
    assert np.all(b[outside] == (1, 2, 3))
    assert np.array_equal(a[inside], b[inside])


def test_backends_agree_on_rgb_bilinear(monkeypatch) -> None:
    pytest.importorskip("cv2")
    cam = _camera(-0.5)
    a, b, _, _ = _both_backends(
        monkeypatch, cam, _gradient_rgb(), interpolation="bilinear", output_view="full", fill_value=(1, 2, 3)
    )
    m = cam._undistort_map.map
    outside, _ = _regions(m.map_x, m.map_y, (60, 80))
    inside = (m.map_x >= 1.0) & (m.map_x <= 78.0) & (m.map_y >= 1.0) & (m.map_y <= 58.0)
    assert np.all(a[outside] == (1, 2, 3)) and np.all(b[outside] == (1, 2, 3))
    assert np.max(np.abs(a[inside].astype(int) - b[inside].astype(int))) <= 1


def _random_maps(seed: int = 5):
    rng = np.random.default_rng(seed)
    map_x = rng.uniform(-6.0, 56.0, size=(30, 35))
    map_y = rng.uniform(-6.0, 46.0, size=(30, 35))
    return map_x, map_y


def test_backends_agree_on_int32_images() -> None:
    pytest.importorskip("cv2")
    from camgeom.core.resample import OpenCVResampler

    rng = np.random.default_rng(1)
    img = rng.integers(-(2**23), 2**23, size=(40, 50)).astype(np.int32)
    map_x, map_y = _random_maps()
    a = OpenCVResampler().remap(img, map_x, map_y, "nearest", fill_value=-7)
    b = ScipyResampler().remap(img, map_x, map_y, "nearest", fill_value=-7)
    assert a.dtype == b.dtype == np.int32
    outside, inside = _regions(map_x, map_y, img.shape)
    assert np.all(a[outside] == -7) and np.all(b[outside] == -7)
    assert np.array_equal(a[inside], b[inside])


def test_backends_agree_on_bool_images() -> None:
    pytest.importorskip("cv2")
    from camgeom.core.resample import OpenCVResampler

    rng = np.random.default_rng(2)
    img = rng.random((40, 50)) > 0.5
    map_x, map_y = _random_maps()
    a = OpenCVResampler().remap(img, map_x, map_y, "nearest", fill_value=1)
    b = ScipyResampler().remap(img, map_x, map_y, "nearest", fill_value=1)
    assert a.dtype == b.dtype == np.bool_
    outside, inside = _regions(map_x, map_y, img.shape)
    assert np.all(a[outside]) and np.all(b[outside])
    assert np.array_equal(a[inside], b[inside])


@pytest.mark.parametrize("interpolation", ["nearest", "bilinear"])
def test_fill_covers_every_channel_beyond_four(interpolation: str) -> None:
    pytest.importorskip("cv2")
    from camgeom.core.resample import OpenCVResampler

    rng = np.random.default_rng(4)
    img = rng.uniform(100.0, 200.0, size=(40, 50, 6)).astype(np.float32)
    fill = (10.0, 20.0, 30.0, 40.0, 50.0, 60.0)
    map_x, map_y = _random_maps()
    a = OpenCVResampler().remap(img, map_x, map_y, interpolation, fill_value=fill)
    b = ScipyResampler().remap(img, map_x, map_y, interpolation, fill_value=fill)
    assert a.shape == b.shape == (30, 35, 6)
    assert a.dtype == b.dtype == np.float32
    outside, inside = _regions(map_x, map_y, img.shape[:2])
    assert outside.any()
    assert np.all(a[outside] == np.asarray(fill, dtype=np.float32))
    assert np.all(b[outside] == np.asarray(fill, dtype=np.float32))
    if interpolation == "nearest":
        assert np.array_equal(a[inside], b[inside])
    else:
        assert np.allclose(a[inside], b[inside], atol=5.0)

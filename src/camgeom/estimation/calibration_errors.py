"""
Standard errors of calibrated camera parameters.

The reports are built either from explicit per-group arrays or from the flat
vector returned by `compute_standard_errors`, using the parameter layout of the
model:

pinhole: fx, fy, cx, cy, [skew], radial (k), [p1, p2], then (r, t) per pattern
fisheye: a0, a2, a3, a4, cx, cy, [c, d, e], then (r, t) per pattern
stereo:  camera-1 intrinsics, camera-2 intrinsics, (r, t) of camera 2, then the
         camera-1 (r, t) per pattern
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from camgeom.core.rotation import rodrigues_matrix_to_vector
from camgeom.errors import CalibrationConfigError, _require
from camgeom.models.camera import CameraModel
from camgeom.models.fisheye import FisheyeModel
from camgeom.models.stereo import StereoModel

_ENTRY = "{:8.4f} +/- {:<8.4f}"


def _vec(x, size: int | None, name: str) -> np.ndarray:
    v = np.asarray(x, dtype=np.float64).reshape(-1)
    if size is not None:
        _require(v.size == size, f"{name} must have {size} elements")
    _require(bool(np.all(np.isfinite(v))) and bool(np.all(v >= 0.0)), f"{name} must be finite and non-negative")
    return v


def _rows(x, name: str) -> np.ndarray:
    v = np.asarray(x, dtype=np.float64)
    if v.size == 0:
        return np.zeros((0, 3), dtype=np.float64)
    _require(v.ndim == 2 and v.shape[1] == 3, f"{name} must be (M,3)")
    _require(bool(np.all(np.isfinite(v))) and bool(np.all(v >= 0.0)), f"{name} must be finite and non-negative")
    return v


def _line(label: str, values: np.ndarray, errors: np.ndarray) -> str:
    entries = "  ".join(_ENTRY.format(float(v), float(e)) for v, e in zip(values, errors))
    return f"{label:<30}[ {entries} ]"


def _heading(title: str) -> list[str]:
    return ["", title, "-" * len(title)]


class _Cursor:
    def __init__(self, values: np.ndarray) -> None:
        self._values = values
        self._pos = 0

    def take(self, n: int) -> np.ndarray:
        if self._pos + n > self._values.size:
            raise CalibrationConfigError("standard errors are shorter than the model parameter layout")
        out = self._values[self._pos : self._pos + n]
        self._pos += n
        return out

    def finish(self) -> None:
        if self._pos != self._values.size:
            raise CalibrationConfigError("standard errors are longer than the model parameter layout")


@dataclass(frozen=True)
class IntrinsicsErrors:
    focal_length: np.ndarray
    principal_point: np.ndarray
    skew: float
    radial_distortion: np.ndarray
    tangential_distortion: np.ndarray

    @classmethod
    def build(cls, focal_length, principal_point, skew=0.0, radial_distortion=(0.0, 0.0), tangential_distortion=(0.0, 0.0)):
        radial = _vec(radial_distortion, None, "radial_distortion error")
        _require(radial.size in (2, 3), "radial_distortion error must have 2 or 3 elements")
        return cls(
            focal_length=_vec(focal_length, 2, "focal_length error"),
            principal_point=_vec(principal_point, 2, "principal_point error"),
            skew=float(_vec(skew, 1, "skew error")[0]),
            radial_distortion=radial,
            tangential_distortion=_vec(tangential_distortion, 2, "tangential_distortion error"),
        )

    @classmethod
    def _take(cls, cur: _Cursor, camera: CameraModel) -> "IntrinsicsErrors":
        f = cur.take(2)
        c = cur.take(2)
        s = cur.take(1)[0] if camera.estimate_skew else 0.0
        k = cur.take(camera.num_radial_coefficients)
        p = cur.take(2) if camera.estimate_tangential_distortion else np.zeros(2)
        return cls.build(f, c, s, k, p)

    def check_matches(self, camera: CameraModel) -> None:
        if not camera.estimate_skew and self.skew != 0.0:
            raise CalibrationConfigError("skew error given for a camera without estimated skew")
        if camera.num_radial_coefficients != self.radial_distortion.size:
            raise CalibrationConfigError("radial distortion errors do not match the camera's coefficient count")
        if not camera.estimate_tangential_distortion and np.any(self.tangential_distortion != 0.0):
            raise CalibrationConfigError("tangential distortion errors given for a camera without tangential terms")

    def lines(self, camera: CameraModel) -> list[str]:
        K = camera.intrinsic_matrix
        out = [
            _line("Focal length (pixels):", np.array([K[0, 0], K[1, 1]]), self.focal_length),
            _line("Principal point (pixels):", np.array([K[0, 2], K[1, 2]]), self.principal_point),
            _line("Skew:", np.array([K[0, 1]]), np.array([self.skew])),
        ]
        k = camera.radial_distortion[: self.radial_distortion.size]
        out.append(_line("Radial distortion:", k, self.radial_distortion))
        out.append(_line("Tangential distortion:", camera.tangential_distortion, self.tangential_distortion))
        return out

    def to_record(self) -> dict[str, Any]:
        return {
            "focal_length": self.focal_length.copy(),
            "principal_point": self.principal_point.copy(),
            "skew": self.skew,
            "radial_distortion": self.radial_distortion.copy(),
            "tangential_distortion": self.tangential_distortion.copy(),
        }


@dataclass(frozen=True)
class ExtrinsicsErrors:
    rotation_vectors: np.ndarray
    translation_vectors: np.ndarray

    @classmethod
    def build(cls, rotation_vectors, translation_vectors) -> "ExtrinsicsErrors":
        r = _rows(rotation_vectors, "rotation_vectors error")
        t = _rows(translation_vectors, "translation_vectors error")
        _require(r.shape == t.shape, "rotation and translation errors must have the same shape")
        return cls(rotation_vectors=r, translation_vectors=t)

    @classmethod
    def _take(cls, cur: _Cursor, num_patterns: int) -> "ExtrinsicsErrors":
        rt = cur.take(6 * num_patterns).reshape(num_patterns, 6)
        return cls.build(rt[:, :3], rt[:, 3:])

    def check_matches(self, num_patterns: int) -> None:
        if self.rotation_vectors.shape[0] != num_patterns:
            raise CalibrationConfigError("extrinsics errors do not match the number of patterns")

    def lines(self, rotation_vectors: np.ndarray, translation_vectors: np.ndarray, world_units: str) -> list[str]:
        out = ["Rotation vectors:"]
        for r, e in zip(rotation_vectors, self.rotation_vectors):
            out.append(_line("", r, e))
        out.append("")
        out.append(f"Translation vectors ({world_units}):")
        for t, e in zip(translation_vectors, self.translation_vectors):
            out.append(_line("", t, e))
        return out

    def to_record(self) -> dict[str, Any]:
        return {"rotation_vectors": self.rotation_vectors.copy(), "translation_vectors": self.translation_vectors.copy()}


@dataclass(frozen=True)
class FisheyeIntrinsicsErrors:
    mapping_coefficients: np.ndarray
    distortion_center: np.ndarray
    stretch_matrix: np.ndarray

    @classmethod
    def build(cls, mapping_coefficients, distortion_center, stretch_matrix=(0.0, 0.0, 0.0)):
        return cls(
            mapping_coefficients=_vec(mapping_coefficients, 4, "mapping_coefficients error"),
            distortion_center=_vec(distortion_center, 2, "distortion_center error"),
            stretch_matrix=_vec(stretch_matrix, 3, "stretch_matrix error"),
        )

    def lines(self, model: FisheyeModel) -> list[str]:
        intr = model.intrinsics
        # c, d, e of the stretch matrix in column-major order
        stretch = intr.stretch_matrix.reshape(-1, order="F")[:3]
        return [
            _line("Mapping coefficients:", intr.mapping_coefficients, self.mapping_coefficients),
            _line("Distortion center (pixels):", intr.distortion_center, self.distortion_center),
            _line("Stretch matrix:", stretch, self.stretch_matrix),
        ]


class CameraCalibrationErrors:
    """Standard errors of a calibrated pinhole camera."""

    def __init__(self, intrinsics: IntrinsicsErrors, extrinsics: ExtrinsicsErrors) -> None:
        self.intrinsics = intrinsics
        self.extrinsics = extrinsics

    @classmethod
    def from_standard_errors(cls, standard_errors: np.ndarray, camera: CameraModel) -> "CameraCalibrationErrors":
        cur = _Cursor(np.asarray(standard_errors, dtype=np.float64).reshape(-1))
        intr = IntrinsicsErrors._take(cur, camera)
        extr = ExtrinsicsErrors._take(cur, camera.num_patterns)
        cur.finish()
        return cls(intr, extr)

    def check_matches(self, camera: CameraModel) -> None:
        self.intrinsics.check_matches(camera)
        self.extrinsics.check_matches(camera.num_patterns)

    def format(self, camera: CameraModel) -> str:
        self.check_matches(camera)
        out = ["Standard errors of estimated camera parameters"]
        out += _heading("Intrinsics")
        out += self.intrinsics.lines(camera)
        out += _heading("Extrinsics")
        out += self.extrinsics.lines(camera.rotation_vectors, camera.translation_vectors, camera.world_units)
        return "\n".join(out) + "\n"

    def to_record(self) -> dict[str, Any]:
        return {**self.intrinsics.to_record(), **self.extrinsics.to_record()}


class StereoCalibrationErrors:
    """Standard errors of a calibrated stereo pair."""

    def __init__(
        self,
        camera1_intrinsics: IntrinsicsErrors,
        camera1_extrinsics: ExtrinsicsErrors,
        camera2_intrinsics: IntrinsicsErrors,
        rotation_of_camera2: np.ndarray,
        translation_of_camera2: np.ndarray,
    ) -> None:
        self.camera1_intrinsics = camera1_intrinsics
        self.camera1_extrinsics = camera1_extrinsics
        self.camera2_intrinsics = camera2_intrinsics
        self.rotation_of_camera2 = _vec(rotation_of_camera2, 3, "rotation_of_camera2 error")
        self.translation_of_camera2 = _vec(translation_of_camera2, 3, "translation_of_camera2 error")

    @classmethod
    def from_standard_errors(cls, standard_errors: np.ndarray, stereo: StereoModel) -> "StereoCalibrationErrors":
        cur = _Cursor(np.asarray(standard_errors, dtype=np.float64).reshape(-1))
        intr1 = IntrinsicsErrors._take(cur, stereo.camera1)
        intr2 = IntrinsicsErrors._take(cur, stereo.camera2)
        r = cur.take(3)
        t = cur.take(3)
        extr1 = ExtrinsicsErrors._take(cur, stereo.num_patterns)
        cur.finish()
        return cls(intr1, extr1, intr2, r, t)

    def check_matches(self, stereo: StereoModel) -> None:
        self.camera1_intrinsics.check_matches(stereo.camera1)
        self.camera2_intrinsics.check_matches(stereo.camera2)
        self.camera1_extrinsics.check_matches(stereo.num_patterns)

    def format(self, stereo: StereoModel) -> str:
        self.check_matches(stereo)
        cam1 = stereo.camera1
        r, _ = rodrigues_matrix_to_vector(stereo.rotation_of_camera2)
        out = ["Standard errors of estimated stereo camera parameters"]
        out += _heading("Camera 1 intrinsics")
        out += self.camera1_intrinsics.lines(cam1)
        out += _heading("Camera 1 extrinsics")
        out += self.camera1_extrinsics.lines(cam1.rotation_vectors, cam1.translation_vectors, cam1.world_units)
        out += _heading("Camera 2 intrinsics")
        out += self.camera2_intrinsics.lines(stereo.camera2)
        out += _heading("Position and orientation of camera 2 relative to camera 1")
        out.append(_line("Rotation of camera 2:", r, self.rotation_of_camera2))
        out.append(
            _line(
                f"Translation of camera 2 ({stereo.world_units}):",
                stereo.translation_of_camera2,
                self.translation_of_camera2,
            )
        )
        return "\n".join(out) + "\n"


class FisheyeCalibrationErrors:
    """Standard errors of a calibrated fisheye camera."""

    def __init__(self, intrinsics: FisheyeIntrinsicsErrors, extrinsics: ExtrinsicsErrors) -> None:
        self.intrinsics = intrinsics
        self.extrinsics = extrinsics

    @classmethod
    def from_standard_errors(cls, standard_errors: np.ndarray, model: FisheyeModel) -> "FisheyeCalibrationErrors":
        cur = _Cursor(np.asarray(standard_errors, dtype=np.float64).reshape(-1))
        coeffs = cur.take(4)
        center = cur.take(2)
        stretch = cur.take(3) if model.estimate_alignment else np.zeros(3)
        extr = ExtrinsicsErrors._take(cur, model.num_patterns)
        cur.finish()
        return cls(FisheyeIntrinsicsErrors.build(coeffs, center, stretch), extr)

    def format(self, model: FisheyeModel) -> str:
        self.extrinsics.check_matches(model.num_patterns)
        out = ["Standard errors of estimated fisheye camera parameters"]
        out += _heading("Intrinsics")
        out += self.intrinsics.lines(model)
        out += _heading("Extrinsics")
        out += self.extrinsics.lines(model.rotation_vectors, model.translation_vectors, model.world_units)
        return "\n".join(out) + "\n"

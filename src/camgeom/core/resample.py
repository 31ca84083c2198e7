"""
Image resampling through dense source-coordinate maps.

A map pair (map_x, map_y) gives, for every output pixel, the 0-based source pixel
coordinate to sample. Two backends implement the same contract:

- `OpenCVResampler` wraps `cv2.remap` (maps are narrowed to float32),
- `ScipyResampler` wraps `scipy.ndimage.map_coordinates` and keeps float64 maps.

Pixels whose source lies outside the image receive `fill_value`, one value per
channel for any channel count. Both backends return the input dtype.

The backends agree to interpolation precision, not bit for bit. `cv2.remap`
quantizes sub-pixel positions to 1/32 of a pixel, so nearest-neighbour sampling
may pick the other neighbour when a source coordinate lies within 1/32 of a .5
tie, and bilinear output within one pixel of the image border blends in the
fill value where scipy does not.
"""
from __future__ import annotations

import logging
from typing import Protocol, Sequence

import numpy as np

from camgeom.config import get_config

logger = logging.getLogger(__name__)

INTERPOLATIONS = ("nearest", "bilinear", "bicubic")


class Resampler(Protocol):
    name: str

    def remap(
        self,
        image: np.ndarray,
        map_x: np.ndarray,
        map_y: np.ndarray,
        interpolation: str = "bilinear",
        fill_value: float | Sequence[float] = 0.0,
    ) -> np.ndarray: ...


def _check_interpolation(interpolation: str) -> None:
    if interpolation not in INTERPOLATIONS:
        raise ValueError(f"interpolation must be one of {INTERPOLATIONS}")


def _fill_per_channel(fill_value: float | Sequence[float], channels: int) -> np.ndarray:
    fill = np.asarray(fill_value, dtype=np.float64).reshape(-1)
    if fill.size == 1:
        return np.full((channels,), float(fill[0]))
    if fill.size != channels:
        raise ValueError("fill_value must be a scalar or have one value per channel")
    return fill


def _cast_like(values: np.ndarray, dtype: np.dtype) -> np.ndarray:
    dtype = np.dtype(dtype)
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(values), info.min, info.max).astype(dtype)
    if dtype == np.bool_:
        return values >= 0.5
    return values.astype(dtype, copy=False)


class ScipyResampler:
    name = "scipy"

    _ORDERS = {"nearest": 0, "bilinear": 1, "bicubic": 3}

    def remap(
        self,
        image: np.ndarray,
        map_x: np.ndarray,
        map_y: np.ndarray,
        interpolation: str = "bilinear",
        fill_value: float | Sequence[float] = 0.0,
    ) -> np.ndarray:
        from scipy.ndimage import map_coordinates

        _check_interpolation(interpolation)
        image = np.asarray(image)
        order = self._ORDERS[interpolation]
        work_dtype = np.float64 if image.dtype == np.float64 else np.float32
        coords = np.stack([np.asarray(map_y, dtype=np.float64), np.asarray(map_x, dtype=np.float64)])

        planes = image[..., None] if image.ndim == 2 else image
        fill = _fill_per_channel(fill_value, planes.shape[-1])
        out = np.empty(map_x.shape + (planes.shape[-1],), dtype=work_dtype)
        for ch in range(planes.shape[-1]):
            out[..., ch] = map_coordinates(
                planes[..., ch].astype(work_dtype, copy=False),
                coords,
                order=order,
                mode="constant",
                cval=float(fill[ch]),
                prefilter=order > 1,
            )
        if image.ndim == 2:
            out = out[..., 0]
        return _cast_like(out, image.dtype)


class OpenCVResampler:
    name = "opencv"

    # cv2.remap honours at most four border values per call.
    _MAX_CHANNELS = 4

    def remap(
        self,
        image: np.ndarray,
        map_x: np.ndarray,
        map_y: np.ndarray,
        interpolation: str = "bilinear",
        fill_value: float | Sequence[float] = 0.0,
    ) -> np.ndarray:
        import cv2

        _check_interpolation(interpolation)
        flags = {"nearest": cv2.INTER_NEAREST, "bilinear": cv2.INTER_LINEAR, "bicubic": cv2.INTER_CUBIC}[interpolation]
        image = np.asarray(image)
        planes = image[..., None] if image.ndim == 2 else image
        fill = _fill_per_channel(fill_value, planes.shape[-1])

        if image.dtype in (np.uint8, np.uint16, np.int16, np.float32, np.float64):
            work = planes
        elif image.dtype.itemsize >= 4 and image.dtype.kind in "iu":
            work = planes.astype(np.float64)
        else:
            work = planes.astype(np.float32)
        mx = np.asarray(map_x, dtype=np.float32)
        my = np.asarray(map_y, dtype=np.float32)

        chunks = []
        for start in range(0, work.shape[-1], self._MAX_CHANNELS):
            part = np.ascontiguousarray(work[..., start : start + self._MAX_CHANNELS])
            n = part.shape[-1]
            if n == 1:
                part = part[..., 0]
                border = float(fill[start])
            else:
                border = tuple(float(v) for v in fill[start : start + n])
            out = cv2.remap(part, mx, my, interpolation=flags, borderMode=cv2.BORDER_CONSTANT, borderValue=border)
            chunks.append(out.reshape(mx.shape + (n,)))
        out = chunks[0] if len(chunks) == 1 else np.concatenate(chunks, axis=-1)
        if image.ndim == 2:
            out = out[..., 0]
        if work is not planes:
            return _cast_like(out, image.dtype)
        return out


def opencv_available() -> bool:
    try:
        import cv2  # noqa: F401
    except ImportError:
        return False
    return True


def get_resampler(name: str | None = None) -> Resampler:
    """
    Resolve a resampling backend: "opencv", "scipy" or "auto" (configured default).
    """
    name = name or get_config().resample_backend
    if name == "auto":
        name = "opencv" if opencv_available() else "scipy"
        logger.debug("auto-selected resampling backend: %s", name)
    if name == "opencv":
        return OpenCVResampler()
    if name == "scipy":
        return ScipyResampler()
    raise ValueError(f"unknown resampling backend: {name}")

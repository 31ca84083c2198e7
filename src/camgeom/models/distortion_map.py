"""
Cached dense resampling maps for undistortion and rectification.

A `DistortionMapCache` owns at most one `DistortionMap`. The map is keyed by a
`MapSignature`; callers check `needs_update(...)` and call one of the `update_*`
methods explicitly before `transform_image(...)`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from camgeom.core.distortion import BrownDistortion, distort_pixels
from camgeom.core.geometry import pixel_grid, transform_points_inverse
from camgeom.core.resample import Resampler, get_resampler
from camgeom.errors import PreconditionError

logger = logging.getLogger(__name__)


def map_dtype_for(image_dtype: np.dtype) -> np.dtype:
    """float64 maps for float64 images, float32 maps otherwise."""
    return np.dtype(np.float64) if np.dtype(image_dtype) == np.float64 else np.dtype(np.float32)


@dataclass(frozen=True)
class MapSignature:
    image_shape: tuple[int, ...]
    image_dtype: str
    output_view: str
    backend: str
    focal_length: tuple[float, float] | None = None
    method: str | None = None


@dataclass(frozen=True)
class DistortionMap:
    """
    Source coordinates for every output pixel, held in two precisions.

    `map_x`/`map_y` are float64; `narrow_x`/`narrow_y` are the same grids narrowed
    to float32. `maps_for(dtype)` hands out the pair matching an image dtype.
    """

    map_x: np.ndarray
    map_y: np.ndarray
    narrow_x: np.ndarray
    narrow_y: np.ndarray
    x_bounds: tuple[int, int]
    y_bounds: tuple[int, int]
    signature: MapSignature
    principal_point: tuple[float, float] | None = None

    def maps_for(self, image_dtype: np.dtype) -> tuple[np.ndarray, np.ndarray]:
        if map_dtype_for(image_dtype) == np.float64:
            return self.map_x, self.map_y
        return self.narrow_x, self.narrow_y

    @property
    def new_origin(self) -> tuple[int, int]:
        """Undistorted coordinate of output pixel (0, 0)."""
        return int(self.x_bounds[0]), int(self.y_bounds[0])

    @property
    def output_size(self) -> tuple[int, int]:
        return int(self.map_x.shape[0]), int(self.map_x.shape[1])


@dataclass(frozen=True)
class _ProjectedGrid:
    key: tuple
    xy: np.ndarray
    shape: tuple[int, int]


class DistortionMapCache:
    """
    Single-entry map cache owned by one camera model or one side of a stereo rig.

    Not thread safe.
    """

    def __init__(self, resampler: Resampler | None = None) -> None:
        self._resampler = resampler
        self._map: DistortionMap | None = None
        self._projected: _ProjectedGrid | None = None

    @property
    def map(self) -> DistortionMap | None:
        return self._map

    @property
    def resampler(self) -> Resampler:
        return self._resampler if self._resampler is not None else get_resampler()

    def clear(self) -> None:
        self._map = None
        self._projected = None

    def signature_for(
        self,
        image: np.ndarray,
        output_view: str,
        focal_length: tuple[float, float] | None = None,
        method: str | None = None,
    ) -> MapSignature:
        image = np.asarray(image)
        return MapSignature(
            image_shape=tuple(int(s) for s in image.shape),
            image_dtype=str(image.dtype),
            output_view=str(output_view),
            backend=self.resampler.name,
            focal_length=None if focal_length is None else (float(focal_length[0]), float(focal_length[1])),
            method=method,
        )

    def needs_update(
        self,
        image: np.ndarray,
        output_view: str,
        focal_length: tuple[float, float] | None = None,
        method: str | None = None,
    ) -> bool:
        if self._map is None:
            return True
        return self._map.signature != self.signature_for(image, output_view, focal_length, method)

    def _store(self, xy: np.ndarray, shape, image, output_view, x_bounds, y_bounds, focal_length=None, method=None, pp=None):
        map_x = xy[:, 0].reshape(shape).astype(np.float64)
        map_y = xy[:, 1].reshape(shape).astype(np.float64)
        self._map = DistortionMap(
            map_x=map_x,
            map_y=map_y,
            narrow_x=map_x.astype(np.float32),
            narrow_y=map_y.astype(np.float32),
            x_bounds=(int(x_bounds[0]), int(x_bounds[1])),
            y_bounds=(int(y_bounds[0]), int(y_bounds[1])),
            signature=self.signature_for(image, output_view, focal_length, method),
            principal_point=pp,
        )
        logger.debug("rebuilt %dx%d map for view '%s'", shape[1], shape[0], output_view)
        return self._map

    def update_pinhole(
        self,
        image: np.ndarray,
        K: np.ndarray,
        distortion: BrownDistortion,
        output_view: str,
        x_bounds: tuple[int, int],
        y_bounds: tuple[int, int],
        homography: np.ndarray | None = None,
    ) -> DistortionMap:
        """
        Map every output pixel (optionally through the inverse of `homography`) to its
        distorted source pixel.
        """
        xx, yy = pixel_grid(x_bounds, y_bounds)
        pts = np.column_stack([xx.ravel(), yy.ravel()])
        if homography is not None:
            pts = transform_points_inverse(homography, pts)
        src = distort_pixels(pts, K, distortion)
        return self._store(src, xx.shape, image, output_view, x_bounds, y_bounds)

    def update_fisheye(
        self,
        image: np.ndarray,
        project: Callable[[np.ndarray, str], np.ndarray],
        output_view: str,
        x_bounds: tuple[int, int],
        y_bounds: tuple[int, int],
        focal_length: tuple[float, float],
        principal_point: tuple[float, float],
        method: str,
    ) -> DistortionMap:
        """
        Project a principal-point-centered normalized grid through `project(points3d, method)`.

        The projected grid is reused when only the image dtype or shape changes.
        """
        key = (
            (int(x_bounds[0]), int(x_bounds[1])),
            (int(y_bounds[0]), int(y_bounds[1])),
            (float(focal_length[0]), float(focal_length[1])),
            (float(principal_point[0]), float(principal_point[1])),
            method,
        )
        if self._projected is None or self._projected.key != key:
            xx, yy = pixel_grid(x_bounds, y_bounds)
            x = (xx.ravel() - principal_point[0]) / focal_length[0]
            y = (yy.ravel() - principal_point[1]) / focal_length[1]
            pts3d = np.column_stack([x, y, np.ones_like(x)])
            self._projected = _ProjectedGrid(key=key, xy=project(pts3d, method), shape=xx.shape)
        else:
            logger.debug("reusing projected fisheye grid")
        p = self._projected
        pp = (float(principal_point[0]), float(principal_point[1]))
        return self._store(p.xy, p.shape, image, output_view, x_bounds, y_bounds, focal_length, method, pp)

    def transform_image(
        self, image: np.ndarray, interpolation: str = "bilinear", fill_value: float | Sequence[float] = 0.0
    ) -> np.ndarray:
        if self._map is None:
            raise PreconditionError("distortion map has not been built")
        map_x, map_y = self._map.maps_for(np.asarray(image).dtype)
        return self.resampler.remap(image, map_x, map_y, interpolation, fill_value)

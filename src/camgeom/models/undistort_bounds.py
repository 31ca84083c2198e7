"""
Output bounds of an undistorted image.

The undistorted plane is sampled on an integer grid large enough to reach every
pixel of the distorted image. The resulting mask of undistorted pixels whose
distorted location falls inside the image drives the two non-trivial views:

- "full": bounding box of the connected region whose centroid is closest to the
  mask center,
- "valid": largest axis-aligned rectangle containing only valid pixels, found by
  re-distorting the region boundary and keeping the pixels that land on the
  original image edges.

Bounds are inclusive integer ranges in undistorted pixel coordinates.
"""
from __future__ import annotations

import logging
import warnings
from typing import Callable

import numpy as np

from camgeom.config import GeometryConfig, get_config
from camgeom.core.geometry import pixel_grid
from camgeom.errors import BadValidBoundsWarning, UndistortBoundsError

logger = logging.getLogger(__name__)

OUTPUT_VIEWS = ("same", "full", "valid")

DistortFn = Callable[[np.ndarray], np.ndarray]
Bounds = tuple[tuple[int, int], tuple[int, int]]


def check_output_view(output_view: str, allowed: tuple[str, ...] = OUTPUT_VIEWS) -> str:
    view = str(output_view).lower()
    if view not in allowed:
        raise ValueError(f"output_view must be one of {allowed}")
    return view


def _ring(x_bounds: tuple[int, int], y_bounds: tuple[int, int]) -> np.ndarray:
    x0, x1 = x_bounds
    y0, y1 = y_bounds
    xs = np.arange(x0, x1 + 1, dtype=np.float64)
    ys = np.arange(y0, y1 + 1, dtype=np.float64)
    return np.concatenate(
        [
            np.column_stack([xs, np.full_like(xs, y0)]),
            np.column_stack([xs, np.full_like(xs, y1)]),
            np.column_stack([np.full_like(ys, x0), ys]),
            np.column_stack([np.full_like(ys, x1), ys]),
        ]
    )


def _mark_covered(covered: np.ndarray, distorted: np.ndarray) -> None:
    rows, cols = covered.shape
    d = distorted[np.all(np.isfinite(distorted), axis=1)]
    fx, cx = np.floor(d[:, 0]), np.ceil(d[:, 0])
    fy, cy = np.floor(d[:, 1]), np.ceil(d[:, 1])
    xs = np.concatenate([fx, fx, cx, cx]).astype(np.int64)
    ys = np.concatenate([fy, cy, fy, cy]).astype(np.int64)
    inside = (xs >= 0) & (ys >= 0) & (xs < cols) & (ys < rows)
    covered[ys[inside], xs[inside]] = True


def covering_bounds(image_size: tuple[int, int], distort: DistortFn, max_trials: int = 5) -> Bounds:
    """
    Grow the undistorted grid one pixel per side until every distorted pixel is
    reached, or until `max_trials` consecutive steps bring no improvement.
    """
    rows, cols = image_size
    x_bounds, y_bounds = (0, cols - 1), (0, rows - 1)
    xx, yy = pixel_grid(x_bounds, y_bounds)
    covered = np.zeros((rows, cols), dtype=bool)
    _mark_covered(covered, distort(np.column_stack([xx.ravel(), yy.ravel()])))
    unmapped = int(covered.size - covered.sum())

    trials = 0
    while trials < max_trials and unmapped > 0:
        x_bounds = (x_bounds[0] - 1, x_bounds[1] + 1)
        y_bounds = (y_bounds[0] - 1, y_bounds[1] + 1)
        last = unmapped
        _mark_covered(covered, distort(_ring(x_bounds, y_bounds)))
        unmapped = int(covered.size - covered.sum())
        trials = trials + 1 if unmapped == last else 0

    logger.debug("covering bounds x=%s y=%s, %d distorted pixels unreached", x_bounds, y_bounds, unmapped)
    return x_bounds, y_bounds


def undistorted_mask(image_size: tuple[int, int], distort: DistortFn, x_bounds, y_bounds) -> np.ndarray:
    """
    Nearest-neighbour validity mask over the undistorted grid: True where the
    distorted location rounds to a pixel of the original image.
    """
    rows, cols = image_size
    xx, yy = pixel_grid(x_bounds, y_bounds)
    d = distort(np.column_stack([xx.ravel(), yy.ravel()]))
    u = np.rint(d[:, 0])
    v = np.rint(d[:, 1])
    ok = np.isfinite(u) & np.isfinite(v) & (u >= 0) & (v >= 0) & (u <= cols - 1) & (v <= rows - 1)
    return ok.reshape(xx.shape)


def _central_component(mask: np.ndarray) -> np.ndarray:
    from scipy import ndimage

    labels, count = ndimage.label(mask, structure=np.ones((3, 3), dtype=bool))
    if count == 0:
        raise UndistortBoundsError("undistorted image has no valid pixels")
    if count == 1:
        return labels == 1
    centroids = np.asarray(ndimage.center_of_mass(mask, labels, index=np.arange(1, count + 1)))
    center = np.round(np.asarray(mask.shape, dtype=np.float64) / 2.0)
    d2 = np.sum((centroids - center) ** 2, axis=1)
    return labels == int(np.argmin(d2)) + 1


def full_bounds(mask: np.ndarray, x_big: tuple[int, int], y_big: tuple[int, int]) -> Bounds:
    comp = _central_component(mask)
    rr, cc = np.nonzero(comp)
    x_bounds = (int(x_big[0] + cc.min()), int(x_big[0] + cc.max()))
    y_bounds = (int(y_big[0] + rr.min()), int(y_big[0] + rr.max()))
    return x_bounds, y_bounds


def _boundary_pixels(mask: np.ndarray) -> np.ndarray:
    """(N,2) [col,row] outer-boundary pixels of the region hit by a ray shot down from the center."""
    from scipy import ndimage

    rows, cols = mask.shape
    c = cols // 2
    start = None
    for r in range(rows // 2, rows):
        if not mask[r, c]:
            start = (r - 1, c)
            break
    if start is None:
        start = (rows - 1, c)

    labels, _count = ndimage.label(mask, structure=np.ones((3, 3), dtype=bool))
    lab = labels[start] if start[0] >= 0 else 0
    comp = labels == lab if lab > 0 else _central_component(mask)
    comp = ndimage.binary_fill_holes(comp)
    edge = comp & ~ndimage.binary_erosion(comp, structure=np.ones((3, 3), dtype=bool), border_value=0)
    rr, cc = np.nonzero(edge)
    return np.column_stack([cc, rr]).astype(np.float64)


def valid_bounds(
    mask: np.ndarray,
    x_big: tuple[int, int],
    y_big: tuple[int, int],
    image_size: tuple[int, int],
    distort: DistortFn,
    tolerance: float = 7.0,
) -> Bounds:
    rows, cols = image_size
    undist = _boundary_pixels(mask)
    undist[:, 0] += x_big[0]
    undist[:, 1] += y_big[0]
    dist = distort(undist)

    min_x = max(0.0, float(np.nanmin(dist[:, 0])))
    max_x = min(cols - 1.0, float(np.nanmax(dist[:, 0])))
    min_y = max(0.0, float(np.nanmin(dist[:, 1])))
    max_y = min(rows - 1.0, float(np.nanmax(dist[:, 1])))

    top_px = undist[np.abs(dist[:, 1] - min_y) < tolerance, 1]
    bot_px = undist[np.abs(dist[:, 1] - max_y) < tolerance, 1]
    left_px = undist[np.abs(dist[:, 0] - min_x) < tolerance, 0]
    right_px = undist[np.abs(dist[:, 0] - max_x) < tolerance, 0]
    if top_px.size == 0 or bot_px.size == 0 or left_px.size == 0 or right_px.size == 0:
        raise UndistortBoundsError("cannot compute valid bounds of the undistorted image")

    top, bot = float(top_px.max()), float(bot_px.min())
    left, right = float(left_px.max()), float(right_px.min())
    if (
        left > right
        or top > bot
        or min_x > tolerance
        or max_x < cols - 1 - tolerance
        or min_y > tolerance
        or max_y < rows - 1 - tolerance
    ):
        warnings.warn(
            "valid undistorted bounds may be inaccurate; distortion may be too strong for this view",
            BadValidBoundsWarning,
            stacklevel=3,
        )

    x_bounds = tuple(sorted((int(np.ceil(left)), int(np.floor(right)))))
    y_bounds = tuple(sorted((int(np.ceil(top)), int(np.floor(bot)))))
    return x_bounds, y_bounds


def compute_undistort_bounds(
    image_size: tuple[int, int],
    output_view: str,
    distort: DistortFn,
    config: GeometryConfig | None = None,
) -> Bounds:
    """
    Inclusive (x_bounds, y_bounds) of the undistorted output for `output_view`.

    `distort` maps (N,2) undistorted pixels to distorted pixels.
    """
    cfg = config or get_config()
    rows, cols = int(image_size[0]), int(image_size[1])
    view = check_output_view(output_view)
    if view == "same":
        return (0, cols - 1), (0, rows - 1)

    x_big, y_big = covering_bounds((rows, cols), distort, max_trials=int(cfg.mask_growth_trials))
    mask = undistorted_mask((rows, cols), distort, x_big, y_big)
    if view == "full":
        return full_bounds(mask, x_big, y_big)
    return valid_bounds(mask, x_big, y_big, (rows, cols), distort, tolerance=float(cfg.valid_edge_tolerance_px))

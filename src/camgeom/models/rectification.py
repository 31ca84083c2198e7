from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from camgeom.errors import _require
from camgeom.models.extrinsics import check_image_size

RECTIFICATION_SCHEMA = "camgeom.rectification.v0"
RECTIFY_VIEWS = ("full", "valid")


def _matrix(x, shape: tuple[int, int], name: str) -> np.ndarray:
    m = np.asarray(x, dtype=np.float64)
    _require(m.shape == shape, f"{name} must be {shape[0]}x{shape[1]}")
    _require(bool(np.all(np.isfinite(m))), f"{name} must be finite")
    return m


def _bounds(x, name: str) -> tuple[int, int]:
    b = np.asarray(x).reshape(-1)
    _require(b.size == 2, f"{name} must have 2 elements")
    return int(b[0]), int(b[1])


@dataclass(frozen=True)
class RectificationState:
    """
    Rectifying homographies, reprojection matrix and output bounds of a stereo pair.

    h1, h2 map undistorted pixels of each camera to rectified pixels; q maps
    [x, y, disparity, 1] of the rectified output image to homogeneous 3-D points in
    the rectified camera-1 frame. Valid only for `original_image_size` and
    `output_view`.
    """

    h1: np.ndarray = field(default_factory=lambda: np.eye(3))
    h2: np.ndarray = field(default_factory=lambda: np.eye(3))
    q: np.ndarray = field(default_factory=lambda: np.eye(4))
    x_bounds: tuple[int, int] = (0, 0)
    y_bounds: tuple[int, int] = (0, 0)
    original_image_size: tuple[int, int] = (0, 0)
    output_view: str = "valid"
    initialized: bool = False

    @classmethod
    def uninitialized(cls) -> "RectificationState":
        return cls()

    @property
    def rectified_image_size(self) -> tuple[int, int]:
        return (
            int(self.y_bounds[1] - self.y_bounds[0] + 1),
            int(self.x_bounds[1] - self.x_bounds[0] + 1),
        )

    def needs_update(self, image_size: tuple[int, int], output_view: str) -> bool:
        if not self.initialized:
            return True
        return tuple(int(s) for s in image_size[:2]) != tuple(self.original_image_size) or output_view != self.output_view

    def to_record(self) -> dict[str, Any]:
        return {
            "schema_version": RECTIFICATION_SCHEMA,
            "initialized": self.initialized,
            "h1": self.h1.copy(),
            "h2": self.h2.copy(),
            "q": self.q.copy(),
            "x_bounds": list(self.x_bounds),
            "y_bounds": list(self.y_bounds),
            "original_image_size": list(self.original_image_size),
            "output_view": self.output_view,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "RectificationState":
        _require(
            record.get("schema_version") == RECTIFICATION_SCHEMA, f"schema_version must be {RECTIFICATION_SCHEMA}"
        )
        if not bool(record.get("initialized", False)):
            return cls.uninitialized()
        view = str(record.get("output_view"))
        _require(view in RECTIFY_VIEWS, f"output_view must be one of {RECTIFY_VIEWS}")
        size = check_image_size(record.get("original_image_size"))
        _require(size is not None, "original_image_size is required")
        return cls(
            h1=_matrix(record["h1"], (3, 3), "h1"),
            h2=_matrix(record["h2"], (3, 3), "h2"),
            q=_matrix(record["q"], (4, 4), "q"),
            x_bounds=_bounds(record["x_bounds"], "x_bounds"),
            y_bounds=_bounds(record["y_bounds"], "y_bounds"),
            original_image_size=size,
            output_view=view,
            initialized=True,
        )

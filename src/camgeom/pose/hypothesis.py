from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class PoseHypothesis:
    """Candidate pose with X_cam = rotation @ X_world + translation."""

    rotation: np.ndarray
    translation: np.ndarray

    @property
    def rotation_vector(self) -> np.ndarray:
        from camgeom.core.rotation import rodrigues_matrix_to_vector

        return rodrigues_matrix_to_vector(self.rotation)[0]

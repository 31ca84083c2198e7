__version__ = "0.1.0"

from camgeom.api import load_model, save_model
from camgeom.config import GeometryConfig, get_config, load_config, set_config
from camgeom.core.rotation import rodrigues_matrix_to_vector, rodrigues_vector_to_matrix
from camgeom.estimation.calibration_errors import (
    CameraCalibrationErrors,
    FisheyeCalibrationErrors,
    StereoCalibrationErrors,
)
from camgeom.estimation.covariance import compute_standard_errors, estimate_covariance
from camgeom.models.camera import CameraIntrinsics, CameraModel
from camgeom.models.fisheye import FisheyeIntrinsics, FisheyeModel, undistort_fisheye_image, undistort_fisheye_points
from camgeom.models.stereo import StereoModel
from camgeom.pose.camera_pose import camera_matrix, estimate_extrinsics
from camgeom.pose.essential import decompose_essential_matrix
from camgeom.pose.p3p import solve_p3p

__all__ = [
    "__version__",
    "CameraCalibrationErrors",
    "CameraIntrinsics",
    "CameraModel",
    "FisheyeCalibrationErrors",
    "FisheyeIntrinsics",
    "FisheyeModel",
    "GeometryConfig",
    "StereoCalibrationErrors",
    "StereoModel",
    "camera_matrix",
    "compute_standard_errors",
    "decompose_essential_matrix",
    "estimate_covariance",
    "estimate_extrinsics",
    "get_config",
    "load_config",
    "load_model",
    "rodrigues_matrix_to_vector",
    "rodrigues_vector_to_matrix",
    "save_model",
    "set_config",
    "solve_p3p",
    "undistort_fisheye_image",
    "undistort_fisheye_points",
]

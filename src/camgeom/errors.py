from __future__ import annotations


class CamgeomError(Exception):
    pass


class CalibrationConfigError(CamgeomError, ValueError):
    """Invalid model construction parameters (shapes, finiteness, mismatched inputs)."""


class GeometryDegeneracyError(CamgeomError, ArithmeticError):
    """A geometric configuration has no well-defined solution."""


class SingularProjectionError(GeometryDegeneracyError):
    pass


class DegenerateEssentialMatrixError(GeometryDegeneracyError):
    pass


class InvalidBoundsError(GeometryDegeneracyError):
    """No common output rectangle exists for a rectified stereo pair."""


class UndistortBoundsError(GeometryDegeneracyError):
    """The undistorted output region cannot be determined."""


class PreconditionError(CamgeomError, RuntimeError):
    pass


class RectificationRequiredError(PreconditionError):
    pass


class ValidViewFallbackWarning(UserWarning):
    pass


class BadValidBoundsWarning(UserWarning):
    pass


class FisheyeUndistortWarning(UserWarning):
    pass


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise CalibrationConfigError(msg)

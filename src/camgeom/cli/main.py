from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import numpy as np

from camgeom.api.model_io import load_model, save_model
from camgeom.config import load_config, set_config
from camgeom.core.image_io import load_image, save_image
from camgeom.core.resample import INTERPOLATIONS
from camgeom.models.camera import CameraModel
from camgeom.models.fisheye import FisheyeIntrinsics, FisheyeModel, undistort_fisheye_image
from camgeom.models.rectification import RECTIFY_VIEWS
from camgeom.models.stereo import StereoModel
from camgeom.models.undistort_bounds import OUTPUT_VIEWS

logger = logging.getLogger(__name__)


def _summary(model) -> dict:
    if isinstance(model, FisheyeIntrinsics):
        return {
            "type": "fisheye_intrinsics",
            "mapping_coefficients": model.mapping_coefficients.tolist(),
            "distortion_center": model.distortion_center.tolist(),
            "stretch_matrix": model.stretch_matrix.tolist(),
            "image_size": list(model.image_size),
        }
    return model.summary()


def _run_show(model_dir: Path) -> int:
    model = load_model(model_dir)
    print(json.dumps(_summary(model), indent=2, sort_keys=True))
    return 0


def _run_undistort(args: argparse.Namespace) -> int:
    model = load_model(args.model_dir)
    image = load_image(args.image)
    if isinstance(model, CameraModel):
        out, origin = model.undistort_image(image, interpolation=args.interp, output_view=args.view)
        logger.info("undistorted %s -> %dx%d, origin=%s", args.image, out.shape[1], out.shape[0], origin)
    elif isinstance(model, (FisheyeModel, FisheyeIntrinsics)):
        intrinsics = model.intrinsics if isinstance(model, FisheyeModel) else model
        out, camera = undistort_fisheye_image(
            image,
            intrinsics,
            interpolation=args.interp,
            output_view=args.view,
            scale_factor=args.scale_factor,
            method=args.method,
        )
        logger.info("virtual camera f=%s c=%s", camera.focal_length, camera.principal_point)
    else:
        print("undistort needs a single-camera model", file=sys.stderr)
        return 2
    save_image(args.out, out)
    print(f"Wrote {args.out}")
    return 0


def _load_stereo(model_dir: Path) -> StereoModel | None:
    model = load_model(model_dir)
    if not isinstance(model, StereoModel):
        print("expected a stereo model", file=sys.stderr)
        return None
    return model


def _run_rectify(args: argparse.Namespace) -> int:
    stereo = _load_stereo(args.model_dir)
    if stereo is None:
        return 2
    left = load_image(args.left)
    right = load_image(args.right)
    out1, out2 = stereo.rectify_stereo_images(left, right, interpolation=args.interp, output_view=args.view)

    args.out_dir.mkdir(parents=True, exist_ok=True)
    p1 = save_image(args.out_dir / f"left_rectified.{args.image_format}", out1)
    p2 = save_image(args.out_dir / f"right_rectified.{args.image_format}", out2)
    # rectification state travels with the model so `reconstruct` can use it
    save_model(args.out_dir / "model", stereo)
    print(f"Wrote {p1}")
    print(f"Wrote {p2}")
    return 0


def _run_reconstruct(args: argparse.Namespace) -> int:
    stereo = _load_stereo(args.model_dir)
    if stereo is None:
        return 2
    disparity = np.load(str(args.disparity))
    points = stereo.reconstruct_scene(disparity)
    np.save(str(args.out), points)
    n_valid = int(np.count_nonzero(np.all(np.isfinite(points), axis=-1)))
    print(f"Wrote {args.out} ({n_valid} valid points)")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="camgeom")
    parser.add_argument("--log-level", type=str, default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--config", type=Path, default=None, help="JSON geometry configuration file.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    show = sub.add_parser("show", help="Print a summary of a saved model.")
    show.add_argument("model_dir", type=Path)

    und = sub.add_parser("undistort", help="Remove lens distortion from an image (pinhole or fisheye model).")
    und.add_argument("model_dir", type=Path)
    und.add_argument("image", type=Path)
    und.add_argument("--out", type=Path, required=True)
    und.add_argument("--interp", type=str, default="bilinear", choices=list(INTERPOLATIONS))
    und.add_argument("--view", type=str, default="same", choices=list(OUTPUT_VIEWS))
    und.add_argument("--scale-factor", type=float, default=1.0, help="Fisheye virtual focal length scale.")
    und.add_argument("--method", type=str, default="approximate", choices=["exact", "approximate"])

    rect = sub.add_parser("rectify", help="Rectify a stereo image pair.")
    rect.add_argument("model_dir", type=Path)
    rect.add_argument("left", type=Path)
    rect.add_argument("right", type=Path)
    rect.add_argument("--out-dir", type=Path, required=True)
    rect.add_argument("--interp", type=str, default="bilinear", choices=list(INTERPOLATIONS))
    rect.add_argument("--view", type=str, default="valid", choices=list(RECTIFY_VIEWS))
    rect.add_argument("--image-format", type=str, default="png", choices=["png", "webp"])

    rec = sub.add_parser("reconstruct", help="Disparity map (.npy) of a rectified pair -> 3-D points (.npy).")
    rec.add_argument("model_dir", type=Path, help="Stereo model saved by `rectify`.")
    rec.add_argument("disparity", type=Path)
    rec.add_argument("--out", type=Path, required=True)

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")
    if args.config is not None:
        set_config(load_config(args.config))

    if args.cmd == "show":
        return _run_show(args.model_dir)

    if args.cmd == "undistort":
        return _run_undistort(args)

    if args.cmd == "rectify":
        return _run_rectify(args)

    if args.cmd == "reconstruct":
        return _run_reconstruct(args)

    raise AssertionError(f"unhandled command: {args.cmd}")


if __name__ == "__main__":
    raise SystemExit(main())

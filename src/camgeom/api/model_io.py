from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

import numpy as np

from camgeom.models.camera import CAMERA_SCHEMA, CameraModel
from camgeom.models.fisheye import FISHEYE_INTRINSICS_SCHEMA, FISHEYE_SCHEMA, FisheyeIntrinsics, FisheyeModel
from camgeom.models.stereo import STEREO_SCHEMA, StereoModel

Model = Union[CameraModel, FisheyeIntrinsics, FisheyeModel, StereoModel]

_LOADERS = {
    CAMERA_SCHEMA: CameraModel.from_record,
    FISHEYE_INTRINSICS_SCHEMA: FisheyeIntrinsics.from_record,
    FISHEYE_SCHEMA: FisheyeModel.from_record,
    STEREO_SCHEMA: StereoModel.from_record,
}

_ARRAY_REF = "__array__"


def _split(record: Any, prefix: str, arrays: dict[str, np.ndarray]) -> Any:
    """Replace arrays in a nested record by references into `arrays`."""
    if isinstance(record, np.ndarray):
        key = prefix or "root"
        arrays[key] = np.asarray(record, dtype=np.float64)
        return {_ARRAY_REF: key}
    if isinstance(record, dict):
        return {str(k): _split(v, f"{prefix}.{k}" if prefix else str(k), arrays) for k, v in record.items()}
    if isinstance(record, (list, tuple)):
        return [_split(v, f"{prefix}.{i}", arrays) for i, v in enumerate(record)]
    if isinstance(record, np.generic):
        return record.item()
    return record


def _join(meta: Any, arrays: Any) -> Any:
    if isinstance(meta, dict):
        if set(meta) == {_ARRAY_REF}:
            return np.asarray(arrays[str(meta[_ARRAY_REF])], dtype=np.float64)
        return {k: _join(v, arrays) for k, v in meta.items()}
    if isinstance(meta, list):
        return [_join(v, arrays) for v in meta]
    return meta


def save_model(model_dir: Path, model: Model) -> Path:
    """
    Save a camera, fisheye or stereo model into a directory:

      model.json + arrays.npz

    The JSON holds the record metadata with array references; the NPZ stores the
    float64 arrays so a load reproduces the model exactly.
    """
    model_dir = Path(model_dir)
    model_dir.mkdir(parents=True, exist_ok=True)

    arrays: dict[str, np.ndarray] = {}
    record = _split(model.to_record(), "", arrays)

    arrays_path = model_dir / "arrays.npz"
    np.savez_compressed(arrays_path, **arrays)

    meta: dict[str, Any] = {
        "schema_version": record["schema_version"],
        "record": record,
        "arrays": {"format": "npz", "path": arrays_path.name, "keys": sorted(arrays)},
    }
    json_path = model_dir / "model.json"
    json_path.write_text(json.dumps(meta, indent=2, sort_keys=True), encoding="utf-8")
    return json_path


def load_model(model_dir: Path) -> Model:
    model_dir = Path(model_dir)
    meta = json.loads((model_dir / "model.json").read_text(encoding="utf-8"))
    schema = str(meta.get("schema_version"))
    if schema not in _LOADERS:
        raise ValueError(f"unsupported model schema: {schema}")

    with np.load(str(model_dir / str(meta["arrays"]["path"]))) as npz:
        arrays = {k: npz[k] for k in npz.files}
    missing = set(meta["arrays"]["keys"]) - set(arrays)
    if missing:
        raise ValueError(f"arrays file is missing keys: {sorted(missing)}")
    return _LOADERS[schema](_join(meta["record"], arrays))

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from camgeom.core.image_io import load_image, save_image


def _write_gray(path: Path, arr: np.ndarray) -> None:
    img = Image.fromarray(arr.astype(np.uint8))
    if path.suffix.lower() == ".webp":
        img.save(path, lossless=True)
    else:
        img.save(path)


def test_load_image_png_and_webp(tmp_path: Path) -> None:
    arr = (np.arange(64, dtype=np.uint8).reshape(8, 8) * 4) % 255

    p_png = tmp_path / "a.png"
    p_webp = tmp_path / "a.webp"
    _write_gray(p_png, arr)
    _write_gray(p_webp, arr)

    a = load_image(p_png)
    b = load_image(p_webp)

    assert a.dtype == np.uint8
    assert b.dtype == np.uint8
    assert np.array_equal(a, arr)
    assert b.shape[:2] == (8, 8)


def test_save_image_roundtrip(tmp_path: Path) -> None:
    rgb = np.zeros((6, 5, 3), dtype=np.uint8)
    rgb[..., 0] = 200
    rgb[2, 3] = (10, 20, 30)
    p = save_image(tmp_path / "sub" / "rgb.png", rgb)
    back = load_image(p)
    assert back.shape == (6, 5, 3)
    assert np.array_equal(back, rgb)

    gray = np.linspace(0.0, 1.0, 20).reshape(4, 5)
    back = load_image(save_image(tmp_path / "gray.webp", gray))
    assert back.shape[:2] == (4, 5)
    assert back.dtype == np.uint8


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_image(tmp_path / "nope.png")

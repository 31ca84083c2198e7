from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image


def load_image(path: str | Path) -> np.ndarray:
    """
    Load an image as uint8, (H,W) for grayscale files and (H,W,3) RGB otherwise.

    Primary backend is OpenCV (if installed). Pillow is used as a fallback for
    formats the OpenCV build cannot decode.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(p)
    try:
        import cv2
    except ImportError:
        cv2 = None

    if cv2 is not None:
        img = cv2.imread(str(p), cv2.IMREAD_UNCHANGED)
        if img is not None:
            if img.ndim == 3:
                code = cv2.COLOR_BGRA2RGB if img.shape[2] == 4 else cv2.COLOR_BGR2RGB
                img = cv2.cvtColor(img, code)
            if img.dtype == np.uint16:
                img = (img // 257).astype(np.uint8)
            elif img.dtype != np.uint8:
                img = np.clip(img, 0, 255).astype(np.uint8)
            return img

    with Image.open(p) as im:
        im = im.convert("L") if im.mode in ("L", "I", "I;16", "F", "1") else im.convert("RGB")
        arr = np.asarray(im, dtype=np.uint8)
    return arr


def save_image(path: str | Path, image: np.ndarray) -> Path:
    """Write a (H,W) or (H,W,3) image; float images are expected in [0,1] or [0,255]."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    arr = np.asarray(image)
    if arr.dtype != np.uint8:
        arr = np.nan_to_num(arr.astype(np.float64))
        if arr.size and float(arr.max()) <= 1.0:
            arr = arr * 255.0
        arr = np.clip(np.rint(arr), 0, 255).astype(np.uint8)
    img = Image.fromarray(arr)
    if p.suffix.lower() == ".webp":
        img.save(p, lossless=True)
    else:
        img.save(p)
    return p

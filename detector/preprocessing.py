"""
preprocessing.py

Image preprocessing shared by training and inference. The two paths must
produce identical tensors for the same input, so both go through
`preprocess_image`.

Steps (order matters):
1. contrast stretch
2. light unsharp mask
3. letterbox to 128x128 on a black background (no crop, no stretch)
4. scale to float32 in [0, 1]
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Tuple, Union

import numpy as np
from PIL import Image, ImageDraw, ImageFilter, ImageOps

from detector.errors import ImagePreprocessingError
from detector.settings import IMG_SIZE

ImageSource = Union[str, Path, bytes, io.IOBase]

AUTOCONTRAST_CUTOFF = 1
SHARPEN = ImageFilter.UnsharpMask(radius=0.5, percent=50, threshold=0)
BACKGROUND = (0, 0, 0)

# Marker drawn on the highlighted variant of a positive scan
MARKER_BOX = (40, 40, 88, 88)
MARKER_COLOR = (255, 0, 0)


def load_image(source: ImageSource) -> Image.Image:
    """Open an image from a path, raw bytes or a file object.

    EXIF orientation is applied (phones and some scanners store rotated
    pixels) and the result is always RGB.
    """
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    try:
        img = Image.open(source)
        img.load()
        img = ImageOps.exif_transpose(img)
        return img.convert("RGB")
    except Exception as e:
        raise ImagePreprocessingError(f"Cannot read image: {e}") from e


def prepare_image(img: Image.Image) -> Image.Image:
    img = ImageOps.autocontrast(img, cutoff=AUTOCONTRAST_CUTOFF, preserve_tone=True)
    img = img.filter(SHARPEN)
    return ImageOps.pad(img, IMG_SIZE, method=Image.BICUBIC, color=BACKGROUND)


def to_array(img: Image.Image) -> np.ndarray:
    """(H, W, 3) float32 array scaled to [0, 1]."""
    return np.asarray(img, dtype=np.float32) / 255.0


def preprocess_image(source: ImageSource) -> Tuple[Image.Image, np.ndarray]:
    """
    Run the full preprocessing chain.

    Returns:
        (processed PIL image, float32 array of shape (128, 128, 3))
    """
    try:
        processed = prepare_image(load_image(source))
    except ImagePreprocessingError:
        raise
    except Exception as e:
        raise ImagePreprocessingError(f"Cannot preprocess image: {e}") from e
    return processed, to_array(processed)


def draw_tumor_marker(img: Image.Image, label: str = "Tumor") -> Image.Image:
    """Return a copy of a processed image with a circled "Tumor" marker."""
    marked = img.convert("RGB").copy()
    draw = ImageDraw.Draw(marked)
    draw.ellipse(MARKER_BOX, outline=MARKER_COLOR, width=2)
    cx = (MARKER_BOX[0] + MARKER_BOX[2]) // 2
    cy = (MARKER_BOX[1] + MARKER_BOX[3]) // 2
    left, top, right, bottom = draw.textbbox((0, 0), label)
    draw.text((cx - (right - left) // 2, cy - (bottom - top) // 2), label, fill=MARKER_COLOR)
    return marked

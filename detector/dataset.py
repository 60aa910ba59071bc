"""
dataset.py

The labeled dataset is plain files: `<dataset>/yes/*` (tumor) and
`<dataset>/no/*` (no tumor). Only .jpg/.jpeg/.png files count, whatever
their case.
"""

from __future__ import annotations

import logging
import random
import time
from pathlib import Path
from typing import Dict, List

from detector.errors import DatasetError
from detector.settings import IMAGE_EXTENSIONS, MIN_IMAGES_PER_CATEGORY

logger = logging.getLogger(__name__)

CATEGORIES = ("yes", "no")
LABELS = {"yes": 1, "no": 0}


def validate_category(category) -> str:
    if category not in CATEGORIES:
        raise DatasetError("Invalid category. Must be 'yes' or 'no'")
    return category


def is_image_file(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS


def list_images(directory: Path) -> List[Path]:
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if is_image_file(p))


def dataset_counts(dataset_dir: Path) -> Dict[str, int]:
    counts = {c: len(list_images(Path(dataset_dir) / c)) for c in CATEGORIES}
    counts["total"] = counts["yes"] + counts["no"]
    return counts


def ready_for_training(counts: Dict[str, int], minimum: int = MIN_IMAGES_PER_CATEGORY) -> bool:
    return counts.get("yes", 0) >= minimum and counts.get("no", 0) >= minimum


def unique_filename(original_name: str, prefix: str = "images") -> str:
    """`<prefix>-<epoch ms>-<random><ext>`, keeping the upload's extension."""
    suffix = Path(original_name or "").suffix.lower()
    stamp = int(time.time() * 1000)
    return f"{prefix}-{stamp}-{random.randint(0, 10**9)}{suffix}"


def save_dataset_image(dataset_dir: Path, category: str, original_name: str, data: bytes) -> Path:
    validate_category(category)
    if Path(original_name or "").suffix.lower() not in IMAGE_EXTENSIONS:
        raise DatasetError(f"Unsupported file type: {original_name}")

    target_dir = Path(dataset_dir) / category
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / unique_filename(original_name)
    path.write_bytes(data)
    return path


def clear_category(dataset_dir: Path, category: str) -> int:
    """Delete every image in one category. Non-image files are left alone."""
    validate_category(category)
    category_dir = Path(dataset_dir) / category
    if not category_dir.exists():
        category_dir.mkdir(parents=True, exist_ok=True)
        return 0

    files = list_images(category_dir)
    for path in files:
        path.unlink()
    logger.info("Cleared %d images from the %s category", len(files), category)
    return len(files)
